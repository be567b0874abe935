"""JWT verification for DeployHub.

Tokens are issued by the identity service; DeployHub only verifies them with
python-jose (HS256) and uses the ``sub`` claim as the opaque owner id.
create_token/build_claims exist for tooling and tests.
Claims is a plain dataclass — no ORM, no database dependency.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from jose import ExpiredSignatureError, JWTError, jwt

from deployhub.config import settings
from deployhub.errors import UnauthorizedError

_ALGORITHM = "HS256"
_EXPIRY_SECONDS = 900  # 15 minutes


@dataclass
class Claims:
    sub: str
    exp: int

    @property
    def owner_id(self) -> str:
        return self.sub


def create_token(claims: Claims) -> str:
    payload = {"sub": claims.sub, "exp": claims.exp}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM)


def build_claims(sub: str) -> Claims:
    exp = int(datetime.now(UTC).timestamp()) + _EXPIRY_SECONDS
    return Claims(sub=sub, exp=exp)


def verify_token(token: str) -> Claims:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise UnauthorizedError("Token has expired") from exc
    except JWTError as exc:
        raise UnauthorizedError("Invalid token") from exc

    if not payload.get("sub"):
        raise UnauthorizedError("Token has no subject")
    return Claims(sub=payload["sub"], exp=payload["exp"])
