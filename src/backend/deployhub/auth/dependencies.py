"""FastAPI dependencies for enforcing authentication on protected routes.

Usage:
    @router.get("/protected")
    async def endpoint(claims: Claims = Depends(get_current_user)):
        ...

Browsers cannot set headers on a WebSocket handshake, so the live-status
channel accepts the token as a ``token`` query parameter instead.
"""

from fastapi import Depends, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from deployhub.auth.jwt import Claims, verify_token
from deployhub.errors import UnauthorizedError

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Claims:
    if credentials is None:
        raise UnauthorizedError("Missing Bearer token")
    return verify_token(credentials.credentials)


def websocket_claims(websocket: WebSocket) -> Claims:
    token = websocket.query_params.get("token")
    if not token:
        header = websocket.headers.get("authorization", "")
        scheme, _, value = header.partition(" ")
        token = value if scheme.lower() == "bearer" else ""
    if not token:
        raise UnauthorizedError("Missing token")
    return verify_token(token)
