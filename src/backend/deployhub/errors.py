"""DeployHub domain error hierarchy.

All service-layer errors inherit from DeployHubError. The global exception
handler in main.py converts these to structured JSON responses with the
correct HTTP status code and a request_id for traceability.

NotFoundError is also raised when a row exists but belongs to another owner,
so callers cannot discover the existence of other users' deployments.
"""


class DeployHubError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DeployHubError):
    status_code = 404
    code = "NOT_FOUND"


class UnauthorizedError(DeployHubError):
    status_code = 401
    code = "UNAUTHORIZED"


class ConflictError(DeployHubError):
    status_code = 409
    code = "CONFLICT"


class ValidationError(DeployHubError):
    status_code = 422
    code = "VALIDATION_ERROR"


class EncryptionError(DeployHubError):
    code = "ENCRYPTION_ERROR"


class DecryptionError(DeployHubError):
    code = "DECRYPTION_ERROR"


class LedgerError(DeployHubError):
    status_code = 503
    code = "LEDGER_ERROR"


class ClusterApiError(DeployHubError):
    status_code = 502
    code = "CLUSTER_API_ERROR"

    def __init__(self, message: str = "", status: int | None = None) -> None:
        super().__init__(message)
        # HTTP status reported by the Kubernetes API server, None for transport errors
        self.status = status
