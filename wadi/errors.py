"""Service error taxonomy.

Every error carries a stable machine-readable ``code`` and the HTTP status
it is surfaced with. Services raise these; ``wadi.main`` renders them.
"""

from typing import Any, Dict, Optional


class WadiError(Exception):
    """Base class for all errors surfaced to clients."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class InvalidInputError(WadiError):
    """Caller mistake: empty or oversized input, unknown model, bad ids."""

    code = "INVALID_INPUT"
    status_code = 400


class AuthenticationError(WadiError):
    """Missing, invalid or expired bearer token."""

    code = "UNAUTHORIZED"
    status_code = 401


class NotFoundError(WadiError):
    code = "NOT_FOUND"
    status_code = 404


class ProjectNotFoundError(NotFoundError):
    code = "PROJECT_NOT_FOUND"

    def __init__(self, message: str = "Project not found"):
        super().__init__(message)


class InsufficientCreditsError(WadiError):
    """Balance is lower than the cost of the requested generation."""

    code = "INSUFFICIENT_CREDITS"
    status_code = 402

    def __init__(self, required: int, available: int):
        super().__init__("Insufficient credits")
        self.required = required
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["required"] = self.required
        data["available"] = self.available
        return data


class ProviderError(WadiError):
    """Upstream generation failure.

    ``retryable`` is True for rate limiting (HTTP 429) and False for
    auth/config failures and anything else.
    """

    code = "AI_GENERATION_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        status: Optional[int] = None,
        model: Optional[str] = None,
    ):
        super().__init__(message)
        self.retryable = retryable
        self.status = status
        self.model = model
        self.timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["details"] = {"model": self.model, "timestamp": self.timestamp}
        return data


class EmbeddingError(WadiError):
    """Embedding backend unavailable or misconfigured."""

    code = "EMBEDDING_ERROR"
    status_code = 503


class DimensionMismatchError(WadiError):
    """Two embedding vectors of different length were compared."""

    code = "INTERNAL_ERROR"
    status_code = 500
