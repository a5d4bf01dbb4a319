"""
Error taxonomy for the Match Fee Allocation Engine.

Goalkeeper conflicts are not errors; they are resolved and reported as warnings.
"""
from typing import Any, Dict, List, Optional


class FeeEngineError(Exception):
    """Base exception carrying a machine-readable code and HTTP status."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[List[Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": list(self.details),
        }


class ValidationError(FeeEngineError):
    """Malformed attendance, invalid override values or notes too long."""
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(FeeEngineError):
    """Unknown match, player, participation or setting."""
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(FeeEngineError):
    """Stale attendance version on save."""
    code = "CONFLICT"
    status_code = 409


class PersistenceTimeoutError(FeeEngineError):
    """The persistence transaction exceeded its timeout and was rolled back."""
    code = "TRANSACTION_TIMEOUT"
    status_code = 503
