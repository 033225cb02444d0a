"""
Typed, recoverable outcomes raised by use cases.

The API layer turns these into JSON errors; nothing below it catches them.
"""
from datetime import datetime
from typing import Any, Dict, Optional


class StreakbookError(Exception):
    code = "SYS_001"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(StreakbookError):
    code = "VALID_001"
    status_code = 400


class NotFoundError(StreakbookError):
    code = "BIZ_003"
    status_code = 404


class ConflictError(StreakbookError):
    code = "BIZ_004"
    status_code = 409


class FreeTierLimitError(StreakbookError):
    code = "BIZ_001"
    status_code = 403

    def __init__(self, limit_type: str, current_count: int, max_count: int):
        super().__init__(
            f"{limit_type} limit reached ({current_count}/{max_count})",
            {"limit_type": limit_type, "current_count": current_count,
             "max_count": max_count, "upgrade_required": True},
        )


class QuotaExceededError(StreakbookError):
    code = "AUTH_007"
    status_code = 429

    def __init__(self, resource: str, limit: int, reset_at: datetime):
        super().__init__(
            f"Usage limit for {resource} reached, resets at {reset_at.isoformat()}",
            {"resource": resource, "limit": limit, "reset_at": reset_at.isoformat()},
        )
        self.resource = resource
        self.limit = limit
        self.reset_at = reset_at


class ConsistencyError(StreakbookError):
    """Aggregate update failed; the whole mutation must be rolled back."""
    code = "SYS_002"
    status_code = 500
