"""Error taxonomy shared by services and route handlers."""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors rendered as structured JSON responses."""

    status_code = 500
    error = "Server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.error
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(AppError):
    """Bad or missing request fields."""

    status_code = 400
    error = "Invalid payload"


class AuthorizationError(AppError):
    """Missing or incorrect service credential."""

    status_code = 401
    error = "Unauthorized"


class NotFoundError(AppError):
    status_code = 404
    error = "Not found"


class ProviderNotConfigured(AppError):
    """A required provider credential is absent from configuration."""

    status_code = 500
    error = "Provider not configured"


class ProviderError(AppError):
    """An external provider rejected or failed a call."""

    status_code = 500
    error = "Provider error"


class MinimumAmountError(AppError):
    """Charge is positive but below the provider's minimum."""

    status_code = 400
    error = "MIN_AMOUNT"

    def __init__(self, min_amount: float) -> None:
        self.min_amount = min_amount
        super().__init__(self.error)

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.error, "minAmount": self.min_amount}
