from __future__ import annotations

from typing import Any, Optional

from fastapi import status


class LightlisterError(Exception):
    """
    Base error for the service.

    Each subclass carries a stable error code and the HTTP status the API layer
    should answer with. Services raise these; only the exception handlers in
    `api.errors` translate them to responses.
    """

    code: str = "internal_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_response_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class UnauthorizedError(LightlisterError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class InsufficientCreditsError(LightlisterError, ValueError):
    code = "InsufficientCredits"
    status_code = status.HTTP_402_PAYMENT_REQUIRED


class NoImagesProvidedError(LightlisterError, ValueError):
    code = "no_images_provided"
    status_code = status.HTTP_400_BAD_REQUEST


class MalformedInputError(LightlisterError, ValueError):
    code = "malformed_input"
    status_code = status.HTTP_400_BAD_REQUEST


class UserNotFoundError(LightlisterError):
    code = "user_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class UnknownProductError(LightlisterError):
    code = "unknown_product"
    status_code = status.HTTP_404_NOT_FOUND


class DuplicateUserError(LightlisterError):
    """Insert hit the uniqueness constraint on the user identity."""

    code = "duplicate_user"
    status_code = status.HTTP_409_CONFLICT


class PersistenceUnavailableError(LightlisterError):
    code = "persistence_unavailable"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class AIGroupingUnavailableError(LightlisterError):
    """Raised by the AI grouping path; always absorbed by the fallback."""

    code = "ai_grouping_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
