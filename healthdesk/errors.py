# healthdesk/errors.py
from typing import Any, Optional


class AppError(Exception):
    """Base for every error that is rendered as a JSON error body."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict:
        body = {"success": False, "error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class PayloadTooLarge(AppError):
    status_code = 413


class ConfigurationError(AppError):
    status_code = 500


class ServiceError(AppError):
    status_code = 500


class ExchangeError(AppError):
    status_code = 502


class ServiceUnavailable(AppError):
    status_code = 503
