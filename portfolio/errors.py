"""
Error taxonomy shared by the services and the HTTP layer.

Each error carries the HTTP status it maps to; the handlers registered in
``portfolio.app`` render them as ``{"success": false, "message": ...}``.
"""

from __future__ import annotations

from typing import Optional


class PortfolioError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortfolioError):
    """Bad input shape or invariant violation, with per-field detail."""

    status_code = 400

    def __init__(
        self,
        errors: list[dict[str, str]] | None = None,
        message: str = "Validation failed",
    ):
        super().__init__(message)
        self.errors = list(errors or [])

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}], message=message)


class NotFound(PortfolioError):
    status_code = 404


class AuthError(PortfolioError):
    status_code = 401


class ProcessingFailure(PortfolioError):
    """Transcoder or storage failure; detail is hidden outside development."""

    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class UnsupportedFormat(ProcessingFailure):
    """The uploaded bytes are not a decodable image."""

    status_code = 400


class CacheFailure(PortfolioError):
    """Raised inside cache clients only; callers see a cache miss instead."""
