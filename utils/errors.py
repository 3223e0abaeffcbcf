"""Failure taxonomy raised by the grievance engine and mapped to HTTP responses by the app."""
from __future__ import annotations


class GrievanceError(Exception):
    """Base class; every engine failure is returned to the caller as one of these."""

    code = "GRIEVANCE_ERROR"
    http_status = 400

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class InsufficientFunds(GrievanceError):
    code = "INSUFFICIENT_FUNDS"
    http_status = 402


class NotFound(GrievanceError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidTransition(GrievanceError):
    code = "INVALID_TRANSITION"
    http_status = 409


class Unauthorized(GrievanceError):
    code = "UNAUTHORIZED"
    http_status = 403


class AlreadyVoted(GrievanceError):
    code = "ALREADY_VOTED"
    http_status = 409


class AlreadyReleased(GrievanceError):
    code = "ALREADY_RELEASED"
    http_status = 409


class ValidationError(GrievanceError):
    code = "VALIDATION_ERROR"
    http_status = 400
