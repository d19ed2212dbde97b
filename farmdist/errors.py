# farmdist/errors.py
"""
Error taxonomy for the JSON API.

Services raise these; the handler registered in ``create_app`` renders every
one of them as ``{"error": <short code>, "message": <human text>}`` with the
matching HTTP status. Nothing is retried: a failed write has already been
rolled back by the time the exception reaches the handler.
"""

from __future__ import annotations

from flask import jsonify


class ApiError(Exception):
    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str, *, error: str | None = None):
        super().__init__(message)
        self.message = message
        if error:
            self.error = error

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}

    def to_response(self):
        return jsonify(self.to_dict()), self.status_code


class Unauthorized(ApiError):
    """Missing, invalid or expired token, or a token whose subject is gone."""

    status_code = 401
    error = "Unauthorized"


class Forbidden(ApiError):
    status_code = 403
    error = "Forbidden"


class InvalidArgument(ApiError):
    """Malformed payload, missing field, unknown reference, insufficient stock."""

    status_code = 400
    error = "Bad Request"


class NotFound(ApiError):
    status_code = 404
    error = "Not Found"


class Conflict(ApiError):
    status_code = 409
    error = "Conflict"


class Internal(ApiError):
    status_code = 500
    error = "Internal Server Error"
