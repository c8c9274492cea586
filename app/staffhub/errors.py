from __future__ import annotations

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException


class AppError(Exception):
    """Base for errors rendered to API callers as {"error": message}."""

    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(AppError):
    status_code = 403
    default_message = "You do not have access to this page."


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class NotEditable(NotFound):
    """
    Conditional update matched no rows: missing, not visible, or no longer
    DRAFT all read the same.
    """

    default_message = "Form not found or no longer editable (not in DRAFT)."


class TooManyRequests(AppError):
    status_code = 429
    default_message = "Too many requests"


class Unexpected(AppError):
    status_code = 500


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def _app_error(e: AppError):  # type: ignore[no-redef]
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"error": e.description or e.name}), e.code or 500

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Unexpected error"}), 500
