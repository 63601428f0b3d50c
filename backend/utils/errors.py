import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP status and a client-safe message."""

    status_code = 500
    message = "Server Error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(ApiError):
    status_code = 400
    message = "Invalid request"


class InvalidMimeType(ValidationError):
    message = "Only PDF files are allowed"


class FileTooLarge(ValidationError):
    message = "File too large. Maximum size is 5MB"


class TooManyAttachments(ValidationError):
    message = "Too many files. Maximum is 3"


class UploadTooLarge(ValidationError):
    message = "Upload too large. Maximum is 3 files of 5MB each"


class Conflict(ApiError):
    # Business-rule refusals surface as 400 like any other bad request.
    status_code = 400
    message = "Request conflicts with existing data"


class Unauthorized(ApiError):
    status_code = 401
    message = "Not authorized"


class PreviewTokenExpired(Unauthorized):
    message = "Preview access expired"


class Forbidden(ApiError):
    status_code = 403
    message = "Not authorized to access this task"


class NotFound(ApiError):
    status_code = 404
    message = "Not Found"


class AssigneeNotFound(NotFound):
    message = "Assigned user not found"


class BlobNotFound(NotFound):
    message = "File not found"


class PreviewTokenNotFound(NotFound):
    message = "Preview link not found"


def error_response(message, status_code):
    return jsonify(success=False, message=message), status_code


def register_jwt_callbacks(jwt):
    """Give flask-jwt-extended failures the same envelope as every other error."""

    @jwt.unauthorized_loader
    def missing_token(reason):
        return error_response("Not authorized, no token", 401)

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return error_response("Not authorized, token failed", 401)

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return error_response("Not authorized, token expired", 401)

    @jwt.user_lookup_error_loader
    def unknown_user(jwt_header, jwt_payload):
        return error_response("Not authorized, user not found", 401)


def register_error_handlers(app):
    """Translate exceptions into the ``{success: false, message}`` JSON envelope."""

    @app.errorhandler(ApiError)
    def handle_api_error(exc):
        return error_response(exc.message, exc.status_code)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(_):
        return error_response(UploadTooLarge.message, 400)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        if exc.code == 404:
            return error_response("Not Found", 404)
        return error_response(exc.description or exc.name, exc.code)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        logger.exception("Unhandled error: %s", exc)
        return error_response("Server Error", 500)
