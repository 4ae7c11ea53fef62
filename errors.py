import logging

from flask import jsonify
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from models import db

logger = logging.getLogger(__name__)


class APIError(Exception):
    status_code = 500
    message = "Internal Server Error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class BadRequest(APIError):
    status_code = 400
    message = "Bad Request"


class Unauthorized(APIError):
    status_code = 401
    message = "Unauthorized"


class NotFound(APIError):
    status_code = 404
    message = "Not found"


class MethodNotAllowed(APIError):
    status_code = 405
    message = "Method Not Allowed"


class Conflict(APIError):
    status_code = 409
    message = "Conflict"


class InternalServerError(APIError):
    status_code = 500
    message = "Internal Server Error"


class NotImplementedYet(APIError):
    status_code = 501
    message = "Not Implemented"


HTTP_ERRORS = {
    error.status_code: error
    for error in (BadRequest, Unauthorized, NotFound, MethodNotAllowed, NotImplementedYet)
}


def from_http_exception(exc):
    """Map a werkzeug HTTP error onto the matching APIError."""
    error_class = HTTP_ERRORS.get(exc.code)
    if error_class is None:
        error = APIError(exc.name)
        error.status_code = exc.code
        return error
    return error_class()


def flatten_validation_errors(messages, prefix=""):
    """Turn marshmallow's nested error dict into a flat list of {field, msg}."""
    errors = []
    if isinstance(messages, dict):
        for field, value in messages.items():
            name = f"{prefix}.{field}" if prefix else str(field)
            errors.extend(flatten_validation_errors(value, name))
    elif isinstance(messages, list):
        for message in messages:
            if isinstance(message, (dict, list)):
                errors.extend(flatten_validation_errors(message, prefix))
            else:
                errors.append({"field": prefix or "_schema", "msg": message})
    else:
        errors.append({"field": prefix or "_schema", "msg": str(messages)})
    return errors


def _error_response(status_code, message, **extra):
    payload = {"success": False, "error": message}
    payload.update(extra)
    return jsonify(payload), status_code


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def handle_api_error(exc):
        if exc.status_code >= 500:
            logger.error("%s %s", exc.status_code, exc.message)
        return _error_response(exc.status_code, exc.message)

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc):
        return _error_response(
            400, "Invalid input", errors=flatten_validation_errors(exc.messages)
        )

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return handle_api_error(from_http_exception(exc))

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc):
        db.session.rollback()
        logger.exception("Database error: %s", exc)
        return _error_response(500, InternalServerError.message)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        logger.exception("Unhandled error: %s", exc)
        return _error_response(500, InternalServerError.message)
