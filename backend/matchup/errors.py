"""Application errors and their JSON handlers."""

from flask import current_app, jsonify, request
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when request input fails validation."""

    def __init__(self, message="Validation failed."):
        super().__init__(message, 400)


class NotFoundError(AppError):
    def __init__(self, message="Resource not found."):
        super().__init__(message, 404)


class VotingClosedError(AppError):
    """Raised when a vote targets a matchup that already has a winner."""

    def __init__(self, message="Voting is closed for this matchup."):
        super().__init__(message, 409)


class StoreUnavailableError(AppError):
    """The backing store timed out or dropped the connection; retry next poll."""

    def __init__(self, message="Store temporarily unavailable."):
        super().__init__(message, 503)


def error_response(message, status_code):
    return jsonify({'error': message}), status_code


def json_body() -> dict:
    """Request JSON as a dict; an empty or missing body reads as ``{}``."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            current_app.logger.error(f"[error] {error.message}")
        else:
            current_app.logger.warning(f"[error] {error.message}")
        return error_response(error.message, error.status_code)

    @app.errorhandler(OperationalError)
    @app.errorhandler(PoolTimeoutError)
    def handle_store_error(error):
        from matchup import db
        db.session.rollback()
        current_app.logger.warning(f"[store-unavailable] {error.__class__.__name__}: {error}")
        return error_response(StoreUnavailableError().message, 503)

    @app.errorhandler(404)
    def handle_404(e):
        return error_response('Not found', 404)

    @app.errorhandler(405)
    def handle_405(e):
        return error_response('Method not allowed', 405)
