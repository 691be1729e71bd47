import logging

from flask import jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Operational error carrying the HTTP status to answer with."""

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def status(self):
        return 'fail' if 400 <= self.status_code < 500 else 'error'

    def to_dict(self):
        data = {'status': self.status, 'message': self.message}
        if self.payload is not None:
            data['error'] = self.payload
        return data


class PaymentGatewayError(AppError):
    """Raised when the payment gateway cannot be reached or rejects a call."""

    def __init__(self, message, payload=None):
        super().__init__(message, 500, payload)


def error_response(message, status_code):
    status = 'fail' if 400 <= status_code < 500 else 'error'
    return jsonify({'status': status, 'message': message}), status_code


def register_error_handlers(app, db):
    @app.errorhandler(AppError)
    def handle_app_error(e):
        if e.status_code >= 500:
            logger.error('%s: %s', e.message, e.payload)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        db.session.rollback()
        logger.warning('Integrity error: %s', e.orig)
        return error_response('Duplicate or conflicting record', 409)

    @app.errorhandler(429)
    def ratelimit_handler(e):
        description = getattr(e, 'description', None)
        if description and 'login' in str(description).lower():
            return error_response(description, 429)
        return error_response('Too many requests. Please try again later!', 429)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        if e.code == 404:
            return error_response('Resource not found on this server', 404)
        return error_response(e.description or e.name, e.code)

    @app.errorhandler(Exception)
    def internal_error(e):
        db.session.rollback()
        logger.exception('Unhandled error')
        return error_response('Something went very wrong!', 500)
