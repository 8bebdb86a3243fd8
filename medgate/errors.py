"""Error taxonomy shared by the auth layer, the chat gateway and the routes."""
import logging

from flask import jsonify

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = 500
    code = 'internal_error'
    message = 'Internal server error'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {'success': False, 'error': self.code, 'message': self.message}


class ValidationError(ServiceError):
    status_code = 400
    code = 'invalid_request'
    message = 'Invalid request'


class AuthRequired(ServiceError):
    status_code = 401
    code = 'auth_required'
    message = 'Please log in first'


class AuthExpired(AuthRequired):
    code = 'auth_expired'
    message = 'Access token has expired'


class AuthForbidden(ServiceError):
    status_code = 403
    code = 'auth_forbidden'
    message = 'Admin access required'


class NotFound(ServiceError):
    status_code = 404
    code = 'not_found'
    message = 'Record not found'


class Conflict(ServiceError):
    status_code = 409
    code = 'conflict'
    message = 'Record already exists'


class RateLimited(ServiceError):
    status_code = 429
    code = 'rate_limited'
    message = 'Too many requests, try again later'


class DuplicateInFlight(ServiceError):
    status_code = 429
    code = 'duplicate_in_flight'
    message = 'The same request is still being processed, please wait'


class BackendError(ServiceError):
    status_code = 502
    code = 'backend_error'


class BackendUnavailable(BackendError):
    code = 'backend_unavailable'
    message = 'Chat backend is unreachable'


class BackendRejected(BackendError):
    code = 'backend_rejected'
    message = 'Chat backend could not answer this message'


class BackendTimeout(BackendError):
    status_code = 504
    code = 'backend_timeout'
    message = 'Chat backend took too long to answer'


class PollingStopped(BackendError):
    status_code = 499
    code = 'polling_stopped'
    message = 'Stopped waiting for the chat backend'


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        if error.status_code >= 500:
            logger.warning(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        # Let Flask render its own HTTP errors (404 for unknown routes, 405, ...)
        code = getattr(error, 'code', None)
        if isinstance(code, int) and 400 <= code < 600:
            return jsonify({'success': False, 'error': 'http_error',
                            'message': getattr(error, 'description', str(error))}), code
        logger.error(f"Unhandled error: {error}", exc_info=True)
        message = str(error) if app.config.get('DEBUG') else 'Internal server error'
        return jsonify({'success': False, 'error': 'internal_error', 'message': message}), 500
