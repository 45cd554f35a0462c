"""Route decorators for common patterns like error handling and authentication.

This module provides reusable decorators to reduce boilerplate in route handlers.
"""
import functools
import logging
from typing import Callable

from flask import request

from docconnect_server.exception.MessagingError import MessagingError
from docconnect_server.exception.UnauthorizedError import UnauthorizedError
from docconnect_server.utils.helpers import respond_error
from docconnect_server.security.authentication import get_auth_payload

logger = logging.getLogger(__name__)


def handle_errors(func: Callable) -> Callable:
    """Decorator to handle common exceptions in route handlers.

    Catches:
    - UnauthorizedError -> 401
    - NotFoundError -> 404, ForbiddenError -> 403
    - InvalidOperationError / ValidationFailedError -> 400
    - Other exceptions -> 500

    Usage:
        @bp.route('/example')
        @handle_errors
        def example_route():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UnauthorizedError as e:
            logger.warning("Unauthorized: %s", e)
            return respond_error(e.message, status=e.status, code=e.code)
        except MessagingError as e:
            logger.info("%s in %s: %s", e.code, func.__name__, e)
            return respond_error(e.message, status=e.status, code=e.code)
        except Exception:
            logger.exception("Unexpected error in %s", func.__name__)
            return respond_error('Server error', status=500)
    return wrapper


def require_auth(func: Callable) -> Callable:
    """Decorator to require authentication and inject payload into handler.

    The decorated function receives `auth_payload` as a keyword argument.

    Usage:
        @bp.route('/protected')
        @handle_errors
        @require_auth
        def protected_route(auth_payload):
            user_key = auth_payload.get('user_key')
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        kwargs['auth_payload'] = get_auth_payload(request)
        return func(*args, **kwargs)
    return wrapper


def get_json_body() -> dict:
    """Request JSON body, or an empty dict when absent or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
