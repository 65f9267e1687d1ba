"""Route decorators for error handling and authentication.

Exceptions raised by the messaging layer are translated here into the
standard error body produced by ``respond_error``.
"""
import functools
import logging
from typing import Callable

from flask import request

from relay_server.exception.ForbiddenError import ForbiddenError
from relay_server.exception.NotFoundError import NotFoundError
from relay_server.exception.ServiceUnavailableError import ServiceUnavailableError
from relay_server.exception.UnauthorizedError import UnauthorizedError
from relay_server.exception.ValidationError import ValidationError
from relay_server.security.authentication import get_auth_payload
from relay_server.utils.helpers import respond_error

logger = logging.getLogger(__name__)


def handle_errors(func: Callable) -> Callable:
    """Decorator to handle common exceptions in route handlers.

    Catches:
    - UnauthorizedError -> 401
    - ValidationError / ValueError -> 400
    - ForbiddenError -> 403
    - NotFoundError -> 404
    - ServiceUnavailableError -> 500
    - Other exceptions -> 500
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UnauthorizedError as e:
            logger.warning("Unauthorized: %s", e)
            return respond_error(str(e), status=401)
        except ValidationError as e:
            logger.info("Validation error: %s", e)
            if e.details:
                return respond_error(e.details, status=400)
            return respond_error(str(e), status=400)
        except ForbiddenError as e:
            logger.info("Forbidden: %s", e)
            return respond_error(str(e), status=403)
        except NotFoundError as e:
            logger.info("Not found: %s", e)
            return respond_error(str(e), status=404)
        except ServiceUnavailableError as e:
            logger.error("Store failure in %s: %s (%s)", func.__name__, e, e.cause)
            return respond_error(str(e), status=500)
        except ValueError as e:
            logger.warning("Bad request: %s", e)
            return respond_error(str(e), status=400)
        except Exception:
            logger.exception("Unexpected error in %s", func.__name__)
            return respond_error('Server error', status=500)
    return wrapper


def require_auth(func: Callable) -> Callable:
    """Decorator to require authentication and inject payload into handler.

    The decorated function receives `auth_payload` as a keyword argument.
    Every authenticated request also refreshes the caller's presence.

    Usage:
        @bp.route('/protected')
        @handle_errors
        @require_auth
        def protected_route(auth_payload):
            user_id = auth_payload['user_id']
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        payload = get_auth_payload(request)
        # Imported lazily: presence pulls in the repository layer.
        from relay_server.messaging.presence import get_presence_tracker
        get_presence_tracker().touch(payload['user_id'])
        kwargs['auth_payload'] = payload
        return func(*args, **kwargs)
    return wrapper

