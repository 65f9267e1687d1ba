from relay_server.exception.UnauthorizedError import UnauthorizedError
from relay_server.exception.ValidationError import ValidationError
from relay_server.exception.ForbiddenError import ForbiddenError
from relay_server.exception.NotFoundError import NotFoundError
from relay_server.exception.ServiceUnavailableError import ServiceUnavailableError

__all__ = [
    'UnauthorizedError',
    'ValidationError',
    'ForbiddenError',
    'NotFoundError',
    'ServiceUnavailableError',
]
