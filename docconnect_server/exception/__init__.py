from docconnect_server.exception.MessagingError import (
    MessagingError, NotFoundError, ForbiddenError,
    InvalidOperationError, ValidationFailedError
)
from docconnect_server.exception.UnauthorizedError import UnauthorizedError

__all__ = [
    'MessagingError', 'NotFoundError', 'ForbiddenError',
    'InvalidOperationError', 'ValidationFailedError', 'UnauthorizedError'
]
