from docconnect_server.exception.MessagingError import MessagingError


class UnauthorizedError(MessagingError):
    """Raised when authentication fails due to invalid, expired, or malformed token, or an inactive account."""
    code = 'AUTH_FAILED'
    status = 401
