class MessagingError(Exception):
    """Base class for errors surfaced to REST and socket clients.

    Each subclass carries a machine-readable ``code`` and the HTTP ``status``
    the REST layer answers with. The message is shown to the user as-is, so
    keep it to a single readable sentence.
    """
    code = 'ERROR'
    status = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'code': self.code, 'message': self.message}


class NotFoundError(MessagingError):
    """Conversation, message or user does not exist."""
    code = 'NOT_FOUND'
    status = 404


class ForbiddenError(MessagingError):
    """Caller is not allowed to touch the resource."""
    code = 'FORBIDDEN'
    status = 403


class InvalidOperationError(MessagingError):
    """Operation is not valid for the resource in its current shape."""
    code = 'INVALID_OPERATION'
    status = 400


class ValidationFailedError(MessagingError):
    """Request fields fail their constraints."""
    code = 'VALIDATION_FAILED'
    status = 400
