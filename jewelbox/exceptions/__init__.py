"""Custom exceptions for the jewelry back-office."""


class JewelboxError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(JewelboxError):
    """Malformed or out-of-range input. Nothing has been mutated."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class UnauthorizedError(JewelboxError):
    """Raised when the caller has no admin session."""
    def __init__(self, message="Unauthorized"):
        super().__init__(message, 401)


class NotFoundError(JewelboxError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(JewelboxError):
    """Duplicate unique key (phone number, metal name, product code...)."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class ConcurrencyConflictError(ConflictError):
    """A record kept changing under us and the retry budget ran out."""
    def __init__(self, message="The record was modified concurrently, please retry", payload=None):
        super().__init__(message, payload)


class PreconditionFailedError(JewelboxError):
    """The operation is well formed but the record is not in a state that allows it."""
    def __init__(self, message, payload=None):
        super().__init__(message, 422, payload)


class TransientStoreError(JewelboxError):
    """The data store is unreachable or timed out. Safe to retry reads."""
    def __init__(self, message="Data store temporarily unavailable", payload=None):
        super().__init__(message, 503, payload)
