class ServiceUnavailableError(Exception):
    """Raised when the backing store fails on a write path."""
    def __init__(self, message='Messaging store unavailable', cause=None):
        super().__init__(message)
        self.cause = cause
