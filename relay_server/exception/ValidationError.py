class ValidationError(ValueError):
    """Raised when request input is malformed (bad id, empty content, unknown type).

    ``details`` optionally maps field names to individual error messages.
    """
    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details or {}
