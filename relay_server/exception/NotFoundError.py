class NotFoundError(LookupError):
    """Raised when a referenced user, project or message does not exist."""
    def __init__(self, message):
        super().__init__(message)
