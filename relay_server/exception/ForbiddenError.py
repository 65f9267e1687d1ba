class ForbiddenError(Exception):
    """Raised when an authenticated user is not allowed to perform the action."""
    def __init__(self, message='You are not allowed to message this user'):
        super().__init__(message)
