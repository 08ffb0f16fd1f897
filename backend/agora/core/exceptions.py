"""
Forum error taxonomy.

Services raise these; the API layer maps each to its HTTP status and the
standard `{"success": false, "error": {"message": ...}}` envelope.
"""


class ForumError(Exception):
    """Base class for expected, user-facing errors."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(ForumError):
    """Malformed input."""

    status_code = 400


class UnauthorizedError(ForumError):
    """No authenticated identity."""

    status_code = 401


class ForbiddenError(ForumError):
    """Authorization or business-rule violation."""

    status_code = 403


class NotFoundError(ForumError):
    """Entity absent."""

    status_code = 404


class ConflictError(ForumError):
    """Duplicate or already-applied state change."""

    status_code = 409
