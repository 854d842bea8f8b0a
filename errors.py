class HoopLogError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str = "Internal Server Error") -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(HoopLogError):
    status_code = 400


class UnauthorizedError(HoopLogError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ForbiddenError(HoopLogError):
    status_code = 403


class NotFoundError(HoopLogError):
    status_code = 404


class ConflictError(HoopLogError):
    status_code = 409
