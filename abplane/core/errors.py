from dataclasses import dataclass

from starlette import status


@dataclass(eq=False)
class AppError(Exception):
    message: str
    code: str = "APP_ERROR"
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __post_init__(self):
        # The generated __init__ bypasses Exception.__init__, which fills args.
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class ValidationError(AppError):
    """Malformed caller input (user id, variant key or weight, experiment fields)."""

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message, "VALIDATION_ERROR", status.HTTP_422_UNPROCESSABLE_ENTITY)


class DuplicateNameError(ValidationError):
    def __init__(self, message: str = "Name already in use"):
        AppError.__init__(self, message, "DUPLICATE_NAME", status.HTTP_409_CONFLICT)


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "NOT_FOUND", status.HTTP_404_NOT_FOUND)


class PreconditionError(AppError):
    """The experiment is not in a state that allows the operation."""

    def __init__(self, message: str = "Precondition failed"):
        super().__init__(message, "PRECONDITION_FAILED", status.HTTP_409_CONFLICT)


class ConflictError(AppError):
    """A uniqueness or referential constraint rejected a write."""

    def __init__(self, message: str = "Conflicting write"):
        super().__init__(message, "CONFLICT", status.HTTP_409_CONFLICT)


class PersistenceError(AppError):
    """Storage is unavailable or behaved unexpectedly. Never retried internally."""

    def __init__(self, message: str = "Storage unavailable"):
        super().__init__(message, "PERSISTENCE_ERROR", status.HTTP_503_SERVICE_UNAVAILABLE)
