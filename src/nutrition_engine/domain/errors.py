"""Domain errors raised by the nutrition engine."""

from uuid import UUID


class NutritionEngineError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(NutritionEngineError):
    """Raised when caller-supplied input is invalid."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class NotFoundError(NutritionEngineError):
    """Raised when a referenced product, meal, item, goal or user is missing."""

    def __init__(self, resource: str, identifier: UUID | str) -> None:
        super().__init__(
            f"{resource} with id '{identifier}' not found",
            {"resource": resource, "id": str(identifier)},
        )
        self.resource = resource
        self.identifier = identifier


class DomainComputationError(NutritionEngineError):
    """Raised when a derivation lacks the inputs it needs."""

    def __init__(self, message: str, missing: tuple[str, ...] = ()) -> None:
        super().__init__(message, {"missing": list(missing)} if missing else None)
        self.missing = missing


class PersistenceError(NutritionEngineError):
    """Raised when an atomic write fails and has been rolled back."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message, {"operation": operation} if operation else None)
        self.operation = operation
