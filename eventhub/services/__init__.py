from eventhub.services.effects import EffectExecutor
from eventhub.services.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    UnauthorizedError,
    ValidationError,
)

__all__ = [
    "EffectExecutor",
    "ServiceError",
    "NotFoundError",
    "UnauthorizedError",
    "PermissionDeniedError",
    "ConflictError",
    "ValidationError",
]
