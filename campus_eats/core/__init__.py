"""
Core module initialization.
Exports configuration, logging utilities and the domain error taxonomy.
"""

from campus_eats.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from campus_eats.core.exceptions import (
    CampusEatsError,
    ValidationError,
    NotFoundError,
    UnauthorizedError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    InsufficientTokensError,
    ConflictError,
    ServiceUnavailableError,
    RewardCatalogEmptyError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "CampusEatsError",
    "ValidationError",
    "NotFoundError",
    "UnauthorizedError",
    "ForbiddenError",
    "InvalidStateError",
    "InvalidTransitionError",
    "InsufficientTokensError",
    "ConflictError",
    "ServiceUnavailableError",
    "RewardCatalogEmptyError",
]
