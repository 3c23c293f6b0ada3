"""Core module - configuration, logging and errors."""

from taskhero.core.config import Settings, clear_settings_cache, get_settings
from taskhero.core.errors import (
    DependencyValidationError,
    InvalidItemIdError,
    ServiceError,
    TaskHeroError,
    UnknownWorkItemError,
)
from taskhero.core.logging import configure_logging

__all__ = [
    "DependencyValidationError",
    "InvalidItemIdError",
    "ServiceError",
    "Settings",
    "TaskHeroError",
    "UnknownWorkItemError",
    "clear_settings_cache",
    "configure_logging",
    "get_settings",
]
