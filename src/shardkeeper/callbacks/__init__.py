"""Callbacks - Priority-ordered interception of mutating operations."""

from .dispatcher import (
    DEFAULT_PRIORITY,
    CallbackDispatcher,
    CallbackPhase,
    CallbackRegistration,
    intercepted,
)

__all__ = [
    "DEFAULT_PRIORITY",
    "CallbackDispatcher",
    "CallbackPhase",
    "CallbackRegistration",
    "intercepted",
]
