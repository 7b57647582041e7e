"""Error taxonomy and user-facing translation."""

from .exceptions import (
    AgentFailedError,
    ContextLoadError,
    CreateFailedError,
    DockFailedError,
    GitFailedError,
    InvalidPlanError,
    OrchestrateError,
    PermissionViolationError,
    ProviderError,
    ProviderIOError,
    ProviderNotFoundError,
    ProviderTimeoutError,
    RemoveFailedError,
    ReplanExhaustedError,
    WorktreeError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "AgentFailedError",
    "ContextLoadError",
    "CreateFailedError",
    "DockFailedError",
    "ErrorTranslator",
    "GitFailedError",
    "InvalidPlanError",
    "OrchestrateError",
    "PermissionViolationError",
    "ProviderError",
    "ProviderIOError",
    "ProviderNotFoundError",
    "ProviderTimeoutError",
    "RemoveFailedError",
    "ReplanExhaustedError",
    "UserFriendlyError",
    "WorktreeError",
]
