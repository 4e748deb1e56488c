"""
Core модуль с инфраструктурными компонентами
"""

from .exceptions import (
    AuthClientError,
    AuthError,
    BusyError,
    ConfigurationError,
    EmailRequiredError,
    FailureKind,
    FlowCancelledError,
    NetworkError,
    NoTokenReturnedError,
    ProviderError,
    ProviderUnavailableError,
    RoleRequiredError,
    ValidationError,
)
from .logging_config import mask_token, setup_logging
from .locks import OperationLock
from .storage import FileTokenStore, MemoryTokenStore, TokenStore

__all__ = [
    # Exceptions
    "AuthClientError",
    "AuthError",
    "BusyError",
    "ConfigurationError",
    "EmailRequiredError",
    "FailureKind",
    "FlowCancelledError",
    "NetworkError",
    "NoTokenReturnedError",
    "ProviderError",
    "ProviderUnavailableError",
    "RoleRequiredError",
    "ValidationError",
    # Logging
    "mask_token",
    "setup_logging",
    # Locks
    "OperationLock",
    # Storage
    "FileTokenStore",
    "MemoryTokenStore",
    "TokenStore",
]
