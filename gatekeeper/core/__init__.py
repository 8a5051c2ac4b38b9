"""
Gatekeeper: Core

Configuration, cryptographie, échéances et taxonomie des erreurs.
"""

from .errors import (
    ErrorCode,
    GatekeeperError,
    AuthenticationError,
    PermissionDeniedError,
    RoleNotGrantedError,
    RoleEscalationError,
    DeadlineExceededError,
    InvalidRequestError,
)
from .interfaces import (
    Clock,
    GatekeeperConfig,
    LockoutConfig,
    LockoutPolicy,
    LoggingConfig,
    MFAConfig,
    PasswordConfig,
    PermissionCacheConfig,
    SessionConfig,
    TimeoutConfig,
    TokenConfig,
    utc_now,
)
from .config_loader import CONFIG_ENV_VAR, ConfigIntegrityError, ConfigLoader
from .crypto_provider import CryptoProvider, CryptoProviderError
from .timeout_manager import InvalidTimeoutError, StoreKind, TimeoutManager

__all__ = [
    "ErrorCode",
    "GatekeeperError",
    "AuthenticationError",
    "PermissionDeniedError",
    "RoleNotGrantedError",
    "RoleEscalationError",
    "DeadlineExceededError",
    "InvalidRequestError",
    "Clock",
    "GatekeeperConfig",
    "LockoutConfig",
    "LockoutPolicy",
    "LoggingConfig",
    "MFAConfig",
    "PasswordConfig",
    "PermissionCacheConfig",
    "SessionConfig",
    "TimeoutConfig",
    "TokenConfig",
    "utc_now",
    "CONFIG_ENV_VAR",
    "ConfigIntegrityError",
    "ConfigLoader",
    "CryptoProvider",
    "CryptoProviderError",
    "InvalidTimeoutError",
    "StoreKind",
    "TimeoutManager",
]
