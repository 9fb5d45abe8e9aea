"""DLVR Core module.

Shared components used across all services:
- Configuration management
- Error taxonomy
- Record identifiers
"""

from dlvr.core.config import (
    BeaconSettings,
    ConfigValidationError,
    Environment,
    Settings,
    SigningSettings,
)
from dlvr.core.errors import (
    AnchorUnavailable,
    AttemptLimitError,
    CryptoFailure,
    DispatchError,
    DLVRError,
    InvalidServiceTypeError,
    InvalidTransitionError,
    NotFoundError,
    ServiceClosedError,
    UnsupportedMethodError,
    ValidationError,
)
from dlvr.core.settings import (
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "AnchorUnavailable",
    "AttemptLimitError",
    "BeaconSettings",
    "ConfigValidationError",
    "CryptoFailure",
    "DLVRError",
    "DispatchError",
    "Environment",
    "InvalidServiceTypeError",
    "InvalidTransitionError",
    "NotFoundError",
    "ServiceClosedError",
    "Settings",
    "SigningSettings",
    "UnsupportedMethodError",
    "ValidationError",
    "clear_settings_cache",
    "get_settings",
]
