"""Data models for the VM pool service."""

from .errors import (
    ErrorType,
    ErrorDetail,
    ErrorResponse,
    VMWorkerException,
    PoolNotConfiguredError,
    Unavailable,
    ProviderLookupError,
    LockContention,
    ProvisioningError,
    TerminationError,
    StoreUnavailable,
)
from .pool import PoolConfig, PoolStats, pool_key, parse_hour_range
from .requests import AssignVMRequest, ReleaseVMRequest, UpdateSnapshotRequest
from .vm import SizeClass, VMInstance

__all__ = [
    # Errors
    "ErrorType",
    "ErrorDetail",
    "ErrorResponse",
    "VMWorkerException",
    "PoolNotConfiguredError",
    "Unavailable",
    "ProviderLookupError",
    "LockContention",
    "ProvisioningError",
    "TerminationError",
    "StoreUnavailable",
    # Pool models
    "PoolConfig",
    "PoolStats",
    "pool_key",
    "parse_hour_range",
    # Request models
    "AssignVMRequest",
    "ReleaseVMRequest",
    "UpdateSnapshotRequest",
    # VM models
    "SizeClass",
    "VMInstance",
]
