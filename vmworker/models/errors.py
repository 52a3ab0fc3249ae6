"""Error models and exception classes for the VM pool service."""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorType(str, Enum):
    """Error type enumeration."""

    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    RESOURCE_CONFLICT = "resource_conflict"
    UNAVAILABLE = "unavailable"
    PROVIDER = "provider"
    INTERNAL_SERVER = "internal_server"
    SERVICE_UNAVAILABLE = "service_unavailable"


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: Optional[str] = Field(None, description="Field name for validation errors")
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")


class ErrorResponse(BaseModel):
    """Standardized error response model."""

    model_config = ConfigDict(use_enum_values=True)

    error: str = Field(..., description="Main error message")
    error_type: ErrorType = Field(..., description="Error category")
    details: Optional[List[ErrorDetail]] = Field(
        None, description="Additional error details"
    )
    request_id: Optional[str] = Field(
        None, description="Request identifier for tracking"
    )
    timestamp: float = Field(default_factory=time.time, description="Error timestamp")


# Custom Exception Classes


class VMWorkerException(Exception):
    """Base exception for the VM pool service."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL_SERVER,
        status_code: int = 500,
        details: Optional[List[ErrorDetail]] = None,
        request_id: Optional[str] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or []
        self.request_id = request_id
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.message,
            error_type=self.error_type,
            details=self.details if self.details else None,
            request_id=self.request_id,
        )


class PoolNotConfiguredError(VMWorkerException):
    """No pool manager exists for the requested pool key."""

    def __init__(self, pool_key: str, **kwargs):
        super().__init__(
            message=f"No VM pool configured for {pool_key}",
            error_type=ErrorType.VALIDATION,
            status_code=400,
            **kwargs,
        )
        self.pool_key = pool_key


class Unavailable(VMWorkerException):
    """No ready instance could be handed out within the wait budget."""

    def __init__(self, pool_key: str, message: str = None, **kwargs):
        super().__init__(
            message=message or f"No VM available in pool {pool_key}",
            error_type=ErrorType.UNAVAILABLE,
            status_code=503,
            **kwargs,
        )
        self.pool_key = pool_key


class ProviderLookupError(VMWorkerException):
    """A provider could not resolve an instance id."""

    def __init__(self, provider: str, vm_id: str, **kwargs):
        super().__init__(
            message=f"{provider} instance not found: {vm_id}",
            error_type=ErrorType.RESOURCE_NOT_FOUND,
            status_code=404,
            **kwargs,
        )
        self.provider = provider
        self.vm_id = vm_id


class LockContention(VMWorkerException):
    """Another coordinator already holds the lock on an instance."""

    def __init__(self, pool_key: str, vm_id: str, **kwargs):
        super().__init__(
            message=f"Lock already held on {pool_key}:{vm_id}",
            error_type=ErrorType.RESOURCE_CONFLICT,
            status_code=409,
            **kwargs,
        )
        self.pool_key = pool_key
        self.vm_id = vm_id


class ProvisioningError(VMWorkerException):
    """The provider failed to create an instance."""

    def __init__(self, provider: str, message: str = None, **kwargs):
        super().__init__(
            message=message or f"Failed to provision {provider} instance",
            error_type=ErrorType.PROVIDER,
            status_code=502,
            **kwargs,
        )
        self.provider = provider


class TerminationError(VMWorkerException):
    """The provider failed to destroy or reboot an instance."""

    def __init__(self, provider: str, vm_id: str, message: str = None, **kwargs):
        super().__init__(
            message=message or f"Failed to terminate {provider} instance {vm_id}",
            error_type=ErrorType.PROVIDER,
            status_code=502,
            **kwargs,
        )
        self.provider = provider
        self.vm_id = vm_id


class StoreUnavailable(VMWorkerException):
    """The shared Redis store cannot be reached."""

    def __init__(self, message: str = None, **kwargs):
        super().__init__(
            message=message or "Redis store is currently unavailable",
            error_type=ErrorType.SERVICE_UNAVAILABLE,
            status_code=503,
            **kwargs,
        )
