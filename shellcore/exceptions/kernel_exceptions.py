"""
Kernel Exceptions

Errors raised while booting the core: configuration, subsystem
initialization and persistent storage.

Version: 1.0.0
"""

from typing import Optional, Any

from .base import ShellCoreError


class KernelException(ShellCoreError):
    """Base exception for boot and subsystem management errors."""

    kind = "KernelError"

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code=error_code or 1000, context=context)


class BootFailureError(KernelException):
    """
    The kernel failed to boot.

    Example:
        >>> raise BootFailureError("Storage unreadable", subsystem="storage")
    """

    kind = "BootFailure"

    def __init__(
        self,
        message: str,
        subsystem: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if subsystem:
            ctx["subsystem"] = subsystem
        super().__init__(message, error_code=1001, context=ctx)
        self.subsystem = subsystem


class SubsystemInitError(KernelException):
    """A subsystem raised during initialize()."""

    kind = "SubsystemInit"

    def __init__(
        self,
        subsystem: str,
        reason: str,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        ctx["subsystem"] = subsystem
        super().__init__(
            f"Failed to initialize {subsystem}: {reason}",
            error_code=1002,
            context=ctx
        )
        self.subsystem = subsystem
        self.reason = reason


class ConfigValidationError(KernelException):
    """Configuration file or runtime override is invalid."""

    kind = "ConfigValidation"

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, error_code=1003, context={"key": key} if key else None)
        self.key = key


class StorageError(KernelException):
    """The storage backend could not be read or written."""

    kind = "Storage"

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, error_code=1004, context={"key": key} if key else None)
        self.key = key
