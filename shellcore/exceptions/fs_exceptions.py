"""
Filesystem Exceptions

Errors raised by the virtual filesystem: path resolution failures,
permission failures and mutation conflicts.

Version: 1.0.0
"""

from typing import Optional, Any

from .base import ShellCoreError


class FileSystemException(ShellCoreError):
    """
    Base exception for all filesystem errors.

    Attributes:
        path: Path associated with the error (if applicable)
    """

    kind = "FileSystemError"

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        suggestion: Optional[str] = None
    ) -> None:
        ctx = context or {}
        if path:
            ctx["path"] = path
        super().__init__(
            message,
            error_code=error_code or 4000,
            context=ctx,
            suggestion=suggestion
        )
        self.path = path


class ResolveError(FileSystemException):
    """Base for failures while turning a path into a node."""

    kind = "ResolveError"


class NoSuchPathError(ResolveError):
    """
    A path component does not exist.

    Example:
        >>> raise NoSuchPathError("/missing/file")
    """

    kind = "NoSuchPathComponent"

    def __init__(self, path: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            f"{path}: No such file or directory",
            path=path,
            error_code=4001,
            context=context
        )


class NotADirError(ResolveError):
    """A directory was required (or traversed) but the node is not one."""

    kind = "NotADirectory"

    def __init__(self, path: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            f"{path}: Not a directory",
            path=path,
            error_code=4002,
            context=context
        )


class NotAFileError(ResolveError):
    """A regular file was required but the node is not one."""

    kind = "NotAFile"

    def __init__(
        self,
        path: str,
        is_directory: bool = True,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(
            f"{path}: Is a directory" if is_directory else f"{path}: Not a regular file",
            path=path,
            error_code=4003,
            context=context
        )


class DanglingSymlinkError(ResolveError):
    """A symbolic link whose target does not exist was dereferenced."""

    kind = "DanglingSymlink"

    def __init__(
        self,
        path: str,
        target: str,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        ctx["target"] = target
        super().__init__(
            f"{path}: Dangling symbolic link to '{target}'",
            path=path,
            error_code=4004,
            context=ctx
        )
        self.target = target


class SymlinkLoopError(ResolveError):
    """Too many symbolic links were followed while resolving a path."""

    kind = "SymlinkLoop"

    def __init__(self, path: str, depth: int) -> None:
        super().__init__(
            f"{path}: Too many levels of symbolic links",
            path=path,
            error_code=4005,
            context={"depth": depth}
        )


class PermissionDeniedError(ResolveError):
    """
    The user lacks the permission class an operation requires.

    Example:
        >>> raise PermissionDeniedError("/root/file", operation="write", user="Guest")
    """

    kind = "PermissionDenied"

    def __init__(
        self,
        path: str,
        operation: Optional[str] = None,
        user: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if operation:
            ctx["operation"] = operation
        if user:
            ctx["user"] = user
        super().__init__(
            f"{path}: Permission denied",
            path=path,
            error_code=4006,
            context=ctx
        )
        self.operation = operation
        self.user = user


class PathExistsError(FileSystemException):
    """The target of a create operation already exists."""

    kind = "PathExists"

    def __init__(self, path: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            f"{path}: File exists",
            path=path,
            error_code=4010,
            context=context
        )


class DiskQuotaError(FileSystemException):
    """A write would push the filesystem over its size quota."""

    kind = "DiskQuota"

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            "Disk quota exceeded",
            error_code=4011,
            context={"requested": requested, "available": available}
        )
        self.requested = requested
        self.available = available
