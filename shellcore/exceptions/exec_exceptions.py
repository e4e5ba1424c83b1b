"""
Execution Exceptions

Errors raised while dispatching and running commands. They stop the
current pipeline and give it a non-zero exit code.

Version: 1.0.0
"""

from typing import Optional, Any

from .base import ShellCoreError


class ExecException(ShellCoreError):
    """Base exception for command execution errors."""

    kind = "ExecError"

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        suggestion: Optional[str] = None
    ) -> None:
        super().__init__(
            message,
            error_code=error_code or 3000,
            context=context,
            suggestion=suggestion
        )


class CommandNotFoundError(ExecException):
    """
    No command is registered (or loadable) under the name.

    Example:
        >>> raise CommandNotFoundError("frobnicate")
    """

    kind = "CommandNotFound"

    def __init__(self, command: str) -> None:
        super().__init__(f"{command}: command not found", error_code=3001)
        self.command = command


class BadArgumentsError(ExecException):
    """Arguments or flags do not satisfy the command's validators."""

    kind = "BadArguments"

    def __init__(self, message: str, suggestion: Optional[str] = None) -> None:
        super().__init__(message, error_code=3002, suggestion=suggestion)


class TypeMismatchError(ExecException):
    """A path argument resolved to a node of the wrong type."""

    kind = "TypeMismatch"

    def __init__(self, message: str, suggestion: Optional[str] = None) -> None:
        super().__init__(message, error_code=3003, suggestion=suggestion)


class CommandIOError(ExecException):
    """Reading input or writing output failed, or a command crashed."""

    kind = "IOError"

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, error_code=3004, context=context)


class CommandCancelled(ExecException):
    """
    A command observed its cancel signal at a suspension point.

    Raised from ``CancelSignal.checkpoint()``; the executor turns it into
    a failed result with exit code 130.
    """

    kind = "Cancelled"

    def __init__(self, reason: str = "Cancelled") -> None:
        super().__init__(reason, error_code=3005)
        self.reason = reason


class ScriptError(ExecException):
    """A script exceeded its limits or failed in strict mode."""

    kind = "ScriptError"

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        super().__init__(
            message,
            error_code=3006,
            context={"line": line} if line is not None else None
        )
        self.line = line
