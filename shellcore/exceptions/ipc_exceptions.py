"""
IPC Exceptions

Errors raised by the job message bus.

Version: 1.0.0
"""

from typing import Optional, Any, Union

from .base import ShellCoreError


class IPCException(ShellCoreError):
    """Base exception for inter-job communication errors."""

    kind = "IPCError"

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code=error_code or 6000, context=context)


class MessageQueueError(IPCException):
    """
    No queue is registered for the job id or name.

    Example:
        >>> raise MessageQueueError(7)
    """

    kind = "MessageQueue"

    def __init__(
        self,
        job_id: Union[int, str],
        message: str = "No such job ID registered."
    ) -> None:
        super().__init__(
            message,
            error_code=6001,
            context={"job": job_id}
        )
        self.job_id = job_id
