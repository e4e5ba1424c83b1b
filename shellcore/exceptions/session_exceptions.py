"""
Session Exceptions

Errors raised by the user, group and session registries.

Version: 1.0.0
"""

from typing import Optional, Any

from .base import ShellCoreError


class SessionException(ShellCoreError):
    """Base exception for user, group and session errors."""

    kind = "SessionError"

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code=error_code or 5000, context=context)


class AuthenticationError(SessionException):
    """
    Credentials were wrong, missing or cancelled.

    Example:
        >>> raise AuthenticationError("Incorrect password.", username="root")
    """

    kind = "AuthenticationFailed"

    def __init__(self, message: str, username: Optional[str] = None) -> None:
        super().__init__(
            message,
            error_code=5001,
            context={"username": username} if username else None
        )
        self.username = username


class UserExistsError(SessionException):
    """A user with that name is already registered."""

    kind = "UserExists"

    def __init__(self, username: str) -> None:
        super().__init__(f"User '{username}' already exists.", error_code=5002)
        self.username = username


class UserNotFoundError(SessionException):
    """No user with that name is registered."""

    kind = "UserNotFound"

    def __init__(self, username: str) -> None:
        super().__init__(f"User '{username}' does not exist.", error_code=5003)
        self.username = username


class InvalidUsernameError(SessionException):
    """The proposed username violates the naming rules."""

    kind = "InvalidUsername"

    def __init__(self, message: str, username: Optional[str] = None) -> None:
        super().__init__(message, error_code=5004)
        self.username = username


class GroupInUseError(SessionException):
    """The group is still some user's primary group."""

    kind = "GroupInUse"

    def __init__(self, group: str, user: str) -> None:
        super().__init__(
            f"Cannot delete group '{group}': it is the primary group of user '{user}'.",
            error_code=5005,
            context={"user": user}
        )
        self.group = group
        self.user = user


class GroupExistsError(SessionException):
    """A group with that name already exists."""

    kind = "GroupExists"

    def __init__(self, group: str) -> None:
        super().__init__(f"Group '{group}' already exists.", error_code=5006)
        self.group = group


class GroupNotFoundError(SessionException):
    """No group with that name exists."""

    kind = "GroupNotFound"

    def __init__(self, group: str) -> None:
        super().__init__(f"Group '{group}' does not exist.", error_code=5007)
        self.group = group
