"""
Base Exception

Root of the shellcore exception hierarchy.

Version: 1.0.0
"""

from typing import Optional, Any


class ShellCoreError(Exception):
    """
    Base exception for every shellcore error.

    Attributes:
        message: Terse human-readable description, shown to the user
        error_code: Numeric error code for programmatic handling
        context: Additional key/value data about the error
        suggestion: Optional hint shown on a second line
        kind: Taxonomy name of the error (class attribute)

    Example:
        >>> raise ShellCoreError("Something broke", error_code=1)
    """

    kind = "Error"

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        suggestion: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or 0
        self.context = context or {}
        self.suggestion = suggestion

    def __str__(self) -> str:
        base = f"[Error {self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({context_str})"
        return base

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code})"
        )
