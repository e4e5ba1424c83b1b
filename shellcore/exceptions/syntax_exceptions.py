"""
Syntax Exceptions

Errors produced by the lexer and the parser. Both are fatal to the
whole input line.

Version: 1.0.0
"""

from typing import Optional

from .base import ShellCoreError


class ShellSyntaxError(ShellCoreError):
    """
    Base for lexer and parser errors.

    Attributes:
        position: Character offset (lexer) or token offset (parser)
    """

    kind = "SyntaxError"

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        error_code: Optional[int] = None
    ) -> None:
        super().__init__(
            message,
            error_code=error_code or 2000,
            context={"position": position} if position is not None else None
        )
        self.position = position


class LexError(ShellSyntaxError):
    """Base for tokenization failures."""

    kind = "LexError"


class UnhandledCharacterError(LexError):
    """A character no token rule accepts."""

    kind = "UnhandledCharacter"

    def __init__(self, char: str, position: int) -> None:
        super().__init__(
            f"Unhandled character {char!r} at position {position}",
            position=position,
            error_code=2001
        )
        self.char = char


class UnclosedStringError(LexError):
    """A quoted string with no closing quote."""

    kind = "UnclosedString"

    def __init__(self, quote: str, position: int) -> None:
        super().__init__(
            f"Unclosed string literal: missing {quote} for string started at position {position}",
            position=position,
            error_code=2002
        )
        self.quote = quote


class ParseError(ShellSyntaxError):
    """Base for grammar failures."""

    kind = "ParseError"


class UnexpectedTokenError(ParseError):
    """
    A token that cannot appear where it was found.

    Example:
        >>> raise UnexpectedTokenError(";", 0)
    """

    kind = "UnexpectedToken"

    def __init__(self, token: str, position: Optional[int] = None) -> None:
        shown = token if token else "end of input"
        super().__init__(
            f"syntax error near unexpected token '{shown}'",
            position=position,
            error_code=2101
        )
        self.token = token


class MissingRedirectFilenameError(ParseError):
    """A redirection operator with no filename after it."""

    kind = "MissingRedirectFilename"

    def __init__(self, operator: str, position: Optional[int] = None) -> None:
        super().__init__(
            f"syntax error: expected filename after '{operator}'",
            position=position,
            error_code=2102
        )
        self.operator = operator


class MissingPipeRightError(ParseError):
    """A pipe with no command on its right side."""

    kind = "MissingPipeRight"

    def __init__(self, position: Optional[int] = None) -> None:
        super().__init__(
            "syntax error: expected command after '|'",
            position=position,
            error_code=2103
        )


class MissingJoinerRightError(ParseError):
    """A ``&&`` or ``||`` with nothing after it."""

    kind = "MissingJoinerRight"

    def __init__(self, operator: str, position: Optional[int] = None) -> None:
        super().__init__(
            f"syntax error: expected command after '{operator}'",
            position=position,
            error_code=2104
        )
        self.operator = operator
