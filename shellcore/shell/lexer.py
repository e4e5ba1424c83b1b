"""
Lexer Module

Turns one command line into a token stream terminated by EOF:
- Words, with backslash escaping the next character
- Double- and single-quoted strings
- Redirection, pipe and joiner operators (two-character forms first)

Version: 1.0.0
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from shellcore.exceptions import UnhandledCharacterError, UnclosedStringError


class TokenType(Enum):
    """Token kinds produced by the lexer."""
    WORD = "WORD"
    STRING_DQ = "STRING_DQ"
    STRING_SQ = "STRING_SQ"
    OPERATOR_GT = "OPERATOR_GT"
    OPERATOR_GTGT = "OPERATOR_GTGT"
    OPERATOR_LT = "OPERATOR_LT"
    OPERATOR_PIPE = "OPERATOR_PIPE"
    OPERATOR_OR = "OPERATOR_OR"
    OPERATOR_SEMICOLON = "OPERATOR_SEMICOLON"
    OPERATOR_BG = "OPERATOR_BG"
    OPERATOR_AND = "OPERATOR_AND"
    EOF = "EOF"


SPECIAL_CHARS = frozenset('"\'><|&;')
GLOB_CHARS = frozenset('*?[')

# Longest operators first.
OPERATORS = (
    ('>>', TokenType.OPERATOR_GTGT),
    ('||', TokenType.OPERATOR_OR),
    ('&&', TokenType.OPERATOR_AND),
    ('>', TokenType.OPERATOR_GT),
    ('<', TokenType.OPERATOR_LT),
    ('|', TokenType.OPERATOR_PIPE),
    (';', TokenType.OPERATOR_SEMICOLON),
    ('&', TokenType.OPERATOR_BG),
)

STRING_TYPES = frozenset({TokenType.STRING_DQ, TokenType.STRING_SQ})
ARGUMENT_TYPES = frozenset({TokenType.WORD, TokenType.STRING_DQ, TokenType.STRING_SQ})


@dataclass
class Token:
    """
    A lexical token.

    Attributes:
        type: Token kind
        value: Text after quote removal and unescaping (None for EOF)
        position: Offset of the token's first character in the input
        globbable: True for a word holding an unescaped wildcard
    """
    type: TokenType
    value: Optional[str]
    position: int
    globbable: bool = False


class Lexer:
    """
    Command line tokenizer.

    Example:
        >>> [t.value for t in Lexer('echo "a b" > f').tokenize()]
        ['echo', 'a b', '>', 'f', None]
    """

    def __init__(self, text: str):
        self._text = text
        self._pos = 0

    def tokenize(self) -> List[Token]:
        """
        Tokenize the whole input.

        Raises:
            UnclosedStringError: If a quoted string is not terminated
            UnhandledCharacterError: On a control character outside a string
        """
        tokens: List[Token] = []
        text = self._text

        while self._pos < len(text):
            char = text[self._pos]
            if char.isspace():
                self._pos += 1
                continue
            if char in ('"', "'"):
                tokens.append(self._read_string(char))
                continue
            operator = self._read_operator()
            if operator is not None:
                tokens.append(operator)
                continue
            tokens.append(self._read_word())

        tokens.append(Token(TokenType.EOF, None, self._pos))
        return tokens

    def _read_operator(self) -> Optional[Token]:
        for symbol, token_type in OPERATORS:
            if self._text.startswith(symbol, self._pos):
                token = Token(token_type, symbol, self._pos)
                self._pos += len(symbol)
                return token
        return None

    def _read_word(self) -> Token:
        text = self._text
        start = self._pos
        chars: List[str] = []
        globbable = False

        while self._pos < len(text):
            char = text[self._pos]
            if char == '\\':
                self._pos += 1
                if self._pos < len(text):
                    chars.append(text[self._pos])
                    self._pos += 1
                else:
                    chars.append('\\')
                continue
            if char.isspace() or char in SPECIAL_CHARS:
                break
            if not char.isprintable():
                raise UnhandledCharacterError(char, self._pos)
            if char in GLOB_CHARS:
                globbable = True
            chars.append(char)
            self._pos += 1

        return Token(TokenType.WORD, ''.join(chars), start, globbable)

    def _read_string(self, quote: str) -> Token:
        text = self._text
        start = self._pos
        self._pos += 1
        chars: List[str] = []

        while self._pos < len(text):
            char = text[self._pos]
            if char == '\\' and self._pos + 1 < len(text) and text[self._pos + 1] in (quote, '\\'):
                chars.append(text[self._pos + 1])
                self._pos += 2
                continue
            if char == quote:
                self._pos += 1
                token_type = TokenType.STRING_DQ if quote == '"' else TokenType.STRING_SQ
                return Token(token_type, ''.join(chars), start)
            chars.append(char)
            self._pos += 1

        raise UnclosedStringError(quote, start)


def tokenize(text: str) -> List[Token]:
    """Convenience wrapper around ``Lexer(text).tokenize()``."""
    return Lexer(text).tokenize()
