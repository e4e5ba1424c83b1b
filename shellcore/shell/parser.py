"""
Parser Module

Builds a command sequence from a token stream:
- Segments separated by ``|`` form a pipeline
- ``<``, ``>`` and ``>>`` attach redirections to the pipeline
- ``;``, ``&``, ``&&`` and ``||`` join pipelines into a sequence

Unquoted words holding wildcards are expanded through a caller-supplied
glob expander; a pattern that matches nothing is kept literally.

Version: 1.0.0
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from shellcore.exceptions import (
    UnexpectedTokenError,
    MissingRedirectFilenameError,
    MissingPipeRightError,
    MissingJoinerRightError,
)
from shellcore.shell.lexer import Token, TokenType, ARGUMENT_TYPES, tokenize


GlobExpander = Callable[[str], List[str]]


class RedirectMode(Enum):
    """How an output redirect writes its file."""
    OVERWRITE = "overwrite"
    APPEND = "append"


class Joiner(Enum):
    """Operator binding a pipeline to the next one."""
    NONE = ""
    SEMICOLON = ";"
    BACKGROUND = "&"
    AND = "&&"
    OR = "||"


JOINER_TOKENS = {
    TokenType.OPERATOR_SEMICOLON: Joiner.SEMICOLON,
    TokenType.OPERATOR_BG: Joiner.BACKGROUND,
    TokenType.OPERATOR_AND: Joiner.AND,
    TokenType.OPERATOR_OR: Joiner.OR,
}


@dataclass
class Segment:
    """One command with its arguments."""
    command: str
    args: List[str] = field(default_factory=list)


@dataclass
class OutputRedirect:
    file: str
    mode: RedirectMode = RedirectMode.OVERWRITE


@dataclass
class Pipeline:
    """
    Segments connected by pipes, plus redirections.

    Attributes:
        segments: Commands, left to right
        input_redirect: File fed to the first segment
        output_redirect: File receiving the last segment's output
        background: True when the pipeline was followed by ``&``
        job_id: Assigned by the executor when scheduled in the background
        text: Source text of the pipeline, used for job listings
    """
    segments: List[Segment] = field(default_factory=list)
    input_redirect: Optional[str] = None
    output_redirect: Optional[OutputRedirect] = None
    background: bool = False
    job_id: Optional[int] = None
    text: str = ""


@dataclass
class SequenceItem:
    """A pipeline and the joiner that follows it."""
    pipeline: Pipeline
    joiner: Joiner = Joiner.NONE


class Parser:
    """
    Recursive-descent parser for command sequences.

    Example:
        >>> items = Parser(tokenize('ls | wc > out && echo ok')).parse()
        >>> [item.joiner for item in items]
        [<Joiner.AND: '&&'>, <Joiner.NONE: ''>]
    """

    def __init__(
        self,
        tokens: List[Token],
        glob_expander: Optional[GlobExpander] = None,
        source: Optional[str] = None
    ):
        self._tokens = tokens
        self._index = 0
        self._glob = glob_expander
        self._source = source

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.type != TokenType.EOF:
            self._index += 1
        return token

    def parse(self) -> List[SequenceItem]:
        """
        Parse the whole token stream.

        Returns:
            Sequence items in order; empty for blank input

        Raises:
            ParseError: On any grammar violation
        """
        items: List[SequenceItem] = []

        while self._peek().type != TokenType.EOF:
            pipeline = self._parse_pipeline()
            token = self._peek()
            joiner = JOINER_TOKENS.get(token.type)

            if joiner is None:
                if token.type != TokenType.EOF:
                    raise UnexpectedTokenError(token.value or "", token.position)
                items.append(SequenceItem(pipeline, Joiner.NONE))
                break

            self._advance()
            if joiner == Joiner.BACKGROUND:
                pipeline.background = True
            if joiner in (Joiner.AND, Joiner.OR) and self._peek().type == TokenType.EOF:
                raise MissingJoinerRightError(joiner.value, token.position)
            items.append(SequenceItem(pipeline, joiner))

        return items

    def _parse_pipeline(self) -> Pipeline:
        start = self._peek()
        pipeline = Pipeline()

        if start.type == TokenType.OPERATOR_LT:
            self._advance()
            pipeline.input_redirect = self._expect_filename(start)

        pipeline.segments.append(self._parse_segment(pipeline, first=True))
        while self._peek().type == TokenType.OPERATOR_PIPE:
            pipe = self._advance()
            if pipeline.output_redirect is not None:
                raise UnexpectedTokenError(pipe.value, pipe.position)
            if self._peek().type not in ARGUMENT_TYPES:
                raise MissingPipeRightError(pipe.position)
            pipeline.segments.append(self._parse_segment(pipeline, first=False))

        pipeline.text = self._source_text(start, self._peek())
        return pipeline

    def _parse_segment(self, pipeline: Pipeline, first: bool) -> Segment:
        token = self._peek()
        if token.type not in ARGUMENT_TYPES:
            raise UnexpectedTokenError(token.value or "", token.position)
        segment = Segment(self._advance().value)

        while True:
            token = self._peek()
            if token.type in ARGUMENT_TYPES:
                self._advance()
                segment.args.extend(self._expand(token))
            elif token.type == TokenType.OPERATOR_LT:
                if not first or pipeline.input_redirect is not None:
                    raise UnexpectedTokenError(token.value, token.position)
                self._advance()
                pipeline.input_redirect = self._expect_filename(token)
            elif token.type in (TokenType.OPERATOR_GT, TokenType.OPERATOR_GTGT):
                self._advance()
                mode = (RedirectMode.APPEND if token.type == TokenType.OPERATOR_GTGT
                        else RedirectMode.OVERWRITE)
                pipeline.output_redirect = OutputRedirect(self._expect_filename(token), mode)
            else:
                return segment

    def _expect_filename(self, operator: Token) -> str:
        token = self._peek()
        if token.type not in ARGUMENT_TYPES:
            raise MissingRedirectFilenameError(operator.value, operator.position)
        return self._advance().value

    def _expand(self, token: Token) -> List[str]:
        if token.type == TokenType.WORD and token.globbable and self._glob is not None:
            return self._glob(token.value)
        return [token.value]

    def _source_text(self, start: Token, end: Token) -> str:
        if self._source is not None:
            stop = end.position if end.type != TokenType.EOF else len(self._source)
            return self._source[start.position:stop].strip()
        first = self._tokens.index(start)
        last = self._tokens.index(end)
        return ' '.join(t.value for t in self._tokens[first:last] if t.value is not None)


def parse_line(
    text: str,
    glob_expander: Optional[GlobExpander] = None
) -> List[SequenceItem]:
    """Lex and parse ``text`` in one step."""
    return Parser(tokenize(text), glob_expander, source=text).parse()
