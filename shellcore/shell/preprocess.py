"""
Line Preprocessing Module

Text-level expansions applied to a command line before it is lexed,
in this order:

1. Script-only: comment stripping and positional parameters
2. Command substitution, ``$(...)`` and backticks
3. Environment expansion, ``$NAME`` and ``${NAME}``
4. Whole-line assignment detection, ``NAME=value``
5. Alias expansion of the first word
6. Brace expansion, ``{a,b}``, ``{1..5}``, ``{a..e}``

Single-quoted text is never expanded.

Version: 1.0.0
"""

import re
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from shellcore.exceptions import BadArgumentsError
from shellcore.shell.lexer import ARGUMENT_TYPES, tokenize
from shellcore.users.session import AliasTable, Environment


NAME_START = re.compile(r'[A-Za-z_]')
NAME_CHARS = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
ASSIGNMENT = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*)=(.*)$', re.DOTALL)
BRACE_GROUP = re.compile(r'(?<!\\)\{([^{}]*)\}')

SUBSTITUTION_ESCAPES = frozenset('"\'><|&;\\$`')

Capture = Callable[[str], Awaitable[str]]


@dataclass
class ScriptArguments:
    """Positional parameters of a running script."""
    name: str
    args: Sequence[str]

    def lookup(self, key: str) -> str:
        if key == '0':
            return self.name
        if key == '@':
            return ' '.join(self.args)
        if key == '#':
            return str(len(self.args))
        index = int(key)
        return self.args[index - 1] if index <= len(self.args) else ""


@dataclass
class PreprocessedLine:
    """
    A line ready for the lexer.

    Attributes:
        text: Expanded text
        assignment: ``(name, value)`` when the line was ``NAME=value``
    """
    text: str
    assignment: Optional[Tuple[str, str]] = None


def strip_comment(line: str) -> str:
    """
    Remove a ``#`` comment that starts a word outside quotes.

    >>> strip_comment('echo a # note')
    'echo a'
    >>> strip_comment('echo "# kept"')
    'echo "# kept"'
    """
    quote = None
    i = 0
    while i < len(line):
        char = line[i]
        if quote:
            if char == '\\' and i + 1 < len(line):
                i += 2
                continue
            if char == quote:
                quote = None
        elif char == '\\':
            i += 2
            continue
        elif char in ('"', "'"):
            quote = char
        elif char == '#' and (i == 0 or line[i - 1].isspace()):
            return line[:i].rstrip()
        i += 1
    return line


def _escape_substitution(text: str, in_double_quotes: bool) -> str:
    if in_double_quotes:
        return text.replace('\\', '\\\\').replace('"', '\\"')
    return ''.join('\\' + c if c in SUBSTITUTION_ESCAPES else c for c in text)


def _find_closing_paren(text: str, start: int) -> int:
    """Index of the ``)`` closing the group opened just before ``start``."""
    depth = 1
    quote = None
    i = start
    while i < len(text):
        char = text[i]
        if quote:
            if char == '\\' and i + 1 < len(text):
                i += 2
                continue
            if char == quote:
                quote = None
        elif char == '\\':
            i += 2
            continue
        elif char in ('"', "'"):
            quote = char
        elif char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _expand_word(word: str) -> List[str]:
    match = BRACE_GROUP.search(word)
    while match is not None:
        options = _brace_options(match.group(1))
        if options is not None:
            prefix, suffix = word[:match.start()], word[match.end():]
            results: List[str] = []
            for option in options:
                results.extend(_expand_word(prefix + option + suffix))
            return results
        match = BRACE_GROUP.search(word, match.end())
    return [word]


def _brace_options(content: str) -> Optional[List[str]]:
    if '..' in content:
        start, _, end = content.partition('..')
        try:
            first, last = int(start), int(end)
        except ValueError:
            if len(start) == 1 and len(end) == 1:
                step = 1 if ord(start) <= ord(end) else -1
                return [chr(c) for c in range(ord(start), ord(end) + step, step)]
            return None
        step = 1 if first <= last else -1
        return [str(n) for n in range(first, last + step, step)]
    if ',' in content:
        return content.split(',')
    return None


def expand_braces(line: str) -> str:
    """
    Expand brace groups in unquoted words.

    >>> expand_braces('touch f{1..3}.txt')
    'touch f1.txt f2.txt f3.txt'
    >>> expand_braces('echo "{a,b}" {x,y}z')
    'echo "{a,b}" xz yz'
    """
    parts: List[str] = []
    word_start = None
    quoted = False
    quote = None
    i = 0

    def flush(end: int) -> None:
        word = line[word_start:end]
        if quoted or '{' not in word:
            parts.append(word)
        else:
            parts.append(' '.join(_expand_word(word)))

    while i < len(line):
        char = line[i]
        if quote:
            if char == '\\' and i + 1 < len(line):
                i += 2
                continue
            if char == quote:
                quote = None
            i += 1
            continue
        if char.isspace():
            if word_start is not None:
                flush(i)
                word_start = None
            parts.append(char)
            i += 1
            continue
        if word_start is None:
            word_start = i
            quoted = False
        if char == '\\':
            i += 2
            continue
        if char in ('"', "'"):
            quote = char
            quoted = True
        i += 1

    if word_start is not None:
        flush(len(line))
    return ''.join(parts)


class Preprocessor:
    """
    Applies the text expansions for one session.

    ``capture`` runs a command line with output suppressed and returns
    its stdout; it drives command substitution.

    Example:
        >>> pre = Preprocessor(env, aliases, capture)
        >>> (await pre.process('ll $HOME')).text
        'ls -la /home/Guest'
    """

    def __init__(
        self,
        env: Environment,
        aliases: AliasTable,
        capture: Optional[Capture] = None
    ):
        self._env = env
        self._aliases = aliases
        self._capture = capture

    async def process(
        self,
        line: str,
        script: Optional[ScriptArguments] = None
    ) -> PreprocessedLine:
        """
        Run every expansion over ``line``.

        Raises:
            BadArgumentsError: On an unterminated substitution
        """
        text = line.strip()
        if script is not None:
            text = strip_comment(text)
        text = await self.substitute_commands(text, script)
        text = self.expand_variables(text, script)

        assignment = ASSIGNMENT.match(text)
        if assignment:
            return PreprocessedLine(text, (assignment.group(1), _assignment_value(assignment.group(2))))

        text = self.expand_aliases(text)
        text = expand_braces(text)
        return PreprocessedLine(text)

    async def substitute_commands(self, text: str, script: Optional[ScriptArguments] = None) -> str:
        """
        Replace ``$(cmd)`` and ```cmd``` with the command's output.

        Inside scripts the positional parameters of ``cmd`` are expanded
        first, since the captured line runs outside the script.
        """
        if self._capture is None or ('$(' not in text and '`' not in text):
            return text

        out: List[str] = []
        quote = None
        i = 0
        while i < len(text):
            char = text[i]
            if quote == "'":
                if char == '\\' and i + 1 < len(text) and text[i + 1] in "'\\":
                    out.append(text[i:i + 2])
                    i += 2
                    continue
                if char == "'":
                    quote = None
                out.append(char)
                i += 1
                continue
            if char == '\\' and i + 1 < len(text):
                out.append(text[i:i + 2])
                i += 2
                continue
            if char == '$' and text.startswith('$(', i):
                end = _find_closing_paren(text, i + 2)
                if end < 0:
                    raise BadArgumentsError("Unterminated command substitution '$('")
                out.append(await self._run_capture(text[i + 2:end], quote == '"', script))
                i = end + 1
                continue
            if char == '`':
                end = text.find('`', i + 1)
                if end < 0:
                    raise BadArgumentsError("Unterminated command substitution '`'")
                out.append(await self._run_capture(text[i + 1:end], quote == '"', script))
                i = end + 1
                continue
            if char == '"':
                quote = None if quote == '"' else '"'
            elif char == "'" and quote is None:
                quote = "'"
            out.append(char)
            i += 1
        return ''.join(out)

    async def _run_capture(
        self,
        command: str,
        in_double_quotes: bool,
        script: Optional[ScriptArguments]
    ) -> str:
        if script is not None:
            command = self.expand_variables(command, script, positional_only=True)
        output = await self._capture(command)
        output = output.rstrip('\n').replace('\n', ' ')
        return _escape_substitution(output, in_double_quotes)

    def expand_variables(
        self,
        text: str,
        script: Optional[ScriptArguments] = None,
        positional_only: bool = False
    ) -> str:
        """
        Expand ``$NAME``, ``${NAME}`` and, inside scripts, ``$0``-``$9``,
        ``$@`` and ``$#``. Undefined names expand to the empty string.
        With ``positional_only`` environment names are left as written.
        """
        if '$' not in text:
            return text

        out: List[str] = []
        quote = None
        i = 0
        while i < len(text):
            char = text[i]
            if quote == "'":
                if char == '\\' and i + 1 < len(text) and text[i + 1] in "'\\":
                    out.append(text[i:i + 2])
                    i += 2
                    continue
                if char == "'":
                    quote = None
                out.append(char)
                i += 1
                continue
            if char == '\\' and i + 1 < len(text):
                out.append(text[i:i + 2])
                i += 2
                continue
            if char == '$' and i + 1 < len(text):
                replacement, consumed = self._variable_at(text, i + 1, script, positional_only)
                if consumed:
                    out.append(replacement)
                    i += 1 + consumed
                    continue
            if char == '"':
                quote = None if quote == '"' else '"'
            elif char == "'" and quote is None:
                quote = "'"
            out.append(char)
            i += 1
        return ''.join(out)

    def _variable_at(
        self,
        text: str,
        pos: int,
        script: Optional[ScriptArguments],
        positional_only: bool = False
    ) -> Tuple[str, int]:
        nxt = text[pos]
        if positional_only:
            if script is not None and (nxt.isdigit() or nxt in '@#'):
                return script.lookup(nxt), 1
            return '', 0
        if nxt == '{':
            close = text.find('}', pos)
            name = text[pos + 1:close] if close > 0 else ''
            if close > 0 and NAME_CHARS.fullmatch(name):
                return self._env.get(name), close - pos + 1
            return '', 0
        if NAME_START.match(nxt):
            name = NAME_CHARS.match(text, pos).group(0)
            return self._env.get(name), len(name)
        if script is not None and (nxt.isdigit() or nxt in '@#'):
            return script.lookup(nxt), 1
        return '', 0

    def expand_aliases(self, text: str) -> str:
        """
        Replace the first word with its alias body, repeatedly.

        A body that starts with another alias expands again; each name
        expands at most once per line, so ``alias ls='ls -a'`` stops.
        """
        seen = set()
        while True:
            match = re.match(r'(\S+)(.*)', text, re.DOTALL)
            if not match or match.group(1) in seen:
                return text
            body = self._aliases.get(match.group(1))
            if body is None:
                return text
            seen.add(match.group(1))
            text = f"{body}{match.group(2)}"


def _assignment_value(raw: str) -> str:
    """Remove quoting from the right-hand side of ``NAME=value``."""
    tokens = [t for t in tokenize(raw) if t.type in ARGUMENT_TYPES]
    return ' '.join(t.value for t in tokens)
