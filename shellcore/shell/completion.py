"""
Tab Completion Module

Context-aware completion of the word under the cursor:
- Command names in command position
- Otherwise the leading command's completion kind: commands, users,
  paths or aliases

Repeated Tab presses on an unchanged line cycle through the cached
suggestions.

Version: 1.0.0
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from shellcore.exceptions import CommandNotFoundError
from shellcore.filesystem.node import DirectoryNode
from shellcore.filesystem.path_resolver import PathResolver
from shellcore.logger import get_logger
from shellcore.shell.command import CompletionKind, Dependencies


SUGGESTION_SEPARATOR = "    "
COMMAND_BREAKS = frozenset('|;&')


@dataclass
class CompletionContext:
    """
    The word being completed.

    Attributes:
        command_name: First word of the current command
        completing_command: The word is in command position
        prefix: Word text without its opening quote
        word_start: Index where the word begins in the input
        quote: Opening quote character, if any
    """
    command_name: str
    completing_command: bool
    prefix: str
    word_start: int
    quote: Optional[str] = None


@dataclass
class Completion:
    """New input text and caret position after a Tab press."""
    text: str
    cursor: int


@dataclass
class _Cycle:
    suggestions: List[str] = field(default_factory=list)
    index: int = -1
    word_start: int = 0
    end: int = 0
    paths: bool = False
    last_input: Optional[str] = None


def longest_common_prefix(words: List[str]) -> str:
    """
    >>> longest_common_prefix(['chmod', 'chown', 'chgrp'])
    'ch'
    """
    if not words:
        return ""
    prefix = words[0]
    for word in words[1:]:
        while not word.startswith(prefix):
            prefix = prefix[:-1]
            if not prefix:
                return ""
    return prefix


def quote_if_necessary(text: str) -> str:
    return f"'{text}'" if re.search(r'\s', text) else text


def analyze(full_input: str, cursor: int) -> CompletionContext:
    """
    Classify the word ending at ``cursor``.

    A word is in command position when it is the first word of the
    line or follows ``|``, ``;`` or ``&``.
    """
    before = full_input[:cursor]
    word_start = 0
    command_start = 0
    quote = None
    for i, char in enumerate(before):
        if quote:
            if char == quote and before[i - 1] != '\\':
                quote = None
            continue
        if char in ('"', "'") and (i == 0 or before[i - 1].isspace()):
            quote = char
        elif char.isspace():
            word_start = i + 1
        elif char in COMMAND_BREAKS:
            word_start = i + 1
            command_start = i + 1

    command_words = before[command_start:word_start].split()
    word = full_input[word_start:cursor]
    opening = word[0] if word[:1] in ('"', "'") else None
    return CompletionContext(
        command_name=command_words[0].strip('"\'') if command_words else "",
        completing_command=not command_words,
        prefix=word[1:] if opening else word,
        word_start=word_start,
        quote=opening
    )


class TabCompleter:
    """
    Tab key handler for one terminal.

    Example:
        >>> completer = TabCompleter(deps)
        >>> (await completer.handle_tab('ech', 3)).text
        'echo '
    """

    def __init__(self, deps: Dependencies):
        self._deps = deps
        self._cycle = _Cycle()
        self._logger = get_logger('completion')

    def reset_cycle(self) -> None:
        self._cycle = _Cycle()

    async def handle_tab(self, full_input: str, cursor: int) -> Optional[Completion]:
        """
        Complete the word at ``cursor``.

        Returns:
            The replacement input, or None when nothing matches
        """
        cycle = self._cycle
        if cycle.suggestions and full_input == cycle.last_input:
            cycle.index = (cycle.index + 1) % len(cycle.suggestions)
            return self._insert(full_input, cycle.word_start, cycle.end,
                                cycle.suggestions[cycle.index], cycle.paths, remember=True)

        self.reset_cycle()
        context = analyze(full_input, cursor)
        kind = self.kind_for(context)
        suggestions = self.suggestions_for(context, kind)
        if not suggestions:
            return None

        paths = kind == CompletionKind.PATHS
        if len(suggestions) == 1:
            return self._insert(full_input, context.word_start, cursor, suggestions[0], paths)

        prefix = longest_common_prefix(suggestions)
        if len(prefix) > len(context.prefix):
            # opening quote only; the next Tab closes it
            if re.search(r'\s', prefix):
                prefix = "'" + prefix
            text = full_input[:context.word_start] + prefix + full_input[cursor:]
            return Completion(text, context.word_start + len(prefix))

        output = self._deps.output
        output.suggest(f"{self._prompt_text()} {full_input}")
        output.suggest(SUGGESTION_SEPARATOR.join(suggestions))

        self._cycle = _Cycle(suggestions, 0, context.word_start, paths=paths)
        self._logger.debug("Completion cycle started", context={'count': len(suggestions)})
        return self._insert(full_input, context.word_start, cursor,
                            suggestions[0], paths, remember=True)

    def kind_for(self, context: CompletionContext) -> CompletionKind:
        """What the word described by ``context`` completes over."""
        if context.completing_command:
            return CompletionKind.COMMANDS
        try:
            command = self._deps.registry.load(context.command_name.lower())
        except CommandNotFoundError:
            return CompletionKind.NONE
        if command.completion == CompletionKind.NONE and command.path_rules:
            return CompletionKind.PATHS
        return command.completion

    def suggestions_for(
        self,
        context: CompletionContext,
        kind: Optional[CompletionKind] = None
    ) -> List[str]:
        """Sorted candidates for the word described by ``context``."""
        if kind is None:
            kind = self.kind_for(context)
        deps = self._deps
        if kind == CompletionKind.COMMANDS:
            return self._match(deps.registry.names(), context.prefix)
        if kind == CompletionKind.USERS:
            return self._match(deps.users.list_users(), context.prefix)
        if kind == CompletionKind.ALIASES:
            return self._match(deps.sessions.current.aliases.names(), context.prefix)
        if kind == CompletionKind.PATHS:
            return self._paths(context.prefix)
        return []

    @staticmethod
    def _match(names: List[str], prefix: str) -> List[str]:
        lowered = prefix.lower()
        return sorted(n for n in names if n.lower().startswith(lowered))

    def _paths(self, prefix: str) -> List[str]:
        deps = self._deps
        session = deps.sessions.current
        slash = prefix.rfind('/')
        parent_text = prefix[:slash + 1] if slash >= 0 else ""
        segment = prefix[slash + 1:]

        node = deps.vfs.get_node(parent_text or '.', session.cwd, session.user, follow_symlinks=True)
        if not isinstance(node, DirectoryNode) or not deps.vfs.has_permission(node, session.user, 'read'):
            return []

        lowered = segment.lower()
        return sorted(
            parent_text + name for name in node.children
            if name.lower().startswith(lowered)
        )

    def _is_directory(self, suggestion: str) -> bool:
        session = self._deps.sessions.current
        node = self._deps.vfs.get_node(suggestion, session.cwd, session.user, follow_symlinks=True)
        return isinstance(node, DirectoryNode)

    def _insert(
        self,
        full_input: str,
        word_start: int,
        end: int,
        suggestion: str,
        paths: bool,
        remember: bool = False
    ) -> Completion:
        if paths and self._is_directory(suggestion):
            completion = quote_if_necessary(suggestion + '/')
        else:
            completion = quote_if_necessary(suggestion) + ' '
        text = full_input[:word_start] + completion + full_input[end:]
        cursor = word_start + len(completion)
        if remember:
            self._cycle.last_input = text
            self._cycle.end = cursor
        return Completion(text, cursor)

    def _prompt_text(self) -> str:
        deps = self._deps
        session = deps.sessions.current
        home = deps.vfs.user_home(session.user)
        path = PathResolver.contract_home(session.cwd, home)
        return f"{session.user}@{deps.config.system.host}:{path}{deps.config.shell.prompt_char}"
