"""
Command Model Module

The contract between the executor and leaf commands:
- Flag definitions and flag parsing
- Argument count and path validation rules
- Execution options, dependency bundle and per-run context
- CommandResult returned by every command

A command subclasses ``Command``, declares its rules as class
attributes and implements ``core_logic``.

Version: 1.0.0
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union, TYPE_CHECKING
)

from shellcore.core.config_loader import Config
from shellcore.core.scheduler import CancelSignal
from shellcore.exceptions import ResolveError, FileSystemException
from shellcore.filesystem.node import FileNode, Node, NodeType
from shellcore.filesystem.path_resolver import PathResolver
from shellcore.logger import get_logger

if TYPE_CHECKING:
    from shellcore.filesystem.vfs import VirtualFileSystem
    from shellcore.ipc.message_bus import MessageBus
    from shellcore.shell.command_registry import CommandRegistry
    from shellcore.shell.executor import CommandExecutor
    from shellcore.shell.modal import ModalChannel
    from shellcore.shell.output import OutputSink
    from shellcore.storage.manager import StorageManager
    from shellcore.users.group_manager import GroupManager
    from shellcore.users.session import Environment, SessionManager
    from shellcore.users.user_manager import UserManager


# =============================================================================
# Flags and arguments
# =============================================================================

@dataclass
class FlagDefinition:
    """
    One command-line flag.

    Attributes:
        name: Key in the parsed flag map
        short: Short form such as ``-r``
        long: Long form such as ``--recursive``
        takes_value: Consume the following argument as the value
        aliases: Extra spellings matched exactly (``-STOP``)
    """
    name: str
    short: Optional[str] = None
    long: Optional[str] = None
    takes_value: bool = False
    aliases: Tuple[str, ...] = ()

    def spellings(self) -> Tuple[str, ...]:
        return tuple(s for s in (self.long, self.short) if s) + tuple(self.aliases)


def parse_flags(
    args: Sequence[str],
    definitions: Sequence[FlagDefinition]
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Split ``args`` into a flag map and the remaining positional args.

    Boolean flags default to False and value flags to None. A value
    flag takes the next argument, or an attached value (``-n5``).
    Short boolean flags may be combined (``-la``). ``-`` is
    positional and ``--`` ends flag parsing. Anything unrecognised is
    left in the positional list.

    Example:
        >>> defs = [FlagDefinition('long', '-l'), FlagDefinition('all', '-a')]
        >>> parse_flags(['-la', 'dir'], defs)
        ({'long': True, 'all': True}, ['dir'])
    """
    flags: Dict[str, Any] = {d.name: (None if d.takes_value else False) for d in definitions}
    remaining: List[str] = []

    i = 0
    while i < len(args):
        arg = args[i]
        i += 1

        if arg == '--':
            remaining.extend(args[i:])
            break
        if not arg.startswith('-') or arg == '-':
            remaining.append(arg)
            continue

        exact = next((d for d in definitions if arg in d.spellings()), None)
        if exact is not None:
            if exact.takes_value:
                if i < len(args):
                    flags[exact.name] = args[i]
                    i += 1
            else:
                flags[exact.name] = True
            continue

        if not arg.startswith('--') and len(arg) > 2:
            attached = next(
                (d for d in definitions if d.takes_value and d.short == arg[:2]), None
            )
            if attached is not None:
                flags[attached.name] = arg[2:]
                continue

            combined = []
            for char in arg[1:]:
                match = next(
                    (d for d in definitions if not d.takes_value and d.short == f"-{char}"),
                    None
                )
                if match is None:
                    combined = None
                    break
                combined.append(match)
            if combined:
                for definition in combined:
                    flags[definition.name] = True
                continue

        remaining.append(arg)

    return flags, remaining


@dataclass
class ArgValidation:
    """Positional argument count bounds."""
    exact: Optional[int] = None
    min: Optional[int] = None
    max: Optional[int] = None
    error: Optional[str] = None


def validate_arguments(args: Sequence[str], validation: ArgValidation) -> Optional[str]:
    """
    Check the positional argument count.

    Returns:
        None when valid, otherwise an error detail
    """
    count = len(args)
    if validation.exact is not None and count != validation.exact:
        return f"expected exactly {validation.exact} argument(s) but got {count}"
    if validation.min is not None and count < validation.min:
        return f"expected at least {validation.min} argument(s), but got {count}"
    if validation.max is not None and count > validation.max:
        return f"expected at most {validation.max} argument(s), but got {count}"
    return None


def parse_numeric_arg(
    text: str,
    allow_float: bool = False,
    allow_negative: bool = False,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None
) -> Union[int, float]:
    """
    Parse a numeric argument.

    Raises:
        ValueError: With a message suitable for ``'<arg>' <message>``
    """
    try:
        value = float(text) if allow_float else int(text, 10)
    except (TypeError, ValueError):
        raise ValueError("is not a valid number") from None
    if not allow_negative and value < 0:
        raise ValueError("must be a non-negative number")
    if min_value is not None and value < min_value:
        raise ValueError(f"must be at least {min_value}")
    if max_value is not None and value > max_value:
        raise ValueError(f"must be at most {max_value}")
    return value


@dataclass
class PathRule:
    """
    Validation applied to one (or every) positional argument.

    Attributes:
        arg_index: Position of the argument, or ``'all'``
        expected_type: Required node type
        permissions: Permission names the user needs on the node
        permissions_on_parent: Permission names needed on the parent directory
        allow_missing: Accept a path that does not exist yet
        required: Fail when the argument is absent
        ownership_required: The user must own the node (or be root)
        follow_symlinks: Dereference a final symlink before checking
    """
    arg_index: Union[int, str] = 0
    expected_type: Optional[NodeType] = None
    permissions: Tuple[str, ...] = ()
    permissions_on_parent: Tuple[str, ...] = ()
    allow_missing: bool = False
    required: bool = True
    ownership_required: bool = False
    follow_symlinks: bool = True


@dataclass
class ValidatedPath:
    arg: str
    node: Optional[Node]
    resolved_path: str


@dataclass
class InputItem:
    """One unit of input for a streaming command."""
    success: bool
    content: str = ""
    source_name: str = "stdin"
    error: Optional[str] = None


# =============================================================================
# Results and execution context
# =============================================================================

class CompletionKind(Enum):
    """What tab completion offers for a command's arguments."""
    COMMANDS = "commands"
    USERS = "users"
    PATHS = "paths"
    ALIASES = "aliases"
    NONE = "none"


class EffectType(Enum):
    """Host-side effects a command can request."""
    CLEAR_SCREEN = "clear_screen"


@dataclass
class CommandResult:
    """
    Outcome of running a command.

    Output carries no trailing newline; the executor adds one when the
    output is written to a file.
    """
    success: bool
    output: str = ""
    error: Optional[str] = None
    suggestion: Optional[str] = None
    state_modified: bool = False
    effect: Optional[EffectType] = None
    exit_code: int = 0

    @classmethod
    def ok(
        cls,
        output: str = "",
        state_modified: bool = False,
        effect: Optional[EffectType] = None
    ) -> 'CommandResult':
        return cls(True, output, state_modified=state_modified, effect=effect)

    @classmethod
    def fail(
        cls,
        error: str,
        suggestion: Optional[str] = None,
        exit_code: int = 1
    ) -> 'CommandResult':
        return cls(False, "", error, suggestion, exit_code=exit_code)


@dataclass
class ExecutionOptions:
    """
    Per-run options handed to a command.

    Attributes:
        interactive: The line came from the terminal
        suppress_output: Output is captured, not shown
        stdin_content: Output of the previous pipeline segment or the
            input redirect
        signal: Cancel/pause signal for this run
        job_id: Background job the run belongs to
        script: Script context when running inside a script
    """
    interactive: bool = True
    suppress_output: bool = False
    stdin_content: Optional[str] = None
    signal: CancelSignal = field(default_factory=CancelSignal)
    job_id: Optional[int] = None
    script: Any = None


@dataclass
class Dependencies:
    """Services a command may use."""
    config: Config
    storage: 'StorageManager'
    vfs: 'VirtualFileSystem'
    users: 'UserManager'
    groups: 'GroupManager'
    sessions: 'SessionManager'
    bus: 'MessageBus'
    registry: 'CommandRegistry'
    output: 'OutputSink'
    modal: 'ModalChannel'
    executor: Optional['CommandExecutor'] = None


@dataclass
class CommandContext:
    """Everything ``core_logic`` receives."""
    command_name: str
    args: List[str]
    flags: Dict[str, Any]
    user: str
    deps: Dependencies
    options: ExecutionOptions
    validated_paths: List[ValidatedPath] = field(default_factory=list)
    input_items: Optional[AsyncIterator[InputItem]] = None

    @property
    def signal(self) -> CancelSignal:
        return self.options.signal

    @property
    def cwd(self) -> str:
        return self.deps.sessions.current.cwd

    @property
    def env(self) -> 'Environment':
        return self.deps.sessions.current.env

    @property
    def vfs(self) -> 'VirtualFileSystem':
        return self.deps.vfs

    @property
    def primary_group(self) -> str:
        return self.deps.users.get_primary_group(self.user) or self.user

    async def read_all_input(self) -> Tuple[List[InputItem], bool]:
        """
        Drain ``input_items``.

        Returns:
            Successful items and whether any source failed; failures
            are reported on the error channel as they are met
        """
        items: List[InputItem] = []
        had_error = False
        if self.input_items is None:
            return items, had_error
        async for item in self.input_items:
            if item.success:
                items.append(item)
            else:
                had_error = True
                self.deps.output.error(f"{self.command_name}: {item.error}")
        return items, had_error


# =============================================================================
# Command base class
# =============================================================================

class Command(ABC):
    """
    Base class for every shell command.

    Subclasses set the class attributes that describe the command and
    implement ``core_logic``.

    Example:
        >>> class EchoCommand(Command):
        ...     name = 'echo'
        ...     async def core_logic(self, ctx):
        ...         return CommandResult.ok(' '.join(ctx.args))
    """

    name: str = ""
    description: str = ""
    help_text: str = ""
    flag_definitions: Sequence[FlagDefinition] = ()
    arg_validation: Optional[ArgValidation] = None
    path_rules: Sequence[PathRule] = ()
    completion: CompletionKind = CompletionKind.NONE
    input_stream: bool = False
    first_file_arg_index: int = 0

    def __init__(self):
        self._logger = get_logger('commands')

    async def execute(
        self,
        raw_args: Sequence[str],
        options: ExecutionOptions,
        deps: Dependencies
    ) -> CommandResult:
        """
        Parse flags, validate arguments and paths, then run the command.

        Validation failures come back as failed results; errors raised
        by ``core_logic`` propagate to the executor.
        """
        flags, args = parse_flags(raw_args, self.flag_definitions)

        if self.arg_validation is not None:
            detail = validate_arguments(args, self.arg_validation)
            if detail is not None:
                return CommandResult.fail(f"{self.name}: {self.arg_validation.error or detail}")

        user = deps.sessions.current_user
        cwd = deps.sessions.current.cwd
        validated: List[ValidatedPath] = []
        for rule in self.path_rules:
            try:
                validated.extend(self._validate_rule(rule, args, user, cwd, deps))
            except (FileSystemException, _RuleViolation) as e:
                return CommandResult.fail(
                    f"{self.name}: {getattr(e, 'message', str(e))}",
                    getattr(e, 'suggestion', None)
                )

        ctx = CommandContext(
            command_name=self.name,
            args=args,
            flags=flags,
            user=user,
            deps=deps,
            options=options,
            validated_paths=validated
        )
        if self.input_stream:
            ctx.input_items = self._generate_input(ctx, args[self.first_file_arg_index:])

        return await self.core_logic(ctx)

    @abstractmethod
    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        """Run the command."""

    def _validate_rule(
        self,
        rule: PathRule,
        args: List[str],
        user: str,
        cwd: str,
        deps: Dependencies
    ) -> List[ValidatedPath]:
        vfs = deps.vfs
        indices = range(len(args)) if rule.arg_index == 'all' else [rule.arg_index]
        validated = []

        for index in indices:
            if index >= len(args):
                if rule.required:
                    raise _RuleViolation("missing path argument.")
                continue

            arg = args[index]
            info = vfs.validate_path(
                arg, cwd, user,
                expected_type=rule.expected_type,
                permissions=rule.permissions,
                allow_missing=rule.allow_missing,
                follow_symlinks=rule.follow_symlinks
            )

            if rule.permissions_on_parent:
                vfs.validate_path(
                    PathResolver.dirname(info.resolved_path), '/', user,
                    expected_type=NodeType.DIRECTORY,
                    permissions=rule.permissions_on_parent
                )

            if rule.ownership_required and info.node is not None:
                if not vfs.can_user_modify(info.node, user):
                    raise _RuleViolation(
                        f"changing permissions of '{arg}': Operation not permitted"
                    )

            validated.append(ValidatedPath(arg, info.node, info.resolved_path))

        return validated

    async def _generate_input(
        self,
        ctx: CommandContext,
        file_args: List[str]
    ) -> AsyncIterator[InputItem]:
        if ctx.options.stdin_content is not None:
            yield InputItem(True, ctx.options.stdin_content, "stdin")
            return

        for arg in file_args:
            await ctx.signal.checkpoint()
            try:
                info = ctx.vfs.validate_path(
                    arg, ctx.cwd, ctx.user,
                    expected_type=NodeType.FILE,
                    permissions=('read',)
                )
            except ResolveError as e:
                yield InputItem(False, source_name=arg, error=e.message)
                continue
            node = info.node
            content = node.content if isinstance(node, FileNode) else ""
            yield InputItem(True, content, arg)


class _RuleViolation(Exception):
    """A path rule failed for a reason other than resolution."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.suggestion = None
