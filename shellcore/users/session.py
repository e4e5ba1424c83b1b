"""
Session Module

Per-login terminal state and the session stack:
- Environment variables, as a stack so scripts can scope changes
- Aliases, persisted per user
- Bounded command history with navigation
- Session stack driven by su, login and logout

Version: 1.0.0
"""

import copy
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from shellcore.core.config_loader import Config, get_config
from shellcore.core.registry import Subsystem
from shellcore.exceptions import BadArgumentsError
from shellcore.filesystem.node import DirectoryNode
from shellcore.filesystem.vfs import VirtualFileSystem
from shellcore.storage.manager import StorageManager, StorageKey


VARIABLE_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class Environment:
    """
    Environment variables of one session.

    The active scope is the top of a stack; ``push`` opens a scope
    seeded with a copy of the current one and ``pop`` discards it.

    Example:
        >>> env = Environment({'USER': 'Guest'})
        >>> env.push()
        >>> env.set('X', '1')
        >>> env.pop()
        >>> env.get('X')
        ''
    """

    def __init__(self, variables: Optional[Dict[str, str]] = None):
        self._stack: List[Dict[str, str]] = [dict(variables or {})]

    @property
    def depth(self) -> int:
        return len(self._stack)

    def push(self) -> None:
        self._stack.append(copy.deepcopy(self._stack[-1]))

    def pop(self) -> None:
        """Discard the innermost scope; the base scope is never popped."""
        if len(self._stack) > 1:
            self._stack.pop()

    def get(self, name: str) -> str:
        return self._stack[-1].get(name, "")

    def has(self, name: str) -> bool:
        return name in self._stack[-1]

    def set(self, name: str, value: str) -> None:
        """
        Raises:
            BadArgumentsError: If ``name`` is not a valid variable name
        """
        if not VARIABLE_NAME.match(name):
            raise BadArgumentsError(
                f"Invalid variable name: '{name}'. Must start with a letter or underscore, "
                "followed by letters, numbers, or underscores."
            )
        self._stack[-1][name] = str(value)

    def unset(self, name: str) -> None:
        self._stack[-1].pop(name, None)

    def all(self) -> Dict[str, str]:
        return dict(self._stack[-1])

    def load(self, variables: Dict[str, str]) -> None:
        self._stack[-1] = dict(variables)


class AliasTable:
    """Alias name to command text, written back through ``on_change``."""

    def __init__(
        self,
        aliases: Optional[Dict[str, str]] = None,
        on_change: Optional[Callable[[Dict[str, str]], None]] = None
    ):
        self._aliases: Dict[str, str] = dict(aliases or {})
        self._on_change = on_change

    def get(self, name: str) -> Optional[str]:
        return self._aliases.get(name)

    def set(self, name: str, value: str) -> None:
        self._aliases[name] = value
        self._changed()

    def remove(self, name: str) -> bool:
        if name not in self._aliases:
            return False
        del self._aliases[name]
        self._changed()
        return True

    def all(self) -> Dict[str, str]:
        return dict(self._aliases)

    def names(self) -> List[str]:
        return sorted(self._aliases)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.all())


class CommandHistory:
    """
    Bounded command history.

    Blank lines and immediate repeats are not recorded. ``previous``
    and ``next`` move a cursor that every ``add`` resets to the end.
    """

    def __init__(self, max_size: int = 50, entries: Optional[List[str]] = None):
        self._max_size = max_size
        self._entries: List[str] = []
        self._index = 0
        self.set_entries(entries or [])

    def add(self, command: str) -> None:
        command = command.strip()
        if command and (not self._entries or self._entries[-1] != command):
            self._entries.append(command)
            if len(self._entries) > self._max_size:
                self._entries.pop(0)
        self._index = len(self._entries)

    def previous(self) -> Optional[str]:
        if self._entries and self._index > 0:
            self._index -= 1
            return self._entries[self._index]
        return None

    def next(self) -> str:
        """Step forward; past the newest entry this returns ``""``."""
        if self._index < len(self._entries) - 1:
            self._index += 1
            return self._entries[self._index]
        self._index = len(self._entries)
        return ""

    def reset_index(self) -> None:
        self._index = len(self._entries)

    def entries(self) -> List[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries = []
        self._index = 0

    def set_entries(self, entries: List[str]) -> None:
        self._entries = [str(e) for e in entries][-self._max_size:] if self._max_size else []
        self._index = len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class Session:
    """The terminal state of one login."""
    user: str
    cwd: str
    env: Environment
    aliases: AliasTable
    history: CommandHistory


class SessionManager(Subsystem):
    """
    Session stack subsystem.

    ``su`` pushes a session, ``logout`` pops back to the previous one
    with its cwd, environment and history intact, and ``login``
    replaces the whole stack. Each session's state is also written to
    the user's terminal-state key when it is left.

    Example:
        >>> sessions = SessionManager(storage, vfs)
        >>> sessions.initialize()
        >>> sessions.push_session('root')
        >>> sessions.current_user
        'root'
        >>> sessions.pop_session().user
        'root'
    """

    def __init__(
        self,
        storage: StorageManager,
        vfs: VirtualFileSystem,
        config: Optional[Config] = None
    ):
        super().__init__('sessions')
        self._storage = storage
        self._vfs = vfs
        self._config = config or get_config()
        self._stack: List[Session] = []

    def initialize(self) -> None:
        self._stack = [self._open_session(self._config.users.default_user)]
        self._logger.info("Session stack ready", context={'user': self.current_user})

    @property
    def current(self) -> Session:
        return self._stack[-1]

    @property
    def current_user(self) -> str:
        return self._stack[-1].user

    @property
    def depth(self) -> int:
        return len(self._stack)

    def stack_users(self) -> List[str]:
        return [session.user for session in self._stack]

    def push_session(self, username: str) -> Session:
        """Save the current session and open one for ``username`` on top."""
        self.save_state(self.current)
        session = self._open_session(username)
        self._stack.append(session)
        self._logger.info("Session pushed", context={'user': username, 'depth': self.depth})
        return session

    def pop_session(self) -> Optional[Session]:
        """
        Close the current session and return to the previous one.

        Returns:
            The closed session, or None when it was the only one
        """
        if len(self._stack) <= 1:
            return None
        closed = self._stack.pop()
        self.save_state(closed)
        self._logger.info("Session popped", context={'user': closed.user, 'depth': self.depth})
        return closed

    def login_session(self, username: str) -> Session:
        """Replace the whole stack with a single session for ``username``."""
        for session in reversed(self._stack):
            self.save_state(session)
        session = self._open_session(username)
        self._stack = [session]
        self._logger.info("Logged in", context={'user': username})
        return session

    def save_state(self, session: Session) -> None:
        """Persist cwd, environment and history of ``session``."""
        self._storage.save_item(
            StorageKey.terminal_state(session.user),
            {
                'cwd': session.cwd,
                'env': session.env.all(),
                'history': session.history.entries(),
            },
            f"Session state for {session.user}"
        )

    def clear_user_state(self, username: str) -> None:
        """Forget everything stored for a deleted user."""
        self._storage.remove_item(StorageKey.terminal_state(username))
        aliases = self._storage.load_item(StorageKey.ALIAS_DEFINITIONS, "Aliases", {})
        if username in aliases:
            del aliases[username]
            self._storage.save_item(StorageKey.ALIAS_DEFINITIONS, aliases, "Aliases")

    def default_environment(self, username: str) -> Dict[str, str]:
        return {
            'USER': username,
            'HOME': self._vfs.user_home(username),
            'HOST': self._config.system.host,
            'PATH': '/bin:/usr/bin',
        }

    def _open_session(self, username: str) -> Session:
        home = self._vfs.user_home(username)
        cwd = home if isinstance(self._vfs.get_node(home), DirectoryNode) else '/'
        env = self.default_environment(username)
        history: List[str] = []

        state = self._storage.load_item(
            StorageKey.terminal_state(username), f"Session state for {username}"
        )
        if isinstance(state, dict):
            saved_cwd = state.get('cwd')
            if isinstance(saved_cwd, str) and isinstance(
                self._vfs.get_node(saved_cwd, follow_symlinks=True), DirectoryNode
            ):
                cwd = saved_cwd
            env = {str(k): str(v) for k, v in (state.get('env') or env).items()}
            history = list(state.get('history') or [])

        return Session(
            user=username,
            cwd=cwd,
            env=Environment(env),
            aliases=self._load_aliases(username),
            history=CommandHistory(self._config.shell.history_size, history),
        )

    def _load_aliases(self, username: str) -> AliasTable:
        all_aliases = self._storage.load_item(StorageKey.ALIAS_DEFINITIONS, "Aliases", {})
        aliases = all_aliases.get(username)
        if not isinstance(aliases, dict):
            aliases = dict(self._config.shell.default_aliases)

        def persist(updated: Dict[str, str]) -> None:
            stored = self._storage.load_item(StorageKey.ALIAS_DEFINITIONS, "Aliases", {})
            stored[username] = updated
            self._storage.save_item(StorageKey.ALIAS_DEFINITIONS, stored, "Aliases")

        return AliasTable(aliases, on_change=persist)
