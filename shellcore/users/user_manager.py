"""
User Manager Module

Implements multi-user support with:
- Credential registry persisted under the credentials storage key
- PBKDF2 password hashing with per-user salts
- Authentication with an optional hidden-password prompt
- su, login and logout on top of the session stack

Version: 1.0.0
"""

import hashlib
import hmac
import secrets
from typing import Dict, List, Optional

from shellcore.core.config_loader import Config, get_config
from shellcore.core.registry import Subsystem
from shellcore.exceptions import (
    AuthenticationError,
    CommandCancelled,
    InvalidUsernameError,
    UserExistsError,
    UserNotFoundError,
)
from shellcore.filesystem.vfs import VirtualFileSystem
from shellcore.shell.modal import ModalChannel, PASSWORD_PROMPT, OPERATION_CANCELLED
from shellcore.storage.manager import StorageManager, StorageKey
from shellcore.users.group_manager import GroupManager
from shellcore.users.session import SessionManager


INVALID_PASSWORD = "Nope, sorry. Are you sure you typed it right?."
NO_PASSWORD_NEEDED = "This account does not require a password."


class UserManager(Subsystem):
    """
    User Management Subsystem.

    Example:
        >>> um = UserManager(storage, vfs, groups, sessions)
        >>> um.initialize()
        >>> um.register('alice', 'pw')
        '/home/alice'
        >>> await um.su('alice', 'pw', modal)
        'Switched to user: alice.'
    """

    def __init__(
        self,
        storage: StorageManager,
        vfs: VirtualFileSystem,
        groups: GroupManager,
        sessions: SessionManager,
        config: Optional[Config] = None
    ):
        super().__init__('users')
        self._storage = storage
        self._vfs = vfs
        self._groups = groups
        self._sessions = sessions
        self._config = config or get_config()
        self._users: Dict[str, dict] = {}
        self._generated_root_password: Optional[str] = None

    def initialize(self) -> None:
        """Load credentials and make sure root and the default user exist."""
        self._users = self._storage.load_item(StorageKey.USER_CREDENTIALS, "User list", {})
        users = self._config.users
        changed = False

        root_entry = self._users.get(users.root_user)
        if not root_entry or not root_entry.get('passwordHash'):
            password = users.root_password
            if not password:
                password = secrets.token_urlsafe(6)
                self._generated_root_password = password
            self._users[users.root_user] = {
                'passwordHash': self._hash_password(password),
                'primaryGroup': users.root_user,
            }
            changed = True

        if users.default_user not in self._users:
            self._users[users.default_user] = {
                'passwordHash': None,
                'primaryGroup': users.default_user,
            }
            changed = True

        if changed:
            self._save()
        self._logger.info("Users loaded", context={'users': len(self._users)})

    @property
    def generated_root_password(self) -> Optional[str]:
        """The one-time root password created at first boot, if any."""
        return self._generated_root_password

    @property
    def current_user(self) -> str:
        return self._sessions.current_user

    def _save(self) -> bool:
        return self._storage.save_item(StorageKey.USER_CREDENTIALS, self._users, "User list")

    # -- passwords -----------------------------------------------------

    def _hash_password(self, password: str, salt: Optional[bytes] = None) -> dict:
        salt = salt or secrets.token_bytes(16)
        digest = hashlib.pbkdf2_hmac(
            'sha256', password.encode('utf-8'), salt, self._config.users.password_iterations
        )
        return {'salt': salt.hex(), 'hash': digest.hex()}

    def _check_password(self, password: str, stored: dict) -> bool:
        try:
            salt = bytes.fromhex(stored['salt'])
        except (KeyError, ValueError, TypeError):
            return False
        candidate = self._hash_password(password, salt)['hash']
        return hmac.compare_digest(candidate, stored.get('hash', ''))

    # -- queries -------------------------------------------------------

    def user_exists(self, username: str) -> bool:
        return username in self._users

    def list_users(self) -> List[str]:
        return sorted(self._users)

    def has_password(self, username: str) -> bool:
        entry = self._users.get(username)
        return bool(entry and entry.get('passwordHash'))

    def get_primary_group(self, username: str) -> Optional[str]:
        entry = self._users.get(username)
        return entry.get('primaryGroup') if entry else None

    def primary_groups(self) -> Dict[str, str]:
        return {name: entry.get('primaryGroup') for name, entry in self._users.items()}

    def to_dict(self) -> Dict[str, dict]:
        return {name: dict(entry) for name, entry in self._users.items()}

    # -- registration --------------------------------------------------

    def validate_username(self, username: str) -> None:
        """
        Raises:
            InvalidUsernameError: If the name breaks the naming rules
        """
        users = self._config.users
        if not username or not username.strip():
            raise InvalidUsernameError("Username cannot be empty.", username)
        if any(char.isspace() for char in username):
            raise InvalidUsernameError("Username cannot contain spaces.", username)
        if username.lower() in (name.lower() for name in users.reserved_usernames):
            raise InvalidUsernameError(
                f"Cannot use '{username}'. This username is reserved.", username
            )
        if len(username) < users.min_username_length:
            raise InvalidUsernameError(
                f"Username must be at least {users.min_username_length} characters long.",
                username
            )
        if len(username) > users.max_username_length:
            raise InvalidUsernameError(
                f"Username cannot exceed {users.max_username_length} characters.", username
            )

    def register(self, username: str, password: Optional[str] = None) -> str:
        """
        Create a user with a same-named primary group and a home.

        Returns:
            The new home directory

        Raises:
            InvalidUsernameError: If the name is not acceptable
            UserExistsError: If the user already exists
        """
        self.validate_username(username)
        if username in self._users:
            raise UserExistsError(username)

        if not self._groups.group_exists(username):
            self._groups.create_group(username)
        self._groups.add_user_to_group(username, username)

        self._users[username] = {
            'passwordHash': self._hash_password(password) if password else None,
            'primaryGroup': username,
        }
        self._save()
        home = self._vfs.create_user_home(username, username)
        self._logger.info("Registered user", context={'user': username})
        return home

    def verify_password(self, username: str, password: str) -> bool:
        """
        Raises:
            UserNotFoundError: If the user does not exist
        """
        entry = self._users.get(username)
        if entry is None:
            raise UserNotFoundError(username)
        stored = entry.get('passwordHash')
        if not stored:
            return False
        return self._check_password(password, stored)

    def change_password(
        self,
        actor: str,
        target: str,
        old_password: Optional[str],
        new_password: str
    ) -> None:
        """
        Root may change any password; other users only their own,
        and only with the correct current password.

        Raises:
            UserNotFoundError: If the target does not exist
            AuthenticationError: If the actor may not change it
        """
        if target not in self._users:
            raise UserNotFoundError(target)
        if actor != self._config.users.root_user:
            if actor != target:
                raise AuthenticationError("You can only change your own password.", actor)
            if self.has_password(actor) and not self.verify_password(actor, old_password or ""):
                raise AuthenticationError("Incorrect current password.", actor)
        if not new_password or not new_password.strip():
            raise AuthenticationError("New password cannot be empty.", target)

        self._users[target]['passwordHash'] = self._hash_password(new_password)
        self._save()
        self._logger.notice("Password changed", context={'user': target, 'by': actor})

    def delete_user(self, username: str, remove_home: bool = False) -> None:
        """
        Remove a user, its memberships and its saved terminal state.

        Raises:
            UserNotFoundError: If the user does not exist
            AuthenticationError: For root, the default user or a user
                with an open session
        """
        users = self._config.users
        if username not in self._users:
            raise UserNotFoundError(username)
        if username in (users.root_user, users.default_user):
            raise AuthenticationError(f"Cannot remove user '{username}'.", username)
        if username in self._sessions.stack_users():
            raise AuthenticationError(
                f"Cannot remove user '{username}' while it has an open session.", username
            )

        del self._users[username]
        self._save()
        self._groups.remove_user_from_all_groups(username)
        self._sessions.clear_user_state(username)
        if remove_home:
            self._vfs.delete_node_recursive(self._vfs.user_home(username), None, force=True)
        self._logger.notice("Removed user", context={'user': username})

    # -- authentication ------------------------------------------------

    async def authenticate(
        self,
        username: str,
        password: Optional[str],
        modal: Optional[ModalChannel],
        failure_message: str = INVALID_PASSWORD
    ) -> None:
        """
        Check credentials for switching to ``username``.

        A user with a password is prompted through ``modal`` when no
        password was supplied. A user without one needs nothing, and
        supplying a password for such a user is an error.

        Raises:
            AuthenticationError: On unknown user or wrong password
            CommandCancelled: If the prompt was cancelled
        """
        entry = self._users.get(username)
        if entry is None:
            raise AuthenticationError("Invalid username.", username)

        stored = entry.get('passwordHash')
        if not stored:
            if password is not None:
                raise AuthenticationError(NO_PASSWORD_NEEDED, username)
            return

        if password is None:
            if modal is None:
                raise AuthenticationError(failure_message, username)
            password = await modal.ask([PASSWORD_PROMPT], obscured=True)
            if password is None:
                raise CommandCancelled(OPERATION_CANCELLED)

        if not self._check_password(password, stored):
            self._logger.warning("Authentication failed", context={'user': username})
            raise AuthenticationError(failure_message, username)
        self._logger.info("Authenticated", context={'user': username})

    async def su(
        self,
        username: str,
        password: Optional[str] = None,
        modal: Optional[ModalChannel] = None
    ) -> str:
        """
        Push a session for ``username``.

        Returns:
            Message for the user
        """
        if username == self.current_user:
            return f"Already user '{username}'."
        await self.authenticate(username, password, modal, "Authentication failure.")
        self._sessions.push_session(username)
        return f"Switched to user: {username}."

    async def login(
        self,
        username: str,
        password: Optional[str] = None,
        modal: Optional[ModalChannel] = None
    ) -> str:
        """
        Replace the session stack with a session for ``username``.

        Raises:
            AuthenticationError: If the user already has an open session
                further down the stack, or authentication fails
        """
        already = f"I'm sure you didn't notice, but, '{username}' is already here."
        if username == self.current_user:
            return already
        if username in self._sessions.stack_users():
            raise AuthenticationError(already, username)
        await self.authenticate(username, password, modal, "Login failed.")
        self._sessions.login_session(username)
        return f"Logged in as {username}."

    def logout(self) -> str:
        """Pop the current session; the last session is never popped."""
        old_user = self.current_user
        if self._sessions.pop_session() is None:
            return (
                f"Cannot log out from user '{old_user}'. This is the only active session. "
                "Use 'login' to switch to a different user."
            )
        return f"Logged out from {old_user}. Now logged in as {self.current_user}."
