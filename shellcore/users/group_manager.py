"""
Group Manager Module

Group registry: group name to member list, persisted under the
groups storage key. A group cannot be deleted while it is some user's
primary group.

Version: 1.0.0
"""

from typing import Callable, Dict, List, Optional

from shellcore.core.config_loader import Config, get_config
from shellcore.core.registry import Subsystem
from shellcore.exceptions import GroupExistsError, GroupNotFoundError, GroupInUseError
from shellcore.storage.manager import StorageManager, StorageKey


class GroupManager(Subsystem):
    """
    Group Management Subsystem.

    Example:
        >>> groups = GroupManager(storage)
        >>> groups.initialize()
        >>> groups.create_group('devs')
        >>> groups.add_user_to_group('Guest', 'devs')
        >>> groups.get_groups_for_user('Guest')
        ['Guest', 'devs']
    """

    def __init__(self, storage: StorageManager, config: Optional[Config] = None):
        super().__init__('groups')
        self._storage = storage
        self._config = config or get_config()
        self._groups: Dict[str, List[str]] = {}
        self._primary_group_of: Callable[[str], Optional[str]] = lambda username: None
        self._primary_groups: Callable[[], Dict[str, str]] = dict

    def initialize(self) -> None:
        """Load groups and create the default ones that are missing."""
        stored = self._storage.load_item(StorageKey.USER_GROUPS, "User Groups", {})
        self._groups = {
            name: list(members) for name, members in stored.items()
            if isinstance(members, list)
        }

        changed = False
        for name in self._config.users.default_groups:
            if name not in self._groups:
                # Groups named after a built-in user start with that user.
                self._groups[name] = [] if name == 'towncrier' else [name]
                changed = True
        if changed:
            self._save()
        self._logger.info("Groups loaded", context={'groups': len(self._groups)})

    def bind_primary_group_resolver(
        self,
        primary_group_of: Callable[[str], Optional[str]],
        primary_groups: Callable[[], Dict[str, str]]
    ) -> None:
        """
        Install lookups into the user registry.

        Args:
            primary_group_of: Returns a user's primary group
            primary_groups: Returns the whole user to primary group map
        """
        self._primary_group_of = primary_group_of
        self._primary_groups = primary_groups

    def _save(self) -> bool:
        return self._storage.save_item(StorageKey.USER_GROUPS, self._groups, "User Groups")

    def group_exists(self, name: str) -> bool:
        return name in self._groups

    def list_groups(self) -> List[str]:
        return sorted(self._groups)

    def members(self, name: str) -> List[str]:
        """
        Raises:
            GroupNotFoundError: If the group does not exist
        """
        if name not in self._groups:
            raise GroupNotFoundError(name)
        return list(self._groups[name])

    def create_group(self, name: str) -> None:
        """
        Raises:
            GroupExistsError: If the group already exists
        """
        if name in self._groups:
            raise GroupExistsError(name)
        self._groups[name] = []
        self._save()
        self._logger.info("Created group", context={'group': name})

    def add_user_to_group(self, username: str, group: str) -> bool:
        """
        Add a member. Returns False if the user was already a member.

        Raises:
            GroupNotFoundError: If the group does not exist
        """
        if group not in self._groups:
            raise GroupNotFoundError(group)
        if username in self._groups[group]:
            return False
        self._groups[group].append(username)
        self._save()
        return True

    def remove_user_from_group(self, username: str, group: str) -> bool:
        members = self._groups.get(group)
        if not members or username not in members:
            return False
        members.remove(username)
        self._save()
        return True

    def remove_user_from_all_groups(self, username: str) -> None:
        changed = False
        for members in self._groups.values():
            if username in members:
                members.remove(username)
                changed = True
        if changed:
            self._save()

    def get_groups_for_user(self, username: str) -> List[str]:
        """Primary group first, then every group listing the user."""
        groups: List[str] = []
        primary = self._primary_group_of(username)
        if primary:
            groups.append(primary)
        for name, members in self._groups.items():
            if username in members and name not in groups:
                groups.append(name)
        return groups

    def delete_group(self, name: str) -> None:
        """
        Raises:
            GroupNotFoundError: If the group does not exist
            GroupInUseError: If it is some user's primary group
        """
        if name not in self._groups:
            raise GroupNotFoundError(name)
        for username, primary in sorted(self._primary_groups().items()):
            if primary == name:
                raise GroupInUseError(name, username)
        del self._groups[name]
        self._save()
        self._logger.info("Deleted group", context={'group': name})

    def to_dict(self) -> Dict[str, List[str]]:
        return {name: list(members) for name, members in self._groups.items()}
