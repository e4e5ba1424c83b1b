"""
Filesystem Checker

Audits the tree for dangling links, stale ownership and broken home
directories, and repairs what it finds.

Version: 1.0.0
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

from shellcore.filesystem.node import Node, DirectoryNode, SymlinkNode, NodeType
from shellcore.filesystem.path_resolver import PathResolver
from shellcore.filesystem.vfs import VirtualFileSystem
from shellcore.logger import get_logger


class FsckIssueType(Enum):
    DANGLING_SYMLINK = "DANGLING_SYMLINK"
    ORPHANED_OWNER = "ORPHANED_OWNER"
    INVALID_GROUP = "INVALID_GROUP"
    MISSING_HOME = "MISSING_HOME"
    INCORRECT_HOME_TYPE = "INCORRECT_HOME_TYPE"
    INCORRECT_HOME_OWNER = "INCORRECT_HOME_OWNER"


@dataclass
class FsckIssue:
    """One finding of a check run."""
    type: FsckIssueType
    path: str
    message: str
    username: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.path}: {self.message}"


class FilesystemChecker:
    """
    Filesystem consistency checker.

    Example:
        >>> checker = FilesystemChecker(vfs, users.list_users, groups.group_exists)
        >>> issues = checker.check('/')
        >>> checker.repair(issues)
    """

    def __init__(
        self,
        vfs: VirtualFileSystem,
        list_users: Callable[[], Iterable[str]],
        group_exists: Callable[[str], bool]
    ):
        self._vfs = vfs
        self._list_users = list_users
        self._group_exists = group_exists
        self._logger = get_logger('fsck')

    def check(self, start: str = '/') -> List[FsckIssue]:
        """
        Scan the subtree at ``start`` and every user's home directory.

        Raises:
            ResolveError: If ``start`` is not an existing directory
        """
        info = self._vfs.validate_path(start, expected_type=NodeType.DIRECTORY)
        users = set(self._list_users())
        issues: List[FsckIssue] = []

        self._check_subtree(info.resolved_path, info.node, users, issues)
        self._check_homes(users, issues)

        self._logger.info("Filesystem check finished", context={'issues': len(issues)})
        return issues

    def _check_subtree(
        self,
        path: str,
        node: Node,
        users: set,
        issues: List[FsckIssue]
    ) -> None:
        if isinstance(node, SymlinkNode) and self._vfs.get_node(path, follow_symlinks=True) is None:
            issues.append(FsckIssue(
                FsckIssueType.DANGLING_SYMLINK, path,
                f"Dangling symbolic link pointing to non-existent target '{node.target}'."
            ))
        if node.owner not in users:
            issues.append(FsckIssue(
                FsckIssueType.ORPHANED_OWNER, path,
                f"Owner '{node.owner}' does not exist."
            ))
        if not self._group_exists(node.group):
            issues.append(FsckIssue(
                FsckIssueType.INVALID_GROUP, path,
                f"Group '{node.group}' does not exist."
            ))
        if isinstance(node, DirectoryNode):
            for name, child in sorted(node.children.items()):
                self._check_subtree(PathResolver.join(path, name), child, users, issues)

    def _check_homes(self, users: set, issues: List[FsckIssue]) -> None:
        for username in sorted(users):
            home = self._vfs.user_home(username)
            node = self._vfs.get_node(home)
            if node is None:
                issues.append(FsckIssue(
                    FsckIssueType.MISSING_HOME, home,
                    f"User '{username}' is missing a home directory.", username
                ))
            elif not isinstance(node, DirectoryNode):
                issues.append(FsckIssue(
                    FsckIssueType.INCORRECT_HOME_TYPE, home,
                    f"Home path for user '{username}' is not a directory.", username
                ))
            elif node.owner != username:
                issues.append(FsckIssue(
                    FsckIssueType.INCORRECT_HOME_OWNER, home,
                    f"Home directory for user '{username}' is owned by '{node.owner}'.", username
                ))

    def repair(self, issues: Iterable[FsckIssue], primary_group: Callable[[str], str] = lambda u: u) -> List[str]:
        """
        Fix every issue, returning one message per repair.

        Dangling links are deleted, stale owners and groups fall back to
        root, and broken homes are recreated for their user.
        """
        root = self._vfs.root_user
        messages = []
        for issue in issues:
            kind = issue.type
            if kind is FsckIssueType.DANGLING_SYMLINK:
                self._vfs.delete_node_recursive(issue.path, None, force=True)
                messages.append(f"Deleted '{issue.path}'.")
            elif kind is FsckIssueType.ORPHANED_OWNER:
                self._vfs.chown(issue.path, root, None)
                messages.append(f"Owner of '{issue.path}' reassigned to '{root}'.")
            elif kind is FsckIssueType.INVALID_GROUP:
                self._vfs.chgrp(issue.path, root, None)
                messages.append(f"Group of '{issue.path}' reassigned to '{root}'.")
            elif kind is FsckIssueType.MISSING_HOME:
                self._vfs.create_user_home(issue.username, primary_group(issue.username))
                messages.append(f"Created '{issue.path}'.")
            elif kind is FsckIssueType.INCORRECT_HOME_TYPE:
                self._vfs.delete_node_recursive(issue.path, None, force=True)
                self._vfs.create_user_home(issue.username, primary_group(issue.username))
                messages.append(f"Replaced '{issue.path}' with a home directory.")
            elif kind is FsckIssueType.INCORRECT_HOME_OWNER:
                self._vfs.chown(issue.path, issue.username, None)
                messages.append(f"Owner of '{issue.path}' reassigned to '{issue.username}'.")
        if messages:
            self._logger.notice("Filesystem repaired", context={'repairs': len(messages)})
        return messages
