"""
Virtual File System (VFS) Module

Implements the simulated filesystem tree with:
- File, directory and symlink nodes owned by their parent
- Owner/group/other permission enforcement (root bypasses)
- Symlink-aware path resolution with a depth limit
- Size quota
- Whole-tree persistence with coalesced saves

Every operation takes the acting user explicitly. Passing ``None`` as
the user performs the operation with system privileges and skips
permission checks; the kernel uses that while building the tree.

Version: 1.0.0
"""

import copy
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple, Union

from shellcore.core.config_loader import Config, get_config
from shellcore.core.registry import Subsystem, SubsystemState
from shellcore.exceptions import (
    NoSuchPathError,
    NotADirError,
    NotAFileError,
    DanglingSymlinkError,
    SymlinkLoopError,
    PermissionDeniedError,
    PathExistsError,
    DiskQuotaError,
    FileSystemException,
)
from shellcore.filesystem.node import (
    Node,
    NodeType,
    FileNode,
    DirectoryNode,
    SymlinkNode,
    PermissionType,
    format_mode_string,
    node_to_dict,
    node_from_dict,
)
from shellcore.filesystem.path_resolver import PathResolver
from shellcore.storage.manager import StorageManager, StorageKey


SUDOERS_CONTENT = (
    "# /etc/sudoers\n"
    "#\n"
    "# This file MUST be edited with the 'visudo' command as root.\n"
    "\n"
    "root ALL=(ALL) ALL\n"
    "%root ALL=(ALL) ALL\n"
)

BULLETIN_CONTENT = "# OopisOS Town Bulletin\n"


@dataclass
class PathInfo:
    """
    Result of validating a path argument.

    Attributes:
        node: The resolved node, or None when missing was allowed
        resolved_path: Absolute canonical form of the argument
    """
    node: Optional[Node]
    resolved_path: str

    @property
    def exists(self) -> bool:
        return self.node is not None


class VirtualFileSystem(Subsystem):
    """
    Virtual File System Subsystem.

    Example:
        >>> vfs = VirtualFileSystem(storage)
        >>> vfs.initialize()
        >>> vfs.create_or_update_file('/tmp/a', 'hello\\n', 'root', 'root')
        '/tmp/a'
        >>> vfs.get_node('/tmp/a').content
        'hello\\n'
    """

    def __init__(
        self,
        storage: StorageManager,
        config: Optional[Config] = None,
        group_lookup: Optional[Callable[[str], List[str]]] = None
    ):
        super().__init__('filesystem')
        self._storage = storage
        self._config = config or get_config()
        self._group_lookup = group_lookup or (lambda username: [])
        self._root = self._new_root()
        self._dirty = False
        self._saving = False
        self._save_queued = False
        self._save_count = 0

    # -- lifecycle -----------------------------------------------------

    def initialize(self) -> None:
        """Load the tree from storage, or build the initial layout."""
        data = self._storage.load_item(StorageKey.FILESYSTEM, "File System")
        if data is not None:
            try:
                self.load_from_dict(data)
                self._logger.info("Filesystem loaded from storage")
                return
            except ValueError as e:
                self._logger.warning(
                    "Stored filesystem is malformed, formatting",
                    context={'error': str(e)}
                )

        self._build_initial_tree()
        self.save_now()
        self._logger.info("Initial filesystem created")

    def bind_group_lookup(self, lookup: Callable[[str], List[str]]) -> None:
        """Install the callable returning every group a user belongs to."""
        self._group_lookup = lookup

    @property
    def root(self) -> DirectoryNode:
        return self._root

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def save_count(self) -> int:
        return self._save_count

    @property
    def root_user(self) -> str:
        return self._config.users.root_user

    def _new_root(self) -> DirectoryNode:
        root_user = self._config.users.root_user
        return DirectoryNode(root_user, root_user, 0o755)

    def _build_initial_tree(self) -> None:
        users = self._config.users
        root_user = users.root_user
        self._root = self._new_root()

        self.create_directory(users.home_prefix, root_user, root_user)
        for username in (root_user, users.default_user):
            self.create_user_home(username, username)

        self.create_directory('/etc', root_user, root_user)
        self.create_or_update_file('/etc/sudoers', SUDOERS_CONTENT, root_user, root_user, mode=0o440)
        self.create_or_update_file('/etc/agenda.json', '[]', root_user, root_user, mode=0o644)

        self.create_directory('/var/log', root_user, root_user, parents=True)
        self.create_or_update_file(
            '/var/log/bulletin.md', BULLETIN_CONTENT, root_user, 'towncrier', mode=0o666
        )

        self.create_directory('/tmp', root_user, root_user, mode=0o777)

    def reset(self, usernames: Iterable[str] = ()) -> None:
        """
        Format the filesystem back to its initial layout.

        Args:
            usernames: Extra users whose home directories are recreated
        """
        self._build_initial_tree()
        for username in usernames:
            self.create_user_home(username, username)
        self._mark_dirty()
        self._logger.notice("Filesystem formatted")

    # -- permissions ---------------------------------------------------

    def has_permission(
        self,
        node: Optional[Node],
        username: Optional[str],
        permission: Union[str, PermissionType]
    ) -> bool:
        """
        Check whether ``username`` holds ``permission`` on ``node``.

        The owner class applies when the user owns the node, the group
        class when the user belongs to the node's group, and the other
        class otherwise. Root always passes.
        """
        if username is None or username == self.root_user:
            return True
        if node is None:
            return False

        required = PermissionType.from_name(permission).value
        if node.owner == username:
            bits = (node.mode >> 6) & 0o7
        elif node.group in self._group_lookup(username):
            bits = (node.mode >> 3) & 0o7
        else:
            bits = node.mode & 0o7
        return (bits & required) == required

    def can_user_modify(self, node: Node, username: Optional[str]) -> bool:
        """Only the owner or root may change a node's metadata."""
        return username is None or username == self.root_user or node.owner == username

    @staticmethod
    def format_mode_string(node: Node) -> str:
        return format_mode_string(node)

    def _require(
        self,
        node: Node,
        username: Optional[str],
        permission: Union[str, PermissionType],
        display: str
    ) -> None:
        if not self.has_permission(node, username, permission):
            raise PermissionDeniedError(
                display,
                operation=PermissionType.from_name(permission).name.lower(),
                user=username
            )

    # -- resolution ----------------------------------------------------

    def _walk(
        self,
        absolute_path: str,
        username: Optional[str],
        follow_last: bool,
        display: Optional[str] = None
    ) -> Tuple[Node, str]:
        """
        Resolve an absolute path to ``(node, real_path)``.

        Intermediate symlinks are always followed; the final component
        is followed only when ``follow_last`` is set. Traversing a
        directory needs execute permission on it.

        Raises:
            ResolveError: On any resolution failure
        """
        max_depth = self._config.filesystem.max_symlink_depth
        path = absolute_path
        last_link: Optional[Tuple[str, str]] = None

        for _ in range(max_depth + 1):
            components = PathResolver.components(path)
            node: Node = self._root
            traversed = '/'
            restart: Optional[str] = None

            for index, name in enumerate(components):
                if not isinstance(node, DirectoryNode):
                    raise NotADirError(display or traversed)
                self._require(node, username, PermissionType.EXECUTE, display or traversed)

                child = node.children.get(name)
                if child is None:
                    if last_link is not None:
                        raise DanglingSymlinkError(display or last_link[0], last_link[1])
                    raise NoSuchPathError(display or PathResolver.join(traversed, name))

                link_path = PathResolver.join(traversed, name)
                is_last = index == len(components) - 1
                if isinstance(child, SymlinkNode) and (follow_last or not is_last):
                    target = PathResolver.resolve(child.target, traversed)
                    rest = components[index + 1:]
                    restart = PathResolver.join(target, *rest) if rest else target
                    last_link = (link_path, child.target) if not rest else None
                    break

                node = child
                traversed = link_path

            if restart is None:
                return node, traversed
            path = restart

        raise SymlinkLoopError(display or absolute_path, max_depth)

    def resolve(
        self,
        path: str,
        cwd: str = '/',
        username: Optional[str] = None,
        follow_symlinks: bool = False
    ) -> PathInfo:
        """
        Resolve ``path`` against ``cwd`` to an existing node.

        Raises:
            ResolveError: If the path cannot be resolved
        """
        resolved = PathResolver.resolve(path, cwd)
        node, _ = self._walk(resolved, username, follow_symlinks, display=path or resolved)
        return PathInfo(node, resolved)

    def get_node(
        self,
        path: str,
        cwd: str = '/',
        username: Optional[str] = None,
        follow_symlinks: bool = False
    ) -> Optional[Node]:
        """Like ``resolve`` but returns None instead of raising."""
        try:
            return self.resolve(path, cwd, username, follow_symlinks).node
        except FileSystemException:
            return None

    def real_path(self, path: str, cwd: str = '/', username: Optional[str] = None) -> str:
        """Absolute path of the node ``path`` ends at, symlinks followed."""
        resolved = PathResolver.resolve(path, cwd)
        _, real = self._walk(resolved, username, True, display=path)
        return real

    def validate_path(
        self,
        path: str,
        cwd: str = '/',
        username: Optional[str] = None,
        expected_type: Optional[NodeType] = None,
        permissions: Iterable[Union[str, PermissionType]] = (),
        allow_missing: bool = False,
        follow_symlinks: bool = True
    ) -> PathInfo:
        """
        Resolve a path argument and check type and permissions.

        Args:
            path: The argument as typed
            cwd: Directory relative paths resolve against
            username: Acting user
            expected_type: Required node type, if any
            permissions: Permission classes the user must hold
            allow_missing: Return an empty PathInfo instead of failing
                when the final component does not exist
            follow_symlinks: Dereference a symlink in final position

        Raises:
            ResolveError: If resolution, the type check or a
                permission check fails
        """
        resolved = PathResolver.resolve(path, cwd)
        try:
            node, _ = self._walk(resolved, username, follow_symlinks, display=path or resolved)
        except (NoSuchPathError, DanglingSymlinkError):
            if allow_missing:
                return PathInfo(None, resolved)
            raise

        if expected_type is NodeType.FILE and not isinstance(node, FileNode):
            raise NotAFileError(path, is_directory=isinstance(node, DirectoryNode))
        if expected_type is NodeType.DIRECTORY and not isinstance(node, DirectoryNode):
            raise NotADirError(path)

        for permission in permissions:
            self._require(node, username, permission, path)

        return PathInfo(node, resolved)

    def _locate(
        self,
        resolved: str,
        username: Optional[str],
        display: str
    ) -> Tuple[DirectoryNode, str, Optional[Node], str]:
        """
        Find the directory an entry lives in, following a final symlink.

        Returns:
            Tuple of (parent directory, entry name, existing node or
            None, real path of the entry)
        """
        max_depth = self._config.filesystem.max_symlink_depth
        path = resolved
        for _ in range(max_depth + 1):
            if path == '/':
                raise NotAFileError(display)
            parent_path, name = PathResolver.split(path)
            parent, parent_real = self._walk(parent_path, username, True, display=display)
            if not isinstance(parent, DirectoryNode):
                raise NotADirError(display)
            child = parent.children.get(name)
            if isinstance(child, SymlinkNode):
                path = PathResolver.resolve(child.target, parent_real)
                continue
            return parent, name, child, PathResolver.join(parent_real, name)
        raise SymlinkLoopError(display, max_depth)

    # -- sizes ---------------------------------------------------------

    def calculate_node_size(self, node: Optional[Node]) -> int:
        """Size of a file's content, or the recursive sum for a directory."""
        if isinstance(node, FileNode):
            return len(node.content)
        if isinstance(node, DirectoryNode):
            return sum(self.calculate_node_size(child) for child in node.children.values())
        return 0

    def total_size(self) -> int:
        return self.calculate_node_size(self._root)

    def _check_quota(self, delta: int) -> None:
        if delta <= 0:
            return
        available = self._config.filesystem.max_vfs_size - self.total_size()
        if delta > available:
            raise DiskQuotaError(delta, max(available, 0))

    # -- mutation ------------------------------------------------------

    def _mark_dirty(self) -> None:
        self._dirty = True

    def create_or_update_file(
        self,
        path: str,
        content: str,
        owner: str,
        group: str,
        cwd: str = '/',
        mode: Optional[int] = None,
        check_permissions: bool = True
    ) -> str:
        """
        Write ``content`` to a file, creating it when missing.

        Parent directories are never created. Writing through a symlink
        writes its target. A new file is owned by ``owner``:``group``;
        permission checks are made as ``owner``.

        Returns:
            The real path written

        Raises:
            ResolveError: If the parent cannot be resolved or the user
                lacks write permission
            NotAFileError: If the target exists and is not a file
            DiskQuotaError: If the write exceeds the quota
        """
        acting = owner if check_permissions else None
        resolved = PathResolver.resolve(path, cwd)
        parent, name, existing, real = self._locate(resolved, acting, path)

        if existing is not None and not isinstance(existing, FileNode):
            raise NotAFileError(path, is_directory=isinstance(existing, DirectoryNode))

        previous = len(existing.content) if isinstance(existing, FileNode) else 0
        self._check_quota(len(content) - previous)

        if isinstance(existing, FileNode):
            self._require(existing, acting, PermissionType.WRITE, path)
            existing.content = content
            existing.touch()
        else:
            self._require(parent, acting, PermissionType.WRITE, path)
            if not PathResolver.is_valid_name(name):
                raise NoSuchPathError(path)
            parent.children[name] = FileNode(
                owner, group,
                self._config.filesystem.default_file_mode if mode is None else mode,
                content=content
            )
            self._logger.debug("Created file", context={'path': real})
        parent.touch()
        self._mark_dirty()
        return real

    def touch(
        self,
        path: str,
        owner: str,
        group: str,
        cwd: str = '/',
        create: bool = True
    ) -> Optional[str]:
        """
        Update a node's mtime, creating an empty file when missing.

        Returns:
            The real path touched, or None when the node is missing
            and ``create`` is off

        Raises:
            ResolveError: On resolution failures or without write
                permission on the node
        """
        info = self.validate_path(path, cwd, owner, allow_missing=True)
        if info.node is None:
            if not create:
                return None
            return self.create_or_update_file(path, "", owner, group, cwd)

        self._require(info.node, owner, PermissionType.WRITE, path)
        info.node.touch()
        self._mark_dirty()
        return self.real_path(path, cwd, owner)

    def create_directory(
        self,
        path: str,
        owner: str,
        group: str,
        cwd: str = '/',
        parents: bool = False,
        mode: Optional[int] = None,
        check_permissions: bool = True
    ) -> str:
        """
        Create a directory.

        With ``parents`` every missing ancestor is created and an
        existing directory is not an error.

        Returns:
            The real path of the directory

        Raises:
            PathExistsError: If the entry exists and ``parents`` is off
            ResolveError: On resolution or permission failures
        """
        acting = owner if check_permissions else None
        dir_mode = self._config.filesystem.default_dir_mode if mode is None else mode
        resolved = PathResolver.resolve(path, cwd)

        if not parents:
            parent, name, existing, real = self._locate(resolved, acting, path)
            if existing is not None:
                raise PathExistsError(path)
            self._require(parent, acting, PermissionType.WRITE, path)
            parent.children[name] = DirectoryNode(owner, group, dir_mode)
            parent.touch()
            self._mark_dirty()
            self._logger.debug("Created directory", context={'path': real})
            return real

        current: DirectoryNode = self._root
        current_path = '/'
        for name in PathResolver.components(resolved):
            self._require(current, acting, PermissionType.EXECUTE, path)
            child = current.children.get(name)
            next_path = PathResolver.join(current_path, name)
            if child is None:
                self._require(current, acting, PermissionType.WRITE, path)
                child = DirectoryNode(owner, group, dir_mode)
                current.children[name] = child
                current.touch()
                self._mark_dirty()
                self._logger.debug("Created directory", context={'path': next_path})
            elif isinstance(child, SymlinkNode):
                child, next_path = self._walk(next_path, acting, True, display=path)
            if not isinstance(child, DirectoryNode):
                raise NotADirError(path)
            current = child
            current_path = next_path
        return current_path

    def create_symlink(
        self,
        target: str,
        link_path: str,
        owner: str,
        group: str,
        cwd: str = '/',
        check_permissions: bool = True
    ) -> str:
        """
        Create ``link_path`` pointing at ``target``.

        The target is stored as given and is not required to exist.

        Raises:
            PathExistsError: If ``link_path`` already exists
        """
        acting = owner if check_permissions else None
        resolved = PathResolver.resolve(link_path, cwd)
        if resolved == '/':
            raise PathExistsError(link_path)
        parent_path, name = PathResolver.split(resolved)
        parent, parent_real = self._walk(parent_path, acting, True, display=link_path)
        if not isinstance(parent, DirectoryNode):
            raise NotADirError(link_path)
        if name in parent.children:
            raise PathExistsError(link_path)
        self._require(parent, acting, PermissionType.WRITE, link_path)

        parent.children[name] = SymlinkNode(
            owner, group, self._config.filesystem.symlink_mode, target=target
        )
        parent.touch()
        self._mark_dirty()
        return PathResolver.join(parent_real, name)

    def delete_node_recursive(
        self,
        path: str,
        username: Optional[str],
        cwd: str = '/',
        force: bool = False
    ) -> bool:
        """
        Remove a node and everything beneath it.

        A symlink in final position is removed itself, never its
        target. Every directory emptied on the way needs write and
        execute permission, checked before anything is removed.

        Returns:
            True if something was removed, False if the path was
            missing and ``force`` was given

        Raises:
            ResolveError: On resolution or permission failures
        """
        resolved = PathResolver.resolve(path, cwd)
        if resolved == '/':
            raise PermissionDeniedError(path, operation="delete", user=username)

        parent_path, name = PathResolver.split(resolved)
        try:
            parent, _ = self._walk(parent_path, username, True, display=path)
        except (NoSuchPathError, DanglingSymlinkError):
            if force:
                return False
            raise
        if not isinstance(parent, DirectoryNode):
            raise NotADirError(path)

        node = parent.children.get(name)
        if node is None:
            if force:
                return False
            raise NoSuchPathError(path)

        self._require(parent, username, PermissionType.WRITE, path)
        self._check_deletable(node, username, path)

        del parent.children[name]
        parent.touch()
        self._mark_dirty()
        self._logger.debug("Deleted node", context={'path': resolved})
        return True

    def _check_deletable(self, node: Node, username: Optional[str], display: str) -> None:
        if not isinstance(node, DirectoryNode) or not node.children:
            return
        self._require(node, username, PermissionType.WRITE, display)
        self._require(node, username, PermissionType.EXECUTE, display)
        for child_name, child in node.children.items():
            self._check_deletable(child, username, PathResolver.join(display, child_name))

    def chmod(
        self,
        path: str,
        mode: int,
        username: Optional[str],
        cwd: str = '/',
        follow_symlinks: bool = False
    ) -> Node:
        """
        Change a node's permission bits.

        A symlink is changed itself unless ``follow_symlinks`` is set.

        Raises:
            PermissionDeniedError: If the user is neither owner nor root
        """
        info = self.resolve(path, cwd, username, follow_symlinks)
        node = info.node
        if not self.can_user_modify(node, username):
            raise PermissionDeniedError(path, operation="chmod", user=username)
        node.mode = mode & 0o777
        node.touch()
        self._mark_dirty()
        return node

    def chown(
        self,
        path: str,
        new_owner: str,
        username: Optional[str],
        cwd: str = '/',
        follow_symlinks: bool = False
    ) -> Node:
        """
        Change a node's owner. Only root may do this.

        Raises:
            PermissionDeniedError: If the user is not root
        """
        info = self.resolve(path, cwd, username, follow_symlinks)
        if username is not None and username != self.root_user:
            raise PermissionDeniedError(path, operation="chown", user=username)
        info.node.owner = new_owner
        info.node.touch()
        self._mark_dirty()
        return info.node

    def chgrp(
        self,
        path: str,
        new_group: str,
        username: Optional[str],
        cwd: str = '/',
        follow_symlinks: bool = False
    ) -> Node:
        """
        Change a node's group. The owner or root may do this.

        Raises:
            PermissionDeniedError: If the user may not modify the node
        """
        info = self.resolve(path, cwd, username, follow_symlinks)
        if not self.can_user_modify(info.node, username):
            raise PermissionDeniedError(path, operation="chgrp", user=username)
        info.node.group = new_group
        info.node.touch()
        self._mark_dirty()
        return info.node

    def list_directory(
        self,
        path: str,
        username: Optional[str],
        cwd: str = '/'
    ) -> List[Tuple[str, Node]]:
        """
        Sorted ``(name, node)`` entries of a directory.

        Raises:
            NotADirError: If the path is not a directory
            PermissionDeniedError: Without read permission
        """
        info = self.validate_path(
            path, cwd, username,
            expected_type=NodeType.DIRECTORY,
            permissions=[PermissionType.READ]
        )
        return sorted(info.node.children.items())

    def _destination(
        self,
        source_path: str,
        dest: str,
        username: Optional[str],
        cwd: str
    ) -> Tuple[DirectoryNode, str, Optional[Node], str]:
        """Parent, name, existing node and real path a copy or move lands on."""
        dest_resolved = PathResolver.resolve(dest, cwd)
        dest_node = self.get_node(dest_resolved, '/', username, follow_symlinks=True)
        if isinstance(dest_node, DirectoryNode):
            real_dir = self.real_path(dest_resolved, '/', username)
            name = PathResolver.basename(source_path)
            return dest_node, name, dest_node.children.get(name), PathResolver.join(real_dir, name)
        return self._locate(dest_resolved, username, dest)

    def copy_node(
        self,
        source: str,
        dest: str,
        owner: str,
        group: str,
        cwd: str = '/',
        check_permissions: bool = True
    ) -> str:
        """
        Copy a node (recursively for directories).

        The copy is owned by ``owner``:``group``. Copying onto an
        existing directory places the copy inside it.

        Returns:
            Real path of the copy

        Raises:
            PathExistsError: If the destination entry exists and cannot
                be overwritten
            FileSystemException: On resolution, permission or quota
                failures
        """
        acting = owner if check_permissions else None
        src_info = self.validate_path(source, cwd, acting, permissions=[PermissionType.READ])
        src_node = src_info.node
        parent, name, existing, real = self._destination(src_info.resolved_path, dest, acting, cwd)

        if isinstance(src_node, DirectoryNode) and PathResolver.is_within(
            real, self.real_path(src_info.resolved_path, '/', acting)
        ):
            raise FileSystemException(
                f"cannot copy '{source}' into itself, '{dest}'", path=source
            )

        if existing is not None:
            if isinstance(existing, FileNode) and isinstance(src_node, FileNode):
                self._require(existing, acting, PermissionType.WRITE, dest)
                self._check_quota(len(src_node.content) - len(existing.content))
                existing.content = src_node.content
                existing.touch()
                parent.touch()
                self._mark_dirty()
                return real
            raise PathExistsError(dest)

        self._require(parent, acting, PermissionType.WRITE, dest)
        self._check_quota(self.calculate_node_size(src_node))

        clone = copy.deepcopy(src_node)
        self._reown(clone, owner, group)
        parent.children[name] = clone
        parent.touch()
        self._mark_dirty()
        self._logger.debug("Copied node", context={'from': src_info.resolved_path, 'to': real})
        return real

    def _reown(self, node: Node, owner: str, group: str) -> None:
        node.owner = owner
        node.group = group
        node.touch()
        if isinstance(node, DirectoryNode):
            for child in node.children.values():
                self._reown(child, owner, group)

    def move_node(
        self,
        source: str,
        dest: str,
        username: Optional[str],
        cwd: str = '/'
    ) -> str:
        """
        Move or rename a node. A symlink is moved itself.

        Returns:
            Real path of the moved node

        Raises:
            FileSystemException: If the source is the root or the
                destination lies inside the source
            PathExistsError: If the destination cannot be replaced
        """
        src_resolved = PathResolver.resolve(source, cwd)
        if src_resolved == '/':
            raise FileSystemException("cannot move root directory", path=source)

        src_parent_path, src_name = PathResolver.split(src_resolved)
        src_parent, src_parent_real = self._walk(src_parent_path, username, True, display=source)
        if not isinstance(src_parent, DirectoryNode) or src_name not in src_parent.children:
            raise NoSuchPathError(source)
        self._require(src_parent, username, PermissionType.WRITE, source)
        src_node = src_parent.children[src_name]
        src_real = PathResolver.join(src_parent_real, src_name)

        parent, name, existing, real = self._destination(src_resolved, dest, username, cwd)
        if real == src_real:
            return real
        if isinstance(src_node, DirectoryNode) and PathResolver.is_within(real, src_real):
            raise FileSystemException(
                f"cannot move '{source}' to a subdirectory of itself, '{dest}'", path=source
            )
        if existing is not None and not (
            isinstance(existing, FileNode) and not isinstance(src_node, DirectoryNode)
        ):
            raise PathExistsError(dest)
        self._require(parent, username, PermissionType.WRITE, dest)

        del src_parent.children[src_name]
        parent.children[name] = src_node
        src_node.touch()
        src_parent.touch()
        parent.touch()
        self._mark_dirty()
        self._logger.debug("Moved node", context={'from': src_real, 'to': real})
        return real

    # -- homes ---------------------------------------------------------

    def user_home(self, username: str) -> str:
        return PathResolver.home_for(username, self._config.users.home_prefix)

    def create_user_home(self, username: str, group: str) -> str:
        """Create ``/home/<user>`` owned by the user, if it is missing."""
        home = self.user_home(username)
        if self.get_node(home) is None:
            root_user = self.root_user
            self.create_directory(
                PathResolver.dirname(home), root_user, root_user,
                parents=True, check_permissions=False
            )
            self.create_directory(home, username, group, mode=0o755, check_permissions=False)
        return home

    # -- persistence ---------------------------------------------------

    def to_dict(self) -> dict:
        """Serialize the whole tree."""
        return node_to_dict(self._root)

    def load_from_dict(self, data: dict) -> None:
        """
        Replace the tree with a deserialized one.

        Raises:
            ValueError: If the data is malformed or the root is not a
                directory
        """
        root = node_from_dict(data)
        if not isinstance(root, DirectoryNode):
            raise ValueError("filesystem root must be a directory")
        self._root = root
        self._dirty = False

    def snapshot(self) -> DirectoryNode:
        """Deep copy of the tree, for callers that must not alias nodes."""
        return copy.deepcopy(self._root)

    def save_now(self) -> bool:
        """Write the tree to storage synchronously."""
        self._dirty = False
        ok = self._storage.save_item(StorageKey.FILESYSTEM, self.to_dict(), "File System")
        if ok:
            self._save_count += 1
        else:
            self._dirty = True
        return ok

    async def save(self) -> bool:
        """
        Flush the tree to storage.

        A request made while a save is in flight is coalesced into a
        single follow-up save.
        """
        if self._saving:
            self._save_queued = True
            return True

        self._saving = True
        try:
            ok = await self._flush()
            while self._save_queued:
                self._save_queued = False
                ok = await self._flush()
        finally:
            self._saving = False
        return ok

    async def _flush(self) -> bool:
        self._dirty = False
        ok = await self._storage.flush_item(StorageKey.FILESYSTEM, self.to_dict(), "File System")
        if ok:
            self._save_count += 1
            self._logger.debug("Filesystem saved", context={'saves': self._save_count})
        else:
            self._dirty = True
            self.set_state(SubsystemState.ERROR)
        return ok
