"""
Node Module

Filesystem entries as a tagged variant: FileNode, DirectoryNode and
SymlinkNode share ownership metadata and differ only in payload.
Parents own their children; nothing stores a parent pointer.

Version: 1.0.0
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Union


class NodeType(Enum):
    """Variants of filesystem nodes (values are the serialized tags)."""
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class PermissionType(Enum):
    """Permission classes, valued by their bit within one rwx triple."""
    READ = 0o4
    WRITE = 0o2
    EXECUTE = 0o1

    @classmethod
    def from_name(cls, name: Union[str, 'PermissionType']) -> 'PermissionType':
        if isinstance(name, PermissionType):
            return name
        return cls[name.upper()]


def now_iso() -> str:
    """Current instant as an ISO 8601 string (UTC, millisecond precision)."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass
class Node:
    """
    Common metadata of every node.

    Attributes:
        owner: Owning user name
        group: Owning group name
        mode: Permission bits, 0 to 0o777
        mtime: Last modification instant (ISO 8601)
    """
    owner: str
    group: str
    mode: int
    mtime: str = field(default_factory=now_iso)

    node_type: ClassVar[NodeType]

    def touch(self) -> None:
        self.mtime = now_iso()


@dataclass
class FileNode(Node):
    """A regular file holding a text blob."""
    content: str = ""

    node_type: ClassVar[NodeType] = NodeType.FILE


@dataclass
class DirectoryNode(Node):
    """A directory: child name to node, names unique."""
    children: dict[str, Node] = field(default_factory=dict)

    node_type: ClassVar[NodeType] = NodeType.DIRECTORY


@dataclass
class SymlinkNode(Node):
    """A symbolic link; the target is a path resolved lazily."""
    target: str = ""

    node_type: ClassVar[NodeType] = NodeType.SYMLINK


def format_mode_bits(mode: int) -> str:
    """
    Render permission bits as the 9-character ``rwxrwxrwx`` form.

    >>> format_mode_bits(0o754)
    'rwxr-xr--'
    """
    chars = []
    for shift in (6, 3, 0):
        triple = (mode >> shift) & 0o7
        chars.append('r' if triple & 0o4 else '-')
        chars.append('w' if triple & 0o2 else '-')
        chars.append('x' if triple & 0o1 else '-')
    return ''.join(chars)


def format_mode_string(node: Node) -> str:
    """Type character followed by the permission bits, as ``ls -l`` prints."""
    if isinstance(node, DirectoryNode):
        type_char = 'd'
    elif isinstance(node, SymlinkNode):
        type_char = 'l'
    else:
        type_char = '-'
    return type_char + format_mode_bits(node.mode)


def node_to_dict(node: Node) -> dict[str, Any]:
    """Serialize a node (recursively) into the persisted record format."""
    record: dict[str, Any] = {
        'type': node.node_type.value,
        'owner': node.owner,
        'group': node.group,
        'mode': node.mode,
        'mtime': node.mtime,
    }
    if isinstance(node, FileNode):
        record['content'] = node.content
    elif isinstance(node, DirectoryNode):
        record['children'] = {
            name: node_to_dict(child) for name, child in node.children.items()
        }
    elif isinstance(node, SymlinkNode):
        record['target'] = node.target
    return record


def node_from_dict(record: dict[str, Any]) -> Node:
    """
    Rebuild a node from its persisted record.

    Raises:
        ValueError: If the record is malformed
    """
    if not isinstance(record, dict):
        raise ValueError("node record must be an object")
    try:
        node_type = NodeType(record['type'])
        owner = str(record['owner'])
        group = str(record['group'])
        mode = int(record['mode']) & 0o777
        mtime = str(record.get('mtime') or now_iso())
    except (KeyError, ValueError, TypeError) as e:
        raise ValueError(f"malformed node record: {e}") from e

    if node_type is NodeType.FILE:
        content = record.get('content', '')
        if not isinstance(content, str):
            raise ValueError("file record content must be a string")
        return FileNode(owner, group, mode, mtime, content=content)

    if node_type is NodeType.SYMLINK:
        return SymlinkNode(owner, group, mode, mtime, target=str(record.get('target', '')))

    children = record.get('children', {})
    if not isinstance(children, dict):
        raise ValueError("directory record children must be an object")
    return DirectoryNode(
        owner, group, mode, mtime,
        children={name: node_from_dict(child) for name, child in children.items()}
    )
