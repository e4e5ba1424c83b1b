"""
Shellcore Virtual File System Module

Provides the simulated filesystem:
- File, directory and symlink nodes
- Path canonicalization
- Permission-checked tree operations with persistence
- Glob expansion
- Consistency checking (fsck)
"""

from .node import (
    Node,
    NodeType,
    FileNode,
    DirectoryNode,
    SymlinkNode,
    PermissionType,
    format_mode_bits,
    format_mode_string,
    node_to_dict,
    node_from_dict,
)
from .path_resolver import PathResolver, ParsedPath
from .vfs import VirtualFileSystem, PathInfo
from .glob import expand_glob, glob_to_regex, has_glob_chars
from .fsck import FilesystemChecker, FsckIssue, FsckIssueType

__all__ = [
    # Nodes
    'Node',
    'NodeType',
    'FileNode',
    'DirectoryNode',
    'SymlinkNode',
    'PermissionType',
    'format_mode_bits',
    'format_mode_string',
    'node_to_dict',
    'node_from_dict',
    # Path Resolver
    'PathResolver',
    'ParsedPath',
    # VFS
    'VirtualFileSystem',
    'PathInfo',
    # Glob
    'expand_glob',
    'glob_to_regex',
    'has_glob_chars',
    # fsck
    'FilesystemChecker',
    'FsckIssue',
    'FsckIssueType',
]
