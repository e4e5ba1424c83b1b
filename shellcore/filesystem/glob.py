"""
Glob Module

Filename expansion of ``*``, ``?`` and ``[...]`` patterns against the
virtual filesystem. Only the final path segment may hold wildcards;
a pattern matching nothing expands to itself.

Version: 1.0.0
"""

import fnmatch
import re
from typing import TYPE_CHECKING, List, Optional

from shellcore.filesystem.node import DirectoryNode, PermissionType
from shellcore.filesystem.path_resolver import PathResolver

if TYPE_CHECKING:
    from shellcore.filesystem.vfs import VirtualFileSystem


GLOB_CHARS = frozenset('*?[')


def has_glob_chars(word: str) -> bool:
    return any(char in GLOB_CHARS for char in word)


def glob_to_regex(pattern: str) -> re.Pattern:
    """
    Compile a single-segment glob pattern.

    >>> bool(glob_to_regex('*.t?t').match('notes.txt'))
    True
    >>> bool(glob_to_regex('[!a]*').match('abc'))
    False
    """
    return re.compile(fnmatch.translate(pattern))


def expand_glob(
    vfs: 'VirtualFileSystem',
    pattern: str,
    cwd: str,
    username: Optional[str] = None
) -> List[str]:
    """
    Expand ``pattern`` into the sorted list of matching paths.

    Matches keep the directory prefix exactly as written. Names
    starting with ``.`` only match a pattern that starts with ``.``.
    An unreadable or missing directory, or no match at all, yields
    ``[pattern]``.
    """
    if not has_glob_chars(pattern):
        return [pattern]

    slash = pattern.rfind('/')
    prefix = pattern[:slash + 1] if slash >= 0 else ''
    segment = pattern[slash + 1:]
    if not segment or has_glob_chars(prefix):
        return [pattern]

    search_dir = PathResolver.resolve(prefix or '.', cwd)
    node = vfs.get_node(search_dir, '/', username, follow_symlinks=True)
    if not isinstance(node, DirectoryNode):
        return [pattern]
    if not vfs.has_permission(node, username, PermissionType.READ):
        return [pattern]

    regex = glob_to_regex(segment)
    matches = sorted(
        name for name in node.children
        if regex.match(name) and (segment.startswith('.') or not name.startswith('.'))
    )
    if not matches:
        return [pattern]
    return [prefix + name for name in matches]
