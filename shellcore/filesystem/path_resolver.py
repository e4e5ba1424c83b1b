"""
Path Resolver Module

Pure string manipulation of forward-slash paths: canonicalization of
``.`` and ``..``, joining, splitting and cwd-relative resolution.
Nothing here touches the tree, so symlinks are never dereferenced.

Version: 1.0.0
"""

from dataclasses import dataclass
from typing import List, Tuple


@dataclass
class ParsedPath:
    """A path broken into its non-empty components."""
    is_absolute: bool
    components: List[str]

    def __str__(self) -> str:
        if self.is_absolute:
            return '/' + '/'.join(self.components)
        return '/'.join(self.components) if self.components else '.'


class PathResolver:
    """
    Static helpers for virtual filesystem paths.

    Example:
        >>> PathResolver.resolve('../b/./c', '/home/Guest')
        '/home/b/c'
    """

    SEPARATOR = '/'

    @staticmethod
    def parse(path: str) -> ParsedPath:
        """Split a path into components, dropping empty and ``.`` parts."""
        components = [c for c in path.split('/') if c and c != '.']
        return ParsedPath(is_absolute=path.startswith('/'), components=components)

    @staticmethod
    def normalize(path: str) -> str:
        """
        Canonicalize ``.`` and ``..``.

        ``..`` at the root stays at the root.

        >>> PathResolver.normalize('/a/../../b/')
        '/b'
        """
        parsed = PathResolver.parse(path)
        result: List[str] = []
        for component in parsed.components:
            if component == '..':
                if result and result[-1] != '..':
                    result.pop()
                elif not parsed.is_absolute:
                    result.append(component)
            else:
                result.append(component)
        return str(ParsedPath(parsed.is_absolute, result))

    @staticmethod
    def join(*paths: str) -> str:
        """Join components; an absolute component restarts the path."""
        if not paths:
            return '.'
        result = paths[0]
        for path in paths[1:]:
            if path.startswith('/'):
                result = path
            elif path:
                result = result.rstrip('/') + '/' + path
        return PathResolver.normalize(result)

    @staticmethod
    def resolve(path: str, cwd: str = '/') -> str:
        """
        Make ``path`` absolute against ``cwd`` and canonicalize it.

        An empty path resolves to ``cwd``.
        """
        if not path:
            return PathResolver.normalize(cwd or '/')
        if path.startswith('/'):
            return PathResolver.normalize(path)
        return PathResolver.normalize((cwd or '/').rstrip('/') + '/' + path)

    @staticmethod
    def components(path: str) -> List[str]:
        """Components of an absolute canonical path (``[]`` for the root)."""
        return PathResolver.parse(PathResolver.normalize(path)).components

    @staticmethod
    def dirname(path: str) -> str:
        normalized = PathResolver.normalize(path)
        if normalized == '/':
            return '/'
        if '/' not in normalized:
            return '.'
        return normalized.rsplit('/', 1)[0] or '/'

    @staticmethod
    def basename(path: str) -> str:
        normalized = PathResolver.normalize(path)
        if normalized == '/':
            return '/'
        return normalized.rsplit('/', 1)[-1]

    @staticmethod
    def split(path: str) -> Tuple[str, str]:
        """Split a path into ``(dirname, basename)``."""
        return PathResolver.dirname(path), PathResolver.basename(path)

    @staticmethod
    def is_absolute(path: str) -> bool:
        return path.startswith('/')

    @staticmethod
    def is_within(path: str, ancestor: str) -> bool:
        """True if ``path`` equals ``ancestor`` or lies beneath it."""
        path = PathResolver.normalize(path)
        ancestor = PathResolver.normalize(ancestor)
        if ancestor == '/':
            return path.startswith('/')
        return path == ancestor or path.startswith(ancestor + '/')

    @staticmethod
    def is_valid_name(name: str) -> bool:
        """Whether ``name`` may be used as a single directory entry."""
        return bool(name) and name not in ('.', '..') and '/' not in name and '\0' not in name

    @staticmethod
    def home_for(username: str, home_prefix: str = '/home') -> str:
        return PathResolver.join(home_prefix, username)

    @staticmethod
    def contract_home(path: str, home: str) -> str:
        """
        Replace a leading home directory with ``~`` for prompts.

        >>> PathResolver.contract_home('/home/Guest/d', '/home/Guest')
        '~/d'
        """
        if path == home:
            return '~'
        if home != '/' and path.startswith(home + '/'):
            return '~' + path[len(home):]
        return path
