"""
Filesystem Commands

ls, mkdir, touch, rm, cd, pwd, chmod, chown, chgrp, ln, cp, mv, fsck.

Resolution and permission errors raised by the VFS propagate to the
executor, which prefixes the command name.

Version: 1.0.0
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List

from shellcore.filesystem.fsck import FilesystemChecker
from shellcore.filesystem.node import DirectoryNode, Node, NodeType, SymlinkNode, format_mode_string
from shellcore.filesystem.path_resolver import PathResolver
from shellcore.exceptions import FileSystemException
from shellcore.shell.command import (
    ArgValidation,
    Command,
    CommandContext,
    CommandResult,
    CompletionKind,
    FlagDefinition,
    PathRule,
)


COLUMN_WIDTH = 80
OCTAL_MODE = re.compile(r'^[0-7]{3,4}$')


# =============================================================================
# ls
# =============================================================================

@dataclass
class _Entry:
    name: str
    path: str
    node: Node
    size: int

    @property
    def mtime(self) -> datetime:
        try:
            return datetime.fromisoformat(self.node.mtime.replace('Z', '+00:00'))
        except ValueError:
            return datetime.fromtimestamp(0, timezone.utc)


def _format_date(when: datetime) -> str:
    now = datetime.now(timezone.utc)
    if now - when < timedelta(days=182):
        return when.strftime('%b ') + f"{when.day:>2} " + when.strftime('%H:%M')
    return when.strftime('%b ') + f"{when.day:>2}  {when.year}"


def _format_columns(names: List[str]) -> str:
    if not names:
        return ""
    width = max(len(name) for name in names) + 2
    if width > COLUMN_WIDTH:
        return '\n'.join(names)
    columns = max(1, COLUMN_WIDTH // width)
    rows = -(-len(names) // columns)
    lines = []
    for row in range(rows):
        cells = [names[col * rows + row] for col in range(columns) if col * rows + row < len(names)]
        lines.append(''.join(cell.ljust(width) for cell in cells).rstrip())
    return '\n'.join(lines)


class LsCommand(Command):
    name = 'ls'
    description = "Lists directory contents and file information."
    help_text = """Usage: ls [OPTION]... [FILE]...
List information about the FILEs (the current directory by default).
  -l    use a long listing format
  -a    do not ignore entries starting with .
  -R    list subdirectories recursively
  -r    reverse order while sorting
  -t    sort by modification time, newest first
  -S    sort by file size, largest first
  -1    list one file per line
  -d    list directories themselves, not their contents"""
    flag_definitions = (
        FlagDefinition('long', '-l', '--long'),
        FlagDefinition('all', '-a', '--all'),
        FlagDefinition('recursive', '-R', '--recursive'),
        FlagDefinition('reverse', '-r', '--reverse'),
        FlagDefinition('sort_time', '-t'),
        FlagDefinition('sort_size', '-S'),
        FlagDefinition('one_column', '-1'),
        FlagDefinition('dirs_only', '-d', '--directory'),
    )
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        flags = dict(ctx.flags)
        if not ctx.options.interactive or ctx.options.suppress_output:
            flags['one_column'] = True
        paths = ctx.args or ['.']

        blocks: List[str] = []
        errors: List[str] = []
        files: List[_Entry] = []
        directories = []

        for path in paths:
            await ctx.signal.checkpoint()
            try:
                entry = self._stat(ctx, path)
            except FileSystemException as e:
                errors.append(self._access_error(path, e))
                continue
            if isinstance(entry.node, DirectoryNode) and not flags['dirs_only']:
                directories.append(entry)
            else:
                files.append(entry)

        if files:
            blocks.append(self._render(self._sort(files, flags), flags, listing=False))

        for index, entry in enumerate(directories):
            if flags['recursive']:
                await self._list_recursive(ctx, entry, flags, blocks, errors, len(paths) > 1)
                continue
            if blocks or index > 0:
                blocks.append('')
            if len(paths) > 1:
                blocks.append(f"{entry.name}:")
            blocks.append(self._list_one(ctx, entry, flags))

        output = '\n'.join(blocks)
        if errors:
            return CommandResult.fail('\n'.join(errors + ([output] if output else [])))
        return CommandResult.ok(output)

    def _stat(self, ctx: CommandContext, path: str) -> _Entry:
        info = ctx.vfs.validate_path(
            path, ctx.cwd, ctx.user,
            permissions=('read',),
            follow_symlinks=not (ctx.flags['long'] or ctx.flags['dirs_only'])
        )
        return _Entry(path, info.resolved_path, info.node, ctx.vfs.calculate_node_size(info.node))

    @staticmethod
    def _access_error(path: str, error: FileSystemException) -> str:
        reason = error.message.rsplit(': ', 1)[-1]
        if reason == 'Permission denied':
            return f"ls: cannot open directory '{path}': {reason}"
        return f"ls: cannot access '{path}': {reason}"

    def _children(self, ctx: CommandContext, entry: _Entry, flags: dict) -> List[_Entry]:
        children = []
        for name, node in entry.node.children.items():
            if not flags['all'] and name.startswith('.'):
                continue
            children.append(_Entry(
                name, PathResolver.join(entry.path, name), node, ctx.vfs.calculate_node_size(node)
            ))
        return self._sort(children, flags)

    def _list_one(self, ctx: CommandContext, entry: _Entry, flags: dict) -> str:
        return self._render(self._children(ctx, entry, flags), flags, listing=True)

    async def _list_recursive(
        self,
        ctx: CommandContext,
        entry: _Entry,
        flags: dict,
        blocks: List[str],
        errors: List[str],
        label_top: bool,
        depth: int = 0
    ) -> None:
        await ctx.signal.checkpoint()
        if depth > 0 or label_top:
            blocks.append(f"\n{entry.path if depth else entry.name}:")
        if not ctx.vfs.has_permission(entry.node, ctx.user, 'read'):
            errors.append(f"ls: cannot open directory '{entry.path}': Permission denied")
            return
        children = self._children(ctx, entry, flags)
        blocks.append(self._render(children, flags, listing=True))
        for child in children:
            if isinstance(child.node, DirectoryNode):
                await self._list_recursive(ctx, child, flags, blocks, errors, label_top, depth + 1)

    @staticmethod
    def _sort(entries: List[_Entry], flags: dict) -> List[_Entry]:
        if flags['sort_time']:
            key = lambda e: (-e.mtime.timestamp(), e.name)
        elif flags['sort_size']:
            key = lambda e: (-e.size, e.name)
        else:
            key = lambda e: e.name
        return sorted(entries, key=key, reverse=flags['reverse'])

    def _render(self, entries: List[_Entry], flags: dict, listing: bool) -> str:
        if flags['long']:
            lines = [f"total {len(entries)}"] if listing and entries else []
            lines.extend(self._long_line(e, flags) for e in entries)
            return '\n'.join(lines)

        names = [
            e.name + ('/' if listing and isinstance(e.node, DirectoryNode) else '')
            for e in entries
        ]
        if flags['one_column']:
            return '\n'.join(names)
        return _format_columns(names)

    @staticmethod
    def _long_line(entry: _Entry, flags: dict) -> str:
        node = entry.node
        name = entry.name
        if isinstance(node, SymlinkNode):
            name += f" -> {node.target}"
        elif isinstance(node, DirectoryNode) and not flags['dirs_only']:
            name += '/'
        return (
            f"{format_mode_string(node)}  {1:>2} {node.owner:<10} {node.group:<10} "
            f"{entry.size:>8} {_format_date(entry.mtime):<12} {name}"
        )


# =============================================================================
# Directory navigation and creation
# =============================================================================

class CdCommand(Command):
    name = 'cd'
    description = "Changes the current working directory."
    help_text = "Usage: cd [directory]\nChange to DIRECTORY, or to your home directory when omitted."
    arg_validation = ArgValidation(max=1)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        target = ctx.args[0] if ctx.args else ctx.env.get('HOME') or ctx.vfs.user_home(ctx.user)
        info = ctx.vfs.validate_path(
            target, ctx.cwd, ctx.user,
            expected_type=NodeType.DIRECTORY,
            permissions=('execute',)
        )
        ctx.deps.sessions.current.cwd = info.resolved_path
        return CommandResult.ok()


class PwdCommand(Command):
    name = 'pwd'
    description = "Prints the current working directory."
    help_text = "Usage: pwd"
    arg_validation = ArgValidation(exact=0)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        return CommandResult.ok(ctx.cwd)


class MkdirCommand(Command):
    name = 'mkdir'
    description = "Creates new directories."
    help_text = "Usage: mkdir [-p] <directory>...\n  -p    create parent directories as needed, no error if existing"
    flag_definitions = (FlagDefinition('parents', '-p', '--parents'),)
    arg_validation = ArgValidation(min=1)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        errors = []
        for path in ctx.args:
            try:
                ctx.vfs.create_directory(
                    path, ctx.user, ctx.primary_group, ctx.cwd, parents=ctx.flags['parents']
                )
            except FileSystemException as e:
                errors.append(f"mkdir: cannot create directory '{path}': {e.message.rsplit(': ', 1)[-1]}")
        if errors:
            return CommandResult.fail('\n'.join(errors))
        return CommandResult.ok(state_modified=True)


class TouchCommand(Command):
    name = 'touch'
    description = "Changes file timestamps or creates empty files."
    help_text = "Usage: touch [-c] <file>...\n  -c    do not create any files"
    flag_definitions = (FlagDefinition('no_create', '-c', '--no-create'),)
    arg_validation = ArgValidation(min=1)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        errors = []
        for path in ctx.args:
            if PathResolver.resolve(path, ctx.cwd) == '/':
                errors.append("touch: cannot touch root directory")
                continue
            try:
                ctx.vfs.touch(path, ctx.user, ctx.primary_group, ctx.cwd,
                              create=not ctx.flags['no_create'])
            except FileSystemException as e:
                errors.append(f"touch: {e.message}")
        if errors:
            return CommandResult.fail('\n'.join(errors))
        return CommandResult.ok(state_modified=True)


class RmCommand(Command):
    name = 'rm'
    description = "Removes files or directories."
    help_text = """Usage: rm [-rfi] <path>...
  -r, -R    remove directories and their contents recursively
  -f        ignore nonexistent files, never prompt
  -i        prompt before every removal"""
    flag_definitions = (
        FlagDefinition('recursive', '-r', '--recursive', aliases=('-R',)),
        FlagDefinition('force', '-f', '--force'),
        FlagDefinition('interactive', '-i', '--interactive'),
    )
    arg_validation = ArgValidation(min=1)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        vfs = ctx.vfs
        messages = []
        failed = False
        for path in ctx.args:
            await ctx.signal.checkpoint()
            node = vfs.get_node(path, ctx.cwd, ctx.user)
            if node is None:
                if not ctx.flags['force']:
                    messages.append(f"rm: cannot remove '{path}': No such file or directory")
                    failed = True
                continue
            if PathResolver.resolve(path, ctx.cwd) == '/':
                messages.append("rm: cannot remove root directory")
                failed = True
                continue
            if isinstance(node, DirectoryNode) and not ctx.flags['recursive']:
                return CommandResult.fail(
                    f"rm: cannot remove '{path}': Is a directory.",
                    "Use the '-r' flag to remove directories and their contents."
                )
            if ctx.flags['interactive'] and not ctx.flags['force']:
                prompt = (f"Recursively remove directory '{path}'?"
                          if isinstance(node, DirectoryNode) else f"Remove file '{path}'?")
                if not await ctx.deps.modal.confirm([prompt]):
                    messages.append(f"Removal of '{path}' cancelled.")
                    continue
            try:
                vfs.delete_node_recursive(path, ctx.user, ctx.cwd, force=ctx.flags['force'])
            except FileSystemException as e:
                messages.append(f"rm: cannot remove '{path}': {e.message.rsplit(': ', 1)[-1]}")
                failed = True

        if failed:
            return CommandResult.fail('\n'.join(messages))
        return CommandResult.ok('\n'.join(messages), state_modified=True)


# =============================================================================
# Ownership and permissions
# =============================================================================

class ChmodCommand(Command):
    name = 'chmod'
    description = "Changes the access permissions of a file or directory."
    help_text = "Usage: chmod <mode> <path>\nMODE is three or four octal digits, e.g. 755."
    arg_validation = ArgValidation(exact=2)
    path_rules = (PathRule(arg_index=1, follow_symlinks=False, ownership_required=True),)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        mode_arg = ctx.args[0]
        if not OCTAL_MODE.match(mode_arg):
            return CommandResult.fail(
                f"chmod: invalid mode: '{mode_arg}' (must be 3 or 4 octal digits)"
            )
        ctx.vfs.chmod(ctx.validated_paths[0].resolved_path, int(mode_arg, 8), ctx.user)
        return CommandResult.ok(state_modified=True)


class ChownCommand(Command):
    name = 'chown'
    description = "Changes the user ownership of a file or directory."
    help_text = "Usage: chown <owner> <path>\nOnly root may change ownership."
    arg_validation = ArgValidation(exact=2)
    path_rules = (PathRule(arg_index=1, follow_symlinks=False),)
    completion = CompletionKind.USERS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        owner = ctx.args[0]
        if not ctx.deps.users.user_exists(owner):
            return CommandResult.fail(f"chown: invalid user: '{owner}'")
        ctx.vfs.chown(ctx.validated_paths[0].resolved_path, owner, ctx.user)
        return CommandResult.ok(state_modified=True)


class ChgrpCommand(Command):
    name = 'chgrp'
    description = "Changes the group ownership of a file or directory."
    help_text = "Usage: chgrp <group> <path>"
    arg_validation = ArgValidation(exact=2)
    path_rules = (PathRule(arg_index=1, follow_symlinks=False),)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        group = ctx.args[0]
        if not ctx.deps.groups.group_exists(group):
            return CommandResult.fail(f"chgrp: invalid group: '{group}'")
        ctx.vfs.chgrp(ctx.validated_paths[0].resolved_path, group, ctx.user)
        return CommandResult.ok(state_modified=True)


# =============================================================================
# Links, copies and moves
# =============================================================================

class LnCommand(Command):
    name = 'ln'
    description = "Creates symbolic links."
    help_text = "Usage: ln -s <target> <link_name>\nOnly symbolic links are supported."
    flag_definitions = (FlagDefinition('symbolic', '-s', '--symbolic'),)
    arg_validation = ArgValidation(exact=2)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        if not ctx.flags['symbolic']:
            return CommandResult.fail("ln: only symbolic links (-s) are supported.")
        target, link_name = ctx.args
        try:
            ctx.vfs.create_symlink(target, link_name, ctx.user, ctx.primary_group, ctx.cwd)
        except FileSystemException as e:
            return CommandResult.fail(
                f"ln: failed to create symbolic link '{link_name}': {e.message.rsplit(': ', 1)[-1]}"
            )
        return CommandResult.ok(state_modified=True)


class CpCommand(Command):
    name = 'cp'
    description = "Copies files and directories."
    help_text = "Usage: cp [-r] <source>... <destination>\n  -r, -R    copy directories recursively"
    flag_definitions = (FlagDefinition('recursive', '-r', '--recursive', aliases=('-R',)),)
    arg_validation = ArgValidation(min=2)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        *sources, dest = ctx.args
        if len(sources) > 1 and not isinstance(
            ctx.vfs.get_node(dest, ctx.cwd, ctx.user, follow_symlinks=True), DirectoryNode
        ):
            return CommandResult.fail(f"cp: target '{dest}' is not a directory")

        errors = []
        for source in sources:
            await ctx.signal.checkpoint()
            node = ctx.vfs.get_node(source, ctx.cwd, ctx.user, follow_symlinks=True)
            if isinstance(node, DirectoryNode) and not ctx.flags['recursive']:
                errors.append(f"cp: -r not specified; omitting directory '{source}'")
                continue
            try:
                ctx.vfs.copy_node(source, dest, ctx.user, ctx.primary_group, ctx.cwd)
            except FileSystemException as e:
                errors.append(f"cp: {e.message}")
        if errors:
            return CommandResult.fail('\n'.join(errors))
        return CommandResult.ok(state_modified=True)


class MvCommand(Command):
    name = 'mv'
    description = "Moves or renames files and directories."
    help_text = "Usage: mv <source>... <destination>"
    arg_validation = ArgValidation(min=2)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        *sources, dest = ctx.args
        if len(sources) > 1 and not isinstance(
            ctx.vfs.get_node(dest, ctx.cwd, ctx.user, follow_symlinks=True), DirectoryNode
        ):
            return CommandResult.fail(f"mv: target '{dest}' is not a directory")

        errors = []
        for source in sources:
            try:
                ctx.vfs.move_node(source, dest, ctx.user, ctx.cwd)
            except FileSystemException as e:
                errors.append(f"mv: {e.message}")
        if errors:
            return CommandResult.fail('\n'.join(errors))
        return CommandResult.ok(state_modified=True)


# =============================================================================
# fsck
# =============================================================================

class FsckCommand(Command):
    name = 'fsck'
    description = "Checks and optionally repairs filesystem consistency."
    help_text = """Usage: fsck [--repair] [path]
Check the filesystem for dangling symlinks, orphaned owners, invalid
groups and broken home directories. Only root may run it.
  --repair    fix the issues found"""
    flag_definitions = (FlagDefinition('repair', '-r', '--repair'),)
    arg_validation = ArgValidation(max=1)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        deps = ctx.deps
        if ctx.user != deps.config.users.root_user:
            return CommandResult.fail("fsck: permission denied. You must be root to run this command.")

        start = PathResolver.resolve(ctx.args[0], ctx.cwd) if ctx.args else '/'
        checker = FilesystemChecker(
            deps.vfs,
            deps.users.list_users,
            deps.groups.group_exists
        )
        issues = checker.check(start)
        if not issues:
            return CommandResult.ok("fsck: no issues found.")

        lines = [f"fsck: found {len(issues)} issue(s):"]
        lines.extend(f"  {issue}" for issue in issues)
        if not ctx.flags['repair']:
            lines.append("Run 'fsck --repair' to fix these issues.")
            return CommandResult.ok('\n'.join(lines))

        actions = checker.repair(issues, lambda u: deps.users.get_primary_group(u) or u)
        lines.extend(f"  repaired: {action}" for action in actions)
        return CommandResult.ok('\n'.join(lines), state_modified=True)
