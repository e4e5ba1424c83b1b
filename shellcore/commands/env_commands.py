"""
Environment Commands

Per-session state: alias, unalias, set, unset and history.

Version: 1.0.0
"""

from typing import List, Optional, Tuple

from shellcore.shell.command import (
    ArgValidation,
    Command,
    CommandContext,
    CommandResult,
    CompletionKind,
    FlagDefinition,
)


def _parse_key_value(args: List[str]) -> Tuple[str, Optional[str]]:
    """
    Split ``NAME=value`` spread over any number of arguments.

    The lexer breaks ``ll='ls -la'`` into ``ll=`` and ``ls -la``, so the
    arguments are joined back before splitting at the first ``=``.
    Returns ``(name, None)`` when there is no ``=``.
    """
    combined = ' '.join(args)
    name, sep, value = combined.partition('=')
    if not sep:
        return combined.strip(), None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        value = value[1:-1]
    return name.strip(), value


class AliasCommand(Command):
    name = 'alias'
    description = "Defines or lists command aliases."
    help_text = """Usage: alias [name='command']
Without arguments, list every alias. With NAME='COMMAND', define an
alias; with NAME alone, print that alias."""

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        aliases = ctx.deps.sessions.current.aliases
        if not ctx.args:
            return CommandResult.ok('\n'.join(
                f"alias {name}='{aliases.get(name)}'" for name in sorted(aliases.names())
            ))

        name, value = _parse_key_value(ctx.args)
        if value is None:
            current = aliases.get(name)
            if current is None:
                return CommandResult.fail(f"alias: {name}: not found")
            return CommandResult.ok(f"alias {name}='{current}'")
        if not name:
            return CommandResult.fail("alias: invalid format. Missing name.")
        aliases.set(name, value)
        return CommandResult.ok(state_modified=True)


class UnaliasCommand(Command):
    name = 'unalias'
    description = "Removes command aliases."
    help_text = "Usage: unalias <name>..."
    arg_validation = ArgValidation(min=1)
    completion = CompletionKind.ALIASES

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        aliases = ctx.deps.sessions.current.aliases
        errors = [
            f"unalias: no such alias: {name}" for name in ctx.args if not aliases.remove(name)
        ]
        if errors:
            return CommandResult.fail('\n'.join(errors))
        return CommandResult.ok(state_modified=True)


class SetCommand(Command):
    name = 'set'
    description = "Sets or lists environment variables."
    help_text = """Usage: set [NAME=value | NAME value]
Without arguments, list every variable."""

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        env = ctx.env
        if not ctx.args:
            variables = env.all()
            return CommandResult.ok('\n'.join(
                f"{name}={variables[name]}" for name in sorted(variables)
            ))

        if '=' in ctx.args[0]:
            name, value = _parse_key_value(ctx.args)
        elif len(ctx.args) == 2:
            name, value = ctx.args
        elif len(ctx.args) == 1:
            name = ctx.args[0]
            return CommandResult.ok(f"{name}={env.get(name)}" if env.has(name) else "")
        else:
            return CommandResult.fail("set: Usage: set [NAME=value | NAME value]")
        env.set(name, value)
        return CommandResult.ok()


class UnsetCommand(Command):
    name = 'unset'
    description = "Removes environment variables."
    help_text = "Usage: unset <name>..."
    arg_validation = ArgValidation(min=1)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        for name in ctx.args:
            ctx.env.unset(name)
        return CommandResult.ok()


class HistoryCommand(Command):
    name = 'history'
    description = "Shows or clears the command history."
    help_text = "Usage: history [-c]\n  -c    clear the history"
    flag_definitions = (FlagDefinition('clear', '-c', '--clear'),)
    arg_validation = ArgValidation(exact=0)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        history = ctx.deps.sessions.current.history
        if ctx.flags['clear']:
            history.clear()
            return CommandResult.ok(state_modified=True)
        return CommandResult.ok('\n'.join(
            f"  {index:>3}  {entry}" for index, entry in enumerate(history.entries(), 1)
        ))
