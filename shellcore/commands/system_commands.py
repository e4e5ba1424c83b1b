"""
System Commands

clear, help and run.

Version: 1.0.0
"""

from shellcore.filesystem.node import FileNode, NodeType
from shellcore.shell.command import (
    ArgValidation,
    Command,
    CommandContext,
    CommandResult,
    CompletionKind,
    EffectType,
    FlagDefinition,
    PathRule,
)


class ClearCommand(Command):
    name = 'clear'
    description = "Clears the terminal screen."
    help_text = "Usage: clear"
    arg_validation = ArgValidation(exact=0)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        return CommandResult.ok(effect=EffectType.CLEAR_SCREEN)


class HelpCommand(Command):
    name = 'help'
    description = "Lists commands or shows how to use one."
    help_text = "Usage: help [command]"
    arg_validation = ArgValidation(max=1)
    completion = CompletionKind.COMMANDS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        registry = ctx.deps.registry
        if ctx.args:
            command = registry.load(ctx.args[0].lower())
            return CommandResult.ok(command.help_text or f"Usage: {command.name}")

        lines = ["Available commands:"]
        for name in registry.names():
            lines.append(f"  {name:<15} {registry.load(name).description}")
        lines.append("")
        lines.append("Type 'help [command]' for more information.")
        return CommandResult.ok('\n'.join(lines))


class RunCommand(Command):
    name = 'run'
    description = "Runs a script file."
    help_text = """Usage: run [-s] <script> [arguments]...
Run each line of SCRIPT. Inside the script $0 is the script name, $1..$9
its arguments, $@ all of them and $# their count. Lines starting with #
are comments.
  -s, --strict    stop at the first failing line"""
    flag_definitions = (FlagDefinition('strict', '-s', '--strict'),)
    arg_validation = ArgValidation(min=1)
    path_rules = (PathRule(arg_index=0, expected_type=NodeType.FILE, permissions=('read', 'execute')),)
    completion = CompletionKind.PATHS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        script = ctx.validated_paths[0]
        node = script.node
        content = node.content if isinstance(node, FileNode) else ""
        return await ctx.deps.executor.run_script(
            content.split('\n'),
            name=script.arg,
            args=ctx.args[1:],
            strict=ctx.flags['strict'],
            signal=ctx.signal
        )
