"""
Text Commands

echo, cat, grep, wc, head, true and false. The streaming commands read
piped input when there is any and their file arguments otherwise.

Version: 1.0.0
"""

import re
from typing import List

from shellcore.shell.command import (
    ArgValidation,
    Command,
    CommandContext,
    CommandResult,
    CompletionKind,
    FlagDefinition,
    parse_numeric_arg,
)


ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'a': '\a', 'b': '\b', 'v': '\v', 'f': '\f', '\\': '\\'}
ESCAPE_PATTERN = re.compile(r'\\(.)', re.DOTALL)


def _strip_final_newline(text: str) -> str:
    return text[:-1] if text.endswith('\n') else text


def _split_lines(text: str) -> List[str]:
    if not text:
        return []
    return _strip_final_newline(text).split('\n')


class EchoCommand(Command):
    name = 'echo'
    description = "Writes arguments to the standard output."
    help_text = "Usage: echo [-e] [STRING]...\n  -e    interpret backslash escapes (\\n, \\t, \\\\)"
    flag_definitions = (FlagDefinition('escapes', '-e'),)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        text = ' '.join(ctx.args)
        if ctx.flags['escapes']:
            text = ESCAPE_PATTERN.sub(lambda m: ESCAPES.get(m.group(1), m.group(0)), text)
        return CommandResult.ok(text)


class CatCommand(Command):
    name = 'cat'
    description = "Concatenates files and prints them to the standard output."
    help_text = "Usage: cat [-n] [FILE]...\n  -n    number all output lines"
    flag_definitions = (FlagDefinition('number', '-n', '--number'),)
    completion = CompletionKind.PATHS
    input_stream = True

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        items, had_error = await ctx.read_all_input()
        if had_error:
            return CommandResult.fail("cat: One or more files could not be read.")

        content = '\n'.join(_strip_final_newline(item.content) for item in items)
        if ctx.flags['number']:
            content = '\n'.join(
                f"{index:>6}  {line}" for index, line in enumerate(_split_lines(content), 1)
            )
        return CommandResult.ok(content)


class GrepCommand(Command):
    name = 'grep'
    description = "Prints lines that match a pattern."
    help_text = """Usage: grep [OPTION]... PATTERN [FILE]...
  -i    ignore case distinctions
  -v    select non-matching lines
  -n    prefix each line with its line number
  -c    print only a count of matching lines"""
    flag_definitions = (
        FlagDefinition('ignore_case', '-i', '--ignore-case'),
        FlagDefinition('invert', '-v', '--invert-match'),
        FlagDefinition('line_number', '-n', '--line-number'),
        FlagDefinition('count', '-c', '--count'),
    )
    arg_validation = ArgValidation(min=1, error="missing pattern")
    completion = CompletionKind.PATHS
    input_stream = True
    first_file_arg_index = 1

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        try:
            pattern = re.compile(ctx.args[0], re.IGNORECASE if ctx.flags['ignore_case'] else 0)
        except re.error as e:
            return CommandResult.fail(f"grep: invalid pattern '{ctx.args[0]}': {e}")

        items, had_error = await ctx.read_all_input()
        show_names = len(ctx.args) > 2
        lines = []
        for item in items:
            count = 0
            for number, line in enumerate(_split_lines(item.content), 1):
                if bool(pattern.search(line)) == ctx.flags['invert']:
                    continue
                count += 1
                if ctx.flags['count']:
                    continue
                prefix = f"{item.source_name}:" if show_names else ""
                if ctx.flags['line_number']:
                    prefix += f"{number}:"
                lines.append(prefix + line)
            if ctx.flags['count']:
                lines.append(f"{item.source_name}:{count}" if show_names else str(count))

        if had_error:
            return CommandResult.fail('\n'.join(["grep: One or more files could not be read."] + lines))
        return CommandResult.ok('\n'.join(lines))


class WcCommand(Command):
    name = 'wc'
    description = "Prints line, word and byte counts."
    help_text = """Usage: wc [-lwc] [FILE]...
  -l    print the line counts
  -w    print the word counts
  -c    print the byte counts"""
    flag_definitions = (
        FlagDefinition('lines', '-l', '--lines'),
        FlagDefinition('words', '-w', '--words'),
        FlagDefinition('bytes', '-c', '--bytes'),
    )
    completion = CompletionKind.PATHS
    input_stream = True

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        items, had_error = await ctx.read_all_input()
        selected = [key for key in ('lines', 'words', 'bytes') if ctx.flags[key]]
        selected = selected or ['lines', 'words', 'bytes']

        rows = []
        totals = {'lines': 0, 'words': 0, 'bytes': 0}
        for item in items:
            content = item.content
            counts = {
                'lines': content.count('\n') + (1 if content and not content.endswith('\n') else 0),
                'words': len(content.split()),
                'bytes': len(content.encode('utf-8')),
            }
            for key in totals:
                totals[key] += counts[key]
            rows.append(self._row(counts, selected, item.source_name if item.source_name != 'stdin' else ''))
        if len(items) > 1:
            rows.append(self._row(totals, selected, 'total'))

        if had_error:
            return CommandResult.fail('\n'.join(["wc: One or more files could not be read."] + rows))
        return CommandResult.ok('\n'.join(rows))

    @staticmethod
    def _row(counts: dict, selected: List[str], label: str) -> str:
        row = ''.join(f"{counts[key]:>8}" for key in selected)
        return f"{row} {label}".rstrip()


class HeadCommand(Command):
    name = 'head'
    description = "Prints the first lines of its input."
    help_text = "Usage: head [-n COUNT] [FILE]...\n  -n    number of lines to print (default 10)"
    flag_definitions = (FlagDefinition('lines', '-n', '--lines', takes_value=True),)
    completion = CompletionKind.PATHS
    input_stream = True

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        count = 10
        if ctx.flags['lines'] is not None:
            try:
                count = parse_numeric_arg(ctx.flags['lines'], min_value=0)
            except ValueError as e:
                return CommandResult.fail(f"head: invalid number of lines: '{ctx.flags['lines']}' {e}")

        items, had_error = await ctx.read_all_input()
        blocks = []
        for item in items:
            block = '\n'.join(_split_lines(item.content)[:count])
            if len(items) > 1:
                block = f"==> {item.source_name} <==\n{block}"
            blocks.append(block)

        output = '\n\n'.join(blocks)
        if had_error:
            return CommandResult.fail("head: One or more files could not be read.")
        return CommandResult.ok(output)


class TrueCommand(Command):
    name = 'true'
    description = "Does nothing, successfully."
    help_text = "Usage: true"

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        return CommandResult.ok()


class FalseCommand(Command):
    name = 'false'
    description = "Does nothing, unsuccessfully."
    help_text = "Usage: false"

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        return CommandResult(success=False, exit_code=1)
