"""
Shellcore Shell Module

Provides the command-line front end of the core:
- Lexer, parser and line preprocessing
- Command model and lazy-loading command registry
- Executor with pipelines, redirection, joiners and background jobs
- Output sinks, modal channels and tab completion
- Interactive shell
"""

from .lexer import Lexer, Token, TokenType, tokenize
from .parser import (
    Parser,
    Pipeline,
    Segment,
    SequenceItem,
    OutputRedirect,
    RedirectMode,
    Joiner,
    parse_line,
)
from .preprocess import Preprocessor, PreprocessedLine, ScriptArguments, expand_braces
from .command import (
    Command,
    CommandContext,
    CommandResult,
    CompletionKind,
    Dependencies,
    EffectType,
    ExecutionOptions,
    FlagDefinition,
    ArgValidation,
    PathRule,
    parse_flags,
)
from .command_registry import CommandRegistry
from .jobs import Job, JobSignal, JobStatus, JobTable
from .executor import CommandExecutor, ScriptContext
from .output import OutputSink, BufferedOutput, ConsoleOutput
from .modal import ModalChannel, AsyncModalChannel, ScriptModalChannel, ConsoleModalChannel
from .completion import TabCompleter, Completion, CompletionContext
from .shell import Shell

__all__ = [
    # Lexer and parser
    'Lexer',
    'Token',
    'TokenType',
    'tokenize',
    'Parser',
    'Pipeline',
    'Segment',
    'SequenceItem',
    'OutputRedirect',
    'RedirectMode',
    'Joiner',
    'parse_line',
    # Preprocessing
    'Preprocessor',
    'PreprocessedLine',
    'ScriptArguments',
    'expand_braces',
    # Command model
    'Command',
    'CommandContext',
    'CommandResult',
    'CompletionKind',
    'Dependencies',
    'EffectType',
    'ExecutionOptions',
    'FlagDefinition',
    'ArgValidation',
    'PathRule',
    'parse_flags',
    'CommandRegistry',
    # Execution
    'CommandExecutor',
    'ScriptContext',
    'Job',
    'JobSignal',
    'JobStatus',
    'JobTable',
    # Host side
    'OutputSink',
    'BufferedOutput',
    'ConsoleOutput',
    'ModalChannel',
    'AsyncModalChannel',
    'ScriptModalChannel',
    'ConsoleModalChannel',
    'TabCompleter',
    'Completion',
    'CompletionContext',
    'Shell',
]
