"""
Shellcore - The core of a simulated multi-user OS shell

This package provides the shell core of the OopisOS simulation: a
command-line lexer and parser, an executor with pipelines, redirection,
joiners and cooperative background jobs, a permissioned virtual file
system with persistence, users, groups and stacked sessions, tab
completion and a per-job message bus.
"""

__version__ = "1.0.0"

from .core.kernel import Kernel, KernelState
from .shell.shell import Shell

__all__ = [
    'Kernel',
    'KernelState',
    'Shell',
]
