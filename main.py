#!/usr/bin/env python3
"""
Shellcore - Interactive entry point

Boots a kernel with a terminal output sink and modal channel, runs the
interactive shell until EOF or ``exit``, then saves and shuts down.

Usage:
    python main.py [--config shellcore.json] [--storage PATH]

Version: 1.0.0
"""

import argparse
import asyncio
import os
import sys

from shellcore.core.config_loader import ConfigLoader
from shellcore.core.kernel import Kernel
from shellcore.exceptions import ShellCoreError
from shellcore.shell.modal import ConsoleModalChannel
from shellcore.shell.output import ConsoleOutput
from shellcore.shell.shell import Shell


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="OopisOS shell core")
    parser.add_argument(
        '--config',
        default=os.path.join(os.path.dirname(os.path.abspath(__file__)), 'shellcore.json'),
        help="JSON configuration file (optional)"
    )
    parser.add_argument(
        '--storage',
        metavar='PATH',
        help="persist state to this JSON file instead of keeping it in memory"
    )
    return parser.parse_args(argv)


async def run(kernel: Kernel) -> None:
    shell = Shell(kernel)
    try:
        await shell.run()
    finally:
        await kernel.shutdown()


def main(argv=None) -> int:
    """
    Main entry point.

    Boot sequence:
    1. Load configuration
    2. Boot the kernel (logging, storage, filesystem, users, sessions)
    3. Run the shell
    4. Shutdown
    """
    args = parse_args(argv)
    loader = ConfigLoader()
    try:
        config = loader.load(args.config) if os.path.exists(args.config) else loader.config
    except ShellCoreError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1
    if args.storage:
        config.storage.backend = 'file'
        config.storage.path = args.storage

    kernel = Kernel(config=config, output=ConsoleOutput(), modal=ConsoleModalChannel())
    try:
        kernel.boot()
    except ShellCoreError as e:
        print(f"Boot failed: {e.message}", file=sys.stderr)
        return 1

    try:
        asyncio.run(run(kernel))
    except KeyboardInterrupt:
        print("\n\nInterrupted")
    return 0


if __name__ == '__main__':
    sys.exit(main())
