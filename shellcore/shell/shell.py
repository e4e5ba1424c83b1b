"""
Shellcore Interactive Shell

Terminal front end for a booted kernel:
- Prompt rendering (``user@host:~/path>``)
- Read-eval loop over the command executor
- Ctrl-C interrupts the foreground line
- Tab completion through readline when the platform provides it

Version: 1.0.0
"""

import asyncio
import signal
from typing import Any, List, Optional

from shellcore.filesystem.path_resolver import PathResolver
from shellcore.logger import get_logger
from shellcore.shell.completion import analyze


EXIT_COMMANDS = frozenset(('exit', 'quit'))


class Shell:
    """
    Interactive shell over a kernel.

    The kernel is passed in rather than imported, so the shell can
    front any booted instance.

    Example:
        >>> kernel = Kernel(output=ConsoleOutput(), modal=ConsoleModalChannel())
        >>> kernel.boot()
        >>> asyncio.run(Shell(kernel).run())
    """

    def __init__(self, kernel: Any):
        self._kernel = kernel
        self._logger = get_logger('shell')
        self._running = False
        self._matches: List[str] = []

    @property
    def kernel(self) -> Any:
        return self._kernel

    @property
    def running(self) -> bool:
        return self._running

    def prompt_text(self) -> str:
        """Prompt for the current session, home contracted to ``~``."""
        deps = self._kernel.deps
        session = deps.sessions.current
        home = deps.vfs.user_home(session.user)
        path = PathResolver.contract_home(session.cwd, home)
        return f"{session.user}@{deps.config.system.host}:{path}{deps.config.shell.prompt_char}"

    async def run(self) -> None:
        """Run the read-eval loop until EOF or ``exit``."""
        loop = asyncio.get_running_loop()
        config = self._kernel.config
        output = self._kernel.output
        self._running = True
        self._install_interrupt_handler(loop)
        if config.shell.enable_autocomplete:
            self._install_completion()

        output.append(f"Welcome to {config.system.name} v{config.system.version}")
        output.append("Type 'help' for a list of commands.")

        try:
            while self._running:
                prompt = self.prompt_text() + " "
                output.set_prompt(prompt)
                try:
                    line = await asyncio.to_thread(input, prompt)
                except EOFError:
                    output.append("")
                    break
                except KeyboardInterrupt:
                    output.append("^C")
                    continue

                if line.strip() in EXIT_COMMANDS:
                    break
                await self.execute(line)
        finally:
            self._running = False
            self._remove_interrupt_handler(loop)

    async def execute(self, line: str) -> None:
        """Run one line, keeping the loop alive on unexpected errors."""
        try:
            await self._kernel.executor.process_line(line, interactive=True)
        except Exception as e:
            self._logger.exception("Shell error", e)
            self._kernel.output.error(f"shell: error: {e}")

    def stop(self) -> None:
        self._running = False

    def _on_interrupt(self) -> None:
        if not self._kernel.executor.interrupt():
            self._kernel.output.append("^C")

    def _install_interrupt_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            loop.add_signal_handler(signal.SIGINT, self._on_interrupt)
        except (NotImplementedError, RuntimeError):
            self._logger.debug("SIGINT handler unavailable on this platform")

    def _remove_interrupt_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    def _install_completion(self) -> None:
        try:
            import readline
        except ImportError:
            self._logger.debug("readline unavailable, tab completion disabled")
            return
        readline.set_completer_delims(' \t\n|;&')
        readline.set_completer(self._complete)
        readline.parse_and_bind('tab: complete')

    def _complete(self, text: str, state: int) -> Optional[str]:
        import readline

        if state == 0:
            buffer = readline.get_line_buffer()
            context = analyze(buffer, readline.get_endidx())
            self._matches = self._kernel.completer.suggestions_for(context)
        if state < len(self._matches):
            return self._matches[state]
        return None
