"""
Output Sink Module

Abstract destinations for command output. The executor writes through
an OutputSink; the host implements it (a console, a test buffer, a
renderer).

Version: 1.0.0
"""

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, TextIO


@dataclass
class OutputLine:
    """A line written to a sink, with its channel and style class."""
    channel: str
    text: str
    css_class: Optional[str] = None


class OutputSink(ABC):
    """
    Host-side output contract.

    Channels are ``stdout``, ``stderr`` and ``suggestions``; the prompt
    is a separate slot that is replaced, not appended.
    """

    @abstractmethod
    def append(self, text: str, css_class: Optional[str] = None) -> None:
        """Append text to standard output."""
        pass

    @abstractmethod
    def error(self, text: str) -> None:
        """Append text to standard error."""
        pass

    @abstractmethod
    def suggest(self, text: str) -> None:
        """Show completion suggestions."""
        pass

    @abstractmethod
    def set_prompt(self, text: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class BufferedOutput(OutputSink):
    """
    Sink that records everything in memory.

    Example:
        >>> out = BufferedOutput()
        >>> out.append('hi')
        >>> out.stdout_text()
        'hi'
    """

    def __init__(self):
        self.lines: List[OutputLine] = []
        self.prompt = ""
        self.clear_count = 0

    def append(self, text: str, css_class: Optional[str] = None) -> None:
        self.lines.append(OutputLine('stdout', text, css_class))

    def error(self, text: str) -> None:
        self.lines.append(OutputLine('stderr', text))

    def suggest(self, text: str) -> None:
        self.lines.append(OutputLine('suggestions', text))

    def set_prompt(self, text: str) -> None:
        self.prompt = text

    def clear(self) -> None:
        self.lines.clear()
        self.clear_count += 1

    def channel(self, name: str) -> List[str]:
        return [line.text for line in self.lines if line.channel == name]

    def stdout_text(self) -> str:
        return '\n'.join(self.channel('stdout'))

    def stderr_text(self) -> str:
        return '\n'.join(self.channel('stderr'))

    def reset(self) -> None:
        self.lines.clear()


class ConsoleOutput(OutputSink):
    """Sink writing to the process's standard streams."""

    CLEAR_SEQUENCE = "\033[2J\033[H"

    def __init__(self, stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None):
        self._stdout = stdout or sys.stdout
        self._stderr = stderr or sys.stderr
        self.prompt = ""

    def append(self, text: str, css_class: Optional[str] = None) -> None:
        print(text, file=self._stdout)

    def error(self, text: str) -> None:
        print(text, file=self._stderr)

    def suggest(self, text: str) -> None:
        print(text, file=self._stdout)

    def set_prompt(self, text: str) -> None:
        self.prompt = text

    def clear(self) -> None:
        self._stdout.write(self.CLEAR_SEQUENCE)
        self._stdout.flush()
