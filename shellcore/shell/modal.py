"""
Modal Channel Module

The request/response contract through which a command asks the user
for a confirmation, a line of input or a hidden password. A command
awaits ``prompt`` and is suspended until the host answers.

Version: 1.0.0
"""

import asyncio
import getpass
import inspect
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Iterable, List, Optional, Union

from shellcore.logger import get_logger


CONFIRMATION_PROMPT = "Type 'YES' (all caps) if you really wanna go through with this."
PASSWORD_PROMPT = "What's the password?"
OPERATION_CANCELLED = "Nevermind."
CONFIRM_WORD = "YES"


class ModalType(Enum):
    CONFIRM = "confirm"
    INPUT = "input"
    OBSCURED = "obscured"


@dataclass
class ModalRequest:
    """
    A prompt shown to the user.

    Attributes:
        type: What kind of answer is wanted
        message_lines: Lines displayed above the input
        default: Pre-filled value for input prompts
    """
    type: ModalType
    message_lines: List[str] = field(default_factory=list)
    default: str = ""


@dataclass
class ModalAnswer:
    """The user's reply. ``confirmed`` is False when the prompt was cancelled."""
    confirmed: bool
    value: str = ""


Callback = Callable[..., Union[Any, Awaitable[Any]]]


class ModalChannel(ABC):
    """Abstract modal channel implemented by the host UI."""

    @abstractmethod
    async def prompt(self, request: ModalRequest) -> ModalAnswer:
        """Suspend until the user answers ``request``."""

    async def request(
        self,
        request: ModalRequest,
        on_confirm: Callback,
        on_cancel: Callback
    ) -> Any:
        """
        Callback form of ``prompt``.

        Awaits the answer, then runs ``on_confirm(value)`` or
        ``on_cancel()`` (awaiting them if they are coroutines) and
        returns what the callback returned.
        """
        answer = await self.prompt(request)
        result = on_confirm(answer.value) if answer.confirmed else on_cancel()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def confirm(self, message_lines: Iterable[str]) -> bool:
        """Ask a yes/no question; only ``YES`` counts as a yes."""
        answer = await self.prompt(ModalRequest(
            ModalType.CONFIRM, list(message_lines) + [CONFIRMATION_PROMPT]
        ))
        return answer.confirmed and answer.value.strip() == CONFIRM_WORD

    async def ask(self, message_lines: Iterable[str], obscured: bool = False) -> Optional[str]:
        """Ask for a line of input; None when cancelled."""
        answer = await self.prompt(ModalRequest(
            ModalType.OBSCURED if obscured else ModalType.INPUT, list(message_lines)
        ))
        return answer.value if answer.confirmed else None


class AsyncModalChannel(ModalChannel):
    """
    Modal channel answered programmatically.

    Answers queued with ``queue_answer`` are consumed first; otherwise
    the prompt stays pending until ``respond`` or ``cancel`` is called.
    Tests and embedding hosts drive prompts through this class.

    Example:
        >>> modal = AsyncModalChannel()
        >>> modal.queue_answer('secret')
        >>> (await modal.prompt(ModalRequest(ModalType.OBSCURED))).value
        'secret'
    """

    def __init__(self):
        self._answers: Deque[ModalAnswer] = deque()
        self._pending: Optional[asyncio.Future] = None
        self._requests: List[ModalRequest] = []

    @property
    def requests(self) -> List[ModalRequest]:
        """Every request seen, in order."""
        return list(self._requests)

    @property
    def waiting(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def queue_answer(self, value: str = "", confirmed: bool = True) -> None:
        self._answers.append(ModalAnswer(confirmed, value))

    def respond(self, value: str = "") -> bool:
        if not self.waiting:
            return False
        self._pending.set_result(ModalAnswer(True, value))
        return True

    def cancel(self) -> bool:
        if not self.waiting:
            return False
        self._pending.set_result(ModalAnswer(False))
        return True

    async def prompt(self, request: ModalRequest) -> ModalAnswer:
        self._requests.append(request)
        if self._answers:
            await asyncio.sleep(0)
            return self._answers.popleft()
        self._pending = asyncio.get_running_loop().create_future()
        try:
            return await self._pending
        finally:
            self._pending = None


class ScriptModalChannel(ModalChannel):
    """
    Modal channel answered by the lines of a running script.

    Each prompt consumes the script's next non-comment line; running
    out of lines cancels the prompt.
    """

    def __init__(self, next_line: Callable[[], Optional[str]]):
        self._next_line = next_line

    async def prompt(self, request: ModalRequest) -> ModalAnswer:
        line = self._next_line()
        if line is None:
            return ModalAnswer(False)
        return ModalAnswer(True, line.strip())


class ConsoleModalChannel(ModalChannel):
    """Modal channel reading from the process's terminal."""

    def __init__(self):
        self._logger = get_logger('modal')

    async def prompt(self, request: ModalRequest) -> ModalAnswer:
        for line in request.message_lines[:-1]:
            print(line)
        label = (request.message_lines[-1] + " ") if request.message_lines else ""
        reader = getpass.getpass if request.type is ModalType.OBSCURED else input
        try:
            value = await asyncio.to_thread(reader, label)
        except (EOFError, KeyboardInterrupt):
            self._logger.debug("Prompt cancelled")
            return ModalAnswer(False)
        return ModalAnswer(True, value)
