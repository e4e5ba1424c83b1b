"""
Message Bus Module

Per-job FIFO queues for communication between background jobs and
the foreground. A queue is keyed by a job id or a well-known name;
reads are destructive.

Version: 1.0.0
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Union

from shellcore.core.registry import Subsystem
from shellcore.core.scheduler import CancelSignal
from shellcore.exceptions import MessageQueueError


QueueKey = Union[int, str]


@dataclass
class Message:
    """An opaque payload posted to a queue."""
    message_id: int
    payload: Any
    sender: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class MessageQueue:
    """FIFO of messages for one job."""
    key: str
    messages: Deque[Message] = field(default_factory=deque)
    arrived: asyncio.Event = field(default_factory=asyncio.Event)


class MessageBus(Subsystem):
    """
    Message bus subsystem.

    Example:
        >>> bus = MessageBus()
        >>> bus.register_job(1)
        >>> bus.post_message(1, 'ping')
        >>> bus.get_messages(1)
        ['ping']
    """

    def __init__(self, max_messages: int = 1024):
        super().__init__('message_bus')
        self._queues: Dict[str, MessageQueue] = {}
        self._next_message_id = 1
        self._max_messages = max_messages

    def initialize(self) -> None:
        self._queues.clear()

    def stop(self) -> None:
        self._queues.clear()

    @staticmethod
    def _key(job_id: QueueKey) -> str:
        return str(job_id)

    def register_job(self, job_id: QueueKey) -> None:
        key = self._key(job_id)
        if key not in self._queues:
            self._queues[key] = MessageQueue(key)
            self._logger.debug("Queue registered", context={'queue': key})

    def unregister_job(self, job_id: QueueKey) -> None:
        queue = self._queues.pop(self._key(job_id), None)
        if queue is not None:
            # Release anyone still waiting so they observe the removal.
            queue.arrived.set()

    def has_job(self, job_id: QueueKey) -> bool:
        return self._key(job_id) in self._queues

    def post_message(self, job_id: QueueKey, payload: Any, sender: Optional[str] = None) -> None:
        """
        Append ``payload`` to a job's queue.

        Raises:
            MessageQueueError: If no queue is registered under ``job_id``
                or the queue is full
        """
        queue = self._queues.get(self._key(job_id))
        if queue is None:
            raise MessageQueueError(job_id)
        if len(queue.messages) >= self._max_messages:
            raise MessageQueueError(job_id, "Message queue is full.")
        queue.messages.append(Message(self._next_message_id, payload, sender))
        self._next_message_id += 1
        queue.arrived.set()

    def get_messages(self, job_id: QueueKey) -> List[Any]:
        """Drain and return every payload queued for ``job_id``."""
        queue = self._queues.get(self._key(job_id))
        if queue is None:
            return []
        payloads = [message.payload for message in queue.messages]
        queue.messages.clear()
        queue.arrived.clear()
        return payloads

    def pending(self, job_id: QueueKey) -> int:
        queue = self._queues.get(self._key(job_id))
        return len(queue.messages) if queue else 0

    async def wait_for_message(
        self,
        job_id: QueueKey,
        signal: Optional[CancelSignal] = None,
        timeout: Optional[float] = None
    ) -> List[Any]:
        """
        Suspend until at least one payload is queued, then drain.

        Raises:
            MessageQueueError: If the queue is not (or no longer) registered
            CommandCancelled: If the signal fires or the timeout expires
        """
        key = self._key(job_id)
        queue = self._queues.get(key)
        if queue is None:
            raise MessageQueueError(job_id)

        if not queue.messages:
            signal = signal or CancelSignal()
            await signal.wait_for(queue.arrived.wait(), timeout)
            if self._queues.get(key) is not queue:
                raise MessageQueueError(job_id)
        return self.get_messages(job_id)
