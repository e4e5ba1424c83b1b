"""
Shellcore IPC Module

Provides inter-job communication:
- Per-job message queues
"""

from .message_bus import MessageBus, Message, MessageQueue

__all__ = [
    'MessageBus',
    'Message',
    'MessageQueue',
]
