"""
Shellcore User Management Module

Provides user, group and session services:
- Credential registry and authentication
- Group membership
- Session stack with environment, aliases and history
"""

from .group_manager import GroupManager
from .session import Environment, AliasTable, CommandHistory, Session, SessionManager
from .user_manager import UserManager

__all__ = [
    'UserManager',
    'GroupManager',
    'SessionManager',
    'Session',
    'Environment',
    'AliasTable',
    'CommandHistory',
]
