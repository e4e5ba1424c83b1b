"""
Shellcore Commands

Leaf commands that exercise the core. Modules are imported lazily by
the command registry; MANIFEST maps each command name to its module.
"""

_FS = 'shellcore.commands.fs_commands'
_TEXT = 'shellcore.commands.text_commands'
_JOBS = 'shellcore.commands.job_commands'
_USERS = 'shellcore.commands.user_commands'
_ENV = 'shellcore.commands.env_commands'
_SYSTEM = 'shellcore.commands.system_commands'

MANIFEST = {
    # Filesystem
    'ls': _FS,
    'cd': _FS,
    'pwd': _FS,
    'mkdir': _FS,
    'touch': _FS,
    'rm': _FS,
    'chmod': _FS,
    'chown': _FS,
    'chgrp': _FS,
    'ln': _FS,
    'cp': _FS,
    'mv': _FS,
    'fsck': _FS,
    # Text
    'echo': _TEXT,
    'cat': _TEXT,
    'grep': _TEXT,
    'wc': _TEXT,
    'head': _TEXT,
    'true': _TEXT,
    'false': _TEXT,
    # Jobs and messages
    'ps': _JOBS,
    'jobs': _JOBS,
    'kill': _JOBS,
    'delay': _JOBS,
    'post_message': _JOBS,
    'read_messages': _JOBS,
    # Users and groups
    'su': _USERS,
    'login': _USERS,
    'logout': _USERS,
    'whoami': _USERS,
    'useradd': _USERS,
    'userdel': _USERS,
    'passwd': _USERS,
    'groups': _USERS,
    'groupadd': _USERS,
    'groupdel': _USERS,
    'usermod': _USERS,
    # Session environment
    'alias': _ENV,
    'unalias': _ENV,
    'set': _ENV,
    'unset': _ENV,
    'history': _ENV,
    # System
    'clear': _SYSTEM,
    'help': _SYSTEM,
    'run': _SYSTEM,
}

__all__ = ['MANIFEST']
