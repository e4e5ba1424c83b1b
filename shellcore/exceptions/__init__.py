"""
Shellcore Exception Hierarchy

Every error raised by the core derives from ShellCoreError. Each class
carries a ``kind`` naming its place in the error taxonomy and a numeric
``error_code``.

Architecture:
    ShellCoreError (Base)
    ├── KernelException
    │   ├── BootFailureError
    │   ├── SubsystemInitError
    │   ├── ConfigValidationError
    │   └── StorageError
    ├── ShellSyntaxError
    │   ├── LexError
    │   │   ├── UnhandledCharacterError
    │   │   └── UnclosedStringError
    │   └── ParseError
    │       ├── UnexpectedTokenError
    │       ├── MissingRedirectFilenameError
    │       ├── MissingPipeRightError
    │       └── MissingJoinerRightError
    ├── ExecException
    │   ├── CommandNotFoundError
    │   ├── BadArgumentsError
    │   ├── TypeMismatchError
    │   ├── CommandIOError
    │   ├── CommandCancelled
    │   └── ScriptError
    ├── FileSystemException
    │   ├── ResolveError
    │   │   ├── NoSuchPathError
    │   │   ├── NotADirError
    │   │   ├── NotAFileError
    │   │   ├── DanglingSymlinkError
    │   │   ├── SymlinkLoopError
    │   │   └── PermissionDeniedError
    │   ├── PathExistsError
    │   └── DiskQuotaError
    ├── SessionException
    │   ├── AuthenticationError
    │   ├── UserExistsError
    │   ├── UserNotFoundError
    │   ├── InvalidUsernameError
    │   ├── GroupInUseError
    │   ├── GroupExistsError
    │   └── GroupNotFoundError
    └── IPCException
        └── MessageQueueError
"""

from .base import ShellCoreError

from .kernel_exceptions import (
    KernelException,
    BootFailureError,
    SubsystemInitError,
    ConfigValidationError,
    StorageError,
)

from .syntax_exceptions import (
    ShellSyntaxError,
    LexError,
    UnhandledCharacterError,
    UnclosedStringError,
    ParseError,
    UnexpectedTokenError,
    MissingRedirectFilenameError,
    MissingPipeRightError,
    MissingJoinerRightError,
)

from .exec_exceptions import (
    ExecException,
    CommandNotFoundError,
    BadArgumentsError,
    TypeMismatchError,
    CommandIOError,
    CommandCancelled,
    ScriptError,
)

from .fs_exceptions import (
    FileSystemException,
    ResolveError,
    NoSuchPathError,
    NotADirError,
    NotAFileError,
    DanglingSymlinkError,
    SymlinkLoopError,
    PermissionDeniedError,
    PathExistsError,
    DiskQuotaError,
)

from .session_exceptions import (
    SessionException,
    AuthenticationError,
    UserExistsError,
    UserNotFoundError,
    InvalidUsernameError,
    GroupInUseError,
    GroupExistsError,
    GroupNotFoundError,
)

from .ipc_exceptions import (
    IPCException,
    MessageQueueError,
)

__all__ = [
    "ShellCoreError",
    # Kernel exceptions
    "KernelException",
    "BootFailureError",
    "SubsystemInitError",
    "ConfigValidationError",
    "StorageError",
    # Syntax exceptions
    "ShellSyntaxError",
    "LexError",
    "UnhandledCharacterError",
    "UnclosedStringError",
    "ParseError",
    "UnexpectedTokenError",
    "MissingRedirectFilenameError",
    "MissingPipeRightError",
    "MissingJoinerRightError",
    # Execution exceptions
    "ExecException",
    "CommandNotFoundError",
    "BadArgumentsError",
    "TypeMismatchError",
    "CommandIOError",
    "CommandCancelled",
    "ScriptError",
    # Filesystem exceptions
    "FileSystemException",
    "ResolveError",
    "NoSuchPathError",
    "NotADirError",
    "NotAFileError",
    "DanglingSymlinkError",
    "SymlinkLoopError",
    "PermissionDeniedError",
    "PathExistsError",
    "DiskQuotaError",
    # Session exceptions
    "SessionException",
    "AuthenticationError",
    "UserExistsError",
    "UserNotFoundError",
    "InvalidUsernameError",
    "GroupInUseError",
    "GroupExistsError",
    "GroupNotFoundError",
    # IPC exceptions
    "IPCException",
    "MessageQueueError",
]
