"""
Shellcore Kernel

The composition root of the shell core:
- Builds every subsystem and boots them in dependency order
- Wires the cross-subsystem lookups (groups, primary groups)
- Assembles the dependency bundle, command registry and executor
- Saves state on shutdown

Version: 1.0.0
"""

import time
from enum import Enum, auto
from pathlib import Path
from typing import Optional

from shellcore.core.config_loader import Config, get_config
from shellcore.core.registry import SubsystemPriority, SubsystemRegistry
from shellcore.core.scheduler import CooperativeScheduler
from shellcore.exceptions import BootFailureError, SubsystemInitError
from shellcore.filesystem.vfs import VirtualFileSystem
from shellcore.ipc.message_bus import MessageBus
from shellcore.logger import Logger, LogLevel, get_logger
from shellcore.shell.command import Dependencies
from shellcore.shell.command_registry import CommandRegistry
from shellcore.shell.completion import TabCompleter
from shellcore.shell.executor import CommandExecutor
from shellcore.shell.modal import AsyncModalChannel, ModalChannel
from shellcore.shell.output import BufferedOutput, OutputSink
from shellcore.storage.backends import (
    JsonFileStorageBackend,
    MemoryStorageBackend,
    StorageBackend,
)
from shellcore.storage.manager import StorageManager
from shellcore.users.group_manager import GroupManager
from shellcore.users.session import SessionManager
from shellcore.users.user_manager import UserManager


class KernelState(Enum):
    """Kernel operational state."""
    UNINITIALIZED = auto()
    BOOTING = auto()
    RUNNING = auto()
    SHUTTING_DOWN = auto()
    SHUTDOWN = auto()


class Kernel:
    """
    Owner of one complete shell core instance.

    Several kernels may coexist in a process; each has its own
    subsystem registry, storage and job table.

    Example:
        >>> kernel = Kernel(output=BufferedOutput())
        >>> kernel.boot()
        >>> await kernel.executor.process_line('echo hi')
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        storage_backend: Optional[StorageBackend] = None,
        output: Optional[OutputSink] = None,
        modal: Optional[ModalChannel] = None
    ):
        self._config = config or get_config()
        self._backend = storage_backend
        self._output = output or BufferedOutput()
        self._modal = modal or AsyncModalChannel()
        self._state = KernelState.UNINITIALIZED
        self._registry = SubsystemRegistry()
        self._logger = get_logger('kernel')
        self._start_time: Optional[float] = None

        self._storage: Optional[StorageManager] = None
        self._vfs: Optional[VirtualFileSystem] = None
        self._groups: Optional[GroupManager] = None
        self._sessions: Optional[SessionManager] = None
        self._users: Optional[UserManager] = None
        self._bus: Optional[MessageBus] = None
        self._deps: Optional[Dependencies] = None
        self._executor: Optional[CommandExecutor] = None
        self._completer: Optional[TabCompleter] = None

    # -- accessors -----------------------------------------------------

    @property
    def state(self) -> KernelState:
        return self._state

    @property
    def config(self) -> Config:
        return self._config

    @property
    def uptime(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    @property
    def registry(self) -> SubsystemRegistry:
        return self._registry

    @property
    def output(self) -> OutputSink:
        return self._output

    @property
    def modal(self) -> ModalChannel:
        return self._modal

    @property
    def storage(self) -> StorageManager:
        return self._storage

    @property
    def filesystem(self) -> VirtualFileSystem:
        return self._vfs

    @property
    def groups(self) -> GroupManager:
        return self._groups

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def users(self) -> UserManager:
        return self._users

    @property
    def bus(self) -> MessageBus:
        return self._bus

    @property
    def deps(self) -> Dependencies:
        return self._deps

    @property
    def executor(self) -> CommandExecutor:
        return self._executor

    @property
    def completer(self) -> TabCompleter:
        return self._completer

    # -- lifecycle -----------------------------------------------------

    def boot(self) -> None:
        """
        Build and initialize every subsystem.

        Raises:
            BootFailureError: If a subsystem fails to initialize
        """
        if self._state != KernelState.UNINITIALIZED:
            return
        self._state = KernelState.BOOTING
        self._init_logging()
        self._logger.info("Kernel booting...")

        config = self._config
        storage = StorageManager(self._backend or self._make_backend())
        vfs = VirtualFileSystem(storage, config)
        groups = GroupManager(storage, config)
        sessions = SessionManager(storage, vfs, config)
        users = UserManager(storage, vfs, groups, sessions, config)
        bus = MessageBus()

        vfs.bind_group_lookup(groups.get_groups_for_user)
        groups.bind_primary_group_resolver(users.get_primary_group, users.primary_groups)

        self._registry.register('storage', storage, priority=SubsystemPriority.CRITICAL)
        self._registry.register(
            'filesystem', vfs,
            priority=SubsystemPriority.HIGH,
            dependencies=['storage']
        )
        self._registry.register(
            'groups', groups,
            priority=SubsystemPriority.HIGH,
            dependencies=['storage']
        )
        self._registry.register(
            'sessions', sessions,
            priority=SubsystemPriority.NORMAL,
            dependencies=['storage', 'filesystem']
        )
        self._registry.register(
            'users', users,
            priority=SubsystemPriority.NORMAL,
            dependencies=['filesystem', 'groups', 'sessions']
        )
        self._registry.register('bus', bus, priority=SubsystemPriority.LOW)

        try:
            self._registry.initialize_all()
            self._registry.start_all()
        except SubsystemInitError as e:
            self._state = KernelState.UNINITIALIZED
            raise BootFailureError(e.message, subsystem='kernel') from e

        self._storage, self._vfs, self._groups = storage, vfs, groups
        self._sessions, self._users, self._bus = sessions, users, bus

        # Imported here so the command modules load after the core.
        from shellcore.commands import MANIFEST

        self._deps = Dependencies(
            config=config,
            storage=storage,
            vfs=vfs,
            users=users,
            groups=groups,
            sessions=sessions,
            bus=bus,
            registry=CommandRegistry(MANIFEST),
            output=self._output,
            modal=self._modal
        )
        self._executor = CommandExecutor(self._deps, CooperativeScheduler())
        self._completer = TabCompleter(self._deps)

        self._state = KernelState.RUNNING
        self._start_time = time.time()
        self._logger.info(
            f"{config.system.name} v{config.system.version} running",
            context={'user': sessions.current_user}
        )
        self._announce_root_password()

    def _init_logging(self) -> None:
        settings = self._config.logging
        Logger.initialize(
            level=LogLevel[settings.level.upper()],
            log_file=settings.log_file,
            use_colors=settings.use_colors,
            console_output=settings.console_output
        )

    def _make_backend(self) -> StorageBackend:
        settings = self._config.storage
        if settings.backend == 'file':
            return JsonFileStorageBackend(str(Path(settings.path).expanduser()))
        if settings.backend == 'memory':
            return MemoryStorageBackend()
        raise BootFailureError(
            f"Unknown storage backend: {settings.backend}",
            subsystem='storage'
        )

    def _announce_root_password(self) -> None:
        password = self._users.generated_root_password
        if not password:
            return
        self._output.append(f"IMPORTANT: Your one-time root password is: {password}", 'warning')
        self._output.append("Please save it securely or change it immediately using 'passwd'.", 'warning')

    async def shutdown(self, timeout: Optional[float] = 1.0) -> None:
        """
        Stop background jobs, save the filesystem and stop subsystems.
        """
        if self._state != KernelState.RUNNING:
            return
        self._state = KernelState.SHUTTING_DOWN
        self._logger.info("System shutting down...")

        for job in self._executor.jobs.list_jobs():
            job.signal.cancel("System shutdown")
        await self._executor.wait_for_jobs(timeout)

        self._sessions.save_state(self._sessions.current)
        self._vfs.save_now()
        self._registry.stop_all()

        self._state = KernelState.SHUTDOWN
        self._logger.info(
            "System shutdown complete",
            context={'uptime': f"{self.uptime:.2f}s"}
        )
