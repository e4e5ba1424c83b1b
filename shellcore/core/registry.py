"""
Shellcore Subsystem Registry

Lifecycle management for the core's long-lived managers (storage,
filesystem, users, groups, sessions, message bus):
- Subsystem base class with an explicit state machine
- Priority and dependency ordered initialization
- Reverse-order shutdown

Each Kernel owns its own registry, so several kernels can coexist in
one process (tests rely on this).

Version: 1.0.0
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional, TypeVar, List

from shellcore.exceptions import SubsystemInitError
from shellcore.logger import Logger, get_logger


class SubsystemState(Enum):
    """Lifecycle state of a subsystem."""
    UNREGISTERED = auto()
    REGISTERED = auto()
    INITIALIZING = auto()
    INITIALIZED = auto()
    RUNNING = auto()
    STOPPED = auto()
    ERROR = auto()


class SubsystemPriority(Enum):
    """Initialization priority for subsystems."""
    CRITICAL = 0     # storage
    HIGH = 10        # filesystem, groups
    NORMAL = 20      # users, sessions
    LOW = 30         # message bus and other helpers


@dataclass
class SubsystemInfo:
    """Bookkeeping for a registered subsystem."""
    name: str
    instance: 'Subsystem'
    priority: SubsystemPriority
    dependencies: List[str]
    state: SubsystemState = SubsystemState.UNREGISTERED
    error: Optional[Exception] = None


class Subsystem(ABC):
    """
    Abstract base class for the core's managers.

    Lifecycle:
        1. __init__() - collaborators are wired
        2. initialize() - persisted state is loaded or defaults created
        3. start() - optional, begins normal operation
        4. stop() - optional, ends operation
    """

    def __init__(self, name: str):
        self._name = name
        self._logger = get_logger(name)
        self._state = SubsystemState.UNREGISTERED

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> SubsystemState:
        return self._state

    @property
    def logger(self) -> Logger:
        return self._logger

    def set_state(self, state: SubsystemState) -> None:
        """Set the subsystem state."""
        self._state = state
        self._logger.debug(f"State changed to {state.name}")

    @abstractmethod
    def initialize(self) -> None:
        """
        Initialize the subsystem.

        Loads persisted state (or creates defaults) so the subsystem is
        ready to serve requests.
        """

    def start(self) -> None:
        """Start the subsystem. Default implementation does nothing."""

    def stop(self) -> None:
        """Stop the subsystem. Default implementation does nothing."""

    def health_check(self) -> bool:
        """Return True while the subsystem is usable."""
        return self._state in (SubsystemState.INITIALIZED, SubsystemState.RUNNING)


T = TypeVar('T')


class SubsystemRegistry:
    """
    Registry of a kernel's subsystems.

    Example:
        >>> registry = SubsystemRegistry()
        >>> registry.register('storage', StorageManager(backend),
        ...                   priority=SubsystemPriority.CRITICAL)
        >>> registry.initialize_all()
        >>> storage = registry.get('storage')
    """

    def __init__(self):
        self._subsystems: dict[str, SubsystemInfo] = {}
        self._initialized = False
        self._logger = get_logger('registry')

    def register(
        self,
        name: str,
        subsystem: Subsystem,
        priority: SubsystemPriority = SubsystemPriority.NORMAL,
        dependencies: Optional[List[str]] = None
    ) -> None:
        """
        Register a subsystem.

        Raises:
            ValueError: If a subsystem with that name already exists
        """
        if name in self._subsystems:
            raise ValueError(f"Subsystem '{name}' already registered")

        self._subsystems[name] = SubsystemInfo(
            name=name,
            instance=subsystem,
            priority=priority,
            dependencies=dependencies or [],
            state=SubsystemState.REGISTERED
        )
        subsystem.set_state(SubsystemState.REGISTERED)
        self._logger.debug(
            f"Registered subsystem '{name}'",
            context={'priority': priority.name}
        )

    def get(self, name: str) -> Subsystem:
        """
        Get a subsystem by name.

        Raises:
            KeyError: If subsystem not found
        """
        if name not in self._subsystems:
            raise KeyError(f"Subsystem '{name}' not found")
        return self._subsystems[name].instance

    def get_typed(self, name: str, expected_type: type[T]) -> T:
        """
        Get a subsystem with type checking.

        Raises:
            KeyError: If subsystem not found
            TypeError: If subsystem is not of expected type
        """
        subsystem = self.get(name)
        if not isinstance(subsystem, expected_type):
            raise TypeError(
                f"Subsystem '{name}' is {type(subsystem).__name__}, "
                f"expected {expected_type.__name__}"
            )
        return subsystem

    def initialize_all(self) -> None:
        """
        Initialize every subsystem in dependency order.

        Raises:
            SubsystemInitError: If any subsystem fails to initialize
        """
        if self._initialized:
            return

        for name in self.initialization_order():
            info = self._subsystems[name]
            try:
                info.state = SubsystemState.INITIALIZING
                info.instance.set_state(SubsystemState.INITIALIZING)
                info.instance.initialize()
                info.state = SubsystemState.INITIALIZED
                info.instance.set_state(SubsystemState.INITIALIZED)
            except Exception as e:
                info.state = SubsystemState.ERROR
                info.error = e
                info.instance.set_state(SubsystemState.ERROR)
                self._logger.error(
                    f"Failed to initialize '{name}'",
                    context={'error': str(e)}
                )
                raise SubsystemInitError(name, str(e)) from e

        self._initialized = True
        self._logger.info("All subsystems initialized")

    def start_all(self) -> None:
        """Start all initialized subsystems."""
        for name in self.initialization_order():
            info = self._subsystems[name]
            if info.state == SubsystemState.INITIALIZED:
                info.instance.start()
                info.state = SubsystemState.RUNNING
                info.instance.set_state(SubsystemState.RUNNING)

    def stop_all(self) -> None:
        """Stop all running subsystems in reverse order."""
        for name in reversed(self.initialization_order()):
            info = self._subsystems[name]
            if info.state != SubsystemState.RUNNING:
                continue
            try:
                info.instance.stop()
            except Exception as e:
                self._logger.error(f"Error stopping '{name}': {e}")
            info.state = SubsystemState.STOPPED
            info.instance.set_state(SubsystemState.STOPPED)

    def initialization_order(self) -> List[str]:
        """
        Resolve the order in which subsystems are initialized.

        Topological sort over declared dependencies, breaking ties by
        priority.

        Raises:
            RuntimeError: On a dependency cycle
        """
        names = sorted(
            self._subsystems,
            key=lambda n: self._subsystems[n].priority.value
        )

        dependents: dict[str, set[str]] = defaultdict(set)
        in_degree: dict[str, int] = {n: 0 for n in names}
        for name in names:
            for dep in self._subsystems[name].dependencies:
                if dep in self._subsystems:
                    dependents[dep].add(name)
                    in_degree[name] += 1

        order: List[str] = []
        ready = [n for n in names if in_degree[n] == 0]
        while ready:
            ready.sort(key=lambda n: self._subsystems[n].priority.value)
            current = ready.pop(0)
            order.append(current)
            for dependent in dependents[current]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)

        if len(order) != len(names):
            raise RuntimeError(
                f"Circular dependency detected involving: {set(names) - set(order)}"
            )
        return order

    def list_subsystems(self) -> List[dict[str, Any]]:
        """List all registered subsystems with their status."""
        return [
            {
                'name': name,
                'priority': info.priority.name,
                'state': info.state.name,
                'dependencies': list(info.dependencies),
                'healthy': info.instance.health_check(),
            }
            for name, info in self._subsystems.items()
        ]
