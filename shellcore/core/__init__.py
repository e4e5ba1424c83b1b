"""
Shellcore Core Module

Core infrastructure shared by every subsystem:
- Configuration Loader
- Subsystem Registry
- Cooperative Scheduler

The Kernel lives in ``shellcore.core.kernel`` and is imported from
there directly, since it depends on every other subpackage.
"""

from .config_loader import ConfigLoader, Config, get_config
from .registry import (
    SubsystemRegistry,
    Subsystem,
    SubsystemState,
    SubsystemPriority,
)
from .scheduler import CancelSignal, StepYielder, CooperativeScheduler

__all__ = [
    # Config
    'ConfigLoader',
    'Config',
    'get_config',
    # Registry
    'SubsystemRegistry',
    'Subsystem',
    'SubsystemState',
    'SubsystemPriority',
    # Scheduler
    'CancelSignal',
    'StepYielder',
    'CooperativeScheduler',
]
