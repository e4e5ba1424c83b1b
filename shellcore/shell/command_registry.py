"""
Command Registry Module

Maps command names to Command instances. Commands listed in the
manifest are imported on first use.

Version: 1.0.0
"""

import importlib
from typing import Dict, List, Mapping, Optional

from shellcore.exceptions import CommandNotFoundError
from shellcore.logger import get_logger
from shellcore.shell.command import Command


class CommandRegistry:
    """
    Name to command lookup with lazy loading.

    The manifest maps each command name to the module defining it.
    ``load`` imports that module and registers every ``Command``
    subclass it finds whose ``name`` is set.

    Example:
        >>> registry = CommandRegistry({'echo': 'shellcore.commands.text_commands'})
        >>> 'echo' in registry.names()
        True
        >>> registry.load('echo').name
        'echo'
    """

    def __init__(self, manifest: Optional[Mapping[str, str]] = None):
        self._commands: Dict[str, Command] = {}
        self._manifest: Dict[str, str] = dict(manifest or {})
        self._loaded_modules: set = set()
        self._logger = get_logger('registry')

    def register(self, command: Command) -> None:
        """
        Register a command instance under its name.

        Raises:
            ValueError: If the command has no name
        """
        if not command.name:
            raise ValueError(f"{type(command).__name__} has no command name")
        self._commands[command.name] = command

    def unregister(self, name: str) -> bool:
        return self._commands.pop(name, None) is not None

    def get(self, name: str) -> Optional[Command]:
        """Registered command, without loading."""
        return self._commands.get(name)

    def is_known(self, name: str) -> bool:
        return name in self._commands or name in self._manifest

    def names(self) -> List[str]:
        """Every command name, loaded or not, sorted."""
        return sorted(set(self._commands) | set(self._manifest))

    def loaded_names(self) -> List[str]:
        return sorted(self._commands)

    def load(self, name: str) -> Command:
        """
        Return the command, importing its module when needed.

        Raises:
            CommandNotFoundError: If the name is unknown or its module
                does not define it
        """
        command = self._commands.get(name)
        if command is not None:
            return command

        module_name = self._manifest.get(name)
        if module_name is None:
            raise CommandNotFoundError(name)

        self._import(module_name)
        command = self._commands.get(name)
        if command is None:
            self._logger.error(
                "Module loaded but command did not register",
                context={'command': name, 'module': module_name}
            )
            raise CommandNotFoundError(name)
        return command

    def load_all(self) -> None:
        for module_name in sorted(set(self._manifest.values())):
            self._import(module_name)

    def _import(self, module_name: str) -> None:
        if module_name in self._loaded_modules:
            return
        module = importlib.import_module(module_name)
        self._loaded_modules.add(module_name)

        count = 0
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if (isinstance(attr, type) and
                    issubclass(attr, Command) and
                    attr is not Command and
                    attr.name and
                    attr.__module__ == module.__name__):
                self.register(attr())
                count += 1

        self._logger.debug(
            f"Loaded command module '{module_name}'",
            context={'commands': count}
        )
