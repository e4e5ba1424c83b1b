"""
Shared fixtures for the shellcore tests.

KernelTestCase boots a fresh kernel per test on an in-memory backend,
with a buffered output sink and a programmatic modal channel.
"""

import unittest
from typing import Optional

from shellcore.core.config_loader import Config
from shellcore.core.kernel import Kernel
from shellcore.shell.command import CommandResult
from shellcore.shell.modal import AsyncModalChannel
from shellcore.shell.output import BufferedOutput
from shellcore.storage.backends import MemoryStorageBackend


ROOT_PASSWORD = "rootpass"


def make_config() -> Config:
    config = Config()
    config.users.root_password = ROOT_PASSWORD
    config.users.password_iterations = 1000
    return config


class KernelTestCase(unittest.IsolatedAsyncioTestCase):
    """Base class for tests that drive a whole kernel."""

    async def asyncSetUp(self):
        self.backend = MemoryStorageBackend()
        self.output = BufferedOutput()
        self.modal = AsyncModalChannel()
        self.kernel = self.boot()

    async def asyncTearDown(self):
        await self.kernel.shutdown(timeout=1.0)

    def boot(self, config: Optional[Config] = None) -> Kernel:
        kernel = Kernel(config or make_config(), self.backend, self.output, self.modal)
        kernel.boot()
        return kernel

    @property
    def executor(self):
        return self.kernel.executor

    @property
    def vfs(self):
        return self.kernel.filesystem

    @property
    def sessions(self):
        return self.kernel.sessions

    async def run_line(self, line: str, **options) -> CommandResult:
        """Run a line with a clean output buffer."""
        self.output.reset()
        return await self.executor.process_line(line, **options)

    def stdout(self) -> str:
        return self.output.stdout_text()

    def stderr(self) -> str:
        return self.output.stderr_text()

    def file_content(self, path: str) -> Optional[str]:
        node = self.vfs.get_node(path, follow_symlinks=True)
        return getattr(node, 'content', None)

    async def become_root(self) -> None:
        result = await self.run_line(f"su root {ROOT_PASSWORD}")
        self.assertTrue(result.success, self.stderr())
