"""
Storage, configuration, logging, subsystem registry, scheduler and
message bus tests.
"""

import asyncio
import json
import logging
import os
import tempfile
import unittest
from unittest import mock

from shellcore.core.config_loader import Config, ConfigLoader
from shellcore.core.registry import Subsystem, SubsystemPriority, SubsystemRegistry, SubsystemState
from shellcore.core.scheduler import CancelSignal, StepYielder
from shellcore.exceptions import (
    BootFailureError,
    CommandCancelled,
    ConfigValidationError,
    MessageQueueError,
    StorageError,
    SubsystemInitError,
)
from shellcore.ipc.message_bus import MessageBus
from shellcore.logger import AuditLogHandler, LogFormatter, Logger, LogLevel
from shellcore.storage.backends import JsonFileStorageBackend, MemoryStorageBackend, StorageBackend
from shellcore.storage.manager import StorageKey, StorageManager


class _FailingBackend(StorageBackend):
    def load(self):
        return {}

    def save(self, data):
        raise StorageError("disk full")

    def clear(self):
        pass


class TestStorageBackends(unittest.TestCase):
    """Memory and JSON file backends."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, 'nested', 'storage.json')

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_memory_backend_copies(self):
        backend = MemoryStorageBackend()
        data = {'k': [1]}
        backend.save(data)
        data['k'].append(2)
        self.assertEqual(backend.load(), {'k': [1]})

    def test_json_round_trip(self):
        backend = JsonFileStorageBackend(self.path)
        self.assertEqual(backend.load(), {})
        backend.save({'users': {'root': {'passwordData': None}}})
        self.assertEqual(JsonFileStorageBackend(self.path).load()['users'], {'root': {'passwordData': None}})
        self.assertEqual(os.listdir(os.path.dirname(self.path)), ['storage.json'])

    def test_json_clear(self):
        backend = JsonFileStorageBackend(self.path)
        backend.save({'a': 1})
        backend.clear()
        self.assertFalse(os.path.exists(self.path))
        backend.clear()

    def test_json_corrupt_file(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write('{not json')
        with self.assertRaises(StorageError):
            JsonFileStorageBackend(self.path).load()

        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump([1, 2], f)
        with self.assertRaises(StorageError):
            JsonFileStorageBackend(self.path).load()


class TestStorageManager(unittest.TestCase):
    """Container-level reads and writes."""

    def test_items(self):
        storage = StorageManager(MemoryStorageBackend())
        storage.initialize()
        self.assertEqual(storage.load_item('missing', default={'x': 1}), {'x': 1})

        self.assertTrue(storage.save_item(StorageKey.USER_GROUPS, {'root': ['root']}, "Groups"))
        loaded = storage.load_item(StorageKey.USER_GROUPS)
        loaded['root'].append('mutated')
        self.assertEqual(storage.load_item(StorageKey.USER_GROUPS), {'root': ['root']})
        self.assertEqual(storage.write_count, 1)

        self.assertTrue(storage.remove_item(StorageKey.USER_GROUPS))
        self.assertFalse(storage.remove_item(StorageKey.USER_GROUPS))
        self.assertFalse(storage.has_item(StorageKey.USER_GROUPS))

    def test_reload_and_clear(self):
        backend = MemoryStorageBackend()
        backend.save({'foreign': 1})
        storage = StorageManager(backend)
        storage.initialize()
        self.assertEqual(storage.keys(), ['foreign'])
        storage.clear()
        storage.reload()
        self.assertEqual(storage.keys(), [])

    def test_terminal_state_key(self):
        self.assertEqual(StorageKey.terminal_state('alice'), 'oopisOsUserTerminalState_alice')

    def test_failed_write(self):
        storage = StorageManager(_FailingBackend())
        storage.initialize()
        self.assertFalse(storage.save_item('k', 1))
        self.assertEqual(storage.state, SubsystemState.ERROR)
        self.assertEqual(storage.write_count, 0)


class TestConfigLoader(unittest.TestCase):
    """JSON configuration and dot-notation access."""

    def setUp(self):
        self.loader = ConfigLoader()
        self.loader.reset()
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.loader.reset()
        self.tmpdir.cleanup()

    def write(self, content: str) -> str:
        path = os.path.join(self.tmpdir.name, 'shellcore.json')
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path

    def test_defaults(self):
        config = Config()
        self.assertEqual(config.users.default_user, 'Guest')
        self.assertEqual(config.users.reserved_usernames, ['guest', 'root', 'admin', 'system'])
        self.assertEqual(config.shell.history_size, 50)
        self.assertEqual(config.filesystem.max_symlink_depth, 10)

    def test_load_partial(self):
        path = self.write(json.dumps({'shell': {'max_script_steps': 5}}))
        config = self.loader.load(path)
        self.assertEqual(config.shell.max_script_steps, 5)
        self.assertEqual(config.shell.max_script_depth, 100)
        self.assertTrue(self.loader.loaded)
        self.assertEqual(self.loader.get('shell.max_script_steps'), 5)

    def test_unknown_keys_rejected(self):
        with self.assertRaises(ConfigValidationError):
            ConfigLoader.parse({'network': {}})
        with self.assertRaises(ConfigValidationError) as caught:
            ConfigLoader.parse({'shell': {'colour': 'red'}})
        self.assertEqual(caught.exception.key, 'shell.colour')
        with self.assertRaises(ConfigValidationError):
            ConfigLoader.parse({'shell': 3})

    def test_load_errors(self):
        with self.assertRaises(BootFailureError):
            self.loader.load(os.path.join(self.tmpdir.name, 'absent.json'))
        with self.assertRaises(BootFailureError):
            self.loader.load(self.write('{oops'))

    def test_get_and_set(self):
        self.assertIsNone(self.loader.get('shell.nothing'))
        self.assertEqual(self.loader.get('shell.nothing', 7), 7)
        self.loader.set('users.default_user', 'Visitor')
        self.assertEqual(self.loader.config.users.default_user, 'Visitor')
        with self.assertRaises(ConfigValidationError):
            self.loader.set('users.nothing', 1)
        with self.assertRaises(ConfigValidationError):
            self.loader.set('nowhere.key', 1)

    def test_to_dict(self):
        data = self.loader.to_dict()
        self.assertEqual(data['storage']['backend'], 'memory')
        self.assertEqual(ConfigLoader.parse(data), Config())


class TestLogger(unittest.TestCase):
    """Subsystem loggers and the audit buffer."""

    def setUp(self):
        self.handler = AuditLogHandler(max_entries=3)
        self.log = Logger('audit_test')
        self.target = logging.getLogger('shellcore.audit_test')
        self.target.addHandler(self.handler)
        self.old_level = self.target.level
        self.target.setLevel(LogLevel.DEBUG)

    def tearDown(self):
        self.target.removeHandler(self.handler)
        self.target.setLevel(self.old_level)

    def test_one_instance_per_subsystem(self):
        self.assertIs(Logger('audit_test'), self.log)
        self.assertEqual(self.log.subsystem, 'audit_test')

    def test_records_carry_context(self):
        self.log.notice("Job finished", job=4, context={'exit': 0})
        entry = self.handler.get_logs()[-1]
        self.assertEqual(entry['level'], 'NOTICE')
        self.assertEqual(entry['subsystem'], 'audit_test')
        self.assertEqual((entry['job'], entry['context']), (4, {'exit': 0}))

    def test_buffer_is_bounded_and_filtered(self):
        for i in range(5):
            self.log.info(f"step {i}")
        self.log.error("broken")
        logs = self.handler.get_logs()
        self.assertEqual(len(logs), 3)
        self.assertEqual([e['message'] for e in self.handler.get_logs(level='ERROR')], ['broken'])
        self.handler.clear()
        self.assertEqual(self.handler.get_logs(), [])

    def test_get_audit_logs_reads_installed_buffer(self):
        """Logger.get_audit_logs filters the buffer installed by initialize."""
        self.log.warning("disk low")
        self.log.info("mounted")
        with mock.patch.object(Logger, '_audit_handler', self.handler):
            warnings = Logger.get_audit_logs(level='WARNING', subsystem='audit_test')
            self.assertEqual([e['message'] for e in warnings], ['disk low'])
            self.assertEqual(len(Logger.get_audit_logs(limit=1)), 1)
        with mock.patch.object(Logger, '_audit_handler', None):
            self.assertEqual(Logger.get_audit_logs(), [])

    def test_formatter(self):
        record = logging.LogRecord('shellcore.vfs', logging.INFO, __file__, 1, "Created file", None, None)
        record.subsystem = 'vfs'
        record.job = 2
        record.context = {'path': '/tmp/a'}
        text = LogFormatter(use_colors=False).format(record)
        self.assertIn('INFO', text)
        self.assertTrue(text.endswith('[vfs] (job=2) Created file {path=/tmp/a}'))


class _Recorder(Subsystem):
    def __init__(self, name, log, fail=False):
        super().__init__(name)
        self._log = log
        self._fail = fail

    def initialize(self):
        if self._fail:
            raise RuntimeError("boom")
        self._log.append(self.name)


class TestSubsystemRegistry(unittest.TestCase):
    """Initialization order and state tracking."""

    def test_order_follows_dependencies_then_priority(self):
        log = []
        registry = SubsystemRegistry()
        registry.register('sessions', _Recorder('sessions', log), dependencies=['users'])
        registry.register('users', _Recorder('users', log), dependencies=['storage'])
        registry.register('bus', _Recorder('bus', log), SubsystemPriority.LOW)
        registry.register('storage', _Recorder('storage', log), SubsystemPriority.CRITICAL)
        registry.initialize_all()
        self.assertEqual(log, ['storage', 'users', 'sessions', 'bus'])

        registry.start_all()
        self.assertEqual(registry.get('users').state, SubsystemState.RUNNING)
        registry.stop_all()
        self.assertEqual(registry.get('users').state, SubsystemState.STOPPED)

    def test_duplicates_and_lookup(self):
        registry = SubsystemRegistry()
        registry.register('storage', StorageManager())
        with self.assertRaises(ValueError):
            registry.register('storage', StorageManager())
        with self.assertRaises(KeyError):
            registry.get('vfs')
        with self.assertRaises(TypeError):
            registry.get_typed('storage', MessageBus)
        self.assertIsInstance(registry.get_typed('storage', StorageManager), StorageManager)

    def test_cycle(self):
        registry = SubsystemRegistry()
        registry.register('a', _Recorder('a', []), dependencies=['b'])
        registry.register('b', _Recorder('b', []), dependencies=['a'])
        with self.assertRaises(RuntimeError):
            registry.initialization_order()

    def test_list_subsystems(self):
        registry = SubsystemRegistry()
        registry.register('users', _Recorder('users', []), dependencies=['storage'])
        registry.register('storage', _Recorder('storage', []), SubsystemPriority.CRITICAL)
        registry.initialize_all()
        listing = {entry['name']: entry for entry in registry.list_subsystems()}
        self.assertEqual(listing['users']['dependencies'], ['storage'])
        self.assertEqual(listing['storage']['priority'], 'CRITICAL')
        self.assertEqual(listing['users']['state'], 'INITIALIZED')
        self.assertTrue(all(entry['healthy'] for entry in listing.values()))

    def test_failure_is_reported(self):
        registry = SubsystemRegistry()
        registry.register('bad', _Recorder('bad', [], fail=True))
        with self.assertRaises(SubsystemInitError):
            registry.initialize_all()
        self.assertEqual(registry.get('bad').state, SubsystemState.ERROR)


class TestCancelSignal(unittest.IsolatedAsyncioTestCase):
    """Cooperative cancellation and pausing."""

    async def test_cancel_interrupts_sleep(self):
        signal = CancelSignal()
        asyncio.get_running_loop().call_later(0.01, signal.cancel, "stop")
        with self.assertRaises(CommandCancelled):
            await signal.sleep(5)
        self.assertEqual(signal.reason, "stop")

    async def test_pause_holds_checkpoint(self):
        signal = CancelSignal()
        signal.pause()
        waiter = asyncio.ensure_future(signal.checkpoint())
        await asyncio.sleep(0.01)
        self.assertFalse(waiter.done())
        signal.resume()
        await asyncio.wait_for(waiter, 1.0)

    async def test_wait_for_timeout(self):
        with self.assertRaises(CommandCancelled):
            await CancelSignal().wait_for(asyncio.sleep(5), timeout=0.01)
        self.assertEqual(await CancelSignal().wait_for(asyncio.sleep(0, 'done')), 'done')

    async def test_step_yielder_checks_on_interval(self):
        signal = CancelSignal()
        yielder = StepYielder(2, signal)
        signal.cancel()
        await yielder.step()
        with self.assertRaises(CommandCancelled):
            await yielder.step()
        self.assertEqual(yielder.steps, 2)


class TestMessageBus(unittest.IsolatedAsyncioTestCase):
    """Per-job queues."""

    async def asyncSetUp(self):
        self.bus = MessageBus(max_messages=2)
        self.bus.initialize()
        self.bus.register_job(1)

    async def test_post_and_drain(self):
        self.bus.post_message(1, 'a')
        self.bus.post_message('1', {'b': 2})
        self.assertEqual(self.bus.pending(1), 2)
        self.assertEqual(self.bus.get_messages(1), ['a', {'b': 2}])
        self.assertEqual(self.bus.get_messages(1), [])

    async def test_errors(self):
        with self.assertRaises(MessageQueueError):
            self.bus.post_message(2, 'x')
        self.bus.post_message(1, 'a')
        self.bus.post_message(1, 'b')
        with self.assertRaises(MessageQueueError):
            self.bus.post_message(1, 'c')
        self.assertEqual(self.bus.get_messages(9), [])

    async def test_waiter_wakes_on_post(self):
        waiter = asyncio.ensure_future(self.bus.wait_for_message(1))
        await asyncio.sleep(0)
        self.bus.post_message(1, 'ping')
        self.assertEqual(await asyncio.wait_for(waiter, 1.0), ['ping'])

    async def test_waiter_sees_unregister(self):
        waiter = asyncio.ensure_future(self.bus.wait_for_message(1))
        await asyncio.sleep(0)
        self.bus.unregister_job(1)
        with self.assertRaises(MessageQueueError):
            await asyncio.wait_for(waiter, 1.0)
        self.assertFalse(self.bus.has_job(1))


if __name__ == '__main__':
    unittest.main()
