"""
Users, groups and the session stack.
"""

import unittest

from shellcore.exceptions import (
    AuthenticationError,
    GroupInUseError,
    InvalidUsernameError,
    UserExistsError,
)
from shellcore.tests.helpers import ROOT_PASSWORD, KernelTestCase


class TestUserRegistry(KernelTestCase):
    """Account records and passwords."""

    async def test_defaults(self):
        users = self.kernel.users
        self.assertTrue(users.user_exists('root'))
        self.assertTrue(users.user_exists('Guest'))
        self.assertFalse(users.has_password('Guest'))
        self.assertTrue(users.verify_password('root', ROOT_PASSWORD))
        self.assertIsNone(users.generated_root_password)

    async def test_register(self):
        home = self.kernel.users.register('alice', 'pw')
        self.assertEqual(home, '/home/alice')
        self.assertEqual(self.vfs.get_node(home).owner, 'alice')
        self.assertEqual(self.kernel.users.get_primary_group('alice'), 'alice')
        self.assertIn('alice', self.kernel.groups.members('alice'))
        with self.assertRaises(UserExistsError):
            self.kernel.users.register('alice')

    async def test_username_rules(self):
        for name in ('', 'has space', 'Root', 'ab', 'x' * 64):
            with self.assertRaises(InvalidUsernameError, msg=name):
                self.kernel.users.validate_username(name)

    async def test_change_password(self):
        users = self.kernel.users
        users.register('alice', 'old')
        with self.assertRaises(AuthenticationError):
            users.change_password('alice', 'alice', 'wrong', 'new')
        with self.assertRaises(AuthenticationError):
            users.change_password('alice', 'root', 'old', 'new')
        users.change_password('alice', 'alice', 'old', 'new')
        self.assertTrue(users.verify_password('alice', 'new'))
        users.change_password('root', 'alice', None, 'reset')
        self.assertTrue(users.verify_password('alice', 'reset'))

    async def test_generated_root_password(self):
        """Without a configured password, one is generated and usable."""
        await self.kernel.shutdown(timeout=1.0)
        self.backend.clear()
        config = self.kernel.config
        config.users.root_password = None
        self.kernel = self.boot(config)
        generated = self.kernel.users.generated_root_password
        self.assertTrue(generated)
        self.assertTrue(self.kernel.users.verify_password('root', generated))


class TestSessionStack(KernelTestCase):
    """su, logout and login."""

    async def test_su_and_logout_restore_state(self):
        """Each logout returns to the session below with its state."""
        self.kernel.users.register('alice')
        await self.run_line('cd /tmp')
        await self.run_line('MARK=guest')

        await self.run_line(f'su root {ROOT_PASSWORD}')
        self.assertEqual(self.sessions.current_user, 'root')
        self.assertEqual(self.sessions.current.cwd, '/home/root')
        await self.run_line('cd /etc')

        await self.run_line('su alice')
        self.assertEqual(self.sessions.stack_users(), ['Guest', 'root', 'alice'])

        await self.run_line('logout')
        self.assertEqual(self.stdout(), 'Logged out from alice. Now logged in as root.')
        self.assertEqual(self.sessions.current.cwd, '/etc')

        await self.run_line('logout')
        self.assertEqual(self.sessions.current_user, 'Guest')
        self.assertEqual(self.sessions.current.cwd, '/tmp')
        self.assertEqual(self.sessions.current.env.get('MARK'), 'guest')
        self.assertIn('MARK=guest', self.sessions.current.history.entries())

    async def test_last_session_cannot_logout(self):
        result = await self.run_line('logout')
        self.assertTrue(result.success)
        self.assertIn('This is the only active session.', self.stdout())
        self.assertEqual(self.sessions.depth, 1)

    async def test_su_clears_screen(self):
        await self.run_line(f'su root {ROOT_PASSWORD}')
        self.assertEqual(self.output.clear_count, 1)

    async def test_su_prompts_for_password(self):
        self.modal.queue_answer(ROOT_PASSWORD)
        result = await self.run_line('su')
        self.assertTrue(result.success, self.stderr())
        self.assertEqual(self.sessions.current_user, 'root')
        self.assertEqual(len(self.modal.requests), 1)

    async def test_su_wrong_password(self):
        result = await self.run_line('su root nope')
        self.assertFalse(result.success)
        self.assertEqual(self.stderr(), 'su: Authentication failure.')
        self.assertEqual(self.sessions.current_user, 'Guest')

    async def test_su_cancelled_prompt(self):
        self.modal.queue_answer(confirmed=False)
        result = await self.run_line('su root')
        self.assertEqual(result.exit_code, 130)
        self.assertEqual(self.sessions.current_user, 'Guest')

    async def test_su_without_password_needed(self):
        """A user without a password needs none; supplying one is an error."""
        self.kernel.users.register('alice')
        await self.become_root()
        self.assertTrue((await self.run_line('su alice')).success)
        self.assertEqual(self.modal.requests, [])
        await self.run_line('logout')
        result = await self.run_line('su alice secret')
        self.assertFalse(result.success)
        self.assertIn('does not require a password', self.stderr())

    async def test_su_to_self(self):
        await self.run_line('su Guest')
        self.assertEqual(self.stdout(), "Already user 'Guest'.")
        self.assertEqual(self.sessions.depth, 1)

    async def test_login_replaces_stack(self):
        await self.become_root()
        self.kernel.users.register('alice', 'pw')
        await self.run_line('login alice pw')
        self.assertEqual(self.sessions.stack_users(), ['alice'])
        await self.run_line('whoami')
        self.assertEqual(self.stdout(), 'alice')

    async def test_login_to_stacked_user_refused(self):
        await self.become_root()
        result = await self.run_line('login Guest')
        self.assertFalse(result.success)
        self.assertIn('is already here', self.stderr())

    async def test_session_state_survives_reboot(self):
        await self.run_line('cd /tmp')
        await self.run_line('alias hi=\'echo hi\'')
        await self.kernel.shutdown(timeout=1.0)
        self.kernel = self.boot()
        self.assertEqual(self.sessions.current.cwd, '/tmp')
        self.assertEqual(self.sessions.current.aliases.get('hi'), 'echo hi')


class TestAccountCommands(KernelTestCase):
    """useradd, passwd, userdel and whoami."""

    async def test_useradd_prompts_twice(self):
        self.modal.queue_answer('pw')
        self.modal.queue_answer('pw')
        result = await self.run_line('useradd alice')
        self.assertTrue(result.success, self.stderr())
        self.assertEqual(
            self.stdout(), "User 'alice' registered. Home directory created at /home/alice."
        )
        self.assertTrue(self.kernel.users.verify_password('alice', 'pw'))

    async def test_useradd_mismatch(self):
        self.modal.queue_answer('one')
        self.modal.queue_answer('two')
        result = await self.run_line('useradd alice')
        self.assertFalse(result.success)
        self.assertEqual(self.stderr(), 'useradd: Passwords do not match.')
        self.assertFalse(self.kernel.users.user_exists('alice'))

    async def test_useradd_existing(self):
        self.kernel.users.register('alice')
        result = await self.run_line('useradd alice')
        self.assertFalse(result.success)
        self.assertEqual(self.stderr(), "useradd: User 'alice' already exists.")

    async def test_useradd_reserved_name(self):
        result = await self.run_line('useradd admin')
        self.assertFalse(result.success)
        self.assertIn('This username is reserved.', self.stderr())

    async def test_passwd_own(self):
        self.modal.queue_answer('first')
        self.modal.queue_answer('first')
        await self.run_line('passwd')
        self.assertEqual(self.stdout(), "Password for 'Guest' updated successfully.")

        self.modal.queue_answer('first')
        self.modal.queue_answer('second')
        self.modal.queue_answer('second')
        await self.run_line('passwd')
        self.assertTrue(self.kernel.users.verify_password('Guest', 'second'))

    async def test_passwd_other_user_denied(self):
        result = await self.run_line('passwd root')
        self.assertFalse(result.success)
        self.assertEqual(self.stderr(), 'passwd: You can only change your own password.')

    async def test_userdel(self):
        self.kernel.users.register('alice')
        self.kernel.groups.create_group('devs')
        self.kernel.groups.add_user_to_group('alice', 'devs')
        await self.become_root()
        self.modal.queue_answer('YES')
        result = await self.run_line('userdel -r alice')
        self.assertTrue(result.success, self.stderr())
        self.assertFalse(self.kernel.users.user_exists('alice'))
        self.assertIsNone(self.vfs.get_node('/home/alice'))
        self.assertNotIn('alice', self.kernel.groups.members('devs'))

    async def test_userdel_requires_root(self):
        self.kernel.users.register('alice')
        result = await self.run_line('userdel alice')
        self.assertEqual(self.stderr(), 'userdel: only root can remove users.')
        self.assertFalse(result.success)


class TestGroups(KernelTestCase):
    """Group registry and group commands."""

    async def test_memberships(self):
        groups = self.kernel.groups
        groups.create_group('devs')
        self.assertTrue(groups.add_user_to_group('Guest', 'devs'))
        self.assertFalse(groups.add_user_to_group('Guest', 'devs'))
        self.assertEqual(groups.get_groups_for_user('Guest')[0], 'Guest')
        self.assertIn('devs', groups.get_groups_for_user('Guest'))
        self.assertTrue(groups.remove_user_from_group('Guest', 'devs'))
        self.assertNotIn('devs', groups.get_groups_for_user('Guest'))

    async def test_primary_group_cannot_be_deleted(self):
        with self.assertRaises(GroupInUseError):
            self.kernel.groups.delete_group('Guest')

    async def test_group_permissions_apply(self):
        """Group members get the group class of a node's mode."""
        await self.become_root()
        await self.run_line('groupadd devs')
        await self.run_line('echo secret > /tmp/plan')
        await self.run_line('chgrp devs /tmp/plan')
        await self.run_line('chmod 640 /tmp/plan')
        await self.run_line('logout')

        result = await self.run_line('cat /tmp/plan')
        self.assertFalse(result.success)

        self.kernel.groups.add_user_to_group('Guest', 'devs')
        await self.run_line('cat /tmp/plan')
        self.assertEqual(self.stdout(), 'secret')

    async def test_group_commands(self):
        result = await self.run_line('groupadd devs')
        self.assertEqual(self.stderr(), 'groupadd: only root can add groups.')
        self.assertFalse(result.success)

        await self.become_root()
        await self.run_line('groupadd devs')
        self.assertEqual(self.stdout(), "Group 'devs' created.")
        await self.run_line('usermod -aG devs Guest')
        self.assertEqual(self.stdout(), "Added user 'Guest' to group 'devs'.")
        await self.run_line('groups Guest')
        self.assertEqual(self.stdout(), 'Guest devs')
        await self.run_line('usermod -rG devs Guest')
        await self.run_line('groupdel devs')
        self.assertEqual(self.stdout(), "Group 'devs' deleted.")
        self.assertFalse(self.kernel.groups.group_exists('devs'))

    async def test_tables_survive_reboot(self):
        self.kernel.users.register('alice', 'pw')
        self.kernel.groups.create_group('devs')
        self.kernel.groups.add_user_to_group('alice', 'devs')
        users = self.kernel.users.to_dict()
        groups = self.kernel.groups.to_dict()

        await self.kernel.shutdown(timeout=1.0)
        self.kernel = self.boot()
        self.assertEqual(self.kernel.users.to_dict(), users)
        self.assertEqual(self.kernel.groups.to_dict(), groups)
        self.assertTrue(self.kernel.users.verify_password('alice', 'pw'))


if __name__ == '__main__':
    unittest.main()
