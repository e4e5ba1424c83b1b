"""
Leaf command tests: filesystem, text, environment and system commands.
"""

import unittest

from shellcore.shell.command import (
    ArgValidation,
    FlagDefinition,
    parse_flags,
    parse_numeric_arg,
    validate_arguments,
)
from shellcore.tests.helpers import KernelTestCase


class TestFlagParsing(unittest.TestCase):
    """parse_flags and parse_numeric_arg."""

    DEFINITIONS = (
        FlagDefinition('long', '-l', '--long'),
        FlagDefinition('all', '-a', '--all'),
        FlagDefinition('lines', '-n', '--lines', takes_value=True),
    )

    def test_combined_and_values(self):
        flags, args = parse_flags(['-la', '-n', '5', 'x'], self.DEFINITIONS)
        self.assertEqual((flags['long'], flags['all'], flags['lines']), (True, True, '5'))
        self.assertEqual(args, ['x'])

    def test_attached_value_and_long_form(self):
        flags, _ = parse_flags(['-n3'], self.DEFINITIONS)
        self.assertEqual(flags['lines'], '3')
        flags, _ = parse_flags(['--lines', '7', '--all'], self.DEFINITIONS)
        self.assertEqual((flags['lines'], flags['all']), ('7', True))

    def test_unknown_and_terminator(self):
        flags, args = parse_flags(['-STOP', '--', '-l', '1'], self.DEFINITIONS)
        self.assertFalse(flags['long'])
        self.assertEqual(args, ['-STOP', '-l', '1'])

    def test_numeric(self):
        self.assertEqual(parse_numeric_arg('12', min_value=1), 12)
        for bad in ('0', '-1', 'abc', '1.5'):
            with self.assertRaises(ValueError, msg=bad):
                parse_numeric_arg(bad, min_value=1)

    def test_arg_validation(self):
        self.assertIsNone(validate_arguments(['a'], ArgValidation(exact=1)))
        self.assertIsNotNone(validate_arguments([], ArgValidation(exact=1)))
        self.assertIsNotNone(validate_arguments(['a', 'b'], ArgValidation(max=1)))


class TestFilesystemCommands(KernelTestCase):
    """ls, cd, mkdir, rm, cp, mv, ln, chmod, chown and fsck."""

    async def test_ls_one_column(self):
        await self.run_line('mkdir sub && touch b a .hidden')
        await self.run_line('ls -1')
        self.assertEqual(self.stdout(), 'a\nb\nsub/')
        await self.run_line('ls -1a')
        self.assertEqual(self.stdout(), '.hidden\na\nb\nsub/')
        await self.run_line('ls -1r')
        self.assertEqual(self.stdout(), 'sub/\nb\na')

    async def test_ls_long(self):
        await self.run_line('echo hello > f')
        await self.run_line('ls -l')
        lines = self.stdout().split('\n')
        self.assertEqual(lines[0], 'total 1')
        fields = lines[1].split()
        self.assertEqual(fields[0], '-rw-r--r--')
        self.assertEqual(fields[2:5], ['Guest', 'Guest', '6'])
        self.assertEqual(fields[-1], 'f')

    async def test_ls_long_symlink(self):
        await self.run_line('ln -s /etc/sudoers link')
        await self.run_line('ls -l link')
        self.assertTrue(self.stdout().startswith('lrwxrwxrwx'))
        self.assertTrue(self.stdout().endswith('link -> /etc/sudoers'))

    async def test_ls_recursive(self):
        await self.run_line('mkdir -p top/inner && touch top/inner/leaf')
        await self.run_line('ls -R top', interactive=False)
        output = self.stdout()
        self.assertIn('inner/', output)
        self.assertIn('top/inner:', output)
        self.assertIn('leaf', output)

    async def test_cd_and_pwd(self):
        await self.run_line('cd /etc && pwd')
        self.assertEqual(self.stdout(), '/etc')
        await self.run_line('cd .. && cd && pwd')
        self.assertEqual(self.stdout(), '/home/Guest')

    async def test_cd_errors(self):
        await self.run_line('cd /etc/sudoers')
        self.assertIn('Not a directory', self.stderr())
        await self.run_line('cd /nope')
        self.assertIn('No such file or directory', self.stderr())

    async def test_mkdir_errors(self):
        await self.run_line('mkdir d')
        result = await self.run_line('mkdir d')
        self.assertFalse(result.success)
        self.assertTrue(self.stderr().startswith("mkdir: cannot create directory 'd':"))
        result = await self.run_line('mkdir /etc/x')
        self.assertIn('Permission denied', self.stderr())

    async def test_rm(self):
        await self.run_line('mkdir d && touch d/f')
        result = await self.run_line('rm d')
        self.assertFalse(result.success)
        self.assertEqual(self.output.channel('stderr'), [
            "rm: cannot remove 'd': Is a directory.",
            "Use the '-r' flag to remove directories and their contents.",
        ])
        await self.run_line('rm -r d')
        self.assertIsNone(self.vfs.get_node('/home/Guest/d'))

    async def test_rm_missing_and_force(self):
        result = await self.run_line('rm ghost')
        self.assertEqual(self.stderr(), "rm: cannot remove 'ghost': No such file or directory")
        self.assertFalse(result.success)
        self.assertTrue((await self.run_line('rm -f ghost')).success)

    async def test_rm_interactive(self):
        await self.run_line('touch keep gone')
        self.modal.queue_answer('no')
        await self.run_line('rm -i keep')
        self.assertEqual(self.stdout(), "Removal of 'keep' cancelled.")
        self.assertIsNotNone(self.vfs.get_node('/home/Guest/keep'))
        self.modal.queue_answer('YES')
        await self.run_line('rm -i gone')
        self.assertIsNone(self.vfs.get_node('/home/Guest/gone'))

    async def test_rm_needs_write_on_parent(self):
        result = await self.run_line('rm /etc/sudoers')
        self.assertFalse(result.success)
        self.assertEqual(self.stderr(), "rm: cannot remove '/etc/sudoers': Permission denied")

    async def test_cp_and_mv(self):
        await self.run_line('echo data > a')
        await self.run_line('cp a b && mv a c')
        self.assertEqual(self.file_content('/home/Guest/b'), 'data\n')
        self.assertEqual(self.file_content('/home/Guest/c'), 'data\n')
        self.assertIsNone(self.vfs.get_node('/home/Guest/a'))

    async def test_cp_directory_needs_r(self):
        await self.run_line('mkdir d && touch d/f')
        result = await self.run_line('cp d e')
        self.assertFalse(result.success)
        self.assertIn("omitting directory 'd'", self.stderr())
        await self.run_line('cp -r d e')
        self.assertIsNotNone(self.vfs.get_node('/home/Guest/e/f'))

    async def test_ln_requires_s(self):
        result = await self.run_line('ln a b')
        self.assertEqual(self.stderr(), 'ln: only symbolic links (-s) are supported.')
        self.assertFalse(result.success)

    async def test_chmod(self):
        await self.run_line('touch f && chmod 750 f')
        self.assertEqual(self.vfs.get_node('/home/Guest/f').mode, 0o750)
        result = await self.run_line('chmod 99 f')
        self.assertFalse(result.success)
        self.assertEqual(self.stderr(), "chmod: invalid mode: '99' (must be 3 or 4 octal digits)")

    async def test_chmod_symlink_not_dereferenced(self):
        await self.run_line('touch target && ln -s target link && chmod 700 link')
        self.assertEqual(self.vfs.get_node('/home/Guest/link').mode, 0o700)
        self.assertEqual(self.vfs.get_node('/home/Guest/target').mode, 0o644)

    async def test_chmod_other_users_file(self):
        result = await self.run_line('chmod 777 /etc/sudoers')
        self.assertFalse(result.success)
        self.assertEqual(self.vfs.get_node('/etc/sudoers').mode, 0o440)

    async def test_chown(self):
        await self.run_line('touch f')
        result = await self.run_line('chown root f')
        self.assertFalse(result.success)
        await self.become_root()
        await self.run_line('chown root /home/Guest/f')
        self.assertEqual(self.vfs.get_node('/home/Guest/f').owner, 'root')
        result = await self.run_line('chown nobody /home/Guest/f')
        self.assertFalse(result.success)
        self.assertIn('chown: invalid user', self.stderr())

    async def test_fsck(self):
        result = await self.run_line('fsck')
        self.assertEqual(
            self.stderr(), 'fsck: permission denied. You must be root to run this command.'
        )
        self.assertFalse(result.success)

        await self.become_root()
        await self.run_line('fsck')
        self.assertEqual(self.stdout(), 'fsck: no issues found.')

        await self.run_line('ln -s /gone /tmp/dangling')
        await self.run_line('fsck --repair')
        self.assertIn('fsck: found 1 issue(s):', self.stdout())
        self.assertIsNone(self.vfs.get_node('/tmp/dangling'))


class TestTextCommands(KernelTestCase):
    """echo, cat, grep, wc and head."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.vfs.create_or_update_file(
            '/home/Guest/fruit', 'apple\nBanana\ncherry\napricot\n', 'Guest', 'Guest'
        )

    async def test_echo_escapes(self):
        await self.run_line('echo -e "a\\tb\\nc"')
        self.assertEqual(self.stdout(), 'a\tb\nc')
        await self.run_line('echo "a\\tb"')
        self.assertEqual(self.stdout(), 'a\\tb')

    async def test_cat_numbered(self):
        await self.run_line('cat -n fruit')
        self.assertEqual(self.stdout().split('\n')[1], '     2  Banana')

    async def test_cat_several_files(self):
        await self.run_line('echo x > other')
        await self.run_line('cat fruit other')
        self.assertEqual(self.stdout().split('\n')[-1], 'x')

    async def test_cat_missing_file(self):
        result = await self.run_line('cat fruit nope')
        self.assertFalse(result.success)
        self.assertIn('cat: One or more files could not be read.', self.stderr())

    async def test_grep(self):
        await self.run_line('grep ap fruit')
        self.assertEqual(self.stdout(), 'apple\napricot')
        await self.run_line('grep -in b fruit')
        self.assertEqual(self.stdout(), '2:Banana')
        await self.run_line('grep -vc ap fruit')
        self.assertEqual(self.stdout(), '2')

    async def test_grep_from_pipe(self):
        await self.run_line('cat fruit | grep rr')
        self.assertEqual(self.stdout(), 'cherry')

    async def test_grep_bad_pattern(self):
        result = await self.run_line('grep "(" fruit')
        self.assertFalse(result.success)
        self.assertIn("grep: invalid pattern '('", self.stderr())

    async def test_wc(self):
        await self.run_line('wc fruit')
        self.assertEqual(self.stdout().split(), ['4', '4', '28', 'fruit'])
        await self.run_line('wc -l fruit fruit')
        self.assertEqual(self.stdout().split('\n')[-1].split(), ['8', 'total'])

    async def test_head(self):
        await self.run_line('head -n 2 fruit')
        self.assertEqual(self.stdout(), 'apple\nBanana')
        result = await self.run_line('head -n x fruit')
        self.assertFalse(result.success)


class TestSessionCommands(KernelTestCase):
    """alias, set, history, help and clear."""

    async def test_alias_listing(self):
        await self.run_line("alias ll='ls -la'")
        await self.run_line('alias ll')
        self.assertEqual(self.stdout(), "alias ll='ls -la'")
        await self.run_line('alias')
        self.assertIn("alias ll='ls -la'", self.stdout().split('\n'))
        result = await self.run_line('alias nope')
        self.assertEqual(self.stderr(), 'alias: nope: not found')
        self.assertFalse(result.success)

    async def test_unalias(self):
        await self.run_line("alias ll='ls -la'")
        await self.run_line('unalias ll')
        self.assertIsNone(self.sessions.current.aliases.get('ll'))
        await self.run_line('unalias ll')
        self.assertEqual(self.stderr(), 'unalias: no such alias: ll')

    async def test_set_and_unset(self):
        await self.run_line('set COLOR=blue')
        await self.run_line('set SHAPE "round thing"')
        await self.run_line('echo $COLOR $SHAPE')
        self.assertEqual(self.stdout(), 'blue round thing')
        await self.run_line('set COLOR')
        self.assertEqual(self.stdout(), 'COLOR=blue')
        await self.run_line('unset COLOR')
        self.assertFalse(self.sessions.current.env.has('COLOR'))

    async def test_set_invalid_name(self):
        result = await self.run_line('set 1X=bad')
        self.assertFalse(result.success)
        self.assertIn('Invalid variable name', self.stderr())

    async def test_history(self):
        await self.run_line('echo one')
        await self.run_line('history')
        self.assertEqual(self.stdout(), '    1  echo one\n    2  history')
        await self.run_line('history -c')
        self.assertEqual(self.sessions.current.history.entries(), [])

    async def test_help(self):
        await self.run_line('help')
        lines = self.stdout().split('\n')
        self.assertEqual(lines[0], 'Available commands:')
        self.assertTrue(any(line.split()[:1] == ['grep'] for line in lines[1:] if line))
        await self.run_line('help head')
        self.assertTrue(self.stdout().startswith('Usage: head'))
        result = await self.run_line('help nothing')
        self.assertFalse(result.success)

    async def test_clear(self):
        await self.run_line('clear')
        self.assertEqual(self.output.clear_count, 1)

    async def test_argument_count_checked(self):
        result = await self.run_line('pwd extra')
        self.assertFalse(result.success)
        self.assertTrue(self.stderr().startswith('pwd:'))


if __name__ == '__main__':
    unittest.main()
