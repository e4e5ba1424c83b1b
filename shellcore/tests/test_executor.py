"""
Executor tests: end-to-end command lines, redirection, joiners,
exit codes, substitution and scripts.
"""

import unittest

from shellcore.tests.helpers import KernelTestCase


class TestCommandLines(KernelTestCase):
    """Whole lines run through the executor."""

    async def test_redirect_then_cat(self):
        """Output written by > can be read back by the next command."""
        result = await self.run_line('echo hello > /tmp/a && cat /tmp/a')
        self.assertTrue(result.success)
        self.assertEqual(self.stdout(), 'hello')
        self.assertEqual(self.file_content('/tmp/a'), 'hello\n')

    async def test_mkdir_touch_ls(self):
        """Directories and files created in one line are listed."""
        await self.run_line('mkdir -p /home/Guest/d && touch /home/Guest/d/f && ls /home/Guest/d')
        self.assertIn('f', self.stdout())

    async def test_quoting(self):
        """Quoted arguments keep their inner spacing."""
        await self.run_line('echo "a b" \'c  d\' unquoted')
        self.assertEqual(self.stdout(), 'a b c  d unquoted')

    async def test_and_then_semicolon(self):
        """; runs its right side whatever happened before."""
        await self.run_line('false && echo X; echo Y')
        self.assertEqual(self.stdout(), 'Y')

    async def test_owner_chmod_then_denied(self):
        """An owner may chmod 000 but then cannot read the file."""
        await self.run_line('touch /home/Guest/x')
        result = await self.run_line('chmod 000 /home/Guest/x && cat /home/Guest/x')
        self.assertFalse(result.success)
        self.assertNotEqual(result.exit_code, 0)
        self.assertEqual(self.vfs.get_node('/home/Guest/x').mode, 0)
        self.assertIn('Permission denied', self.stderr())

    async def test_unmatched_glob_passes_through(self):
        """A pattern matching nothing reaches the command literally."""
        result = await self.run_line('ls *.nomatch')
        self.assertFalse(result.success)
        self.assertIn("'*.nomatch'", self.stderr())
        self.assertIn('No such file or directory', self.stderr())

    async def test_glob_expansion(self):
        """A matching pattern expands to sorted paths."""
        await self.run_line('touch /tmp/b.txt /tmp/a.txt /tmp/c.md')
        await self.run_line('echo /tmp/*.txt')
        self.assertEqual(self.stdout(), '/tmp/a.txt /tmp/b.txt')


class TestRedirection(KernelTestCase):
    """Output and input redirection."""

    async def test_overwrite_and_append(self):
        """> replaces a file and >> appends to it."""
        await self.run_line('echo X > /tmp/f; echo Y >> /tmp/f')
        self.assertEqual(self.file_content('/tmp/f'), 'X\nY\n')
        await self.run_line('echo X > /tmp/g; echo Y > /tmp/g')
        self.assertEqual(self.file_content('/tmp/g'), 'Y\n')

    async def test_redirect_produces_no_stdout(self):
        """Redirected output is not shown."""
        await self.run_line('echo quiet > /tmp/q')
        self.assertEqual(self.stdout(), '')

    async def test_redirect_onto_directory(self):
        """Writing onto a directory fails without touching it."""
        result = await self.run_line('echo X > /tmp')
        self.assertFalse(result.success)
        self.assertIn('/tmp: Is a directory', self.stderr())

    async def test_redirect_into_missing_directory(self):
        """Parent directories are never created by a redirect."""
        result = await self.run_line('echo X > /tmp/nope/f')
        self.assertFalse(result.success)
        self.assertIsNone(self.vfs.get_node('/tmp/nope'))

    async def test_input_redirect(self):
        """< feeds a file to the first command's stdin."""
        await self.run_line('echo one > /tmp/in; echo two >> /tmp/in')
        await self.run_line('cat < /tmp/in')
        self.assertEqual(self.stdout(), 'one\ntwo')

    async def test_pipeline_matches_temp_files(self):
        """A pipe behaves like a round trip through a temporary file."""
        await self.run_line('echo a b c | wc -w')
        piped = self.stdout()
        await self.run_line('echo a b c > /tmp/t && wc -w < /tmp/t')
        self.assertEqual(self.stdout(), piped)

    async def test_pipeline_stops_at_first_failure(self):
        """A failing segment ends the pipeline with its error."""
        result = await self.run_line('cat /missing | wc -l > /tmp/count')
        self.assertFalse(result.success)
        self.assertIsNone(self.vfs.get_node('/tmp/count'))


class TestJoiners(KernelTestCase):
    """Short-circuit evaluation of && and ||."""

    async def test_short_circuit(self):
        """Skipped pipelines never run."""
        await self.run_line('false && touch /tmp/and')
        await self.run_line('true || touch /tmp/or')
        self.assertIsNone(self.vfs.get_node('/tmp/and'))
        self.assertIsNone(self.vfs.get_node('/tmp/or'))

        await self.run_line('false || true && touch /tmp/both')
        self.assertIsNotNone(self.vfs.get_node('/tmp/both'))

    async def test_last_result_is_returned(self):
        """The result of the last pipeline that ran is the line's result."""
        self.assertFalse((await self.run_line('true; false')).success)
        self.assertTrue((await self.run_line('false || true')).success)


class TestExitCodes(KernelTestCase):
    """Exit codes of the error families."""

    async def test_command_not_found(self):
        result = await self.run_line('frobnicate')
        self.assertEqual(result.exit_code, 127)
        self.assertIn('frobnicate', self.stderr())

    async def test_syntax_error(self):
        result = await self.run_line('echo "open')
        self.assertEqual(result.exit_code, 2)
        result = await self.run_line('ls |')
        self.assertEqual(result.exit_code, 2)

    async def test_command_names_are_case_insensitive(self):
        await self.run_line('ECHO hi')
        self.assertEqual(self.stdout(), 'hi')


class TestEnvironment(KernelTestCase):
    """Assignments, aliases, history and substitution."""

    async def test_assignment_then_expansion(self):
        """NAME=value sets a variable the next line can read."""
        await self.run_line('GREETING="hi there"')
        await self.run_line('echo $GREETING')
        self.assertEqual(self.stdout(), 'hi there')

    async def test_default_variables(self):
        await self.run_line('echo $USER $HOME')
        self.assertEqual(self.stdout(), 'Guest /home/Guest')

    async def test_alias(self):
        await self.run_line("alias say='echo said'")
        await self.run_line('say it')
        self.assertEqual(self.stdout(), 'said it')

    async def test_alias_chain(self):
        """An alias whose body starts with another alias expands through it."""
        await self.run_line("alias greet='echo hi'")
        await self.run_line('alias hello=greet')
        await self.run_line('hello there')
        self.assertEqual(self.stdout(), 'hi there')

    async def test_command_substitution(self):
        await self.run_line('echo I am $(whoami)')
        self.assertEqual(self.stdout(), 'I am Guest')

    async def test_history_records_interactive_lines(self):
        await self.run_line('echo one')
        await self.run_line('echo two', interactive=False)
        self.assertEqual(self.sessions.current.history.entries(), ['echo one'])

    async def test_suppressed_output_is_returned(self):
        """With output suppressed, the result carries every pipeline's output."""
        result = await self.run_line('echo a; echo b', suppress_output=True)
        self.assertEqual(result.output, 'a\nb')
        self.assertEqual(self.stdout(), '')


class TestScripts(KernelTestCase):
    """Script files run with run."""

    def write_script(self, path, lines, mode=0o755):
        self.vfs.create_or_update_file(
            path, '\n'.join(lines) + '\n', 'Guest', 'Guest', mode=mode
        )

    async def test_run_with_arguments(self):
        """Positional parameters are bound for the script's lines."""
        self.write_script('/home/Guest/greet.sh', [
            '# greeting',
            'echo hello $1 from $0 > /home/Guest/out',
            'echo $# >> /home/Guest/out',
        ])
        result = await self.run_line('run /home/Guest/greet.sh world')
        self.assertTrue(result.success, self.stderr())
        self.assertEqual(
            self.file_content('/home/Guest/out'),
            'hello world from /home/Guest/greet.sh\n1\n'
        )

    async def test_substitution_sees_arguments(self):
        """$(...) inside a script reads the script's positional parameters."""
        self.write_script('/home/Guest/sub.sh', ['echo $(echo $1) > /home/Guest/out'])
        result = await self.run_line('run /home/Guest/sub.sh world')
        self.assertTrue(result.success, self.stderr())
        self.assertEqual(self.file_content('/home/Guest/out'), 'world\n')

    async def test_needs_execute_permission(self):
        self.write_script('/home/Guest/plain.sh', ['echo hi'], mode=0o644)
        result = await self.run_line('run /home/Guest/plain.sh')
        self.assertFalse(result.success)
        self.assertIn('Permission denied', self.stderr())

    async def test_script_environment_is_scoped(self):
        """Variables set in a script do not leak into the session."""
        self.write_script('/home/Guest/vars.sh', ['INNER=1'])
        await self.run_line('run /home/Guest/vars.sh')
        self.assertFalse(self.sessions.current.env.has('INNER'))

    async def test_strict_mode(self):
        """-s stops at the first failing line."""
        self.write_script('/home/Guest/strict.sh', [
            'false',
            'touch /home/Guest/after',
        ])
        result = await self.run_line('run -s /home/Guest/strict.sh')
        self.assertFalse(result.success)
        self.assertIn('Error on line 1', self.stderr())
        self.assertIsNone(self.vfs.get_node('/home/Guest/after'))

        await self.run_line('run /home/Guest/strict.sh')
        self.assertIsNotNone(self.vfs.get_node('/home/Guest/after'))

    async def test_step_limit(self):
        self.kernel.config.shell.max_script_steps = 3
        self.write_script('/home/Guest/long.sh', ['true'] * 5)
        result = await self.run_line('run /home/Guest/long.sh')
        self.assertFalse(result.success)
        self.assertIn('Maximum script execution steps (3) exceeded.', self.stderr())

    async def test_depth_limit(self):
        """A script that runs itself stops at the nesting limit."""
        self.kernel.config.shell.max_script_depth = 4
        self.write_script('/home/Guest/loop.sh', ['run -s /home/Guest/loop.sh'])
        result = await self.run_line('run -s /home/Guest/loop.sh')
        self.assertFalse(result.success)
        self.assertEqual(self.executor.script_depth, 0)
        self.assertIn('Maximum script nesting depth (4) exceeded.', self.stderr())

    async def test_prompts_answered_by_following_lines(self):
        """A prompt inside a script consumes the next line as its answer."""
        await self.become_root()
        self.vfs.create_or_update_file(
            '/home/root/add.sh',
            'useradd alice\nsecret\nsecret\necho done > /home/root/done\n',
            'root', 'root', mode=0o700
        )
        result = await self.run_line('run /home/root/add.sh')
        self.assertTrue(result.success, self.stderr())
        self.assertTrue(self.kernel.users.user_exists('alice'))
        self.assertTrue(self.kernel.users.verify_password('alice', 'secret'))
        self.assertEqual(self.file_content('/home/root/done'), 'done\n')
        self.assertEqual(self.modal.requests, [])


if __name__ == '__main__':
    unittest.main()
