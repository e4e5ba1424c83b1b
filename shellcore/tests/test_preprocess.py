"""
Line preprocessing tests: variables, aliases, braces, substitution,
comments and assignments.
"""

import unittest

from shellcore.exceptions import BadArgumentsError
from shellcore.shell.preprocess import (
    Preprocessor,
    ScriptArguments,
    expand_braces,
    strip_comment,
)
from shellcore.users.session import AliasTable, Environment


class TestBraceExpansion(unittest.TestCase):
    """Brace groups in unquoted words."""

    def test_lists_and_ranges(self):
        """Comma lists, numeric ranges and letter ranges expand."""
        self.assertEqual(expand_braces('touch f{1..3}.txt'), 'touch f1.txt f2.txt f3.txt')
        self.assertEqual(expand_braces('echo {a,b}{x,y}'), 'echo ax ay bx by')
        self.assertEqual(expand_braces('echo {c..a}'), 'echo c b a')

    def test_quoted_and_plain_braces(self):
        """Quoted words and braces without a list stay as written."""
        self.assertEqual(expand_braces('echo "{a,b}" {x,y}z'), 'echo "{a,b}" xz yz')
        self.assertEqual(expand_braces('echo {single}'), 'echo {single}')


class TestComments(unittest.TestCase):
    """Script comment stripping."""

    def test_strip(self):
        """A # starting a word ends the line unless quoted."""
        self.assertEqual(strip_comment('echo a # note'), 'echo a')
        self.assertEqual(strip_comment('echo "# kept"'), 'echo "# kept"')
        self.assertEqual(strip_comment('echo a#b'), 'echo a#b')


class TestPreprocessor(unittest.IsolatedAsyncioTestCase):
    """The full preprocessing pipeline."""

    def setUp(self):
        self.env = Environment({'USER': 'Guest', 'HOME': '/home/Guest'})
        self.aliases = AliasTable({'ll': 'ls -la', 'lll': 'll -R'})
        self.captured = []

        async def capture(command):
            self.captured.append(command)
            return "out put\n"

        self.pre = Preprocessor(self.env, self.aliases, capture)

    async def test_variables(self):
        """$NAME and ${NAME} expand; unknown names become empty."""
        line = await self.pre.process('echo $HOME ${USER}x [$NOPE]')
        self.assertEqual(line.text, 'echo /home/Guest Guestx []')

    async def test_no_expansion_in_single_quotes(self):
        """Single-quoted text is left alone; double-quoted text expands."""
        line = await self.pre.process('echo \'$HOME\' "$HOME"')
        self.assertEqual(line.text, 'echo \'$HOME\' "/home/Guest"')

    async def test_escaped_dollar(self):
        """A backslash keeps the dollar sign literal."""
        line = await self.pre.process(r'echo \$HOME')
        self.assertEqual(line.text, r'echo \$HOME')

    async def test_alias_chain(self):
        """An alias whose body starts with another alias expands again."""
        self.assertEqual((await self.pre.process('ll /tmp')).text, 'ls -la /tmp')
        self.assertEqual((await self.pre.process('lll')).text, 'ls -la -R')
        self.assertEqual((await self.pre.process('echo ll')).text, 'echo ll')

    async def test_alias_self_reference(self):
        """A name already expanded on the line is not expanded again."""
        self.aliases.set('ls', 'ls -a')
        self.assertEqual((await self.pre.process('ls /home')).text, 'ls -a /home')
        self.aliases.set('ping', 'pong 1')
        self.aliases.set('pong', 'ping 2')
        self.assertEqual((await self.pre.process('ping')).text, 'ping 2 1')

    async def test_substitution_sees_script_arguments(self):
        """Positional parameters inside $(...) expand before the capture runs."""
        script = ScriptArguments('greet.sh', ['world'])
        line = await self.pre.process('echo $(echo $1 $HOME) \'$(echo $1)\'', script)
        self.assertEqual(self.captured, ['echo world $HOME'])
        self.assertEqual(line.text, "echo out put '$(echo $1)'")

    async def test_variables_before_aliases(self):
        """Variable expansion runs before alias lookup."""
        self.env.set('CMD', 'll')
        self.assertEqual((await self.pre.process('$CMD')).text, 'ls -la')

    async def test_assignment(self):
        """NAME=value lines are reported as assignments with quotes removed."""
        line = await self.pre.process('GREETING="hello world"')
        self.assertEqual(line.assignment, ('GREETING', 'hello world'))

    async def test_command_substitution(self):
        """$(...) and backticks are replaced by captured output."""
        line = await self.pre.process('echo $(whoami) `pwd`')
        self.assertEqual(self.captured, ['whoami', 'pwd'])
        self.assertEqual(line.text, 'echo out put out put')

    async def test_substitution_not_in_single_quotes(self):
        """Single quotes suppress command substitution."""
        line = await self.pre.process("echo '$(whoami)'")
        self.assertEqual(self.captured, [])
        self.assertEqual(line.text, "echo '$(whoami)'")

    async def test_unterminated_substitution(self):
        """An unclosed $( is a bad-arguments error."""
        with self.assertRaises(BadArgumentsError):
            await self.pre.process('echo $(whoami')

    async def test_script_arguments(self):
        """Positional parameters expand only inside scripts."""
        script = ScriptArguments('greet.sh', ['a', 'b'])
        line = await self.pre.process('echo $0 $1 $2 $3 $# $@ # comment', script)
        self.assertEqual(line.text, 'echo greet.sh a b  2 a b')
        self.assertEqual((await self.pre.process('echo $1')).text, 'echo $1')


if __name__ == '__main__':
    unittest.main()
