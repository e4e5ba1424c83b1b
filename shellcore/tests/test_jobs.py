"""
Background job tests: job table, signals, interrupts and messages.
"""

import asyncio
import unittest

from shellcore.shell.jobs import JobSignal, JobStatus, JobTable
from shellcore.tests.helpers import KernelTestCase


class TestJobTable(unittest.IsolatedAsyncioTestCase):
    """The job table on its own."""

    async def test_ids_are_monotonic(self):
        table = JobTable()
        first = table.create('delay 10', 'Guest')
        second = table.create('delay 10', 'Guest')
        table.finish(first.job_id, 0)
        table.reap()
        third = table.create('delay 10', 'Guest')
        self.assertEqual([first.job_id, second.job_id, third.job_id], [1, 2, 3])

    async def test_signals(self):
        table = JobTable()
        job = table.create('delay 10', 'Guest')
        self.assertEqual(table.send_signal(job.job_id, JobSignal.STOP), 'Signal STOP sent to job 1.')
        self.assertEqual(job.status, JobStatus.PAUSED)
        self.assertTrue(job.signal.paused)
        table.send_signal(job.job_id, JobSignal.CONT)
        self.assertEqual(job.status, JobStatus.RUNNING)
        table.send_signal(job.job_id, JobSignal.KILL)
        self.assertTrue(job.signal.cancelled)

    async def test_unknown_job(self):
        with self.assertRaises(KeyError):
            JobTable().send_signal(7, JobSignal.TERM)

    async def test_signal_names(self):
        self.assertIs(JobSignal.from_name('sigkill'), JobSignal.KILL)
        self.assertIs(JobSignal.from_name('STOP'), JobSignal.STOP)
        with self.assertRaises(ValueError):
            JobSignal.from_name('HUP')


class TestBackgroundJobs(KernelTestCase):
    """Background pipelines driven through the shell."""

    async def test_ps_lists_jobs(self):
        """Two background jobs get increasing ids and show as running."""
        await self.run_line('delay 5000 &')
        self.assertEqual(self.stdout(), '[1] Backgrounded.')
        await self.run_line('delay 5000 &')
        await self.run_line('ps')
        rows = self.stdout().split('\n')
        self.assertEqual(rows[0], '  PID  STAT  COMMAND')
        self.assertEqual(rows[1].split(), ['1', 'R', 'delay', '5000'])
        self.assertEqual(rows[2].split(), ['2', 'R', 'delay', '5000'])

    async def test_prompt_returns_immediately(self):
        """The line that starts a job finishes before the job does."""
        result = await self.run_line('delay 5000 &')
        self.assertTrue(result.success)
        self.assertFalse(self.executor.jobs.get(1).done)

    async def test_output_is_suppressed(self):
        """A finished job announces itself instead of printing its output."""
        await self.run_line('echo hidden &')
        await self.executor.wait_for_jobs(1.0)
        lines = self.output.channel('stdout')
        self.assertIn('[Output suppressed for background process] (Job 1)', lines)
        self.assertIn('[Job 1 finished]', lines)
        self.assertNotIn('hidden', lines)

    async def test_background_redirect(self):
        await self.run_line('echo saved > /tmp/bg &')
        await self.executor.wait_for_jobs(1.0)
        self.assertEqual(self.file_content('/tmp/bg'), 'saved\n')

    async def test_kill_cancels_job(self):
        """A killed job stops at its next suspension point and is done."""
        await self.run_line('delay 5000 &')
        job = self.executor.jobs.get(1)
        await self.run_line('kill 1')
        self.assertEqual(self.stdout(), 'Signal TERM sent to job 1.')
        self.assertTrue(await self.executor.wait_for_jobs(1.0))
        self.assertEqual(job.status, JobStatus.DONE)
        self.assertEqual(job.exit_code, 130)
        self.assertIn(
            '[Job 1 finished with error: delay: Terminated by SIGTERM]',
            self.output.channel('stdout')
        )

    async def test_stop_and_continue(self):
        """A stopped job does not finish until it is continued."""
        await self.run_line('delay 20 &')
        await self.run_line('kill -STOP 1')
        await self.run_line('ps')
        self.assertEqual(self.stdout().split('\n')[1].split()[:2], ['1', 'T'])

        await asyncio.sleep(0.1)
        self.assertFalse(self.executor.jobs.get(1).done)

        await self.run_line('kill -s CONT 1')
        self.assertTrue(await self.executor.wait_for_jobs(1.0))
        self.assertIn('[Job 1 finished]', self.output.channel('stdout'))

    async def test_kill_errors(self):
        result = await self.run_line('kill 9')
        self.assertFalse(result.success)
        self.assertEqual(self.stderr(), 'kill: Job 9 not found.')

        await self.run_line('kill -HUP 1')
        self.assertEqual(self.stderr(), 'kill: invalid signal: HUP')

        await self.run_line('kill -STOP -CONT 1')
        self.assertEqual(self.stderr(), 'kill: only one signal may be specified.')

        await self.run_line('kill abc')
        self.assertIn('invalid job ID: abc', self.stderr())

    async def test_finished_jobs_are_reaped(self):
        await self.run_line('true &')
        await self.executor.wait_for_jobs(1.0)
        await self.run_line('ps')
        self.assertEqual(self.stdout(), '')
        self.assertEqual(len(self.executor.jobs), 0)

    async def test_jobs_listing(self):
        await self.run_line('delay 5000 &')
        await self.run_line('jobs')
        self.assertEqual(self.stdout(), '[1]  running   delay 5000')

    async def test_interrupt_foreground(self):
        """Interrupting the foreground line cancels it with exit code 130."""
        task = asyncio.ensure_future(self.run_line('delay 5000'))
        await asyncio.sleep(0.05)
        self.assertTrue(self.executor.interrupt())
        result = await asyncio.wait_for(task, 1.0)
        self.assertEqual(result.exit_code, 130)
        self.assertFalse(self.executor.interrupt())


class TestJobMessages(KernelTestCase):
    """post_message and read_messages."""

    async def test_waiting_reader_receives_message(self):
        await self.run_line('read_messages -w 1 > /tmp/inbox &')
        await self.run_line('post_message 1 hello there')
        self.assertEqual(self.stdout(), 'Message sent to job 1.')
        self.assertTrue(await self.executor.wait_for_jobs(1.0))
        self.assertEqual(self.file_content('/tmp/inbox'), 'hello there\n')

    async def test_read_without_waiting(self):
        await self.run_line('delay 5000 &')
        await self.run_line('post_message 1 a')
        await self.run_line('post_message 1 b')
        await self.run_line('read_messages 1')
        self.assertEqual(self.stdout(), 'a b')
        await self.run_line('read_messages 1')
        self.assertEqual(self.stdout(), '')

    async def test_wait_times_out(self):
        await self.run_line('delay 5000 &')
        result = await self.run_line('read_messages -w -t 0.05 1')
        self.assertFalse(result.success)
        self.assertEqual(result.exit_code, 130)

    async def test_post_to_missing_job(self):
        result = await self.run_line('post_message 4 hi')
        self.assertFalse(result.success)
        self.assertIn('post_message:', self.stderr())


if __name__ == '__main__':
    unittest.main()
