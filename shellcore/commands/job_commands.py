"""
Job Commands

Inspection and control of background jobs:
- ps and jobs list the job table
- kill delivers KILL, TERM, STOP and CONT
- delay waits cooperatively, so it can be killed mid-wait
- post_message and read_messages use the per-job message bus

Version: 1.0.0
"""

from shellcore.exceptions import BadArgumentsError
from shellcore.shell.command import (
    ArgValidation,
    Command,
    CommandContext,
    CommandResult,
    FlagDefinition,
    parse_numeric_arg,
)
from shellcore.shell.jobs import JobSignal


def _job_id(text: str) -> int:
    try:
        return parse_numeric_arg(text, min_value=1)
    except ValueError:
        raise BadArgumentsError(f"invalid job ID: {text}") from None


class PsCommand(Command):
    name = 'ps'
    description = "Reports a snapshot of the current background jobs."
    help_text = "Usage: ps\nList running and paused background jobs."
    arg_validation = ArgValidation(exact=0)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        jobs = ctx.deps.executor.jobs.list_jobs()
        if not jobs:
            return CommandResult.ok()
        lines = ["  PID  STAT  COMMAND"]
        lines.extend(
            f"  {job.job_id:<4} {job.status.stat_code:<5} {job.command}" for job in jobs
        )
        return CommandResult.ok('\n'.join(lines))


class JobsCommand(Command):
    name = 'jobs'
    description = "Lists background jobs with their status."
    help_text = "Usage: jobs"
    arg_validation = ArgValidation(exact=0)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        jobs = ctx.deps.executor.jobs.list_jobs()
        return CommandResult.ok('\n'.join(
            f"[{job.job_id}]  {job.status.value:<8}  {job.command}" for job in jobs
        ))


class KillCommand(Command):
    name = 'kill'
    description = "Sends a signal to a background job."
    help_text = """Usage: kill [-s SIGNAL | -SIGNAL] <job_id>
Signals: KILL, TERM (default), STOP, CONT."""
    flag_definitions = (FlagDefinition('signal', '-s', '--signal', takes_value=True),)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        names = [ctx.flags['signal']] if ctx.flags['signal'] else []
        names.extend(arg[1:] for arg in ctx.args if arg.startswith('-'))
        positional = [arg for arg in ctx.args if not arg.startswith('-')]

        if len(names) > 1:
            return CommandResult.fail("kill: only one signal may be specified.")
        if len(positional) != 1:
            return CommandResult.fail("kill: Usage: kill [signal] <job_id>")

        try:
            signal = JobSignal.from_name(names[0]) if names else JobSignal.TERM
        except ValueError as e:
            return CommandResult.fail(f"kill: {e}")

        job_id = _job_id(positional[0])
        try:
            message = ctx.deps.executor.send_signal(job_id, signal)
        except KeyError:
            return CommandResult.fail(f"kill: Job {job_id} not found.")
        return CommandResult.ok(message)


class DelayCommand(Command):
    name = 'delay'
    description = "Pauses execution for a number of milliseconds."
    help_text = "Usage: delay <milliseconds>\nUseful in scripts and as a long-running background job."
    arg_validation = ArgValidation(exact=1)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        try:
            milliseconds = parse_numeric_arg(ctx.args[0], min_value=1)
        except ValueError as e:
            return CommandResult.fail(
                f"delay: Invalid delay time '{ctx.args[0]}': {e}. Must be a positive integer."
            )
        self._logger.debug("Delay started", job=ctx.options.job_id, context={'ms': milliseconds})
        await ctx.signal.sleep(milliseconds / 1000)
        return CommandResult.ok()


class PostMessageCommand(Command):
    name = 'post_message'
    description = "Sends a message to a background job."
    help_text = "Usage: post_message <job_id> <message>"
    arg_validation = ArgValidation(min=2)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        job_id = _job_id(ctx.args[0])
        ctx.deps.bus.post_message(job_id, ' '.join(ctx.args[1:]), sender=ctx.user)
        return CommandResult.ok(f"Message sent to job {job_id}.")


class ReadMessagesCommand(Command):
    name = 'read_messages'
    description = "Reads the messages queued for a background job."
    help_text = """Usage: read_messages [-w] [-t SECONDS] <job_id>
  -w    wait until at least one message arrives
  -t    give up waiting after SECONDS"""
    flag_definitions = (
        FlagDefinition('wait', '-w', '--wait'),
        FlagDefinition('timeout', '-t', '--timeout', takes_value=True),
    )
    arg_validation = ArgValidation(exact=1)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        job_id = _job_id(ctx.args[0])
        bus = ctx.deps.bus
        if not ctx.flags['wait']:
            return CommandResult.ok(' '.join(str(m) for m in bus.get_messages(job_id)))

        timeout = None
        if ctx.flags['timeout'] is not None:
            try:
                timeout = parse_numeric_arg(ctx.flags['timeout'], allow_float=True, min_value=0)
            except ValueError as e:
                return CommandResult.fail(f"read_messages: timeout '{ctx.flags['timeout']}' {e}")
        messages = await bus.wait_for_message(job_id, ctx.signal, timeout)
        return CommandResult.ok(' '.join(str(m) for m in messages))
