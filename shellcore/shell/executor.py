"""
Command Executor Module

Runs command lines:
- Preprocessing, lexing and parsing of each line
- Pipelines with piping and input/output redirection
- Sequence joiners ``;``, ``&&``, ``||`` and background ``&``
- Background jobs and job signals
- Script files and command substitution capture

No exception escapes ``process_line``; every error family becomes a
failed CommandResult at the pipeline boundary.

Version: 1.0.0
"""

import asyncio
import dataclasses
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, Sequence

from shellcore.core.scheduler import CancelSignal, CooperativeScheduler, StepYielder
from shellcore.exceptions import (
    CommandCancelled,
    CommandIOError,
    CommandNotFoundError,
    ScriptError,
    ShellCoreError,
    ShellSyntaxError,
)
from shellcore.filesystem.glob import expand_glob
from shellcore.filesystem.node import DirectoryNode, FileNode, NodeType
from shellcore.logger import get_logger
from shellcore.shell.command import (
    CommandResult,
    Dependencies,
    EffectType,
    ExecutionOptions,
)
from shellcore.shell.jobs import Job, JobSignal, JobTable
from shellcore.shell.lexer import tokenize
from shellcore.shell.modal import ScriptModalChannel
from shellcore.shell.parser import Joiner, Parser, Pipeline, RedirectMode, Segment
from shellcore.shell.preprocess import Preprocessor, ScriptArguments


OUTPUT_SUPPRESSED = "[Output suppressed for background process]"
EXIT_NOT_FOUND = 127
EXIT_CANCELLED = 130
EXIT_SYNTAX = 2


class PipelineState(Enum):
    """Pipeline execution state."""
    PLANNED = auto()
    RUNNING = auto()
    REDIRECTING = auto()
    DONE = auto()
    FAILED = auto()


@dataclass
class ScriptContext:
    """
    A script being run line by line.

    Modal prompts raised while the script runs are answered with the
    script's next non-comment line, which is then skipped.
    """
    name: str
    lines: List[str]
    args: Sequence[str] = ()
    index: int = 0

    @property
    def arguments(self) -> ScriptArguments:
        return ScriptArguments(self.name, self.args)

    def next_line(self) -> Optional[str]:
        while self.index < len(self.lines):
            line = self.lines[self.index].strip()
            self.index += 1
            if line and not line.startswith('#'):
                return line
        return None


def _strip_final_newline(text: str) -> str:
    return text[:-1] if text.endswith('\n') else text


class CommandExecutor:
    """
    Runs command lines against a dependency bundle.

    Example:
        >>> executor = CommandExecutor(deps)
        >>> result = await executor.process_line('echo hello > /tmp/a && cat /tmp/a')
        >>> result.output
        'hello\\n'
    """

    def __init__(
        self,
        deps: Dependencies,
        scheduler: Optional[CooperativeScheduler] = None
    ):
        self._deps = deps
        deps.executor = self
        self._scheduler = scheduler or CooperativeScheduler()
        self._jobs = JobTable()
        self._script_depth = 0
        self._foreground: Optional[CancelSignal] = None
        self._logger = get_logger('executor')

    @property
    def jobs(self) -> JobTable:
        return self._jobs

    @property
    def scheduler(self) -> CooperativeScheduler:
        return self._scheduler

    @property
    def script_depth(self) -> int:
        return self._script_depth

    # -- lines ---------------------------------------------------------

    async def process_line(
        self,
        line: str,
        interactive: bool = True,
        suppress_output: bool = False,
        script: Optional[ScriptContext] = None,
        signal: Optional[CancelSignal] = None
    ) -> CommandResult:
        """
        Run one command line.

        Args:
            line: Raw input
            interactive: The line was typed at the terminal; it goes
                into the history
            suppress_output: Capture output instead of showing it
            script: Context of the script the line belongs to
            signal: Cancel signal; a fresh one is made when omitted

        Returns:
            Result of the last pipeline that ran. With
            ``suppress_output`` its output holds every pipeline's output.
        """
        self._jobs.reap()
        deps = self._deps
        text = line.strip()
        if not text:
            return CommandResult.ok()

        session = deps.sessions.current
        if interactive and script is None:
            session.history.add(text)
            session.history.reset_index()

        signal = signal or CancelSignal()
        try:
            preprocessor = Preprocessor(session.env, session.aliases, self.capture)
            prepared = await preprocessor.process(text, script.arguments if script else None)
            if prepared.assignment is not None:
                name, value = prepared.assignment
                session.env.set(name, value)
                return CommandResult.ok()

            cwd, user = session.cwd, session.user
            items = Parser(
                tokenize(prepared.text),
                lambda word: expand_glob(deps.vfs, word, cwd, user),
                source=prepared.text
            ).parse()
        except ShellSyntaxError as e:
            deps.output.error(e.message)
            return CommandResult.fail(e.message, exit_code=EXIT_SYNTAX)
        except ShellCoreError as e:
            deps.output.error(e.message)
            return CommandResult.fail(e.message, e.suggestion)

        options = ExecutionOptions(
            interactive=interactive,
            suppress_output=suppress_output,
            signal=signal,
            script=script
        )

        result = CommandResult.ok()
        captured: List[str] = []
        last_success = True
        if interactive and script is None:
            self._foreground = signal
        try:
            for i, item in enumerate(items):
                if i > 0:
                    previous = items[i - 1].joiner
                    if previous == Joiner.AND and not last_success:
                        continue
                    if previous == Joiner.OR and last_success:
                        continue

                if item.joiner == Joiner.BACKGROUND:
                    result = self._start_background(item.pipeline, script)
                else:
                    result = await self.run_pipeline(item.pipeline, options)
                    if suppress_output and result.success and result.output:
                        captured.append(_strip_final_newline(result.output))
                last_success = result.success
        finally:
            if self._foreground is signal:
                self._foreground = None

        await self.flush()
        if suppress_output:
            result = dataclasses.replace(result, output='\n'.join(captured))
        return result

    async def capture(self, command: str) -> str:
        """Run ``command`` with output suppressed and return its stdout."""
        result = await self.process_line(command, interactive=False, suppress_output=True)
        return result.output if result.success else ""

    def interrupt(self) -> bool:
        """Cancel the foreground line, if one is running."""
        if self._foreground is None:
            return False
        self._foreground.cancel("Interrupted")
        return True

    async def flush(self) -> bool:
        """Save the filesystem if it changed."""
        if not self._deps.vfs.dirty:
            return True
        return await self._deps.vfs.save()

    # -- pipelines -----------------------------------------------------

    async def run_pipeline(self, pipeline: Pipeline, options: ExecutionOptions) -> CommandResult:
        """
        Run a pipeline's segments left to right.

        The first failing segment ends the pipeline with its result.
        """
        deps = self._deps
        state = PipelineState.PLANNED
        self._trace(pipeline, state)
        stdin: Optional[str] = options.stdin_content

        if pipeline.input_redirect is not None:
            session = deps.sessions.current
            try:
                info = deps.vfs.validate_path(
                    pipeline.input_redirect, session.cwd, session.user,
                    expected_type=NodeType.FILE,
                    permissions=('read',)
                )
            except ShellCoreError as e:
                return self._failed(pipeline, CommandResult.fail(e.message, e.suggestion))
            stdin = _strip_final_newline(info.node.content) if isinstance(info.node, FileNode) else ""

        result = CommandResult.ok()
        for index, segment in enumerate(pipeline.segments):
            state = PipelineState.RUNNING
            self._trace(pipeline, state, segment=index)
            try:
                await options.signal.checkpoint()
            except CommandCancelled as e:
                return self._failed(pipeline, CommandResult.fail(
                    f"{segment.command}: {e.reason}", exit_code=EXIT_CANCELLED
                ))

            result = await self._run_segment(
                segment, dataclasses.replace(options, stdin_content=stdin)
            )
            if not result.success:
                return self._failed(pipeline, result)

            if result.effect == EffectType.CLEAR_SCREEN and pipeline.job_id is None:
                deps.output.clear()
            stdin = result.output

        if pipeline.output_redirect is not None:
            state = PipelineState.REDIRECTING
            self._trace(pipeline, state)
            try:
                self._write_redirect(pipeline, result.output)
            except ShellCoreError as e:
                return self._failed(pipeline, CommandResult.fail(e.message, e.suggestion))
            result = dataclasses.replace(result, output="", state_modified=True)
        else:
            self._emit(pipeline, result.output, options)

        self._trace(pipeline, PipelineState.DONE)
        return result

    async def _run_segment(self, segment: Segment, options: ExecutionOptions) -> CommandResult:
        deps = self._deps
        name = segment.command.lower()
        try:
            command = deps.registry.load(name)
        except CommandNotFoundError as e:
            return CommandResult.fail(e.message, exit_code=EXIT_NOT_FOUND)

        if options.script is not None:
            deps = dataclasses.replace(deps, modal=ScriptModalChannel(options.script.next_line))

        try:
            result = await command.execute(segment.args, options, deps)
        except CommandCancelled as e:
            return CommandResult.fail(f"{name}: {e.reason}", exit_code=EXIT_CANCELLED)
        except ShellCoreError as e:
            return CommandResult.fail(f"{name}: {e.message}", e.suggestion)
        except Exception as e:
            self._logger.exception(
                f"Unhandled error in command '{name}'", e,
                job=options.job_id
            )
            error = CommandIOError(f"{name}: {e}")
            return CommandResult.fail(error.message)

        if result is None:
            return CommandResult.fail(f"{name}: command returned no result")
        if result.success and result.state_modified:
            await self.flush()
        return result

    def _write_redirect(self, pipeline: Pipeline, output: str) -> None:
        deps = self._deps
        redirect = pipeline.output_redirect
        session = deps.sessions.current
        content = output if output.endswith('\n') else output + '\n'

        info = deps.vfs.validate_path(redirect.file, session.cwd, session.user, allow_missing=True)
        if isinstance(info.node, DirectoryNode):
            raise CommandIOError(f"{redirect.file}: Is a directory")
        if redirect.mode == RedirectMode.APPEND and isinstance(info.node, FileNode):
            content = info.node.content + content

        deps.vfs.create_or_update_file(
            info.resolved_path,
            content,
            session.user,
            deps.users.get_primary_group(session.user) or session.user
        )

    def _emit(self, pipeline: Pipeline, output: str, options: ExecutionOptions) -> None:
        if not output:
            return
        if pipeline.job_id is not None:
            self._deps.output.append(f"{OUTPUT_SUPPRESSED} (Job {pipeline.job_id})")
        elif not options.suppress_output:
            self._deps.output.append(_strip_final_newline(output))

    def _failed(self, pipeline: Pipeline, result: CommandResult) -> CommandResult:
        self._trace(pipeline, PipelineState.FAILED, error=result.error)
        if pipeline.job_id is None:
            if result.error:
                self._deps.output.error(result.error)
            if result.suggestion:
                self._deps.output.error(result.suggestion)
        return result

    def _trace(self, pipeline: Pipeline, state: PipelineState, **context) -> None:
        context['pipeline'] = pipeline.text
        self._logger.debug(f"Pipeline {state.name}", job=pipeline.job_id, context=context)

    # -- background jobs -----------------------------------------------

    def _start_background(self, pipeline: Pipeline, script: Optional[ScriptContext]) -> CommandResult:
        deps = self._deps
        job = self._jobs.create(pipeline.text, deps.sessions.current_user)
        pipeline.job_id = job.job_id
        pipeline.background = True
        deps.bus.register_job(job.job_id)

        options = ExecutionOptions(
            interactive=False,
            suppress_output=True,
            signal=job.signal,
            job_id=job.job_id,
            script=script
        )
        job.task = self._scheduler.spawn(
            self._run_background(pipeline, job, options),
            name=f"job-{job.job_id}"
        )
        deps.output.append(f"[{job.job_id}] Backgrounded.")
        self._logger.info("Job started", job=job.job_id, context={'command': job.command})
        return CommandResult.ok()

    async def _run_background(self, pipeline: Pipeline, job: Job, options: ExecutionOptions) -> None:
        result = CommandResult.fail("Cancelled", exit_code=EXIT_CANCELLED)
        try:
            result = await self.run_pipeline(pipeline, options)
        finally:
            self._jobs.finish(job.job_id, result.exit_code, result.error)
            self._deps.bus.unregister_job(job.job_id)

        if result.success:
            self._deps.output.append(f"[Job {job.job_id} finished]")
        else:
            self._deps.output.append(
                f"[Job {job.job_id} finished with error: {result.error or 'Unknown error'}]"
            )
        await self.flush()

    def send_signal(self, job_id: int, signal: JobSignal) -> str:
        """
        Deliver a job signal.

        Raises:
            KeyError: If no live job has that id
        """
        return self._jobs.send_signal(job_id, signal)

    async def wait_for_jobs(self, timeout: Optional[float] = None) -> bool:
        """Wait until every background job has finished."""
        finished = await self._scheduler.drain(timeout)
        await asyncio.sleep(0)
        return finished

    # -- scripts -------------------------------------------------------

    async def run_script(
        self,
        lines: Sequence[str],
        name: str = "script",
        args: Sequence[str] = (),
        strict: bool = False,
        signal: Optional[CancelSignal] = None
    ) -> CommandResult:
        """
        Run script lines in order.

        Blank lines and ``#`` comments are skipped. The environment is
        pushed for the run and popped afterwards. In strict mode the
        first failing line stops the script.

        Raises:
            ScriptError: If the step or nesting limit is exceeded
            CommandCancelled: If the signal fires between lines
        """
        shell_config = self._deps.config.shell
        if self._script_depth >= shell_config.max_script_depth:
            raise ScriptError(
                f"Maximum script nesting depth ({shell_config.max_script_depth}) exceeded."
            )

        signal = signal or CancelSignal()
        context = ScriptContext(name, list(lines), list(args))
        yielder = StepYielder(shell_config.yield_interval, signal)
        env = self._deps.sessions.current.env
        env.push()
        self._script_depth += 1
        self._logger.debug("Script started", context={'script': name, 'depth': self._script_depth})

        steps = 0
        failures = 0
        try:
            while context.index < len(context.lines):
                line_number = context.index + 1
                line = context.lines[context.index].strip()
                context.index += 1
                if not line or line.startswith('#'):
                    continue

                steps += 1
                if steps > shell_config.max_script_steps:
                    raise ScriptError(
                        f"Maximum script execution steps ({shell_config.max_script_steps}) exceeded.",
                        line=line_number
                    )
                await yielder.step()
                signal.raise_if_cancelled()

                result = await self.process_line(
                    line, interactive=False, script=context, signal=signal
                )
                if not result.success:
                    failures += 1
                    if strict:
                        raise ScriptError(
                            f"Error on line {line_number}: {result.error or 'Unknown error'}",
                            line=line_number
                        )
        finally:
            env.pop()
            self._script_depth -= 1
            self._logger.debug(
                "Script finished",
                context={'script': name, 'steps': steps, 'failures': failures}
            )

        return CommandResult.ok()
