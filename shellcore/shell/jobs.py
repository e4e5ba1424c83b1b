"""
Job Table Module

Bookkeeping for background pipelines:
- Monotonic job ids
- Running / paused / done status
- Signal delivery through each job's cancel signal

Version: 1.0.0
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from shellcore.core.scheduler import CancelSignal
from shellcore.logger import get_logger


class JobStatus(Enum):
    """Background job state."""
    RUNNING = "running"
    PAUSED = "paused"
    DONE = "done"

    @property
    def stat_code(self) -> str:
        """Single-letter code shown by ``ps``."""
        return {JobStatus.RUNNING: 'R', JobStatus.PAUSED: 'T', JobStatus.DONE: 'D'}[self]


class JobSignal(Enum):
    """Signals ``kill`` can deliver."""
    KILL = "KILL"
    TERM = "TERM"
    STOP = "STOP"
    CONT = "CONT"

    @classmethod
    def from_name(cls, name: str) -> 'JobSignal':
        """
        Look up a signal by name, with or without a ``SIG`` prefix.

        Raises:
            ValueError: If the name is not a known signal
        """
        key = name.upper()
        if key.startswith('SIG'):
            key = key[3:]
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"invalid signal: {name}") from None


class Job:
    """
    A backgrounded pipeline.

    Attributes:
        job_id: Monotonic id, also used as the job's PID
        command: Source text of the pipeline
        user: User that started the job
        status: Current state
        signal: Cancel/pause signal handed to the job's commands
    """

    def __init__(self, job_id: int, command: str, user: str):
        self.job_id = job_id
        self.command = command
        self.user = user
        self.status = JobStatus.RUNNING
        self.signal = CancelSignal()
        self.task: Optional[asyncio.Task] = None
        self.exit_code: Optional[int] = None
        self.error: Optional[str] = None
        self.start_time = time.time()
        self.end_time: Optional[float] = None

    @property
    def done(self) -> bool:
        return self.status == JobStatus.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.job_id,
            'command': self.command,
            'user': self.user,
            'status': self.status.value,
            'exit_code': self.exit_code,
            'error': self.error,
        }

    def __repr__(self) -> str:
        return f"Job(id={self.job_id}, command={self.command!r}, status={self.status.name})"


class JobTable:
    """
    Table of background jobs.

    Finished jobs stay listed until ``reap`` is called, so a status
    change is observable after the job ends.

    Example:
        >>> table = JobTable()
        >>> job = table.create('delay 500', 'Guest')
        >>> table.send_signal(job.job_id, JobSignal.STOP)
        'Signal STOP sent to job 1.'
    """

    def __init__(self):
        self._jobs: Dict[int, Job] = {}
        self._next_id = 1
        self._logger = get_logger('jobs')

    def create(self, command: str, user: str) -> Job:
        job = Job(self._next_id, command, user)
        self._next_id += 1
        self._jobs[job.job_id] = job
        self._logger.debug("Job created", job=job.job_id, context={'command': command})
        return job

    def get(self, job_id: int) -> Optional[Job]:
        return self._jobs.get(job_id)

    def list_jobs(self, include_done: bool = False) -> List[Job]:
        jobs = sorted(self._jobs.values(), key=lambda j: j.job_id)
        if include_done:
            return jobs
        return [job for job in jobs if not job.done]

    def send_signal(self, job_id: int, signal: JobSignal) -> str:
        """
        Deliver ``signal`` to a job.

        Returns:
            Confirmation message

        Raises:
            KeyError: If no live job has that id
        """
        job = self._jobs.get(job_id)
        if job is None or job.done:
            raise KeyError(job_id)

        if signal in (JobSignal.KILL, JobSignal.TERM):
            job.signal.cancel(f"Terminated by SIG{signal.value}")
        elif signal == JobSignal.STOP:
            job.signal.pause()
            job.status = JobStatus.PAUSED
        elif signal == JobSignal.CONT:
            job.signal.resume()
            job.status = JobStatus.RUNNING

        self._logger.info("Signal delivered", job=job_id, context={'signal': signal.value})
        return f"Signal {signal.value} sent to job {job_id}."

    def finish(self, job_id: int, exit_code: int, error: Optional[str] = None) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        job.status = JobStatus.DONE
        job.exit_code = exit_code
        job.error = error
        job.end_time = time.time()
        self._logger.debug("Job finished", job=job_id, context={'exit_code': exit_code})

    def reap(self) -> List[Job]:
        """Remove and return finished jobs."""
        finished = [job for job in self._jobs.values() if job.done]
        for job in finished:
            del self._jobs[job.job_id]
        return finished

    def __len__(self) -> int:
        return len(self._jobs)
