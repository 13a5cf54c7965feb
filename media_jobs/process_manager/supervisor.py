"""Job Supervisor — owns the active-job slot and drives one job end to end."""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any

from media_jobs.config import Config
from media_jobs.models import (
    Cancelled,
    Failed,
    Job,
    JobEvent,
    ProgressEvent,
    StartRequest,
    TerminalOutcome,
    ToolKind,
)
from media_jobs.process_manager.completion import remove_partial_output, resolve_outcome
from media_jobs.process_manager.launcher import (
    LaunchedProcess,
    SpawnFailure,
    launch,
    resolve_tool_path,
)
from media_jobs.process_manager.progress import DiagnosticBuffer, ProgressParser, iter_progress
from media_jobs.process_manager.terminator import Terminator, terminate_process_tree

log = logging.getLogger(__name__)

ToolResolver = Callable[[ToolKind], str]


class JobStream:
    """Progress events for one job, followed by exactly one terminal event.

    Delivery never blocks the producer: when the bounded queue is full,
    progress events are dropped, and the terminal event evicts queued
    progress so it always gets through.  ``outcome()`` resolves whether or
    not anyone iterates.
    """

    def __init__(self, job_id: str, maxsize: int = 256) -> None:
        self.job_id = job_id
        # Room for at least the terminal event and the end-of-stream sentinel
        self._queue: asyncio.Queue[JobEvent | None] = asyncio.Queue(maxsize=max(2, maxsize))
        self._done = asyncio.Event()
        self._outcome: TerminalOutcome | None = None
        self.dropped = 0

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    def publish(self, progress: ProgressEvent) -> None:
        if self._done.is_set():
            return
        try:
            self._queue.put_nowait(JobEvent.for_progress(self.job_id, progress))
        except asyncio.QueueFull:
            self.dropped += 1
            log.debug("Job %s: consumer is behind, dropped progress event", self.job_id)

    def finish(self, outcome: TerminalOutcome) -> None:
        if self._done.is_set():
            log.error("Job %s already has an outcome, ignoring %s", self.job_id, outcome)
            return
        self._outcome = outcome
        while self._queue.maxsize - self._queue.qsize() < 2:
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(JobEvent.for_outcome(self.job_id, outcome))
        self._queue.put_nowait(None)
        self._done.set()

    async def outcome(self) -> TerminalOutcome:
        await self._done.wait()
        assert self._outcome is not None
        return self._outcome

    def __aiter__(self) -> AsyncIterator[JobEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[JobEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                # Leave the sentinel for any later iteration
                self._queue.put_nowait(None)
                return
            yield event


class JobManager:
    """Holds the single active-job slot and runs jobs through their lifecycle.

    One instance per front end, shared by every entry point.  The slot is
    guarded by one lock that is only held for field reads and writes, never
    across I/O.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        terminator: Terminator = terminate_process_tree,
        tool_resolver: ToolResolver | None = None,
    ) -> None:
        self.config = config or Config()
        self._terminator = terminator
        self._tool_resolver = tool_resolver or self._default_tool_path
        self._lock = threading.Lock()
        self._active: Job | None = None
        self._drivers: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self, request: StartRequest) -> JobStream:
        """Spawn the requested tool and return its event stream.

        The job takes the slot before the spawn so that a cancel arriving
        right away still reaches it.  A job already in the slot is replaced,
        and can no longer be cancelled through this manager.

        Raises SpawnFailure if the tool cannot be started.
        """
        executable = self._tool_resolver(request.tool)
        job = Job(
            job_id=uuid.uuid4().hex[:12],
            request=request,
            recorded_output_path=request.output_path,
        )

        with self._lock:
            replaced = self._active
            self._active = job
        if replaced is not None:
            log.warning(
                "Job %s replaces still-active job %s (pid=%s)",
                job.job_id, replaced.job_id, replaced.process_id,
            )

        log.info("Starting job %s: %s %s", job.job_id, executable, " ".join(request.args))
        try:
            launched = await launch(
                executable,
                request.args,
                cwd=request.cwd,
                env=request.env,
            )
        except SpawnFailure:
            log.error("Job %s could not be spawned", job.job_id)
            self._release(job)
            raise
        except BaseException:
            # Cancelled mid-spawn; the job never ran
            self._release(job)
            raise

        with self._lock:
            job.process_id = launched.pid
            cancel_pending = job.cancel_requested
        if cancel_pending and launched.pid is not None:
            log.info("Job %s was cancelled while spawning", job.job_id)
            await self._terminate(launched.pid)

        stream = JobStream(job.job_id, maxsize=self.config.event_buffer)
        task = asyncio.create_task(
            self._drive(job, launched, stream),
            name=f"job-{job.job_id}",
        )
        self._drivers.add(task)
        task.add_done_callback(self._drivers.discard)
        return stream

    async def cancel(self) -> bool:
        """Cancel the active job.  Returns False if nothing was active."""
        pid: int | None = None
        output_path: str | None = None
        with self._lock:
            job = self._active
            if job is not None:
                job.cancel_requested = True
                pid = job.process_id
                output_path = job.recorded_output_path

        if job is None:
            log.info("Cancel requested with no active job")
            return False

        log.info("Cancelling job %s (pid=%s)", job.job_id, pid)
        if pid is not None:
            await self._terminate(pid)

        # The terminate signal is asynchronous, so the resolver removes the
        # file again once the process is really gone.
        remove_partial_output(output_path)
        return True

    def snapshot(self) -> dict[str, Any] | None:
        """Return a copy of the active slot, or None when idle."""
        with self._lock:
            job = self._active
            if job is None:
                return None
            return {
                "job_id": job.job_id,
                "tool": job.request.tool.value,
                "process_id": job.process_id,
                "recorded_output_path": job.recorded_output_path,
                "cancel_requested": job.cancel_requested,
            }

    async def shutdown(self) -> None:
        """Cancel the active job and wait for every driver to finish."""
        await self.cancel()
        drivers = list(self._drivers)
        if drivers:
            await asyncio.gather(*drivers, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _default_tool_path(self, tool: ToolKind) -> str:
        return resolve_tool_path(tool, self.config.bin_dir)

    async def _drive(
        self,
        job: Job,
        launched: LaunchedProcess,
        stream: JobStream,
    ) -> None:
        """Wait for exit, resolve the outcome, publish it, free the slot."""
        tool_name = job.request.tool.display_name
        diagnostics = DiagnosticBuffer(max_chars=self.config.diagnostic_limit)

        # One parser for both streams so the last percent carries across them;
        # only stderr feeds diagnostics
        parser = ProgressParser(on_output_path=lambda path: self._record_output_path(job, path))
        readers = [
            asyncio.create_task(
                self._pump(job, reader, parser, stream, buf),
                name=f"job-{job.job_id}-{name}",
            )
            for name, reader, buf in (
                ("stdout", launched.stdout, None),
                ("stderr", launched.stderr, diagnostics),
            )
            if reader is not None
        ]

        outcome: TerminalOutcome | None = None
        try:
            wait_error: Exception | None = None
            try:
                exit_code: int | None = await launched.wait()
            except Exception as exc:
                log.exception("Waiting on job %s failed", job.job_id)
                exit_code, wait_error = None, exc
            log.info("Job %s exited with %s", job.job_id, exit_code)

            await self._drain(readers)

            cancelled = self._consume_cancel(job)
            with self._lock:
                recorded = job.recorded_output_path

            if wait_error is not None and not cancelled:
                outcome = Failed(exit_code=None, diagnostic_text=str(wait_error), tool_name=tool_name)
            else:
                outcome = resolve_outcome(
                    job.request,
                    exit_code=exit_code,
                    cancelled=cancelled,
                    recorded_output_path=recorded,
                    diagnostics=diagnostics.text(),
                )
        except asyncio.CancelledError:
            with self._lock:
                recorded = job.recorded_output_path
            remove_partial_output(recorded)
            outcome = Cancelled()
            raise
        except Exception as exc:
            log.exception("Supervising job %s failed", job.job_id)
            outcome = Failed(exit_code=None, diagnostic_text=str(exc), tool_name=tool_name)
        finally:
            for task in readers:
                if not task.done():
                    task.cancel()
            stream.finish(outcome or Cancelled())
            self._release(job)
            log.info(
                "Job %s finished: %s (%d progress events dropped)",
                job.job_id, (outcome or Cancelled()).kind.value, stream.dropped,
            )

    async def _pump(
        self,
        job: Job,
        reader: asyncio.StreamReader,
        parser: ProgressParser,
        stream: JobStream,
        diagnostics: DiagnosticBuffer | None,
    ) -> None:
        """Parse one output stream and publish its progress."""
        try:
            async for progress in iter_progress(
                reader,
                parser,
                is_cancelled=lambda: self._is_cancelled(job),
                diagnostics=diagnostics,
            ):
                stream.publish(progress)
        except asyncio.CancelledError:
            pass
        except Exception:
            log.exception("Reading output of job %s failed", job.job_id)

    async def _drain(self, readers: list[asyncio.Task[None]]) -> None:
        """Let readers consume what the process wrote before it exited."""
        if not readers:
            return
        _, pending = await asyncio.wait(readers, timeout=self.config.reader_grace_seconds)
        for task in pending:
            # A surviving descendant may still hold the pipe open
            log.warning("Stream reader %s still open after exit, abandoning it", task.get_name())
            task.cancel()

    async def _terminate(self, pid: int) -> bool:
        try:
            return await self._terminator(pid)
        except Exception:
            log.exception("Terminator failed for pid %d", pid)
            return False

    def _record_output_path(self, job: Job, path: str) -> None:
        with self._lock:
            job.recorded_output_path = path
        log.info("Job %s output path is now %s", job.job_id, path)

    def _is_cancelled(self, job: Job) -> bool:
        with self._lock:
            return job.cancel_requested

    def _consume_cancel(self, job: Job) -> bool:
        """Read and clear the cancellation flag, exactly once per job."""
        with self._lock:
            cancelled = job.cancel_requested
            job.cancel_requested = False
        return cancelled

    def _release(self, job: Job) -> None:
        with self._lock:
            job.process_id = None
            job.recorded_output_path = None
            if self._active is job:
                self._active = None
