"""MCP Server exposing media job tools over stdio or HTTP."""

import logging
from collections.abc import Awaitable, Callable

from mcp.server.fastmcp import Context, FastMCP

from media_jobs.models import JobEventType, ProgressEvent, StartRequest, ToolKind
from media_jobs.process_manager.launcher import SpawnFailure
from media_jobs.process_manager.supervisor import JobManager

log = logging.getLogger(__name__)

# Default port for the persistent HTTP daemon
DEFAULT_PORT = 8902

ProgressReporter = Callable[[ProgressEvent], Awaitable[None]]


async def relay_job(manager: JobManager, request: StartRequest, report: ProgressReporter) -> dict:
    """Run one job to completion, handing each progress event to ``report``.

    A failing ``report`` only loses that notification; the job carries on.
    Returns the terminal payload with ``job_id`` and ``status``.
    """
    try:
        stream = await manager.start(request)
    except SpawnFailure as exc:
        return {"status": "error", "error": str(exc)}

    async for event in stream:
        if event.type is not JobEventType.PROGRESS or event.progress is None:
            continue
        try:
            await report(event.progress)
        except Exception:
            log.debug("Dropped progress notification for job %s", stream.job_id, exc_info=True)

    outcome = await stream.outcome()
    return {
        "job_id": stream.job_id,
        "status": outcome.kind.value,
        **outcome.to_payload(),
    }


def create_server(
    manager: JobManager | None = None,
    port: int = DEFAULT_PORT,
) -> FastMCP:
    """Create and configure the MCP media jobs server."""

    jm = manager or JobManager()

    mcp = FastMCP(
        name="media-jobs",
        instructions=(
            "Runs one long media job at a time (ffmpeg transcodes, yt-dlp downloads). "
            "Use start_job to run a tool with a prepared argument list, cancel_job to "
            "stop the running job and discard its partial output, and job_status to "
            "see what is running."
        ),
        host="127.0.0.1",
        port=port,
        stateless_http=True,
    )

    # ------------------------------------------------------------------
    # Tool: start_job
    # ------------------------------------------------------------------
    @mcp.tool()
    async def start_job(
        tool: str,
        args: list[str],
        ctx: Context,
        output_path: str | None = None,
        file_name: str | None = None,
        output_folder: str | None = None,
        expected_ext: str | None = None,
    ) -> dict:
        """Run a transcoder or downloader job and wait for it to finish.

        Progress is reported through MCP progress notifications while the
        job runs.  Starting a job while another is running replaces the
        tracked job; the earlier one keeps running but can no longer be
        cancelled.

        Args:
            tool: "transcoder" (ffmpeg) or "downloader" (yt-dlp).
            args: The complete, already-validated argument vector.
            output_path: Where the result is expected (deleted on cancel).
            file_name: File-name hint used to find the result if the tool renames it.
            output_folder: Folder the tool writes into.
            expected_ext: Extension the result is expected to have.
        """
        try:
            kind = ToolKind(tool)
        except ValueError:
            valid = ", ".join(k.value for k in ToolKind)
            return {"status": "error", "error": f"Unknown tool '{tool}' (expected one of: {valid})"}

        request = StartRequest(
            tool=kind,
            args=args,
            output_path=output_path,
            file_name=file_name,
            output_folder=output_folder,
            expected_ext=expected_ext,
        )

        async def notify(progress: ProgressEvent) -> None:
            await ctx.report_progress(
                progress=progress.percent,
                total=100,
                message=progress.status or f"{progress.elapsed} at {progress.speed or 'N/A'}",
            )

        return await relay_job(jm, request, notify)

    # ------------------------------------------------------------------
    # Tool: cancel_job
    # ------------------------------------------------------------------
    @mcp.tool()
    async def cancel_job() -> dict:
        """Cancel the running job and delete its partial output.

        Always succeeds; does nothing when no job is running.
        """
        cancelled = await jm.cancel()
        return {"cancelled": cancelled}

    # ------------------------------------------------------------------
    # Tool: job_status
    # ------------------------------------------------------------------
    @mcp.tool()
    async def job_status() -> dict:
        """Show the job currently tracked, if any."""
        snapshot = jm.snapshot()
        if snapshot is None:
            return {"status": "idle"}
        return {"status": "running", **snapshot}

    return mcp
