"""Run the media job engine as a persistent MCP daemon over HTTP.

Usage:
    python -m media_jobs.process_manager [--port PORT] [--env-file FILE]

The daemon owns one JobManager for its whole lifetime, so a cancel_job
call from any client reaches the job started by another.
"""

import argparse
import asyncio
import logging
import signal
from pathlib import Path

import uvicorn

from media_jobs.config import Config
from media_jobs.process_manager.server import DEFAULT_PORT, create_server
from media_jobs.process_manager.supervisor import JobManager

log = logging.getLogger(__name__)


class _ClientDisconnectFilter(logging.Filter):
    """Demote the MCP SDK's ClosedResourceError tracebacks to one DEBUG line.

    They appear whenever an HTTP client goes away before its response (a
    long start_job call whose caller gave up, for instance).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None and "ClosedResourceError" in str(exc):
            record.levelno = logging.DEBUG
            record.levelname = "DEBUG"
            record.msg = "Client disconnected before response completed"
            record.args = None
            record.exc_info = None
            record.exc_text = None
        return True


async def _run(port: int, config: Config) -> None:
    manager = JobManager(config)
    server = create_server(manager=manager, port=port)

    # Same event loop as the job drivers and their stream readers
    uvi = uvicorn.Server(
        uvicorn.Config(
            server.streamable_http_app(),
            host="127.0.0.1",
            port=port,
            log_level=config.log_level.lower(),
        )
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    # serve() installs its own signal.signal() handlers over ours; _serve() does not
    serve_task = asyncio.create_task(uvi._serve())

    await stop.wait()
    log.info("Signal received, shutting down")

    uvi.should_exit = True
    await serve_task

    log.info("Cancelling active job")
    await manager.shutdown()


def main() -> None:
    parser = argparse.ArgumentParser(description="MCP media jobs daemon")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--env-file", type=Path, default=None,
        help="Optional .env file with MEDIA_JOBS_* settings",
    )
    args = parser.parse_args()

    config = Config.from_env(args.env_file)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [media-jobs] %(levelname)s %(message)s",
    )
    logging.getLogger("mcp.server.streamable_http_manager").addFilter(_ClientDisconnectFilter())

    log.info("Starting media-jobs daemon on http://127.0.0.1:%d/mcp", args.port)
    asyncio.run(_run(args.port, config))


if __name__ == "__main__":
    main()
