"""Run a single media job from the command line.

Usage:
    python -m media_jobs transcode --output OUT.mp4 -- -i IN.mkv -c:v libx264 -y OUT.mp4
    python -m media_jobs download --folder clips --file-name talk --ext mp4 -- -o 'clips/talk.%(ext)s' URL

Everything after ``--`` is handed to the tool untouched.  Ctrl+C cancels the
job and removes its partial output.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from .config import Config
from .models import OutcomeKind, StartRequest, ToolKind
from .process_manager.launcher import SpawnFailure
from .process_manager.supervisor import JobManager
from .stream_coordinator import stream_to_console

log = logging.getLogger(__name__)

_COMMANDS: dict[str, ToolKind] = {
    "transcode": ToolKind.TRANSCODER,
    "download": ToolKind.DOWNLOADER,
}

_EXIT_CODES: dict[OutcomeKind, int] = {
    OutcomeKind.SUCCEEDED: 0,
    OutcomeKind.FAILED: 1,
    OutcomeKind.CANCELLED: 130,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="media-jobs",
        description="Run ffmpeg or yt-dlp with live progress and clean cancellation",
    )
    parser.add_argument("command", choices=sorted(_COMMANDS), help="Which tool to run")
    parser.add_argument("--output", help="Expected output file (removed if cancelled)")
    parser.add_argument("--folder", help="Output folder, relative to MEDIA_JOBS_OUTPUT_DIR")
    parser.add_argument("--file-name", help="File-name hint used to find the finished file")
    parser.add_argument("--ext", help="Expected extension of the finished file")
    parser.add_argument("--env-file", help="Optional .env file with MEDIA_JOBS_* settings")
    parser.add_argument("tool_args", nargs=argparse.REMAINDER, help="Arguments for the tool, after --")
    return parser


async def _run(request: StartRequest, manager: JobManager) -> int:
    try:
        stream = await manager.start(request)
    except SpawnFailure as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    loop = asyncio.get_running_loop()
    pending_cancels: set[asyncio.Task[bool]] = set()

    def _on_interrupt() -> None:
        task = loop.create_task(manager.cancel())
        pending_cancels.add(task)
        task.add_done_callback(pending_cancels.discard)

    try:
        loop.add_signal_handler(signal.SIGINT, _on_interrupt)
    except NotImplementedError:
        # Windows event loops have no signal handlers; Ctrl+C raises instead
        pass

    try:
        await stream_to_console(stream, sys.stdout.write)
        sys.stdout.flush()
    except KeyboardInterrupt:
        await manager.cancel()
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    outcome = await stream.outcome()
    return _EXIT_CODES[outcome.kind]


def main() -> None:
    args = _build_parser().parse_args()

    config = Config.from_env(args.env_file)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    tool_args = list(args.tool_args)
    if tool_args and tool_args[0] == "--":
        tool_args = tool_args[1:]
    if not tool_args:
        print("Error: no tool arguments given (pass them after --)", file=sys.stderr)
        sys.exit(2)

    output_folder = None
    if args.folder or _COMMANDS[args.command] is ToolKind.DOWNLOADER:
        try:
            output_folder = config.resolve_output_folder(args.folder)
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(2)

    request = StartRequest(
        tool=_COMMANDS[args.command],
        args=tool_args,
        output_path=args.output,
        file_name=args.file_name,
        output_folder=output_folder,
        expected_ext=args.ext,
    )
    manager = JobManager(config)
    sys.exit(asyncio.run(_run(request, manager)))


if __name__ == "__main__":
    main()
