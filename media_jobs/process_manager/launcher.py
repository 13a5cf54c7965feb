"""Process Launcher — resolves tool binaries and spawns them with piped output."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from media_jobs.models import ToolKind

log = logging.getLogger(__name__)


class MediaJobsError(Exception):
    """Base exception for all media-jobs errors."""


class SpawnFailure(MediaJobsError):
    """Raised when a tool binary is missing or cannot be executed."""


def _executable_name(tool: ToolKind) -> str:
    name = tool.binary_name
    return f"{name}.exe" if os.name == "nt" else name


def resolve_tool_path(tool: ToolKind, bin_dir: str | Path | None = None) -> str:
    """Locate the binary for ``tool``.

    Lookup order: the configured ``bin_dir``, a ``bin/`` folder next to the
    running application, the search path.  Falls back to the bare name so
    the spawn error names the tool the user is missing.
    """
    name = _executable_name(tool)

    candidates: list[Path] = []
    if bin_dir:
        candidates.append(Path(bin_dir) / name)
    if sys.argv and sys.argv[0]:
        candidates.append(Path(sys.argv[0]).resolve().parent / "bin" / name)

    for candidate in candidates:
        if candidate.is_file():
            return str(candidate)

    return shutil.which(tool.binary_name) or tool.binary_name


@dataclass
class LaunchedProcess:
    """Handle on a spawned tool: its pid and both output streams."""

    executable: str
    args: list[str]
    _process: asyncio.subprocess.Process = field(repr=False)

    @property
    def pid(self) -> int | None:
        # None is legitimate: the caller must not assume it can always signal
        return self._process.pid

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self._process.stderr

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def wait(self) -> int:
        return await self._process.wait()


async def launch(
    executable: str,
    args: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> LaunchedProcess:
    """Spawn ``executable`` with stdout/stderr piped as raw byte streams.

    The child gets its own session (POSIX) or process group (Windows) so the
    terminator can stop the whole tree.  Raises SpawnFailure if the binary
    cannot be started.
    """
    if cwd is not None and not os.path.isdir(cwd):
        raise SpawnFailure(f"Working directory does not exist: {cwd}")

    # Merge environment
    spawn_env = os.environ.copy()
    if env:
        spawn_env.update(env)

    kwargs: dict[str, Any] = {}
    if os.name == "nt":
        kwargs["creationflags"] = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
    else:
        kwargs["start_new_session"] = True

    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=spawn_env,
            **kwargs,
        )
    except (OSError, ValueError) as exc:
        # ValueError: an argument the OS cannot accept, e.g. an embedded NUL
        raise SpawnFailure(f"Failed to spawn {executable}: {exc}") from exc

    log.info("Spawned %s (pid=%s)", executable, process.pid)
    return LaunchedProcess(executable=executable, args=list(args), _process=process)
