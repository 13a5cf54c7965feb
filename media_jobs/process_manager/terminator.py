"""Terminator — best-effort "stop this process and its children"."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Awaitable, Callable

log = logging.getLogger(__name__)

# A terminator takes an OS process id and reports whether a signal was delivered.
Terminator = Callable[[int], Awaitable[bool]]


async def terminate_process_tree(pid: int) -> bool:
    """Ask the process ``pid`` and its descendants to stop.

    Best-effort and fire-once: there is no wait and no escalation.  On POSIX
    the launcher starts every tool in its own session, so SIGTERM goes to the
    whole process group; descendants that moved to another group survive.  On
    Windows ``taskkill /F /T`` walks the tree.

    Returns True if the signal (or taskkill) was delivered.
    """
    if pid <= 0:
        return False
    if os.name == "nt":
        return await _taskkill(pid)
    return _killpg(pid)


def _killpg(pid: int) -> bool:
    try:
        pgid = os.getpgid(pid)
    except (ProcessLookupError, OSError):
        log.debug("Process %d already gone", pid)
        return False

    # Never signal our own group: the child was not started in its own session
    own_group = pgid == os.getpgrp()
    target = f"pid {pid}" if own_group else f"process group {pgid}"
    try:
        if own_group:
            os.kill(pid, signal.SIGTERM)
        else:
            os.killpg(pgid, signal.SIGTERM)
    except (ProcessLookupError, PermissionError, OSError) as exc:
        log.warning("Failed to signal %s: %s", target, exc)
        return False

    log.info("Sent SIGTERM to %s", target)
    return True


async def _taskkill(pid: int) -> bool:
    try:
        proc = await asyncio.create_subprocess_exec(
            "taskkill", "/F", "/T", "/PID", str(pid),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        code = await proc.wait()
    except OSError as exc:
        log.warning("taskkill failed for pid %d: %s", pid, exc)
        return False

    if code != 0:
        log.warning("taskkill exited %d for pid %d", code, pid)
        return False
    log.info("Terminated process tree of pid %d", pid)
    return True
