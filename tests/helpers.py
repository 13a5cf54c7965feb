"""Test doubles and async polling helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from media_jobs.process_manager.terminator import terminate_process_tree


class RecordingTerminator:
    """Terminator double that records pids and optionally really signals."""

    def __init__(self, *, deliver: bool = False) -> None:
        self.deliver = deliver
        self.calls: list[int] = []

    async def __call__(self, pid: int) -> bool:
        self.calls.append(pid)
        if self.deliver:
            return await terminate_process_tree(pid)
        return False


async def wait_until(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)
