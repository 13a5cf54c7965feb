"""Shared fixtures.

Real tools are stood in for by ``python -c <script>``: every JobManager built
here resolves any ToolKind to the running interpreter, so a test controls
exactly what the "tool" prints, writes and how it exits.
"""

from __future__ import annotations

import sys
import textwrap
from collections.abc import Callable
from typing import Any

import pytest

from helpers import RecordingTerminator
from media_jobs.config import Config
from media_jobs.models import StartRequest, ToolKind
from media_jobs.process_manager.supervisor import JobManager


@pytest.fixture
def make_request() -> Callable[..., StartRequest]:
    def _make(script: str, *argv: str, tool: ToolKind = ToolKind.TRANSCODER, **kwargs: Any) -> StartRequest:
        return StartRequest(
            tool=tool,
            args=["-c", textwrap.dedent(script), *argv],
            **kwargs,
        )

    return _make


@pytest.fixture
def make_manager() -> Callable[..., JobManager]:
    def _make(terminator: Any = None, **config: Any) -> JobManager:
        config.setdefault("reader_grace_seconds", 2.0)
        return JobManager(
            Config(**config),
            terminator=terminator or RecordingTerminator(),
            tool_resolver=lambda tool: sys.executable,
        )

    return _make
