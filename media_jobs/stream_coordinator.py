"""Stream coordinator — consumes JobEvents and renders them to a console.

Redraws a single progress line in place (``\\r``) at a bounded rate and
finishes with the rendered terminal outcome on its own line.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable

from .formatter import ConsoleFormatter, Formatter
from .models import JobEvent, JobEventType

log = logging.getLogger(__name__)

MIN_RENDER_INTERVAL = 0.1  # seconds


async def stream_to_console(
    events: AsyncIterator[JobEvent],
    write: Callable[[str], object],
    formatter: Formatter | None = None,
    *,
    min_interval: float = MIN_RENDER_INTERVAL,
) -> JobEvent | None:
    """Consume job events and draw them with ``write``.

    Returns the terminal event, or None if the stream ended without one.
    """
    fmt = formatter or ConsoleFormatter()
    last_render: float | None = None
    line_width = 0
    pending: str | None = None
    final_event: JobEvent | None = None

    def draw(line: str) -> None:
        nonlocal line_width, last_render
        # Pad so a shorter line fully overwrites the previous one
        write("\r" + line.ljust(line_width))
        line_width = len(line)
        last_render = time.monotonic()

    async for event in events:
        if event.type is JobEventType.PROGRESS and event.progress is not None:
            line = fmt.format_progress(event.progress)
            if last_render is None or time.monotonic() - last_render >= min_interval:
                draw(line)
                pending = None
            else:
                pending = line
            continue

        if event.is_terminal and event.outcome is not None:
            final_event = event
            break

    if pending is not None:
        draw(pending)
    if line_width:
        write("\n")

    if final_event is not None and final_event.outcome is not None:
        write(fmt.format_outcome(final_event.outcome) + "\n")
    else:
        log.warning("Job stream ended without a terminal event")

    return final_event
