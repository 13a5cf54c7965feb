"""Progress Stream Parser — turns raw tool output into ProgressEvents.

Tools rewrite their progress line in place with ``\\r`` (ffmpeg, yt-dlp on a
terminal) or print ordinary ``\\n`` lines (yt-dlp piped, postprocessors), so
records are split on whichever delimiter comes first.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

from media_jobs.models import ProgressEvent

log = logging.getLogger(__name__)

READ_CHUNK = 4096
PERCENT_CEILING = 99  # 100 is reserved for a successful exit

# ---------------------------------------------------------------------------
# Patterns, each applied independently to every record
# ---------------------------------------------------------------------------

_CLOCK = r"(\d+):(\d{2}):(\d{2})(?:\.(\d+))?"

_DURATION_RE = re.compile(r"Duration:\s*" + _CLOCK)
_POSITION_RE = re.compile(r"time=\s*" + _CLOCK)
_SPEED_RE = re.compile(r"speed=\s*(\d+\.?\d*)x")
_TRANSFER_PERCENT_RE = re.compile(r"\[download\]\s+(\d+\.?\d*)%")
_TRANSFER_SIZE_RE = re.compile(r"of\s+~?\s*(\d+\.?\d*[KMG]iB)")
_TRANSFER_RATE_RE = re.compile(r"at\s+(\d+\.?\d*[KMG]iB/s)")
_ETA_RE = re.compile(r"ETA\s+(\d{2}:\d{2}(?::\d{2})?)")
_TAG_RE = re.compile(r"^\[([^\]]+)\]")
_ALREADY_DOWNLOADED_RE = re.compile(r"\[download\]\s+(.+?)\s+has already been downloaded")

_DESTINATION_MARK = "Destination:"
_MERGING_MARK = "Merging formats into"
_ERROR_MARK = "ERROR:"

_DELIMITER_RE = re.compile(rb"[\r\n]")

# Bracketed component tag -> status phrase
_TAG_STATUS: dict[str, str] = {
    "Merger": "Merging audio and video...",
    "ExtractAudio": "Extracting audio...",
}

# Free-text phrase -> status phrase, first match wins
_PHRASE_STATUS: list[tuple[str, str]] = [
    ("Deleting original file", "Cleaning up temporary files..."),
    ("Fixing video timestamp", "Finalizing media timestamps..."),
]


# ---------------------------------------------------------------------------
# Record splitting
# ---------------------------------------------------------------------------

class RecordSplitter:
    """Split a byte stream into records at every ``\\r`` or ``\\n``.

    A partial record at the end of a chunk is kept until the next feed (or
    released by ``flush`` at end of stream).  Empty records are skipped.
    """

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        parts = _DELIMITER_RE.split(self._pending + chunk)
        self._pending = parts.pop()
        return [p for p in parts if p]

    def flush(self) -> list[bytes]:
        rest, self._pending = self._pending, b""
        return [rest] if rest else []


def decode_record(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").strip()


def split_records(data: bytes) -> list[str]:
    """Split a complete byte string into decoded, non-empty records."""
    splitter = RecordSplitter()
    raw = splitter.feed(data) + splitter.flush()
    return [r for r in (decode_record(x) for x in raw) if r]


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

@dataclass
class DiagnosticBuffer:
    """Bounded capture of diagnostic output; the earliest text wins.

    Once ``max_chars`` is reached further appends are ignored; captured
    content is never evicted.
    """

    max_chars: int = 16_384
    _parts: list[str] = field(default_factory=list)
    _size: int = 0

    def append(self, record: str) -> None:
        room = self.max_chars - self._size
        if room <= 0:
            return
        text = (record + "\n")[:room]
        self._parts.append(text)
        self._size += len(text)

    @property
    def full(self) -> bool:
        return self._size >= self.max_chars

    def text(self) -> str:
        return "".join(self._parts).strip()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _clock_seconds(match: re.Match[str]) -> float:
    hours, minutes, seconds, fraction = match.groups()
    total = int(hours) * 3600 + int(minutes) * 60 + int(seconds)
    if fraction:
        total += float(f"0.{fraction}")
    return float(total)


def format_clock(seconds: float) -> str:
    whole = max(0, int(seconds))
    return f"{whole // 3600:02d}:{whole % 3600 // 60:02d}:{whole % 60:02d}"


def compute_percent(position: float, duration: float | None) -> int:
    """Percent of ``duration`` reached at ``position``, clamped to [0, 99].

    An unknown duration yields 0 so that callers still get a liveness tick.
    """
    if not duration or duration <= 0:
        return 0
    return clamp_percent(position / duration * 100)


def clamp_percent(value: float) -> int:
    # Half rounds up (12.5 -> 13); round() would go to the even neighbour
    return max(0, min(PERCENT_CEILING, math.floor(value + 0.5)))


def _announced_path(record: str, marker: str) -> str | None:
    idx = record.find(marker)
    if idx < 0:
        return None
    candidate = record[idx + len(marker):].strip().strip("\"'")
    return candidate or None


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class ProgressParser:
    """Stateful parser, one instance per job shared by its output streams.

    ``parse`` never awaits, so records from both readers are applied whole.
    """

    def __init__(
        self,
        *,
        on_output_path: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._on_output_path = on_output_path
        self._clock = clock
        self._started = clock()
        self.duration: float | None = None
        self.last_percent = 0

    def parse(self, record: str) -> ProgressEvent | None:
        """Extract a ProgressEvent from one decoded record, or None."""
        if not record:
            return None

        # Total duration is cached once per stream
        if self.duration is None:
            match = _DURATION_RE.search(record)
            if match:
                self.duration = _clock_seconds(match)
                log.debug("Parsed duration: %.2fs", self.duration)

        percent: int | None = None
        elapsed: str | None = None

        position = _POSITION_RE.search(record)
        if position:
            seconds = _clock_seconds(position)
            percent = compute_percent(seconds, self.duration)
            elapsed = format_clock(seconds)

        transfer_percent: float | None = None
        match = _TRANSFER_PERCENT_RE.search(record)
        if match:
            transfer_percent = float(match.group(1))
            if percent is None:
                percent = clamp_percent(transfer_percent)

        speed = _first_group(_SPEED_RE, record)
        if speed:
            speed = f"{speed}x"
        else:
            speed = _first_group(_TRANSFER_RATE_RE, record)

        size = _first_group(_TRANSFER_SIZE_RE, record)
        eta = _first_group(_ETA_RE, record)

        status = self._status_for(record, has_transfer=transfer_percent is not None)
        if transfer_percent is not None and status is None:
            status = "Finalizing download..." if transfer_percent >= 99.9 else "Downloading..."

        if _ERROR_MARK in record:
            status = "Error: " + (record.split(_ERROR_MARK, 1)[1].strip() or record)

        if percent is None and status is None:
            return None

        if percent is None:
            percent = self.last_percent
        self.last_percent = percent

        if elapsed is None:
            elapsed = format_clock(self._clock() - self._started)

        return ProgressEvent(
            percent=percent,
            elapsed=elapsed,
            speed=speed,
            status=status,
            size=size,
            eta=eta,
        )

    # -- private helpers ---------------------------------------------------

    def _status_for(self, record: str, *, has_transfer: bool) -> str | None:
        status: str | None = None

        # Destination announcements reveal the real output file
        destination = _announced_path(record, _DESTINATION_MARK)
        merged = _announced_path(record, _MERGING_MARK)
        if destination:
            self._record_path(destination)
            status = "Creating output file..."
        elif merged:
            self._record_path(merged)
            status = "Merging audio and video..."

        match = _ALREADY_DOWNLOADED_RE.search(record)
        if match:
            self._record_path(match.group(1).strip("\"'"))

        for phrase, phrase_status in _PHRASE_STATUS:
            if phrase in record:
                status = phrase_status
                break

        match = _TAG_RE.match(record)
        if match:
            tag = match.group(1)
            if tag in _TAG_STATUS:
                status = _TAG_STATUS[tag]
            elif tag == "info":
                if "Downloading webpage" in record:
                    status = "Fetching metadata..."
                elif "Downloading m3u8" in record:
                    status = "Preparing stream..."
                else:
                    status = "Extracting metadata..."
            elif tag == "download" and not has_transfer:
                if destination:
                    status = "Creating output file..."
                elif "Downloading" in record:
                    status = "Starting download..."

        return status

    def _record_path(self, path: str) -> None:
        if self._on_output_path is None:
            return
        try:
            self._on_output_path(path)
        except Exception:
            log.exception("Output path callback failed for %r", path)


def _first_group(pattern: re.Pattern[str], record: str) -> str | None:
    match = pattern.search(record)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Stream consumption
# ---------------------------------------------------------------------------

async def iter_progress(
    reader: asyncio.StreamReader,
    parser: ProgressParser,
    *,
    is_cancelled: Callable[[], bool] = lambda: False,
    diagnostics: DiagnosticBuffer | None = None,
) -> AsyncIterator[ProgressEvent]:
    """Lazily yield ProgressEvents parsed from one output stream.

    Cancellation is checked between records; once it is set no further
    events are produced, but the pipe keeps being drained so the child can
    never block on a full pipe while it is being terminated.
    """
    splitter = RecordSplitter()
    stopped = False

    def _handle(raw: bytes) -> ProgressEvent | None:
        nonlocal stopped
        if stopped:
            return None
        if is_cancelled():
            stopped = True
            log.debug("Cancellation observed, no longer parsing stream")
            return None
        record = decode_record(raw)
        if not record:
            return None
        if diagnostics is not None:
            diagnostics.append(record)
        return parser.parse(record)

    while True:
        chunk = await reader.read(READ_CHUNK)
        if not chunk:
            break
        for raw in splitter.feed(chunk):
            event = _handle(raw)
            if event is not None:
                yield event

    for raw in splitter.flush():
        event = _handle(raw)
        if event is not None:
            yield event
