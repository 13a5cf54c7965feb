from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Tools — the finite set of external programs a job can run
# ---------------------------------------------------------------------------

class ToolKind(enum.Enum):
    TRANSCODER = "transcoder"   # ffmpeg
    DOWNLOADER = "downloader"   # yt-dlp

    @property
    def binary_name(self) -> str:
        return _BINARY_NAMES[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_BINARY_NAMES: dict[ToolKind, str] = {
    ToolKind.TRANSCODER: "ffmpeg",
    ToolKind.DOWNLOADER: "yt-dlp",
}

_DISPLAY_NAMES: dict[ToolKind, str] = {
    ToolKind.TRANSCODER: "FFmpeg",
    ToolKind.DOWNLOADER: "yt-dlp",
}


# ---------------------------------------------------------------------------
# Requests and the active-job record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StartRequest:
    tool: ToolKind
    args: list[str]
    output_path: str | None = None     # where the caller expects the result
    file_name: str | None = None       # file-name hint (downloader template stem)
    output_folder: str | None = None
    expected_ext: str | None = None
    cwd: str | None = None
    env: dict[str, str] | None = None


@dataclass
class Job:
    """The single supervised invocation tracked in the active-job slot."""

    job_id: str
    request: StartRequest
    process_id: int | None = None
    recorded_output_path: str | None = None
    cancel_requested: bool = False


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProgressEvent:
    percent: int                  # 0..99 while running; 100 only on success
    elapsed: str                  # HH:MM:SS
    speed: str | None = None
    status: str | None = None
    size: str | None = None
    eta: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "percent": self.percent,
            "time": self.elapsed,
            "speed": self.speed or "N/A",
        }
        if self.status:
            payload["status"] = self.status
        if self.size:
            payload["size"] = self.size
        if self.eta:
            payload["eta"] = self.eta
        return payload


# ---------------------------------------------------------------------------
# Terminal outcomes — exactly one per job
# ---------------------------------------------------------------------------

class OutcomeKind(enum.Enum):
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class Succeeded:
    output_path: str
    kind: OutcomeKind = field(default=OutcomeKind.SUCCEEDED, init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"outputPath": self.output_path}


@dataclass(frozen=True)
class Cancelled:
    kind: OutcomeKind = field(default=OutcomeKind.CANCELLED, init=False)

    def to_payload(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class Failed:
    exit_code: int | None
    diagnostic_text: str = ""
    tool_name: str = "Process"
    kind: OutcomeKind = field(default=OutcomeKind.FAILED, init=False)

    @property
    def message(self) -> str:
        if self.exit_code is None:
            head = f"{self.tool_name} failed"
        else:
            head = f"{self.tool_name} exited with code {self.exit_code}"
        if self.diagnostic_text:
            return f"{head}: {self.diagnostic_text}"
        return head

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message}


TerminalOutcome = Union[Succeeded, Cancelled, Failed]


# ---------------------------------------------------------------------------
# JobEvent — the streaming envelope handed to callers
# ---------------------------------------------------------------------------

class JobEventType(enum.Enum):
    PROGRESS = "progress"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


_OUTCOME_EVENT_TYPES: dict[OutcomeKind, JobEventType] = {
    OutcomeKind.SUCCEEDED: JobEventType.COMPLETE,
    OutcomeKind.CANCELLED: JobEventType.CANCELLED,
    OutcomeKind.FAILED: JobEventType.ERROR,
}


@dataclass
class JobEvent:
    type: JobEventType
    job_id: str
    # Only set on PROGRESS events:
    progress: ProgressEvent | None = None
    # Only set on COMPLETE / CANCELLED / ERROR events:
    outcome: TerminalOutcome | None = None

    @classmethod
    def for_progress(cls, job_id: str, progress: ProgressEvent) -> JobEvent:
        return cls(type=JobEventType.PROGRESS, job_id=job_id, progress=progress)

    @classmethod
    def for_outcome(cls, job_id: str, outcome: TerminalOutcome) -> JobEvent:
        return cls(
            type=_OUTCOME_EVENT_TYPES[outcome.kind],
            job_id=job_id,
            outcome=outcome,
        )

    @property
    def is_terminal(self) -> bool:
        return self.type is not JobEventType.PROGRESS

    def to_payload(self) -> dict[str, Any]:
        if self.progress is not None:
            return self.progress.to_payload()
        if self.outcome is not None:
            return self.outcome.to_payload()
        return {}
