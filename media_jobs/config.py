from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DIAGNOSTIC_LIMIT = 16_384  # characters of stderr kept for failure reports
DEFAULT_EVENT_BUFFER = 256


def _default_output_dir() -> str:
    return str(Path.home() / "Downloads")


@dataclass(frozen=True)
class Config:
    bin_dir: str | None = None
    output_dir: str = field(default_factory=_default_output_dir)
    diagnostic_limit: int = DEFAULT_DIAGNOSTIC_LIMIT
    event_buffer: int = DEFAULT_EVENT_BUFFER
    reader_grace_seconds: float = 5.0
    log_level: str = "INFO"

    def resolve_output_folder(self, relative: str | None = None) -> str:
        """Pick the folder a job writes into, as an absolute path.

        Downloads always land in a folder: with no ``--folder`` that is
        ``MEDIA_JOBS_OUTPUT_DIR`` itself, ``--folder podcasts`` is a subfolder
        of it, and ``--folder ~/Videos/talks`` is taken as given.  The folder
        is also where the finished file is searched for when the downloader
        picks its own extension, so it has to exist before the job starts;
        a missing one raises ValueError instead of failing mid-download.
        """
        folder = Path(self.output_dir).expanduser()
        if relative:
            # Joining an absolute path discards the base
            folder = folder / Path(relative).expanduser()
        folder = folder.resolve()

        if not folder.is_dir():
            raise ValueError(f"Output folder does not exist: {folder}")
        return str(folder)

    @classmethod
    def from_env(cls, env_path: str | Path | None = None) -> Config:
        load_dotenv(env_path)

        bin_dir = os.getenv("MEDIA_JOBS_BIN_DIR") or None
        output_dir = os.getenv("MEDIA_JOBS_OUTPUT_DIR") or _default_output_dir()

        diagnostic_limit = _int_env("MEDIA_JOBS_DIAGNOSTIC_LIMIT", DEFAULT_DIAGNOSTIC_LIMIT)
        event_buffer = _int_env("MEDIA_JOBS_EVENT_BUFFER", DEFAULT_EVENT_BUFFER)

        raw_grace = os.getenv("MEDIA_JOBS_READER_GRACE", "5.0")
        try:
            grace = float(raw_grace)
        except ValueError:
            raise ValueError(f"MEDIA_JOBS_READER_GRACE must be a number, got {raw_grace!r}") from None

        return cls(
            bin_dir=bin_dir,
            output_dir=output_dir,
            diagnostic_limit=diagnostic_limit,
            event_buffer=event_buffer,
            reader_grace_seconds=grace,
            log_level=os.getenv("MEDIA_JOBS_LOG_LEVEL", "INFO").upper(),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value
