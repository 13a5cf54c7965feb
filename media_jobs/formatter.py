"""Formatter — renders JobEvents into output for a particular surface.

The Formatter is the bridge between semantic content (what an event IS) and
rendering (how it LOOKS in a terminal, a log, etc.).  The engine never deals
with presentation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from media_jobs.models import Cancelled, Failed, ProgressEvent, Succeeded, TerminalOutcome

# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------


class Formatter(ABC):
    """Render progress and outcomes into strings."""

    @abstractmethod
    def format_progress(self, progress: ProgressEvent) -> str:
        """Return the single-line render of a progress event."""
        ...

    @abstractmethod
    def format_outcome(self, outcome: TerminalOutcome) -> str:
        """Render the terminal outcome of a job."""
        ...


# ---------------------------------------------------------------------------
# Console implementation
# ---------------------------------------------------------------------------

_BAR_WIDTH = 24

# Maximum characters of diagnostics to show for a failure
_DIAGNOSTIC_MAX_CHARS = 800


def render_bar(percent: int, width: int = _BAR_WIDTH) -> str:
    filled = max(0, min(width, round(width * percent / 100)))
    return "[" + "#" * filled + "-" * (width - filled) + "]"


class ConsoleFormatter(Formatter):
    """Plain-text rendering for a terminal."""

    def format_progress(self, progress: ProgressEvent) -> str:
        parts = [render_bar(progress.percent), f"{progress.percent:>3d}%", progress.elapsed]
        if progress.size:
            parts.append(f"of {progress.size}")
        parts.append(progress.speed or "N/A")
        if progress.eta:
            parts.append(f"ETA {progress.eta}")
        if progress.status:
            parts.append(progress.status)
        return "  ".join(parts)

    def format_outcome(self, outcome: TerminalOutcome) -> str:
        if isinstance(outcome, Succeeded):
            return f"{render_bar(100)} 100%  Done: {outcome.output_path}"

        if isinstance(outcome, Cancelled):
            return "Cancelled. Partial output removed."

        if isinstance(outcome, Failed):
            return self._render_failure(outcome)

        return str(outcome)

    # -- private helpers ---------------------------------------------------

    def _render_failure(self, outcome: Failed) -> str:
        head = f"{outcome.tool_name} failed"
        if outcome.exit_code is not None:
            head += f" (exit code {outcome.exit_code})"
        text = outcome.diagnostic_text
        if not text:
            return head

        truncated = text[-_DIAGNOSTIC_MAX_CHARS:]
        if len(text) > _DIAGNOSTIC_MAX_CHARS:
            truncated = f"… ({len(text) - _DIAGNOSTIC_MAX_CHARS} chars truncated)\n" + truncated
        return f"{head}:\n{truncated}"
