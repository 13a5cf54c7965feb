"""Completion Resolver — turns a finished process into one terminal outcome."""

from __future__ import annotations

import logging
from pathlib import Path

from media_jobs.models import Cancelled, Failed, StartRequest, Succeeded, TerminalOutcome

log = logging.getLogger(__name__)

# Sidecar suffixes a tool writes next to its in-progress output
PARTIAL_SUFFIXES = (".part",)

DEFAULT_FILE_STEM = "downloaded_file"


def remove_partial_output(path: str | Path | None) -> list[Path]:
    """Delete an unfinished output file and its sidecars, if present.

    Best-effort: failures are logged, never raised.  Returns the paths that
    were actually removed.
    """
    if not path:
        return []

    target = Path(path)
    removed: list[Path] = []
    for candidate in [target, *(target.with_name(target.name + s) for s in PARTIAL_SUFFIXES)]:
        try:
            if candidate.is_file():
                candidate.unlink()
                removed.append(candidate)
        except OSError as exc:
            log.warning("Failed to remove partial output %s: %s", candidate, exc)

    if removed:
        log.info("Removed partial output: %s", ", ".join(str(p) for p in removed))
    return removed


def _expected_stem(request: StartRequest) -> str:
    if request.file_name:
        # Dots in the hint would be read as an extension by the downloader
        return request.file_name.replace(".", "_")
    if request.output_path:
        return Path(request.output_path).stem
    return DEFAULT_FILE_STEM


def _expected_folder(request: StartRequest, recorded: str | None) -> Path | None:
    if request.output_folder:
        return Path(request.output_folder)
    if request.output_path:
        return Path(request.output_path).parent
    if recorded and Path(recorded).is_dir():
        return Path(recorded)
    return None


def resolve_output_path(request: StartRequest, recorded: str | None) -> str:
    """Find the file a successful run actually produced.

    Prefers the path the tool announced; otherwise rebuilds the expected
    name from the request and probes the folder, matching by stem when the
    tool picked a different extension.
    """
    if recorded and Path(recorded).is_file():
        return recorded

    folder = _expected_folder(request, recorded)
    if folder is not None:
        stem = _expected_stem(request)
        ext = request.expected_ext or (
            Path(request.output_path).suffix.lstrip(".") if request.output_path else ""
        )
        if ext:
            constructed = folder / f"{stem}.{ext}"
            if constructed.is_file():
                return str(constructed)

        try:
            entries = sorted(folder.iterdir())
        except OSError as exc:
            log.warning("Cannot list output folder %s: %s", folder, exc)
            entries = []
        for entry in entries:
            if entry.is_file() and entry.stem == stem:
                return str(entry)

    fallback = recorded or request.output_path or (str(folder) if folder else "")
    log.warning("Could not locate produced file, reporting %r", fallback)
    return fallback


def resolve_outcome(
    request: StartRequest,
    *,
    exit_code: int | None,
    cancelled: bool,
    recorded_output_path: str | None,
    diagnostics: str = "",
) -> TerminalOutcome:
    """Reconcile cancellation with exit status.

    A pending cancellation wins over every exit status, including success.
    """
    if cancelled:
        remove_partial_output(recorded_output_path)
        return Cancelled()

    if exit_code == 0:
        return Succeeded(output_path=resolve_output_path(request, recorded_output_path))

    return Failed(
        exit_code=exit_code,
        diagnostic_text=diagnostics.strip(),
        tool_name=request.tool.display_name,
    )
