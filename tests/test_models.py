import pytest

from media_jobs.models import (
    Cancelled,
    Failed,
    JobEvent,
    JobEventType,
    OutcomeKind,
    ProgressEvent,
    Succeeded,
    ToolKind,
)


@pytest.mark.parametrize("tool", list(ToolKind))
def test_every_tool_has_names(tool):
    assert tool.binary_name
    assert tool.display_name


def test_tool_binaries():
    assert ToolKind("transcoder").binary_name == "ffmpeg"
    assert ToolKind("downloader").binary_name == "yt-dlp"


def test_progress_payload_includes_optional_fields_when_set():
    event = ProgressEvent(percent=45, elapsed="00:00:42", speed="2.31MiB/s", status="Downloading...", size="12.50MiB", eta="00:42")

    assert event.to_payload() == {
        "percent": 45,
        "time": "00:00:42",
        "speed": "2.31MiB/s",
        "status": "Downloading...",
        "size": "12.50MiB",
        "eta": "00:42",
    }


@pytest.mark.parametrize(
    "outcome, event_type, payload",
    [
        (Succeeded(output_path="/tmp/a.mp4"), JobEventType.COMPLETE, {"outputPath": "/tmp/a.mp4"}),
        (Cancelled(), JobEventType.CANCELLED, {}),
        (Failed(exit_code=2, tool_name="FFmpeg"), JobEventType.ERROR, {"message": "FFmpeg exited with code 2"}),
    ],
)
def test_terminal_events(outcome, event_type, payload):
    event = JobEvent.for_outcome("job", outcome)

    assert event.type is event_type
    assert event.is_terminal
    assert event.to_payload() == payload


def test_progress_event_is_not_terminal():
    event = JobEvent.for_progress("job", ProgressEvent(percent=1, elapsed="00:00:01"))

    assert not event.is_terminal
    assert event.to_payload()["speed"] == "N/A"


def test_outcome_kinds_are_fixed():
    assert Succeeded("x").kind is OutcomeKind.SUCCEEDED
    assert Cancelled().kind is OutcomeKind.CANCELLED
    assert Failed(None).kind is OutcomeKind.FAILED
