import sys

import pytest

from media_jobs.models import ToolKind
from media_jobs.process_manager import launcher
from media_jobs.process_manager.launcher import SpawnFailure, launch, resolve_tool_path


def test_configured_bin_dir_wins(tmp_path, monkeypatch):
    name = "ffmpeg.exe" if launcher.os.name == "nt" else "ffmpeg"
    binary = tmp_path / name
    binary.write_bytes(b"")
    monkeypatch.setattr(launcher.shutil, "which", lambda name: "/usr/bin/ffmpeg")

    assert resolve_tool_path(ToolKind.TRANSCODER, tmp_path) == str(binary)


def test_search_path_used_when_not_bundled(tmp_path, monkeypatch):
    monkeypatch.setattr(launcher.shutil, "which", lambda name: f"/opt/tools/{name}")

    assert resolve_tool_path(ToolKind.DOWNLOADER, tmp_path) == "/opt/tools/yt-dlp"


def test_bare_name_when_nothing_found(tmp_path, monkeypatch):
    monkeypatch.setattr(launcher.shutil, "which", lambda name: None)

    assert resolve_tool_path(ToolKind.DOWNLOADER, tmp_path) == "yt-dlp"


@pytest.mark.asyncio
async def test_launch_pipes_both_streams():
    proc = await launch(
        sys.executable,
        ["-c", "import sys; print('out'); sys.stderr.write('err')"],
    )

    stdout = await proc.stdout.read()
    stderr = await proc.stderr.read()

    assert await proc.wait() == 0
    assert proc.returncode == 0
    assert stdout.strip() == b"out"
    assert stderr == b"err"
    assert proc.pid is not None


@pytest.mark.asyncio
async def test_launch_merges_environment():
    proc = await launch(
        sys.executable,
        ["-c", "import os; print(os.environ['MEDIA_JOBS_TEST'])"],
        env={"MEDIA_JOBS_TEST": "hello"},
    )

    assert (await proc.stdout.read()).strip() == b"hello"
    await proc.wait()


@pytest.mark.asyncio
async def test_missing_binary_is_spawn_failure(tmp_path):
    with pytest.raises(SpawnFailure, match="Failed to spawn"):
        await launch(str(tmp_path / "ffmpeg"), ["-version"])


@pytest.mark.asyncio
async def test_nul_in_argument_is_spawn_failure():
    with pytest.raises(SpawnFailure, match="Failed to spawn"):
        await launch(sys.executable, ["-c", "pass", "bad\x00arg"])


@pytest.mark.asyncio
async def test_missing_cwd_is_spawn_failure(tmp_path):
    with pytest.raises(SpawnFailure, match="Working directory does not exist"):
        await launch(sys.executable, ["-c", "pass"], cwd=str(tmp_path / "nope"))
