import asyncio
import os
import signal
import sys

import pytest

from media_jobs.process_manager.launcher import launch
from media_jobs.process_manager.terminator import terminate_process_tree

posix_only = pytest.mark.skipif(os.name == "nt", reason="relies on POSIX signals")


@pytest.mark.asyncio
async def test_invalid_pid_is_not_signalled():
    assert await terminate_process_tree(0) is False
    assert await terminate_process_tree(-1) is False


@posix_only
@pytest.mark.asyncio
async def test_terminates_process_group():
    # The child spawns a grandchild in the same session; both must stop
    script = (
        "import subprocess, sys, time\n"
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
        "print('ready', flush=True)\n"
        "time.sleep(60)\n"
    )
    proc = await launch(sys.executable, ["-c", script])
    assert (await proc.stdout.readline()).strip() == b"ready"

    assert await terminate_process_tree(proc.pid) is True
    code = await asyncio.wait_for(proc.wait(), timeout=10)

    assert code == -signal.SIGTERM
    # Readers reach EOF only once every holder of the pipe is gone
    await asyncio.wait_for(proc.stdout.read(), timeout=10)


@posix_only
@pytest.mark.asyncio
async def test_reaped_process_is_not_signalled():
    proc = await launch(sys.executable, ["-c", "pass"])
    await proc.wait()

    assert await terminate_process_tree(proc.pid) is False
