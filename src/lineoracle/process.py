"""Starting and stopping the program under test."""

import os
import random
import signal
import subprocess
from typing import IO

import trio


async def spawn_program(command: list[str], stderr: IO[bytes]) -> trio.Process:
    """Start ``command`` with piped stdin and stdout in its own process group.

    stderr goes to ``stderr``, which should be a real file so that a program
    writing a lot of it can never block on a full pipe.
    """
    return await trio.lowlevel.open_process(
        command,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=stderr,
        preexec_fn=os.setsid,
    )


def signal_group(sp: trio.Process, sig: int) -> None:
    """Send a signal to the process group led by ``sp``."""
    gid = os.getpgid(sp.pid)
    assert gid != os.getpgrp()
    os.killpg(gid, sig)


async def terminate_program(sp: trio.Process, delay: float = 0.1) -> None:
    """Make sure a program has exited, escalating from SIGINT to SIGKILL.

    This runs shielded from cancellation: it is called while tearing down a
    trial, which may be happening precisely because the trial was cancelled.
    """
    with trio.CancelScope(shield=True):
        for pipe in [sp.stdin, sp.stdout]:
            if pipe is not None:
                await pipe.aclose()

        if sp.poll() is not None:
            return

        try:
            signal_group(sp, signal.SIGINT)
            for n in range(10):
                if sp.poll() is not None:
                    return
                await trio.sleep(delay * 1.5**n * random.random())
            signal_group(sp, signal.SIGKILL)
        except ProcessLookupError:  # pragma: no cover
            # The group went away between the poll and the signal.
            pass

        with trio.move_on_after(delay * 10):
            await sp.wait()

        if sp.returncode is None:
            raise ValueError(
                f"Could not kill program with pid {sp.pid}. Something has gone seriously wrong."
            )
