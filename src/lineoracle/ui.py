"""Showing a run to the person who started it."""

import shlex
import sys
import time
from datetime import timedelta
from typing import TextIO

import humanize
import trio
from attrs import define

from lineoracle.display import render_transcript, truncate_lines
from lineoracle.runner import Error, Failure, Stopped, Success, TestReport
from lineoracle.worker import RunManager


def render_report(report: TestReport, required: int) -> str:
    match report:
        case Success():
            return f"Passed: {humanize.intcomma(required)} trials completed successfully."
        case Failure(history=history, message=message, kind=kind):
            what = kind.name.replace("_", " ")
            return f"Failed ({what}):\n\n" + truncate_lines(
                render_transcript(history, message)
            )
        case Error(cause=cause):
            return f"Error: could not test the program: {cause}"
        case Stopped(solved=solved):
            return (
                f"Stopped: {humanize.intcomma(solved)} of "
                f"{humanize.intcomma(required)} trials passed before stopping."
            )


@define
class BasicUI:
    """Simple text-based UI for non-interactive use."""

    manager: RunManager
    command: list[str]
    stream: TextIO | None = None

    def print(self, msg: str) -> None:
        print(msg, file=self.stream or sys.stdout, flush=True)

    async def run(self) -> None:
        start = time.monotonic()
        self.print(f"Testing {shlex.join(self.command)}")
        prev_solved = 0
        while True:
            progress = self.manager.progress
            if progress.required and progress.solved > prev_solved:
                elapsed = timedelta(seconds=time.monotonic() - start)
                self.print(
                    f"{humanize.intcomma(progress.solved)}/"
                    f"{humanize.intcomma(progress.required)} trials passed "
                    f"({progress.solved / progress.required:.0%}) "
                    f"in {humanize.naturaldelta(elapsed)}"
                )
                prev_solved = progress.solved
                await trio.sleep(1)
            else:
                if progress.solved < prev_solved:
                    # The worker was replaced and is starting from scratch.
                    prev_solved = progress.solved
                await trio.sleep(0.1)
