"""Main entry point for lineoracle."""

import math
import os
import signal
import sys
import traceback
from random import Random
from typing import Any

import click
import trio

from lineoracle.cli import EnumChoice, ExitCode, exit_code_for, validate_command
from lineoracle.reporting import Reporter, Volume
from lineoracle.runner import Error, TestingJob, TestReport
from lineoracle.script import ScriptError, load_script
from lineoracle.transcripts import NullSink, TranscriptDirectory, TranscriptSink
from lineoracle.ui import BasicUI, render_report
from lineoracle.worker import RunManager


async def watch_interrupts(manager: RunManager, reporter: Reporter) -> None:
    """Stop politely on the first Ctrl-C, and at once on the second."""
    with trio.open_signal_receiver(signal.SIGINT) as signals:
        async for _ in signals:
            if not manager.progress.stop_requested:
                reporter.warn(
                    "Stopping after the current trial. Press Ctrl-C again to stop now."
                )
                manager.request_stop()
            else:
                reporter.warn("Stopping now.")
                manager.force_stop()


async def run_oracle(
    job: TestingJob,
    *,
    random: Random,
    sink: TranscriptSink,
    reporter: Reporter,
    save_successes: bool = False,
    show_progress: bool = True,
) -> TestReport:
    """Run ``job`` on a supervised worker and wait for its report."""
    async with trio.open_nursery() as nursery:
        manager = RunManager(
            nursery,
            random=random,
            sink=sink,
            reporter=reporter,
            save_successes=save_successes,
        )
        nursery.start_soon(watch_interrupts, manager, reporter)
        if show_progress:
            nursery.start_soon(BasicUI(manager, job.command).run)

        while not await manager.submit(job):
            reporter.note("Worker was not running. Resubmitting.")

        report = await manager.receive_result()
        if report is None:
            report = manager.last_report or Error(
                RuntimeError("The worker stopped without reporting")
            )
        nursery.cancel_scope.cancel()
    return report


@click.command(
    help="""
lineoracle repeatedly runs PROGRAM and holds a line-by-line conversation with
it, as described by the rules in SCRIPT: input rules say what to send to the
program on stdin, output rules say what it must print on stdout in reply.
Each trial starts the program afresh and passes if every output matched and
the program exited with status 0 without printing anything else.

Testing stops at the first failing trial, whose transcript is printed and
saved, or once the required number of trials have passed.
""".strip()
)
@click.version_option()
@click.option(
    "--successes",
    "-n",
    default=100,
    type=click.IntRange(min=1),
    help="Number of trials that must pass for the program to pass.",
)
@click.option(
    "--timeout",
    default=5.0,
    type=click.FLOAT,
    help=(
        "Give up on a trial if the program takes longer than this many seconds "
        "to accept a line, print a line or exit. If set to <= 0 then no timeout "
        "will be used. A trial that times out counts as a failure."
    ),
)
@click.option(
    "--seed",
    default=None,
    type=click.INT,
    help="Random seed for generating input. Defaults to a fresh seed each run.",
)
@click.option(
    "--volume",
    default="normal",
    type=EnumChoice(Volume),
    help="Level of diagnostic output to print to stderr.",
)
@click.option(
    "--transcripts",
    "transcripts_dir",
    default=".lineoracle",
    type=click.Path(file_okay=False),
    help="Directory in which to save transcripts of failing (and passing) trials.",
)
@click.option(
    "--no-transcripts",
    is_flag=True,
    default=False,
    help="Do not save any transcripts to disk.",
)
@click.option(
    "--save-successes/--no-save-successes",
    default=False,
    help="Also save the transcripts of every passing trial once all have passed.",
)
@click.option(
    "--unicode/--bytes",
    "unicode",
    default=None,
    help=(
        "Match and generate regular expressions over UTF-8 text rather than raw "
        "bytes. Overrides the setting in the script."
    ),
)
@click.argument("program", callback=validate_command)
@click.argument(
    "script",
    type=click.Path(exists=True, dir_okay=False, allow_dash=False),
)
def main(
    program: list[str],
    script: str,
    successes: int,
    timeout: float,
    seed: int | None,
    volume: Volume,
    transcripts_dir: str,
    no_transcripts: bool,
    save_successes: bool,
    unicode: bool | None,
) -> None:
    if timeout <= 0:
        timeout = math.inf

    if not os.access(program[0], os.X_OK):
        print(
            f"Program {os.path.relpath(program[0])} is not executable.",
            file=sys.stderr,
        )
        sys.exit(int(ExitCode.error))

    try:
        test_script = load_script(script, unicode=unicode)
    except ScriptError as e:
        raise click.BadParameter(str(e), param_hint="SCRIPT") from e

    reporter = Reporter(volume)

    if seed is None:
        seed = Random().getrandbits(32)
    reporter.note(f"Using seed {seed}")

    sink: TranscriptSink
    if no_transcripts:
        sink = NullSink()
    else:
        sink = TranscriptDirectory.create(program, transcripts_dir, reporter=reporter)

    job = TestingJob(
        command=program,
        script=test_script,
        successes_required=successes,
        timeout=timeout,
    )

    # Ctrl-\ prints where we are, for when a program seems to hang.
    def dump_trace(signum: int, frame: Any) -> None:  # pragma: no cover
        traceback.print_stack()

    signal.signal(signal.SIGQUIT, dump_trace)

    try:
        report = trio.run(
            lambda: run_oracle(
                job,
                random=Random(seed),
                sink=sink,
                reporter=reporter,
                save_successes=save_successes,
                show_progress=volume > Volume.quiet,
            )
        )
    # trio wraps a sys.exit from inside the run in an exception group.
    except* SystemExit as eg:
        raise eg.exceptions[0]
    except* KeyboardInterrupt as eg:
        raise eg.exceptions[0]

    print(render_report(report, successes), flush=True)
    sys.exit(int(exit_code_for(report)))


if __name__ == "__main__":  # pragma: no cover
    main(prog_name="lineoracle")
