"""Running a rule script against a program, once or many times.

A trial starts the program afresh, walks the script in order (writing a
generated line for every input rule, reading and checking a line for every
output rule) and finally checks that the program exits cleanly. A run
repeats trials until enough of them have passed, one of them fails, or
somebody asks it to stop.
"""

import math
from collections.abc import Iterator
from enum import Enum, auto
from random import Random

from attrs import define, field

from lineoracle.communicator import (
    CommOutcome,
    CommunicationError,
    Communicator,
    History,
    OutcomeKind,
    ProgramTimedOut,
    open_communicator,
)
from lineoracle.display import render_history, render_transcript
from lineoracle.reporting import Reporter
from lineoracle.rules import Rule
from lineoracle.synthesis import UnsupportedConstruct
from lineoracle.transcripts import NullSink, TranscriptSink


class Direction(Enum):
    input = "input"
    output = "output"


@define(frozen=True)
class Operation:
    direction: Direction
    rule: Rule
    name: str = ""


@define(frozen=True)
class TestScript:
    """An ordered list of operations, in conversation order."""

    operations: tuple[Operation, ...]

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)


@define(frozen=True)
class TestingJob:
    command: list[str]
    script: TestScript
    successes_required: int
    timeout: float = math.inf


class FailureKind(Enum):
    semantic = auto()
    excess_output = auto()
    abnormal_exit = auto()
    timeout = auto()

    @property
    def is_protocol_failure(self) -> bool:
        return self is not FailureKind.semantic


@define(frozen=True)
class Success:
    """Everything passed.

    A single trial keeps its history so that it can be saved; the report for
    a whole run does not.
    """

    history: History | None = field(default=None, eq=False, repr=False)


@define(frozen=True)
class Failure:
    history: History
    message: str
    kind: FailureKind = FailureKind.semantic


@define(frozen=True)
class Error:
    """Something went wrong with the tooling rather than the program."""

    cause: BaseException


@define(frozen=True)
class Stopped:
    solved: int


TestReport = Success | Failure | Error | Stopped


@define
class SharedProgress:
    """Progress of the current run, for whoever wants to display it.

    Only the run loop writes to this. Everything runs on one trio thread,
    so readers always see a consistent pair of counters.
    """

    solved: int = 0
    required: int = 0
    stop_requested: bool = False

    def reset(self) -> None:
        self.solved = 0
        self.required = 0
        self.stop_requested = False

    def request_stop(self) -> None:
        self.stop_requested = True


def outcome_report(outcome: CommOutcome, history: History) -> Success | Failure:
    if outcome.kind is OutcomeKind.success:
        return Success(history)
    if outcome.kind is OutcomeKind.excess_output:
        return Failure(history, "Program produced extra output", FailureKind.excess_output)
    stderr = outcome.stderr.decode("utf-8", errors="replace")
    return Failure(
        history,
        f"Program exited abnormally (exit code {outcome.returncode}):\n{stderr}",
        FailureKind.abnormal_exit,
    )


async def closed_output_report(comm: Communicator, message: str) -> Failure:
    """The program closed its stdout before printing an expected line.

    Waits for it to exit, so that a crash is reported with its exit code and
    stderr rather than as a mere mismatch.
    """
    outcome = await comm.finish()
    if outcome.kind is OutcomeKind.abnormal_exit:
        exited = outcome_report(outcome, comm.history)
        assert isinstance(exited, Failure)
        return Failure(
            comm.history, f"{message}\n\n{exited.message}", FailureKind.abnormal_exit
        )
    return Failure(
        comm.history,
        f"{message}\n\nProgram closed its output and exited with code "
        f"{outcome.returncode}",
    )


async def run_trial(
    command: list[str],
    script: TestScript,
    random: Random,
    timeout: float = math.inf,
) -> Success | Failure | Error:
    """Run ``script`` once against a fresh instance of ``command``."""
    try:
        async with open_communicator(command, timeout=timeout) as comm:
            try:
                for op in script:
                    match op.direction:
                        case Direction.input:
                            await comm.write_line(op.rule.generate(random))
                        case Direction.output:
                            report = op.rule.validate(await comm.read_line())
                            if not report.success:
                                assert report.message is not None
                                if comm.stdout_closed:
                                    return await closed_output_report(
                                        comm, report.message
                                    )
                                return Failure(comm.history, report.message)
                outcome = await comm.finish()
            except ProgramTimedOut as e:
                return Failure(comm.history, str(e), FailureKind.timeout)
            return outcome_report(outcome, comm.history)
    except (CommunicationError, UnsupportedConstruct, OSError) as e:
        return Error(e)


async def run_script(
    job: TestingJob,
    progress: SharedProgress,
    random: Random,
    sink: TranscriptSink | None = None,
    reporter: Reporter | None = None,
    save_successes: bool = False,
) -> TestReport:
    """Run trials until ``job.successes_required`` of them have passed.

    Stops at the first trial that does not pass, and before starting a new
    trial if a stop has been requested.
    """
    sink = sink or NullSink()
    reporter = reporter or Reporter()

    progress.solved = 0
    progress.required = job.successes_required

    successes: list[History] = []
    while progress.solved < progress.required:
        if progress.stop_requested:
            reporter.note(f"Stopped after {progress.solved} successful trials")
            return Stopped(progress.solved)

        trial_random = Random(random.getrandbits(64))
        reporter.debug(f"Starting trial {progress.solved + 1}")
        result = await run_trial(job.command, job.script, trial_random, job.timeout)

        match result:
            case Success(history=history):
                if save_successes:
                    successes.append(history)  # type: ignore[arg-type]
                progress.solved += 1
            case Failure(history=history, message=message):
                sink.record_failure(render_transcript(history, message))
                return result
            case _:
                return result

    if save_successes:
        sink.record_successes([render_history(h) for h in successes])
    return Success()
