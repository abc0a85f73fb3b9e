"""A line-oriented conversation with one running program.

The Communicator writes lines to the program's stdin and reads lines from
its stdout, keeping a transcript of everything that went each way. Once the
conversation is over, ``finish()`` waits for the program to exit and
decides whether it behaved: it must exit with status 0 without printing
anything that nobody read.
"""

import math
import tempfile
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from enum import Enum, auto
from typing import IO

import trio
from attrs import define, field

from lineoracle.process import spawn_program, terminate_program


class CommunicationError(Exception):
    """Talking to the program failed for reasons other than its answers."""


class ProgramTimedOut(Exception):
    """The program did not answer within the allowed time."""

    def __init__(self, timeout: float, waiting_for: str) -> None:
        self.timeout = timeout
        self.waiting_for = waiting_for
        super().__init__(f"Program did not {waiting_for} within {timeout}s")


@define(frozen=True)
class Sent:
    line: bytes


@define(frozen=True)
class Received:
    line: bytes


HistoryEntry = Sent | Received


@define
class History:
    """Everything sent to and received from the program, in order."""

    entries: list[HistoryEntry] = field(factory=list)

    def sent(self, line: bytes) -> None:
        self.entries.append(Sent(line))

    def received(self, line: bytes) -> None:
        self.entries.append(Received(line))

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class OutcomeKind(Enum):
    success = auto()
    excess_output = auto()
    abnormal_exit = auto()


@define(frozen=True)
class CommOutcome:
    kind: OutcomeKind
    returncode: int
    stderr: bytes = b""


def strip_terminator(line: bytes) -> bytes:
    if line.endswith(b"\n"):
        line = line[:-1]
    if line.endswith(b"\r"):
        line = line[:-1]
    return line


class Communicator:
    def __init__(
        self, process: trio.Process, stderr: IO[bytes], timeout: float = math.inf
    ):
        self.process = process
        self.history = History()
        self.timeout = timeout
        self._stderr = stderr
        self._buffer = bytearray()
        self._stdin_closed = False
        self.stdout_closed = False

    async def write_line(self, line: bytes) -> None:
        """Send ``line`` followed by a newline to the program."""
        stdin = self.process.stdin
        if stdin is None or self._stdin_closed:
            raise CommunicationError("Program stdin is closed")
        try:
            with trio.fail_after(self.timeout):
                await stdin.send_all(line + b"\n")
        except trio.TooSlowError:
            raise ProgramTimedOut(self.timeout, "accept input") from None
        except (trio.BrokenResourceError, trio.ClosedResourceError) as e:
            raise CommunicationError(f"Could not write to program stdin: {e}") from e
        self.history.sent(line)

    async def _receive_chunk(self) -> bytes:
        stdout = self.process.stdout
        if stdout is None:
            raise CommunicationError("Program stdout is unavailable")
        try:
            return await stdout.receive_some()
        except (trio.BrokenResourceError, trio.ClosedResourceError) as e:
            raise CommunicationError(f"Could not read from program stdout: {e}") from e

    async def read_line(self) -> bytes:
        """Read one line from the program, without its terminator.

        If the program closes its stdout, whatever was left over is returned
        as the last line (which is empty if nothing was) and ``stdout_closed``
        is set.
        """
        try:
            with trio.fail_after(self.timeout):
                while b"\n" not in self._buffer:
                    chunk = await self._receive_chunk()
                    if not chunk:
                        self.stdout_closed = True
                        break
                    self._buffer.extend(chunk)
        except trio.TooSlowError:
            raise ProgramTimedOut(self.timeout, "print a line") from None

        i = self._buffer.find(b"\n")
        if i < 0:
            raw = bytes(self._buffer)
            self._buffer.clear()
        else:
            raw = bytes(self._buffer[: i + 1])
            del self._buffer[: i + 1]
        line = strip_terminator(raw)
        self.history.received(line)
        return line

    async def _close_stdin(self) -> None:
        if not self._stdin_closed and self.process.stdin is not None:
            self._stdin_closed = True
            await self.process.stdin.aclose()

    def _captured_stderr(self) -> bytes:
        self._stderr.seek(0)
        return self._stderr.read()

    async def finish(self) -> CommOutcome:
        """Close stdin, wait for the program to exit and classify how it went.

        Anything the program printed that was never read is recorded in the
        history as one last received entry.
        """
        await self._close_stdin()
        try:
            with trio.fail_after(self.timeout):
                while True:
                    chunk = await self._receive_chunk()
                    if not chunk:
                        self.stdout_closed = True
                        break
                    self._buffer.extend(chunk)
                await self.process.wait()
        except trio.TooSlowError:
            raise ProgramTimedOut(self.timeout, "exit") from None

        residual = bytes(self._buffer)
        self._buffer.clear()
        if residual:
            self.history.received(residual)

        returncode = self.process.returncode
        assert returncode is not None
        if returncode != 0:
            return CommOutcome(
                OutcomeKind.abnormal_exit, returncode, self._captured_stderr()
            )
        if residual:
            return CommOutcome(OutcomeKind.excess_output, returncode)
        return CommOutcome(OutcomeKind.success, returncode)


@asynccontextmanager
async def open_communicator(
    command: list[str], timeout: float = math.inf
) -> AsyncIterator[Communicator]:
    """Start ``command`` and yield a Communicator talking to it.

    The program is killed on exit from the block if it is still running.
    Raises CommunicationError if it cannot be started.
    """
    with tempfile.TemporaryFile() as stderr:
        try:
            process = await spawn_program(command, stderr)
        except OSError as e:
            raise CommunicationError(f"Could not start {command[0]}: {e}") from e
        try:
            yield Communicator(process, stderr, timeout=timeout)
        finally:
            await terminate_program(process)
