"""Running jobs in a supervised background task.

The controller (whatever is driving the run, usually the command line) talks
to a single worker task through two rendezvous channels: one carrying
TestingJobs to the worker and one carrying TestReports back. Because neither
channel has a buffer, handing over a job blocks until the worker is idle,
so at most one job is ever in flight.

If the worker dies, its ends of both channels are closed. The controller
notices the next time it sends or receives, throws the dead worker away and
starts a fresh one. Nothing the dead worker was doing is recovered.
"""

import traceback
from random import Random

import trio

from lineoracle import runner
from lineoracle.reporting import Reporter
from lineoracle.runner import Error, SharedProgress, Stopped, TestingJob, TestReport
from lineoracle.transcripts import NullSink, TranscriptSink


class Worker:
    def __init__(
        self,
        receive_work: trio.MemoryReceiveChannel[TestingJob],
        send_result: trio.MemorySendChannel[TestReport],
        progress: SharedProgress,
        random: Random,
        sink: TranscriptSink,
        reporter: Reporter,
        save_successes: bool = False,
    ):
        self.receive_work = receive_work
        self.send_result = send_result
        self.progress = progress
        self.random = random
        self.sink = sink
        self.reporter = reporter
        self.save_successes = save_successes

    async def serve(self) -> None:
        """Run jobs one at a time until the controller goes away."""
        async with self.receive_work, self.send_result:
            async for job in self.receive_work:
                report = await runner.run_script(
                    job,
                    self.progress,
                    self.random,
                    sink=self.sink,
                    reporter=self.reporter,
                    save_successes=self.save_successes,
                )
                await self.send_result.send(report)


class RunManager:
    """The controller's handle on its worker.

    ``progress`` always belongs to the current worker. Replacing the worker
    replaces it with a fresh one, so a worker that is being torn down can
    never write into the counters of its successor.
    """

    def __init__(
        self,
        nursery: trio.Nursery,
        *,
        random: Random | None = None,
        sink: TranscriptSink | None = None,
        reporter: Reporter | None = None,
        save_successes: bool = False,
    ):
        self.nursery = nursery
        self.random = random or Random()
        self.sink = sink or NullSink()
        self.reporter = reporter or Reporter()
        self.save_successes = save_successes

        self.last_report: TestReport | None = None
        self.restarts = 0
        self.busy = False

        self._start_worker()

    def _start_worker(self) -> None:
        send_work, receive_work = trio.open_memory_channel[TestingJob](0)
        send_result, receive_result = trio.open_memory_channel[TestReport](0)
        self._send_work = send_work
        self._receive_result = receive_result
        self.progress = SharedProgress()
        self._scope = trio.CancelScope()
        worker = Worker(
            receive_work,
            send_result,
            self.progress,
            self.random,
            self.sink,
            self.reporter,
            save_successes=self.save_successes,
        )
        self.nursery.start_soon(self._supervise, worker, self._scope)

    async def _supervise(self, worker: Worker, scope: trio.CancelScope) -> None:
        with scope:
            try:
                await worker.serve()
            except Exception as e:
                self.reporter.warn(f"Worker crashed:\n{traceback.format_exc()}")
                self.last_report = Error(e)

    def _restart(self) -> None:
        self._send_work.close()
        self._receive_result.close()
        self.busy = False
        self.restarts += 1
        self.reporter.debug(f"Starting replacement worker ({self.restarts})")
        self._start_worker()

    async def submit(self, job: TestingJob) -> bool:
        """Hand ``job`` to the worker, waiting until it is accepted.

        Returns False if the worker turned out to be dead. It is replaced
        before this returns, so the job can simply be submitted again.
        """
        if self.busy:
            raise RuntimeError("Cannot submit a job while another one is running")
        self.last_report = None
        # Any stop requested from here on applies to this job.
        self.progress.reset()
        try:
            await self._send_work.send(job)
        except (trio.BrokenResourceError, trio.ClosedResourceError):
            self._restart()
            return False
        self.busy = True
        return True

    def _finished(self, report: TestReport) -> TestReport:
        self.busy = False
        self.last_report = report
        return report

    def try_receive_result(self) -> bool | None:
        """Check for a finished job without waiting.

        Returns True if a report arrived (it is now ``last_report``), False
        if the job is still running, and None if the worker died, in which
        case it has already been replaced.
        """
        try:
            report = self._receive_result.receive_nowait()
        except trio.WouldBlock:
            return False
        except trio.EndOfChannel:
            self._restart()
            return None
        self._finished(report)
        return True

    async def receive_result(self) -> TestReport | None:
        """Wait for the current job to finish.

        Returns None if the worker died or was forcibly stopped while this
        was waiting. ``last_report`` then says what happened, if anything
        is known.
        """
        channel = self._receive_result
        try:
            report = await channel.receive()
        except trio.EndOfChannel:
            self._restart()
            return None
        except trio.ClosedResourceError:
            # force_stop() already replaced the worker under us.
            return None
        return self._finished(report)

    def request_stop(self) -> None:
        """Ask the worker to stop before starting its next trial."""
        self.progress.request_stop()

    def force_stop(self) -> None:
        """Abandon the current job immediately and start a fresh worker.

        Cancelling the old worker interrupts whatever it is waiting on; the
        program it was talking to is killed as its trial unwinds.
        """
        self.reporter.debug("Cancelling worker")
        if self.busy:
            self.last_report = Stopped(self.progress.solved)
        self._scope.cancel()
        self._restart()
