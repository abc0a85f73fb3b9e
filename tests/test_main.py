"""Tests for running a job from the entry point, including Ctrl-C handling."""

import os
import signal
from random import Random

import trio

from lineoracle.__main__ import run_oracle
from lineoracle.reporting import Reporter, Volume
from lineoracle.runner import Failure, Stopped, Success, TestingJob
from lineoracle.transcripts import NullSink
from tests.helpers import PING_PONG, REPLY_WRONG, ping_pong_script, python_program


SLOW_PING_PONG = """
import sys, time
sys.stdin.readline()
time.sleep(0.1)
print("pong", flush=True)
"""


async def run_quietly(job: TestingJob):
    return await run_oracle(
        job,
        random=Random(0),
        sink=NullSink(),
        reporter=Reporter(Volume.quiet),
        show_progress=False,
    )


async def test_run_oracle_success(tmp_path):
    job = TestingJob(python_program(tmp_path, PING_PONG), ping_pong_script(), 3)
    assert isinstance(await run_quietly(job), Success)


async def test_run_oracle_failure(tmp_path):
    job = TestingJob(python_program(tmp_path, REPLY_WRONG), ping_pong_script(), 3)
    assert isinstance(await run_quietly(job), Failure)


async def test_first_interrupt_stops_after_current_trial(tmp_path):
    job = TestingJob(python_program(tmp_path, SLOW_PING_PONG), ping_pong_script(), 1000)
    reports = []

    async def run():
        reports.append(await run_quietly(job))

    with trio.fail_after(30):
        async with trio.open_nursery() as nursery:
            nursery.start_soon(run)
            await trio.sleep(0.5)
            os.kill(os.getpid(), signal.SIGINT)

    (report,) = reports
    assert isinstance(report, Stopped)
    assert report.solved < 1000


async def test_second_interrupt_stops_immediately(tmp_path):
    program = python_program(tmp_path, "import time; time.sleep(100)")
    job = TestingJob(program, ping_pong_script(), 1)
    reports = []

    async def run():
        reports.append(await run_quietly(job))

    with trio.fail_after(30):
        async with trio.open_nursery() as nursery:
            nursery.start_soon(run)
            await trio.sleep(0.5)
            os.kill(os.getpid(), signal.SIGINT)
            await trio.sleep(0.2)
            os.kill(os.getpid(), signal.SIGINT)

    assert reports == [Stopped(0)]
