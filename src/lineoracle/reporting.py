"""Verbosity-aware reporting to stderr."""

import sys
from enum import IntEnum
from typing import TextIO


class Volume(IntEnum):
    """Logging verbosity levels."""

    quiet = 0
    normal = 1
    verbose = 2
    debug = 3


class Reporter:
    """Prints diagnostic messages that the configured volume admits.

    Everything goes to stderr so that it never interleaves with anything
    a caller might want to pipe from stdout.
    """

    def __init__(self, volume: Volume = Volume.normal, stream: TextIO | None = None):
        self.volume = volume
        self.stream = stream

    def warn(self, msg: str) -> None:
        self.report(msg, Volume.normal)

    def note(self, msg: str) -> None:
        self.report(msg, Volume.verbose)

    def debug(self, msg: str) -> None:
        self.report(msg, Volume.debug)

    def report(self, msg: str, level: Volume) -> None:
        if level > self.volume:
            return
        print(msg, file=self.stream or sys.stderr, flush=True)
