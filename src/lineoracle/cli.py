"""CLI utilities and types for lineoracle."""

import os
import shlex
from enum import Enum, IntEnum
from shutil import which
from typing import Any, Generic, TypeVar

import click

from lineoracle.runner import Error, Failure, Stopped, Success, TestReport


def validate_command(ctx: Any, param: Any, value: str) -> list[str]:
    """Validate and resolve a command string."""
    parts = shlex.split(value)
    if not parts:
        raise click.BadParameter("empty command")
    command = parts[0]

    if os.path.exists(command):
        command = os.path.abspath(command)
    else:
        what = which(command)
        if what is None:
            raise click.BadParameter(f"{command}: command not found")
        command = os.path.abspath(what)
    return [command] + parts[1:]


EnumType = TypeVar("EnumType", bound=Enum)


class EnumChoice(click.Choice, Generic[EnumType]):
    """A click Choice that works with Enums."""

    def __init__(self, enum: type[EnumType]) -> None:
        self.enum = enum
        choices = [str(e.name) for e in enum]
        self.__values = {e.name: e for e in enum}
        super().__init__(choices)

    def convert(self, value: Any, param: Any, ctx: Any) -> EnumType:
        if isinstance(value, self.enum):
            return value
        return self.__values[super().convert(value, param, ctx)]


class ExitCode(IntEnum):
    """Process exit status for each way a run can end."""

    success = 0
    failure = 1
    error = 2
    stopped = 3


def exit_code_for(report: TestReport) -> ExitCode:
    match report:
        case Success():
            return ExitCode.success
        case Failure():
            return ExitCode.failure
        case Error():
            return ExitCode.error
        case Stopped():
            return ExitCode.stopped
