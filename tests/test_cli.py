"""Tests for the command line."""

import json
import os
import shlex
import sys

import click
import pytest
from click.testing import CliRunner

from lineoracle.__main__ import main
from lineoracle.cli import EnumChoice, ExitCode, exit_code_for, validate_command
from lineoracle.communicator import History
from lineoracle.reporting import Volume
from lineoracle.runner import Error, Failure, Stopped, Success
from tests.helpers import PING_PONG, REPLY_WRONG


PING_PONG_SCRIPT = [
    {"name": "greeting", "direction": "input", "kind": "plain_text", "text": "ping"},
    {"name": "reply", "direction": "output", "kind": "plain_text", "text": "pong"},
]


def write_program(tmp_path, source: str) -> str:
    path = tmp_path / "program.py"
    path.write_text(source)
    return shlex.join([sys.executable, str(path)])


def write_script(tmp_path, document) -> str:
    path = tmp_path / "script.json"
    path.write_text(json.dumps(document))
    return str(path)


def invoke(*args: str):
    return CliRunner().invoke(main, list(args), catch_exceptions=False)


# === validate_command tests ===


def test_validate_command_existing_file(tmp_path):
    script = tmp_path / "prog.sh"
    script.write_text("#!/bin/sh\necho hello")
    script.chmod(0o755)

    result = validate_command(None, None, f"{script} arg1 arg2")
    assert result == [str(script.resolve()), "arg1", "arg2"]


def test_validate_command_resolves_on_path():
    result = validate_command(None, None, "ls -la")
    assert os.path.isabs(result[0])
    assert os.path.basename(result[0]) == "ls"
    assert result[1:] == ["-la"]


def test_validate_command_raises_for_nonexistent():
    with pytest.raises(click.BadParameter, match="command not found"):
        validate_command(None, None, "nonexistent_command_xyz123")


def test_validate_command_raises_for_empty():
    with pytest.raises(click.BadParameter):
        validate_command(None, None, "   ")


# === EnumChoice tests ===


def test_enum_choice_creates_choices():
    choice = EnumChoice(Volume)
    assert list(choice.choices) == ["quiet", "normal", "verbose", "debug"]


def test_enum_choice_converts_string():
    assert EnumChoice(Volume).convert("debug", None, None) == Volume.debug


def test_enum_choice_passes_enum_through():
    assert EnumChoice(Volume).convert(Volume.quiet, None, None) == Volume.quiet


# === exit code tests ===


@pytest.mark.parametrize(
    "report,code",
    [
        pytest.param(Success(), ExitCode.success, id="success"),
        pytest.param(Failure(History(), "no"), ExitCode.failure, id="failure"),
        pytest.param(Error(OSError("broken")), ExitCode.error, id="error"),
        pytest.param(Stopped(3), ExitCode.stopped, id="stopped"),
    ],
)
def test_exit_code_for(report, code):
    assert exit_code_for(report) == code


# === end to end ===


def test_passing_program(tmp_path):
    result = invoke(
        write_program(tmp_path, PING_PONG),
        write_script(tmp_path, PING_PONG_SCRIPT),
        "-n",
        "3",
        "--no-transcripts",
        "--seed",
        "0",
    )
    assert result.exit_code == 0, result.output
    assert "Passed: 3 trials" in result.output


def test_failing_program_saves_transcript(tmp_path):
    out = tmp_path / "out"
    result = invoke(
        write_program(tmp_path, REPLY_WRONG),
        write_script(tmp_path, PING_PONG_SCRIPT),
        "--transcripts",
        str(out),
    )
    assert result.exit_code == ExitCode.failure, result.output
    assert "<<< wrong" in result.output

    (run_dir,) = out.iterdir()
    (transcript,) = run_dir.iterdir()
    assert transcript.name.startswith("failure-")
    assert 'Expected output: "pong"' in transcript.read_text()


def test_saving_successes(tmp_path):
    out = tmp_path / "out"
    result = invoke(
        write_program(tmp_path, PING_PONG),
        write_script(tmp_path, PING_PONG_SCRIPT),
        "-n",
        "2",
        "--transcripts",
        str(out),
        "--save-successes",
    )
    assert result.exit_code == 0, result.output
    (run_dir,) = out.iterdir()
    (transcript,) = run_dir.iterdir()
    assert transcript.name.startswith("successes-")
    assert transcript.read_text().count(">>> ping") == 2


def test_timeout_is_a_failure(tmp_path):
    result = invoke(
        write_program(tmp_path, "import time; time.sleep(100)"),
        write_script(tmp_path, PING_PONG_SCRIPT),
        "--timeout",
        "0.2",
        "--no-transcripts",
    )
    assert result.exit_code == ExitCode.failure, result.output
    assert "Failed (timeout)" in result.output


def test_program_that_cannot_run_is_an_error(tmp_path):
    script = tmp_path / "not-a-program"
    script.write_text("#!/nonexistent/interpreter\n")
    script.chmod(0o755)
    result = invoke(
        str(script),
        write_script(tmp_path, PING_PONG_SCRIPT),
        "--no-transcripts",
    )
    assert result.exit_code == ExitCode.error, result.output
    assert "Error:" in result.output


def test_non_executable_program_is_rejected(tmp_path):
    program = tmp_path / "program.txt"
    program.write_text("hello")
    result = invoke(str(program), write_script(tmp_path, PING_PONG_SCRIPT))
    assert result.exit_code == ExitCode.error
    assert "is not executable" in result.output


def test_bad_script_is_a_usage_error(tmp_path):
    result = invoke(
        write_program(tmp_path, PING_PONG),
        write_script(
            tmp_path,
            [{"name": "n", "direction": "input", "kind": "int_ranges", "text": "1..x"}],
        ),
    )
    assert result.exit_code == 2
    assert "Rule 1 (n)" in result.output


def test_missing_command_is_a_usage_error(tmp_path):
    result = invoke(
        "nonexistent_command_xyz123", write_script(tmp_path, PING_PONG_SCRIPT)
    )
    assert result.exit_code == 2
    assert "command not found" in result.output
