import sys
import textwrap
from pathlib import Path

from lineoracle.rules import IntRanges, PlainText, RegexPattern, Rule
from lineoracle.runner import Direction, Operation, TestScript


ECHO = """
import sys
for line in sys.stdin:
    sys.stdout.write(line)
    sys.stdout.flush()
"""

REPLY_WRONG = """
import sys
sys.stdin.readline()
print("wrong", flush=True)
"""

PING_PONG = """
import sys
line = sys.stdin.readline()
assert line == "ping\\n", line
print("pong", flush=True)
"""

DOUBLER = """
import sys
for line in sys.stdin:
    print(int(line) * 2, flush=True)
"""


def python_program(tmp_path: Path, source: str, name: str = "program.py") -> list[str]:
    """Write ``source`` to a file and return a command that runs it."""
    path = tmp_path / name
    path.write_text(textwrap.dedent(source))
    return [sys.executable, str(path)]


def counting_program(tmp_path: Path, source: str) -> tuple[list[str], Path]:
    """Like python_program, but every run appends a line to a counter file."""
    counter = tmp_path / "runs.txt"
    prelude = f"""
    with open({str(counter)!r}, "a") as f:
        f.write("run\\n")
    """
    return (
        python_program(tmp_path, textwrap.dedent(prelude) + textwrap.dedent(source)),
        counter,
    )


def count_runs(counter: Path) -> int:
    if not counter.exists():
        return 0
    return len(counter.read_text().splitlines())


def send(rule: Rule) -> Operation:
    return Operation(Direction.input, rule)


def expect(rule: Rule) -> Operation:
    return Operation(Direction.output, rule)


def script(*operations: Operation) -> TestScript:
    return TestScript(tuple(operations))


def ping_pong_script() -> TestScript:
    return script(send(PlainText(b"ping")), expect(PlainText(b"pong")))


def doubling_script() -> TestScript:
    return script(
        send(IntRanges.parse("1..1000")),
        expect(RegexPattern.parse(r"[0-9]+")),
    )
