"""Rules: what a line sent to, or read from, the program must look like.

There are exactly three kinds of rule, each of which can be parsed from the
text a user wrote, can check a line the program printed, and can generate a
line to feed to the program:

- PlainText: one exact line.
- RegexPattern: any line fully matched by a regular expression.
- IntRanges: an integer within one of a list of inclusive ranges.
"""

import json
import re
from enum import Enum
from functools import cached_property
from random import Random

from attrs import define, field

from lineoracle import synthesis


INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

INTEGER = re.compile(r"[+-]?[0-9]+")
INTEGER_BYTES = re.compile(rb"[+-]?[0-9]+")

RANGES_ERROR_PREFIX = "Error parsing integer ranges"


class RuleParseError(ValueError):
    """The text of a rule could not be turned into a rule."""


class RuleKind(Enum):
    plain_text = "plain_text"
    regex = "regex"
    int_ranges = "int_ranges"


@define(frozen=True)
class OpReport:
    """The verdict of checking one line against a rule."""

    success: bool
    message: str | None = None

    @classmethod
    def passed(cls) -> "OpReport":
        return cls(success=True)

    @classmethod
    def failed(cls, message: str) -> "OpReport":
        return cls(success=False, message=message)


def describe_literal(value: bytes) -> str:
    return json.dumps(value.decode("utf-8", errors="backslashreplace"), ensure_ascii=False)


@define(frozen=True)
class PlainText:
    text: bytes

    @classmethod
    def parse(cls, text: str) -> "PlainText":
        return cls(text.rstrip("\r\n").encode("utf-8"))

    def validate(self, observed: bytes) -> OpReport:
        if observed == self.text:
            return OpReport.passed()
        return OpReport.failed(f"Expected output: {describe_literal(self.text)}")

    def generate(self, random: Random) -> bytes:
        return self.text


@define(frozen=True, slots=False)
class RegexPattern:
    """A regular expression, kept both compiled and as a syntax tree.

    Patterns are whitespace-insensitive (``re.VERBOSE``), so rule authors
    can spread a pattern out and comment it. By default the pattern works
    on raw bytes. In unicode mode it works on text: output is decoded as
    UTF-8 before matching and generated text is UTF-8 encoded.
    """

    text: str
    matcher: re.Pattern = field(repr=False)
    syntax: object = field(eq=False, repr=False)
    unicode: bool = False

    @classmethod
    def parse(cls, text: str, *, unicode: bool = False) -> "RegexPattern":
        pattern: str | bytes = text if unicode else text.encode("utf-8")
        try:
            syntax = synthesis.parse_pattern(pattern, re.VERBOSE)
            matcher = re.compile(pattern, re.VERBOSE)
        except (re.error, OverflowError) as e:
            raise RuleParseError(f"Invalid regular expression: {e}") from e
        return cls(text=text, matcher=matcher, syntax=syntax, unicode=unicode)

    @cached_property
    def plan(self) -> synthesis.Plan:
        return synthesis.build_plan(self.syntax, unicode=self.unicode)  # type: ignore[arg-type]

    def check_generatable(self) -> None:
        """Raise UnsupportedConstruct if no string can be generated from this."""
        self.plan  # noqa: B018

    def validate(self, observed: bytes) -> OpReport:
        subject: str | bytes = observed
        if self.unicode:
            try:
                subject = observed.decode("utf-8")
            except UnicodeDecodeError as e:
                return OpReport.failed(f"Expected UTF-8 text matching\n{self.text}\n({e})")
        if self.matcher.fullmatch(subject) is not None:  # type: ignore[arg-type]
            return OpReport.passed()
        return OpReport.failed(
            f"Expected output matching the regular expression\n{self.text}"
        )

    def generate(self, random: Random) -> bytes:
        return synthesis.sample(self.plan, random)


def caret_line(line: str, offset: int) -> str:
    # Keep tabs so that the caret lines up with the character above it.
    padding = "".join("\t" if c == "\t" else " " for c in line[:offset])
    return padding + "^"


def ranges_error(message: str, line: str | None = None, offset: int = 0) -> RuleParseError:
    if line is None:
        return RuleParseError(f"{RANGES_ERROR_PREFIX}: {message}")
    return RuleParseError(
        f"{RANGES_ERROR_PREFIX}: {message}\n{line}\n{caret_line(line, offset)}"
    )


def strip_span(line: str, start: int, end: int) -> tuple[int, int]:
    """Shrink ``line[start:end]`` to exclude surrounding whitespace."""
    while start < end and line[start].isspace():
        start += 1
    while end > start and line[end - 1].isspace():
        end -= 1
    return start, end


def parse_integer(line: str, start: int, end: int) -> int:
    start, end = strip_span(line, start, end)
    token = line[start:end]
    if not token:
        raise ranges_error("expected a number", line, start)
    if INTEGER.fullmatch(token) is None:
        raise ranges_error(f"invalid number {token!r}", line, start)
    value = int(token)
    if not INT64_MIN <= value <= INT64_MAX:
        raise ranges_error(f"number {token} does not fit in 64 bits", line, start)
    return value


def split_spans(line: str, separator: str) -> list[tuple[int, int]]:
    spans = []
    start = 0
    while True:
        i = line.find(separator, start)
        if i < 0:
            spans.append((start, len(line)))
            return spans
        spans.append((start, i))
        start = i + len(separator)


@define(frozen=True)
class IntRanges:
    """A non-empty list of inclusive integer ranges.

    The text format is a comma or newline separated list whose elements are
    either a single integer or ``start..end``, e.g. ``1..10, 20, -5..-1``.
    """

    ranges: tuple[tuple[int, int], ...]
    text: str

    def __attrs_post_init__(self) -> None:
        if not self.ranges:
            raise ranges_error("text field empty")

    @classmethod
    def parse(cls, text: str) -> "IntRanges":
        ranges = []
        for line in text.splitlines():
            for start, end in split_spans(line, ","):
                separator = line.find("..", start, end)
                if separator < 0:
                    value = parse_integer(line, start, end)
                    ranges.append((value, value))
                    continue
                lo = parse_integer(line, start, separator)
                hi = parse_integer(line, separator + 2, end)
                if lo > hi:
                    raise ranges_error(
                        f"range start is greater than its end ({lo}..{hi})",
                        line,
                        strip_span(line, start, end)[0],
                    )
                ranges.append((lo, hi))
        return cls(tuple(ranges), text)

    def validate(self, observed: bytes) -> OpReport:
        if INTEGER_BYTES.fullmatch(observed) is None:
            return OpReport.failed(
                f"Expected an integer, got {describe_literal(observed)}"
            )
        value = int(observed)
        if any(lo <= value <= hi for lo, hi in self.ranges):
            return OpReport.passed()
        return OpReport.failed(f"Expected an integer within the ranges:\n{self.text}")

    def generate(self, random: Random) -> bytes:
        weights = [max(hi - lo + 1, 1) for lo, hi in self.ranges]
        lo, hi = random.choices(self.ranges, weights=weights)[0]
        return str(random.randint(lo, hi)).encode("ascii")


Rule = PlainText | RegexPattern | IntRanges


def parse_rule(kind: RuleKind, text: str, *, unicode: bool = False) -> Rule:
    match kind:
        case RuleKind.plain_text:
            return PlainText.parse(text)
        case RuleKind.regex:
            return RegexPattern.parse(text, unicode=unicode)
        case RuleKind.int_ranges:
            return IntRanges.parse(text)
