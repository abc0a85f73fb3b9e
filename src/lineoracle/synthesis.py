"""Random string synthesis for regular expressions.

A pattern is parsed with Python's own regular expression parser, which
gives a tree of ``(opcode, argument)`` pairs. That tree is lowered into a
sampling plan built from five node types:

- Literal: fixed bytes.
- Choice: one character drawn uniformly from a set of code point ranges.
- Repeat: a sub-plan sampled a random number of times.
- Sequence: sub-plans sampled one after the other.
- AnyOf: exactly one of several sub-plans.

The plan is built once and can then be sampled as often as needed. Every
string it produces is matched by the pattern compiled with the same flags,
as long as the pattern only uses constructs that can be satisfied locally.
Anchors, word boundaries, look-arounds, back-references, conditionals,
atomic groups and possessive repeats cannot be, so building a plan for a
pattern containing any of them raises UnsupportedConstruct.
"""

import re
import re._constants as sre
import re._parser as sre_parse
from collections.abc import Iterable
from functools import lru_cache
from random import Random

from attrs import define


# Upper bound on the number of repeats drawn for `*` and `+`.
UNBOUNDED_REPEAT_LIMIT = 40

BYTE_UNIVERSE = ((0, 0xFF),)
# Surrogates cannot be UTF-8 encoded, so they are never generated.
UNICODE_UNIVERSE = ((0, 0xD7FF), (0xE000, 0x10FFFF))

NEWLINE = ord("\n")

CATEGORY_ESCAPES = {
    sre.CATEGORY_DIGIT: r"\d",
    sre.CATEGORY_NOT_DIGIT: r"\D",
    sre.CATEGORY_SPACE: r"\s",
    sre.CATEGORY_NOT_SPACE: r"\S",
    sre.CATEGORY_WORD: r"\w",
    sre.CATEGORY_NOT_WORD: r"\W",
}

ASSERTION_NAMES = {
    sre.AT_BEGINNING: "start anchor '^'",
    sre.AT_BEGINNING_STRING: "start anchor '\\A'",
    sre.AT_END: "end anchor '$'",
    sre.AT_END_STRING: "end anchor '\\Z'",
    sre.AT_BOUNDARY: "word boundary '\\b'",
    sre.AT_NON_BOUNDARY: "word boundary '\\B'",
}

UNSUPPORTED_OPCODES = {
    sre.ASSERT: "look-around",
    sre.ASSERT_NOT: "negative look-around",
    sre.GROUPREF: "back-reference",
    sre.GROUPREF_EXISTS: "conditional group",
    sre.ATOMIC_GROUP: "atomic group",
    sre.POSSESSIVE_REPEAT: "possessive repetition",
}


class UnsupportedConstruct(ValueError):
    """Raised when a pattern contains something that cannot be generated."""

    def __init__(self, construct: str) -> None:
        self.construct = construct
        super().__init__(f"{construct} is not supported when generating input")


Ranges = tuple[tuple[int, int], ...]


@define(frozen=True)
class Literal:
    value: bytes


@define(frozen=True)
class Choice:
    ranges: Ranges
    unicode: bool

    @property
    def size(self) -> int:
        return sum(hi - lo + 1 for lo, hi in self.ranges)


@define(frozen=True)
class Repeat:
    item: "Plan"
    min_count: int
    max_count: int


@define(frozen=True)
class Sequence:
    items: tuple["Plan", ...]


@define(frozen=True)
class AnyOf:
    branches: tuple["Plan", ...]


Plan = Literal | Choice | Repeat | Sequence | AnyOf


def parse_pattern(pattern: str | bytes, flags: int = 0) -> sre_parse.SubPattern:
    """Parse a pattern into the syntax tree used by the re module."""
    return sre_parse.parse(pattern, flags)


def repeat_bounds(min_count: int, max_count: int) -> tuple[int, int]:
    """Turn the declared bounds of a repetition into the bounds we draw from.

    Unbounded repetitions are capped so that generated strings stay short.
    """
    if max_count != sre.MAXREPEAT:
        return min_count, max_count
    if min_count <= 1:
        return min_count, UNBOUNDED_REPEAT_LIMIT
    return min_count, min_count * 2


def normalize_ranges(ranges: Iterable[tuple[int, int]]) -> Ranges:
    """Sort ranges and merge any that overlap or touch."""
    result: list[tuple[int, int]] = []
    for lo, hi in sorted(ranges):
        if result and lo <= result[-1][1] + 1:
            prev_lo, prev_hi = result[-1]
            result[-1] = (prev_lo, max(prev_hi, hi))
        else:
            result.append((lo, hi))
    return tuple(result)


def complement_ranges(ranges: Ranges, universe: Ranges) -> Ranges:
    """Return every code point of ``universe`` not covered by ``ranges``."""
    result = []
    for u_lo, u_hi in universe:
        start = u_lo
        for lo, hi in ranges:
            if hi < start or lo > u_hi:
                continue
            if lo > start:
                result.append((start, lo - 1))
            start = max(start, hi + 1)
        if start <= u_hi:
            result.append((start, u_hi))
    return tuple(result)


def intersect_ranges(ranges: Ranges, universe: Ranges) -> Ranges:
    return complement_ranges(complement_ranges(ranges, universe), universe)


def escape_code_point(code: int, unicode: bool) -> str:
    if unicode:
        return f"\\U{code:08x}"
    return f"\\x{code:02x}"


@lru_cache(maxsize=None)
def matching_ranges(
    pattern: str, unicode: bool, ascii_only: bool = False, ignorecase: bool = False
) -> Ranges:
    """Code point ranges whose characters each match ``pattern`` on their own.

    Rather than duplicating the re module's tables we ask it directly: the
    whole universe is laid out as one string and the pattern, repeated, is
    matched against it, so each run of matches is one range.
    """
    flags = re.IGNORECASE if ignorecase else 0
    repeated = f"(?:{pattern})+"
    result = []
    if unicode:
        if ascii_only:
            flags |= re.ASCII
        matcher = re.compile(repeated, flags)
        for lo, hi in UNICODE_UNIVERSE:
            text = "".join(map(chr, range(lo, hi + 1)))
            for m in matcher.finditer(text):
                result.append((lo + m.start(), lo + m.end() - 1))
    else:
        matcher = re.compile(repeated.encode("ascii"), flags)
        for m in matcher.finditer(bytes(range(256))):
            result.append((m.start(), m.end() - 1))
    return normalize_ranges(result)


def category_ranges(category: object, unicode: bool, ascii_only: bool) -> Ranges:
    """Code point ranges matched by a character category such as ``\\d``."""
    return matching_ranges(CATEGORY_ESCAPES[category], unicode, ascii_only)


def adjust_flags(flags: int, add_flags: int, del_flags: int) -> int:
    """The flags in force inside a group such as ``(?i:...)`` or ``(?-s:...)``."""
    return (flags | add_flags) & ~del_flags


@define
class PlanBuilder:
    """Lowers a parsed pattern into a sampling plan.

    ``flags`` are threaded through the tree so that scoped groups see the
    flags in force where they appear, not just the global ones.
    """

    unicode: bool

    @property
    def universe(self) -> Ranges:
        return UNICODE_UNIVERSE if self.unicode else BYTE_UNIVERSE

    def encode(self, code: int) -> bytes:
        if not self.unicode:
            return bytes([code])
        if 0xD800 <= code <= 0xDFFF:
            raise UnsupportedConstruct(f"surrogate code point U+{code:04X}")
        return chr(code).encode("utf-8")

    def choice(self, ranges: Iterable[tuple[int, int]]) -> Choice:
        return Choice(
            intersect_ranges(normalize_ranges(ranges), self.universe),
            unicode=self.unicode,
        )

    def build(self, syntax: sre_parse.SubPattern, flags: int) -> Plan:
        items = [self.build_item(op, av, flags) for op, av in syntax]
        if len(items) == 1:
            return items[0]
        return Sequence(tuple(items))

    def build_item(self, op, av, flags: int) -> Plan:
        if op is sre.LITERAL:
            return Literal(self.encode(av))
        elif op is sre.NOT_LITERAL:
            return self.build_class([(sre.NEGATE, None), (sre.LITERAL, av)], flags)
        elif op is sre.ANY:
            if flags & sre.SRE_FLAG_DOTALL:
                return self.choice(self.universe)
            return self.choice(complement_ranges(((NEWLINE, NEWLINE),), self.universe))
        elif op is sre.IN:
            return self.build_class(av, flags)
        elif op in (sre.MAX_REPEAT, sre.MIN_REPEAT):
            min_count, max_count, sub = av
            lo, hi = repeat_bounds(min_count, max_count)
            return Repeat(self.build(sub, flags), lo, hi)
        elif op is sre.SUBPATTERN:
            _, add_flags, del_flags, sub = av
            return self.build(sub, adjust_flags(flags, add_flags, del_flags))
        elif op is sre.BRANCH:
            _, branches = av
            return AnyOf(tuple(self.build(b, flags) for b in branches))
        elif op is sre.AT:
            raise UnsupportedConstruct(ASSERTION_NAMES.get(av, str(av)))
        elif op in UNSUPPORTED_OPCODES:
            raise UnsupportedConstruct(UNSUPPORTED_OPCODES[op])
        else:
            raise UnsupportedConstruct(str(op).lower())

    def class_source(self, negate: bool, ranges: Ranges, categories: list) -> str:
        parts = ["[^" if negate else "["]
        for lo, hi in ranges:
            parts.append(escape_code_point(lo, self.unicode))
            if hi != lo:
                parts.append("-" + escape_code_point(hi, self.unicode))
        parts.extend(CATEGORY_ESCAPES[category] for category in categories)
        parts.append("]")
        return "".join(parts)

    def build_class(self, items, flags: int) -> Choice:
        negate = False
        ranges: list[tuple[int, int]] = []
        categories = []
        for op, av in items:
            if op is sre.NEGATE:
                negate = True
            elif op is sre.LITERAL:
                ranges.append((av, av))
            elif op is sre.RANGE:
                ranges.append(av)
            elif op is sre.CATEGORY:
                categories.append(av)
            else:
                raise UnsupportedConstruct(f"character class item {str(op).lower()}")
        ascii_only = bool(flags & sre.SRE_FLAG_ASCII)

        if flags & sre.SRE_FLAG_IGNORECASE:
            # Case folding decides membership, so ask re which characters match.
            source = self.class_source(negate, normalize_ranges(ranges), categories)
            return self.choice(
                matching_ranges(source, self.unicode, ascii_only, ignorecase=True)
            )

        for category in categories:
            ranges.extend(category_ranges(category, self.unicode, ascii_only))
        merged = normalize_ranges(ranges)
        if negate:
            return Choice(complement_ranges(merged, self.universe), unicode=self.unicode)
        return self.choice(merged)


def build_plan(syntax: sre_parse.SubPattern, *, unicode: bool = False) -> Plan:
    """Lower a parsed pattern into a sampling plan.

    Raises UnsupportedConstruct if the pattern cannot be generated.
    """
    return PlanBuilder(unicode=unicode).build(syntax, syntax.state.flags)


def sample_into(plan: Plan, random: Random, out: bytearray) -> None:
    match plan:
        case Literal(value):
            out.extend(value)
        case Choice(ranges, unicode):
            total = plan.size
            if total == 0:
                return
            i = random.randrange(total)
            for lo, hi in ranges:
                width = hi - lo + 1
                if i < width:
                    code = lo + i
                    out.extend(chr(code).encode("utf-8") if unicode else bytes([code]))
                    return
                i -= width
        case Repeat(item, min_count, max_count):
            for _ in range(random.randint(min_count, max_count)):
                sample_into(item, random, out)
        case Sequence(items):
            for item in items:
                sample_into(item, random, out)
        case AnyOf(branches):
            if branches:
                sample_into(random.choice(branches), random, out)


def sample(plan: Plan, random: Random) -> bytes:
    """Draw one string from a sampling plan."""
    out = bytearray()
    sample_into(plan, random, out)
    return bytes(out)


def synthesize(
    syntax: sre_parse.SubPattern, random: Random, *, unicode: bool = False
) -> bytes:
    """Generate a string matching a parsed pattern."""
    return sample(build_plan(syntax, unicode=unicode), random)
