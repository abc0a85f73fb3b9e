"""Loading rule scripts from JSON files.

A script is either a list of entries or an object of the form
``{"rules": [...], "unicode": false}``. Each entry looks like::

    {"name": "greeting", "direction": "output", "kind": "plain_text", "text": "hello"}

``kind`` is one of ``plain_text``, ``regex``, ``int_ranges`` or ``empty``
(an empty line, for which ``text`` may be omitted). ``name`` is optional and
only used in messages.
"""

import json
from typing import Any

from attrs import define

from lineoracle.rules import RegexPattern, RuleKind, RuleParseError, parse_rule
from lineoracle.runner import Direction, Operation, TestScript
from lineoracle.synthesis import UnsupportedConstruct


EMPTY_KIND = "empty"


class ScriptError(ValueError):
    """A script file could not be loaded.

    When the problem is with one entry, ``index`` (counting from zero) and
    ``name`` say which one.
    """

    def __init__(self, message: str, index: int | None = None, name: str = ""):
        self.index = index
        self.name = name
        if index is None:
            super().__init__(message)
        else:
            where = f"Rule {index + 1}"
            if name:
                where += f" ({name})"
            super().__init__(f"{where}: {message}")


@define(frozen=True)
class RuleEntry:
    name: str
    direction: Direction
    kind: str
    text: str


def _string_field(entry: dict[str, Any], key: str, index: int, name: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str):
        raise ScriptError(f"{key!r} must be a string", index, name)
    return value


def read_entry(index: int, entry: Any) -> RuleEntry:
    if not isinstance(entry, dict):
        raise ScriptError("expected an object", index)

    name = entry.get("name", "")
    if not isinstance(name, str):
        raise ScriptError("'name' must be a string", index)

    direction = _string_field(entry, "direction", index, name)
    try:
        parsed_direction = Direction(direction)
    except ValueError:
        raise ScriptError(
            f"unknown direction {direction!r} (expected 'input' or 'output')",
            index,
            name,
        ) from None

    kind = _string_field(entry, "kind", index, name)
    known = [k.value for k in RuleKind] + [EMPTY_KIND]
    if kind not in known:
        raise ScriptError(
            f"unknown kind {kind!r} (expected one of {', '.join(known)})", index, name
        )

    if kind == EMPTY_KIND and "text" not in entry:
        text = ""
    else:
        text = _string_field(entry, "text", index, name)
    return RuleEntry(name=name, direction=parsed_direction, kind=kind, text=text)


def read_document(document: Any) -> tuple[list[RuleEntry], bool]:
    """Pull the entries and the unicode setting out of a parsed JSON document."""
    unicode = False
    if isinstance(document, dict):
        unicode = document.get("unicode", False)
        if not isinstance(unicode, bool):
            raise ScriptError("'unicode' must be true or false")
        document = document.get("rules")
    if not isinstance(document, list):
        raise ScriptError("a script must be a list of rules or an object with 'rules'")
    return [read_entry(i, entry) for i, entry in enumerate(document)], unicode


def compile_entry(index: int, entry: RuleEntry, unicode: bool) -> Operation:
    kind = RuleKind.plain_text if entry.kind == EMPTY_KIND else RuleKind(entry.kind)
    text = "" if entry.kind == EMPTY_KIND else entry.text
    try:
        rule = parse_rule(kind, text, unicode=unicode)
        if entry.direction is Direction.input and isinstance(rule, RegexPattern):
            rule.check_generatable()
    except (RuleParseError, UnsupportedConstruct) as e:
        raise ScriptError(str(e), index, entry.name) from e
    return Operation(entry.direction, rule, entry.name)


def compile_script(entries: list[RuleEntry], unicode: bool = False) -> TestScript:
    return TestScript(
        tuple(compile_entry(i, entry, unicode) for i, entry in enumerate(entries))
    )


def parse_script(source: str, unicode: bool | None = None) -> TestScript:
    """Build a TestScript from the text of a script file.

    ``unicode``, if given, overrides the script's own setting.
    """
    try:
        document = json.loads(source)
    except json.JSONDecodeError as e:
        raise ScriptError(f"Invalid JSON: {e}") from e
    entries, script_unicode = read_document(document)
    return compile_script(entries, script_unicode if unicode is None else unicode)


def load_script(path: str, unicode: bool | None = None) -> TestScript:
    try:
        with open(path, encoding="utf-8") as f:
            source = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ScriptError(f"Could not read {path}: {e}") from e
    return parse_script(source, unicode=unicode)
