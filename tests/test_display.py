"""Tests for display utilities."""

from lineoracle.communicator import History
from lineoracle.display import (
    render_history,
    render_transcript,
    to_display_line,
    truncate_lines,
)


def history_of(*entries: tuple[str, bytes]) -> History:
    history = History()
    for direction, line in entries:
        if direction == "sent":
            history.sent(line)
        else:
            history.received(line)
    return history


# === to_display_line tests ===


def test_to_display_line_plain_text():
    assert to_display_line(b"hello world") == "hello world"


def test_to_display_line_unicode_text():
    assert to_display_line("héllo wörld".encode()) == "héllo wörld"


def test_to_display_line_empty():
    assert to_display_line(b"") == ""


def test_to_display_line_binary_shows_hex():
    assert to_display_line(b"\x00\x01\x02") == "hex:000102"


def test_to_display_line_invalid_utf8_shows_hex():
    assert to_display_line(b"\xff\xfe") == "hex:fffe"


# === render_history tests ===


def test_render_history_marks_directions():
    history = history_of(("sent", b"ping"), ("received", b"pong"))
    assert render_history(history) == ">>> ping\n<<< pong"


def test_render_history_empty_lines():
    history = history_of(("sent", b""), ("received", b""))
    assert render_history(history) == ">>> \n<<< "


def test_render_history_splits_residual_output():
    history = history_of(("received", b"one\ntwo"))
    assert render_history(history) == "<<< one\n<<< two"


def test_render_empty_history():
    assert render_history(History()) == ""


def test_render_transcript_appends_message():
    history = history_of(("sent", b"ping"), ("received", b"wrong"))
    assert (
        render_transcript(history, 'Expected output: "pong"')
        == '>>> ping\n<<< wrong\n\nExpected output: "pong"'
    )


# === truncate_lines tests ===


def test_truncate_lines_leaves_short_text():
    assert truncate_lines("a\nb", max_lines=5) == "a\nb"


def test_truncate_lines_cuts_long_text():
    text = "\n".join(str(i) for i in range(10))
    assert truncate_lines(text, max_lines=3) == "0\n1\n2\n... (7 more lines)"
