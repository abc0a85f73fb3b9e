"""Rendering transcripts and reports for people to read."""

import shutil

from binaryornot.check import is_binary_string  # type: ignore[import-not-found]

from lineoracle.communicator import History, Sent


SENT_PREFIX = ">>> "
RECEIVED_PREFIX = "<<< "


def get_terminal_size() -> tuple[int, int]:
    """Get terminal size, with sensible fallbacks.

    Returns:
        (columns, lines) tuple. Defaults to (80, 24) if terminal size
        cannot be determined.
    """
    size = shutil.get_terminal_size(fallback=(80, 24))
    return (size.columns, size.lines)


def to_display_line(line: bytes) -> str:
    """Decode a line for display, falling back to hex for binary data."""
    if line and is_binary_string(line):
        return "hex:" + line.hex()
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError:
        return "hex:" + line.hex()


def render_history(history: History) -> str:
    """One line per entry, marked with the direction it went in.

    An entry containing newlines (such as output left over when the program
    exited) is shown as several lines with the same marker.
    """
    results = []
    for entry in history:
        prefix = SENT_PREFIX if isinstance(entry, Sent) else RECEIVED_PREFIX
        text = to_display_line(entry.line)
        for part in text.split("\n") if text else [""]:
            results.append(prefix + part)
    return "\n".join(results)


def render_transcript(history: History, message: str) -> str:
    return f"{render_history(history)}\n\n{message}"


def truncate_lines(text: str, max_lines: int | None = None) -> str:
    """Cut ``text`` down to fit in a few screenfuls.

    Args:
        text: The text to truncate
        max_lines: Maximum number of lines to keep. If None, uses the
                   terminal height multiplied by a factor.
    """
    if max_lines is None:
        _, lines = get_terminal_size()
        max_lines = max(lines * 4, 40)
    parts = text.split("\n")
    if len(parts) <= max_lines:
        return text
    omitted = len(parts) - max_lines
    return "\n".join(parts[:max_lines] + [f"... ({omitted} more lines)"])
