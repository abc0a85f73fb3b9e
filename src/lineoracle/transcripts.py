"""Saving transcripts of trials to disk.

A run that is writing transcripts owns a directory like:
    .lineoracle/<run_id>/
        failure-<timestamp>.txt    - The conversation that failed, and why
        successes-<timestamp>.txt  - Every passing conversation (if requested)

Writing transcripts is a side channel: if it fails the run carries on and
the failure is reported as a warning.
"""

from __future__ import annotations

import os
import re
from datetime import datetime
from typing import Protocol

from attrs import define, field

from lineoracle.reporting import Reporter


SUCCESS_SEPARATOR = "\n\n" + "-" * 40 + "\n\n"


def sanitize_for_filename(s: str) -> str:
    """Replace unsafe characters with underscores, limit length.

    Keeps alphanumeric characters, dashes, underscores, and dots.
    Collapses multiple underscores and limits to 50 characters.
    """
    safe = re.sub(r"[^\w\-.]", "_", s)
    safe = re.sub(r"_+", "_", safe)
    return safe[:50].strip("_")


def timestamp() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S-%f")


class TranscriptSink(Protocol):
    def record_failure(self, transcript: str) -> None: ...

    def record_successes(self, transcripts: list[str]) -> None: ...


class NullSink:
    """Throws every transcript away."""

    def record_failure(self, transcript: str) -> None:
        pass

    def record_successes(self, transcripts: list[str]) -> None:
        pass


@define
class TranscriptDirectory:
    run_id: str
    directory: str
    reporter: Reporter = field(factory=Reporter)
    written: list[str] = field(factory=list)

    @classmethod
    def create(
        cls,
        command: list[str],
        root: str = ".lineoracle",
        reporter: Reporter | None = None,
    ) -> TranscriptDirectory:
        """Create a TranscriptDirectory with a unique run ID.

        The run ID is (program basename)-(datetime)-(random hex). Nothing is
        created on disk until the first transcript is written.
        """
        program = sanitize_for_filename(os.path.basename(command[0])) or "program"
        when = datetime.now().strftime("%Y%m%d-%H%M%S")
        run_id = f"{program}-{when}-{os.urandom(4).hex()}"
        return cls(
            run_id=run_id,
            directory=os.path.join(os.path.abspath(root), run_id),
            reporter=reporter or Reporter(),
        )

    def _write(self, prefix: str, content: str) -> None:
        path = os.path.join(self.directory, f"{prefix}-{timestamp()}.txt")
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
                if not content.endswith("\n"):
                    f.write("\n")
        except OSError as e:
            self.reporter.warn(f"Could not write transcript to {path}: {e}")
            return
        self.written.append(path)
        self.reporter.note(f"Wrote transcript to {path}")

    def record_failure(self, transcript: str) -> None:
        self._write("failure", transcript)

    def record_successes(self, transcripts: list[str]) -> None:
        if transcripts:
            self._write("successes", SUCCESS_SEPARATOR.join(transcripts))
