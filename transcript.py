"""Merges streaming interim/final fragments into one transcript."""

from __future__ import annotations

from typing import Iterable

from models import Fragment, TranscriptSnapshot


class TranscriptAccumulator:
    """Owns the finalized text and the transient pending guess of one session.

    ``finalized`` only ever grows between resets. ``pending`` is rebuilt
    from each delivery, because engines resend interim results as a full
    snapshot rather than an increment.
    """

    def __init__(self) -> None:
        self._finalized = ""
        self._pending = ""

    def apply_fragments(self, fragments: Iterable[Fragment]) -> None:
        pending = ""
        for fragment in fragments:
            if fragment.is_final:
                self._finalized += fragment.text
            else:
                pending += fragment.text
        self._pending = pending

    def snapshot(self) -> TranscriptSnapshot:
        return TranscriptSnapshot(finalized=self._finalized, pending=self._pending)

    def combined(self) -> str:
        return self._finalized + self._pending

    def discard_pending(self) -> None:
        self._pending = ""

    def reset(self) -> None:
        self._finalized = ""
        self._pending = ""
