"""
transpose.py


Chooses one semitone shift for the whole score so as many notes as possible
land on the fretboard.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .fretboard import MAX_NOTE, MIN_NOTE

log = logging.getLogger(__name__)

SHIFT_RANGE = range(-127, 128)                       # Scanned ascending; see calculate_optimal_shift.


@dataclass(frozen=True)
class ShiftReport:
    shift: int
    total: int
    playable: int

    @property
    def clamped(self) -> int:
        return self.total - self.playable

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 0.0
        return self.playable / self.total * 100.0


def count_playable(notes: Sequence[int], shift: int,
                   low: int = MIN_NOTE, high: int = MAX_NOTE) -> int:
    return sum(1 for n in notes if low <= n + shift <= high)


def calculate_optimal_shift(notes: Sequence[int]) -> ShiftReport:
    """
    Return the shift with the most playable notes.

    Shifts are scanned from -127 to 127. A later shift only wins with strictly
    more playable notes, or the same count and a strictly smaller absolute
    value, so among equal candidates the one closest to zero is kept and the
    negative one of a +/- pair is found first.
    """
    notes = list(notes)
    best_shift = 0
    max_playable = 0

    for shift in SHIFT_RANGE:
        playable = count_playable(notes, shift)
        if playable > max_playable or (playable == max_playable and abs(shift) < abs(best_shift)):
            max_playable = playable
            best_shift = shift

    report = ShiftReport(shift=best_shift, total=len(notes), playable=max_playable)
    log.info("[shift] Optimal shift: %d", report.shift)
    log.info("[shift] Total notes: %d | Playable notes: %d | Clamped notes: %d | %.1f%% playable",
             report.total, report.playable, report.clamped, report.percent)
    return report
