"""
fretboard.py


Maps pitches onto (string, fret) positions of a six-string instrument.
"""

from __future__ import annotations

import itertools
from typing import List, NamedTuple, Optional

# --- Instrument layout --------------------------------------------------------

OPEN_NOTES       = (40, 45, 50, 55, 59, 64)          # Standard tuning, low E (string 0) to high E.
STRING_NAMES     = ('E', 'A', 'D', 'G', 'B', 'e')    # Index 0 is the lowest string.
FRETS_PER_STRING = 16                                # Open string plus 15 frets.
NUM_STRINGS      = len(OPEN_NOTES)

MIN_NOTE = OPEN_NOTES[0]                             # 40
MAX_NOTE = OPEN_NOTES[-1] + FRETS_PER_STRING - 1     # 79


class GuitarPosition(NamedTuple):
    string: int                                      # 0-5, 0 is the low E string.
    fret: int                                        # 0 means open string.


def clamp_note(note: int) -> int:
    return max(MIN_NOTE, min(MAX_NOTE, int(note)))


def string_covers(string: int, note: int) -> bool:
    low = OPEN_NOTES[string]
    return low <= note < low + FRETS_PER_STRING


class Fretboard:
    """
    Per-string usage state for one playback session.

    A string can sound only once per simultaneous group; among the strings
    that can play a pitch the least recently used one is chosen, so repeated
    notes spread across strings instead of hammering one. Strings that were
    never used (or used equally long ago) resolve to the lowest fret.
    """

    def __init__(self):
        self._clock = itertools.count(1)
        self.last_used: List[int] = [0] * NUM_STRINGS
        self.played: List[bool] = [False] * NUM_STRINGS

    def reset(self) -> None:
        self._clock = itertools.count(1)
        self.last_used = [0] * NUM_STRINGS
        self.played = [False] * NUM_STRINGS

    def new_group(self) -> None:
        """Start a new simultaneous group: every string may sound again."""
        self.played = [False] * NUM_STRINGS

    def candidates(self, note: int) -> List[GuitarPosition]:
        note = clamp_note(note)
        found = []
        for string in range(NUM_STRINGS):
            if self.played[string]:
                continue                             # Already sounding in this group.
            if string_covers(string, note):
                found.append(GuitarPosition(string, note - OPEN_NOTES[string]))
        # Equal usage prefers the position nearest the nut.
        found.sort(key=lambda pos: (self.last_used[pos.string], pos.fret))
        return found

    def assign(self, note: int) -> Optional[GuitarPosition]:
        """
        Pick a position for `note` (clamped to the playable range), or None
        when every string that could play it has already sounded in this group.
        """
        options = self.candidates(note)
        if not options:
            return None
        best = options[0]
        self.last_used[best.string] = next(self._clock)
        self.played[best.string] = True
        return best
