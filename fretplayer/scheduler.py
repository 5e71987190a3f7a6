"""
scheduler.py


Merges the tracks of a Score into one time-ordered stream of events.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from .score import Score, ScoreEvent

log = logging.getLogger(__name__)


@dataclass(order=True, frozen=True)
class ScheduledEvent:
    """
    A score event placed on the absolute timeline.

    Ordering is (tick, track, index): events on the same tick come out in
    track order, and in file order within one track.
    """
    tick: int
    track: int
    index: int
    event: ScoreEvent = field(compare=False)


def active_tracks(score: Score, tracks: Optional[Iterable[int]] = None) -> frozenset:
    """
    Resolve a track selection. None or an empty selection activates every
    track; unknown indices are rejected.
    """
    count = len(score.tracks)
    selected = frozenset(int(t) for t in (tracks or ()))
    if not selected:
        return frozenset(range(count))
    bad = sorted(t for t in selected if not 0 <= t < count)
    if bad:
        raise ValueError(f"Unknown track index {bad} (score has {count} tracks)")
    return selected


class EventQueue:
    """
    Single-pass min-heap of ScheduledEvents.

    Meta events (tempo changes and the like) are taken from every track;
    note and other channel events only from the active tracks. Build a new
    queue for every pass over the score.
    """

    def __init__(self, score: Score, tracks: Optional[Iterable[int]] = None):
        self.active = active_tracks(score, tracks)
        self._heap: List[ScheduledEvent] = []
        self.final_tick = 0

        for track_num, track in enumerate(score.tracks):
            should_play = track_num in self.active
            absolute_tick = 0
            for index, event in enumerate(track):
                absolute_tick += event.delta
                # Skip channel events of inactive tracks
                if not should_play and not event.is_meta:
                    continue
                self._heap.append(ScheduledEvent(absolute_tick, track_num, index, event))
                if absolute_tick > self.final_tick:
                    self.final_tick = absolute_tick

        heapq.heapify(self._heap)
        log.debug("[queue] Built %d events from %d tracks (active %s), final tick %d",
                  len(self._heap), len(score.tracks), sorted(self.active), self.final_tick)

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)

    def __iter__(self) -> Iterator[ScheduledEvent]:
        while self._heap:
            yield heapq.heappop(self._heap)

    def peek(self) -> Optional[ScheduledEvent]:
        return self._heap[0] if self._heap else None

    def pop(self) -> ScheduledEvent:
        if not self._heap:
            raise IndexError("pop from an empty EventQueue")
        return heapq.heappop(self._heap)
