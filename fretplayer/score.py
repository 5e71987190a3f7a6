"""
score.py


Immutable in-memory score: tracks of delta-timed events plus the timing
resolution. Built from a mido.MidiFile.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import mido

from .errors import ScoreError, UnsupportedTimingError

log = logging.getLogger(__name__)

DEFAULT_TEMPO = 500000                               # MIDI default: 120 BPM in µs per beat.
SMPTE_FLAG    = 0x8000                               # High bit of the header division word.


class EventKind(enum.Enum):
    TEMPO    = "tempo"
    NOTE_ON  = "note_on"
    NOTE_OFF = "note_off"
    META     = "meta"
    MIDI     = "midi"


@dataclass(frozen=True)
class ScoreEvent:
    """
    One delta-timed event of a track.

    `value` is the tempo in µs per beat for TEMPO events and the pitch for
    note events; it is 0 for everything else.
    """
    delta: int
    kind: EventKind
    value: int = 0
    velocity: int = 0
    channel: int = 0

    @property
    def is_meta(self) -> bool:
        return self.kind in (EventKind.TEMPO, EventKind.META)

    @property
    def is_sounding(self) -> bool:
        # A note_on with velocity 0 is a note-off by convention.
        return self.kind is EventKind.NOTE_ON and self.velocity > 0


def event_from_message(msg) -> ScoreEvent:
    """Convert one mido message (time = delta ticks) into a ScoreEvent."""
    delta = int(msg.time)
    if msg.is_meta:
        if msg.type == "set_tempo":
            return ScoreEvent(delta, EventKind.TEMPO, value=int(msg.tempo))
        return ScoreEvent(delta, EventKind.META)
    if msg.type == "note_on":
        return ScoreEvent(delta, EventKind.NOTE_ON, value=msg.note,
                          velocity=msg.velocity, channel=msg.channel)
    if msg.type == "note_off":
        return ScoreEvent(delta, EventKind.NOTE_OFF, value=msg.note,
                          velocity=msg.velocity, channel=msg.channel)
    return ScoreEvent(delta, EventKind.MIDI, channel=getattr(msg, "channel", 0))


class Score:
    """
    Parsed multi-track score.

    Tracks are stored as tuples so a Score can be shared between loop
    iterations (and threads) without copying.
    """

    def __init__(self, tracks: Iterable[Iterable[ScoreEvent]], ticks_per_beat: int,
                 track_names: Optional[Sequence[str]] = None):
        check_timing(ticks_per_beat)
        self.tracks: Tuple[Tuple[ScoreEvent, ...], ...] = tuple(tuple(t) for t in tracks)
        self.ticks_per_beat = int(ticks_per_beat)
        names = list(track_names or [])
        names += [""] * (len(self.tracks) - len(names))
        self.track_names: Tuple[str, ...] = tuple(names[:len(self.tracks)])

        for idx, track in enumerate(self.tracks):
            for ev in track:
                if ev.delta < 0:
                    raise ScoreError(f"Negative delta time {ev.delta} in track {idx}")

    def __repr__(self) -> str:
        return f"Score(tracks={len(self.tracks)}, ticks_per_beat={self.ticks_per_beat})"

    @classmethod
    def from_midi(cls, midi: mido.MidiFile) -> "Score":
        check_timing(midi.ticks_per_beat)
        tracks = [[event_from_message(msg) for msg in track] for track in midi.tracks]
        names = [track.name for track in midi.tracks]
        return cls(tracks, midi.ticks_per_beat, names)

    @classmethod
    def load(cls, path) -> "Score":
        """
        Read a standard MIDI file. Unreadable or malformed files raise
        ScoreError; a timecode-based file raises UnsupportedTimingError.
        """
        try:
            midi = mido.MidiFile(str(path))
        except (OSError, EOFError, ValueError, KeyError, IndexError) as e:
            raise ScoreError(f"Could not read MIDI file '{path}': {e}") from e
        score = cls.from_midi(midi)
        log.info("[score] Loaded %s: %d tracks, %d ticks per beat",
                 path, len(score.tracks), score.ticks_per_beat)
        return score

    def note_pitches(self) -> List[int]:
        """Every sounding note-on pitch in the score, all tracks."""
        return [ev.value for track in self.tracks for ev in track if ev.is_sounding]

    def summary(self) -> List[dict]:
        rows = []
        for idx, track in enumerate(self.tracks):
            rows.append({
                "index": idx,
                "name": self.track_names[idx],
                "notes": sum(1 for ev in track if ev.is_sounding),
                "events": len(track),
            })
        return rows


def check_timing(ticks_per_beat: int) -> None:
    """Reject anything but a positive ticks-per-beat division."""
    if ticks_per_beat is None:
        raise UnsupportedTimingError("Score has no timing division")
    tpb = int(ticks_per_beat)
    if tpb >= SMPTE_FLAG or tpb < 0:
        raise UnsupportedTimingError("Timecode (SMPTE) timing is not supported")
    if tpb == 0:
        raise UnsupportedTimingError("Ticks per beat must be positive")
