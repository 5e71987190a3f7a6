"""
player.py


The real-time playback loop: walks the merged event stream tick by tick,
honours tempo changes, speed, pause, looping and cancellation, and sends each
note to the actuator.
"""

from __future__ import annotations

import enum
import logging
import time
from typing import Callable, Optional

from .actuators import Actuator
from .config import PlayerSettings
from .controls import Controls, PlaybackState
from .errors import ConfigError
from .fretboard import Fretboard, GuitarPosition, clamp_note
from .score import DEFAULT_TEMPO, EventKind, Score
from .scheduler import EventQueue, ScheduledEvent
from .transpose import calculate_optimal_shift

log = logging.getLogger(__name__)

PAUSE_POLL_S = 0.1                                   # Poll interval while paused.
START_POLL_S = 0.1                                   # Poll interval while waiting to start.


class PlayerState(enum.Enum):
    IDLE              = "idle"
    WAITING_FOR_START = "waiting"
    RUNNING           = "running"
    PAUSED            = "paused"
    INTERRUPTED       = "interrupted"
    FINISHED          = "finished"


class Player:
    """
    Plays one Score through one Actuator.

    The transposition shift is chosen once, here. play() blocks until the song
    ends, the user cancels through `controls`, or the actuator fails; in the
    last case the ActuatorError propagates after the state is set to
    INTERRUPTED.
    """

    def __init__(self, score: Score, actuator: Actuator,
                 settings: Optional[PlayerSettings] = None,
                 controls: Optional[Controls] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time):
        self.score = score
        self.actuator = actuator
        self.settings = settings or PlayerSettings()
        self.controls = controls or Controls()
        self._sleep = sleep
        self._clock = clock

        try:
            self.final_tick = EventQueue(score, self.settings.tracks).final_tick
        except ValueError as e:
            raise ConfigError(str(e)) from e

        self.fretboard = Fretboard()
        self.shift_report = calculate_optimal_shift(score.note_pitches())
        self.shift = self.shift_report.shift
        self.progress = PlaybackState(self.settings.speed)
        self.progress.final_tick = self.final_tick
        self.micros_per_tick = DEFAULT_TEMPO / score.ticks_per_beat
        self._state = PlayerState.IDLE

    @property
    def state(self) -> PlayerState:
        return self._state

    @state.setter
    def state(self, value: PlayerState) -> None:
        self._state = value
        self.progress.state = value.value

    @property
    def speed(self) -> float:
        return self.settings.speed

    # --- Main loop ------------------------------------------------------------

    def play(self) -> PlayerState:
        try:
            if not self._wait_for_start():
                return self._interrupted()

            # Reset the instrument to all open strings
            self.actuator.reset_positions()

            while True:
                if self._play_once() is PlayerState.INTERRUPTED:
                    return self._interrupted()
                self.state = PlayerState.FINISHED
                if not self.settings.loop:
                    log.info("[end] Playback complete")
                    return self.state
                if self.progress.final_tick == 0:
                    log.warning("[loop] Song has no length, not looping")
                    return self.state
                log.info("[loop] Looping the MIDI playback (stop to end)")
        except Exception:
            self.state = PlayerState.INTERRUPTED
            raise

    def _play_once(self) -> PlayerState:
        """One pass over a freshly built event queue."""
        queue = EventQueue(self.score, self.settings.tracks)
        self.micros_per_tick = DEFAULT_TEMPO / self.score.ticks_per_beat
        self.progress.restart(queue.final_tick)
        self.fretboard.new_group()
        self.state = PlayerState.RUNNING

        last_tick = 0
        for timed in queue:
            if self._cancelled():
                return PlayerState.INTERRUPTED

            if timed.tick > last_tick:
                self.fretboard.new_group()
                # Sleep for one tick at a time so stop and pause are noticed
                # within one tick
                for current_tick in range(last_tick, timed.tick):
                    if not self._hold_while_paused():
                        return PlayerState.INTERRUPTED
                    tick_us = self.micros_per_tick / self.speed
                    self._sleep(tick_us / 1_000_000.0)
                    self.progress.advance(current_tick + 1, round(tick_us))
                    if self._cancelled():
                        return PlayerState.INTERRUPTED
            last_tick = timed.tick

            if not self._hold_while_paused():
                return PlayerState.INTERRUPTED
            self.dispatch(timed)

        return PlayerState.FINISHED

    def dispatch(self, timed: ScheduledEvent) -> Optional[GuitarPosition]:
        """Act on one event. Only tempo changes and sounding notes do anything."""
        event = timed.event
        if event.kind is EventKind.TEMPO:
            self.micros_per_tick = event.value / self.score.ticks_per_beat
            log.info("[tempo] Tempo change: %.1fµs per tick - track %d",
                     self.micros_per_tick, timed.track)
        elif event.is_sounding:
            return self.play_note(event.value + self.shift, timed.track)
        return None

    def play_note(self, note: int, track: int = 0) -> Optional[GuitarPosition]:
        note = clamp_note(note)
        position = self.fretboard.assign(note)
        if position is None:
            log.warning("[note] No suitable string found for note %d - track %d", note, track)
            return None

        log.debug("[note] Playing note %d on string %d fret %d - track %d",
                  note, position.string + 1, position.fret, track)
        self.actuator.set_position(position.string, position.fret)
        self.actuator.actuate(position.string)
        held_us = self.actuator.hold_us

        if self.settings.sing and note >= self.settings.sing_above:
            self.actuator.accent()
            held_us += self.actuator.hold_us

        # Time spent holding inputs is part of the song's elapsed time
        self.progress.advance(self.progress.current_tick, held_us)
        return position

    # --- Start, pause and stop --------------------------------------------------

    def _wait_for_start(self) -> bool:
        """Block until playback may begin. False if cancelled while waiting."""
        if self.settings.wait_for_ready:
            self.state = PlayerState.WAITING_FOR_START
            log.info("[start] Press backspace to start playing")
            while not self.controls.ready_event.is_set():
                if self._cancelled():
                    return False
                self._sleep(START_POLL_S)
            return True

        if self.settings.start_time is not None:
            remaining_ms = self.settings.start_time - self._clock() * 1000.0
            if remaining_ms > 0:
                self.state = PlayerState.WAITING_FOR_START
                log.info("[start] Starting playback in %d seconds...", remaining_ms // 1000)
            while remaining_ms > 0:
                if self._cancelled():
                    return False
                self._sleep(min(START_POLL_S, remaining_ms / 1000.0))
                remaining_ms = self.settings.start_time - self._clock() * 1000.0
        return True

    def _hold_while_paused(self) -> bool:
        """Wait out a pause. False if cancelled while paused."""
        if not self.controls.paused:
            return True
        self.state = PlayerState.PAUSED
        self.progress.paused = True
        while self.controls.paused:
            self._sleep(PAUSE_POLL_S)
            if self._cancelled():
                return False
        self.progress.paused = False
        self.state = PlayerState.RUNNING
        return True

    def _cancelled(self) -> bool:
        return self.controls.stopped

    def _interrupted(self) -> PlayerState:
        log.info("[stop] Song interrupted")
        self.state = PlayerState.INTERRUPTED
        return self.state
