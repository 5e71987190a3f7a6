"""
controls.py


State shared between the playback driver and everything watching or steering
it: progress readers, the HTTP control surface and the key poller.
"""

import logging
import threading                                     # Events for stop / ready signalling.

log = logging.getLogger(__name__)


class PlaybackState:
    """
    Live progress of a playback session.

    The driver is the only writer. Every field is a single int, float, bool or
    str assigned in one statement, so readers on other threads never take a
    lock and never see a torn value.
    """

    def __init__(self, speed: float = 1.0):
        self.paused = False
        self.elapsed_us = 0
        self.current_tick = 0
        self.final_tick = 0
        self.speed = float(speed)
        self.state = "idle"

    def restart(self, final_tick: int) -> None:
        """New pass over the song: cursor and elapsed time go back to 0."""
        self.elapsed_us = 0
        self.current_tick = 0
        self.final_tick = int(final_tick)

    def advance(self, tick: int, elapsed_us: int) -> None:
        self.current_tick = tick
        self.elapsed_us = self.elapsed_us + int(elapsed_us)

    def snapshot(self) -> dict:
        final_tick = self.final_tick
        current_tick = self.current_tick
        pct = min(1.0, current_tick / final_tick) if final_tick else 0.0
        return {
            "state": self.state,
            "paused": self.paused,
            "elapsed_us": self.elapsed_us,
            "current_tick": current_tick,
            "final_tick": final_tick,
            "speed": self.speed,
            "pct": pct,
        }


class Controls:
    """
    Cooperative signals into a running player: stop, pause toggle, ready.
    """

    def __init__(self):
        self.stop_event = threading.Event()          # Set to request the song stop.
        self.ready_event = threading.Event()         # Set when the user is ready to start.
        self._pause_event = threading.Event()        # Set while paused.

    @property
    def paused(self) -> bool:
        return self._pause_event.is_set()

    def toggle_pause(self) -> bool:
        if self._pause_event.is_set():
            self._pause_event.clear()
        else:
            self._pause_event.set()
        log.info("[controls] %s", "Paused" if self.paused else "Resumed")
        return self.paused

    def request_stop(self) -> None:
        self.stop_event.set()

    def signal_ready(self) -> None:
        self.ready_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def reset(self) -> None:
        self.stop_event.clear()
        self.ready_event.clear()
        self._pause_event.clear()


# --- Keyboard shortcuts -------------------------------------------------------

STOP_KEY  = "esc"                                    # Stop the song.
PAUSE_KEY = "shift_r"                                # Toggle pause / play.
READY_KEY = "backspace"                              # Start when waiting for the user.


class KeyPoller:
    """
    Watches global key state on its own listener thread and forwards it to a
    Controls object.

    The pause key toggles only on the press edge: auto-repeat while it is held
    is ignored until the key is released again.
    """

    def __init__(self, controls: Controls):
        self.controls = controls
        self._held: set = set()
        self._listener = None

    def on_press(self, key) -> None:
        name = key_name(key)
        if name is None:
            return
        if name == STOP_KEY:
            self.controls.request_stop()
        elif name == PAUSE_KEY:
            if name not in self._held:
                self.controls.toggle_pause()
        elif name == READY_KEY:
            self.controls.signal_ready()
        self._held.add(name)

    def on_release(self, key) -> None:
        name = key_name(key)
        self._held.discard(name)

    def start(self) -> None:
        try:
            from pynput import keyboard
        except ImportError as e:
            log.warning("[controls] Key shortcuts unavailable: %s", e)
            return
        self._listener = keyboard.Listener(on_press=self.on_press, on_release=self.on_release)
        self._listener.daemon = True
        self._listener.start()
        log.info("[controls] Escape to stop the song, right shift to pause/play")

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None


def key_name(key):
    """Normalise a pynput key (Key enum member or KeyCode) to a short name."""
    name = getattr(key, "name", None)
    if name:
        return name
    char = getattr(key, "char", None)
    if char:
        return char.lower()
    return None
