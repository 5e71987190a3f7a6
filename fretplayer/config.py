"""
config.py


Player and actuator settings. Defaults live here; a JSON file can override
any of them and CLI flags override the file.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigError

log = logging.getLogger(__name__)

# --- Defaults -----------------------------------------------------------------

ACTUATOR_KINDS = ("keyboard", "x11", "serial", "dry-run")

DEFAULTS: Dict[str, Any] = {
    "player": {
        "loop": False,                               # Restart the song when it ends.
        "sing": False,                               # Trigger the accent action on high notes.
        "sing_above": 64,                            # Accent threshold (MIDI pitch, after shift).
        "tracks": [],                                # Track indices to play, empty = all.
        "speed": 1.0,                                # Playback speed multiplier.
        "start_time": None,                          # Wall-clock start in epoch ms.
        "wait_for_ready": False,                     # Wait for the ready key before playing.
        "input_delay_ms": 25,                        # Hold time between press and release.
    },
    "actuator": {
        "kind": "keyboard",
        "window": [0, 0, 2560, 1440],                # x, y, width, height of the target window.
        "window_id": None,                           # X11 window id, None = the focused window.
        "serial_port": "/dev/ttyACM0",               # Path to the controller's serial port.
        "baud_rate": 115200,                         # Serial communication speed.
    },
    "songs_dir": "./songs",
}


@dataclass
class PlayerSettings:
    loop: bool = False
    sing: bool = False
    sing_above: int = 64
    tracks: Tuple[int, ...] = ()
    speed: float = 1.0
    start_time: Optional[int] = None
    wait_for_ready: bool = False
    input_delay_ms: int = 25

    def __post_init__(self):
        self.tracks = tuple(int(t) for t in (self.tracks or ()))
        self.validate()

    def validate(self) -> None:
        try:
            speed = float(self.speed)
        except (TypeError, ValueError):
            raise ConfigError(f"speed must be a number, got {self.speed!r}")
        if not speed > 0:
            raise ConfigError(f"speed must be greater than 0, got {self.speed}")
        self.speed = speed
        if not 0 <= int(self.sing_above) <= 127:
            raise ConfigError(f"sing_above must be a MIDI pitch 0-127, got {self.sing_above}")
        if int(self.input_delay_ms) < 0:
            raise ConfigError(f"input_delay_ms must not be negative, got {self.input_delay_ms}")
        if any(t < 0 for t in self.tracks):
            raise ConfigError(f"track indices must not be negative: {list(self.tracks)}")
        if self.start_time is not None and int(self.start_time) < 0:
            raise ConfigError(f"start_time must be epoch milliseconds, got {self.start_time}")


@dataclass
class ActuatorSettings:
    kind: str = "keyboard"
    window: Tuple[int, int, int, int] = (0, 0, 2560, 1440)
    window_id: Optional[int] = None
    serial_port: str = "/dev/ttyACM0"
    baud_rate: int = 115200

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.kind not in ACTUATOR_KINDS:
            raise ConfigError(f"Unknown actuator '{self.kind}', expected one of {', '.join(ACTUATOR_KINDS)}")
        window = tuple(int(v) for v in self.window)
        if len(window) != 4 or window[2] <= 0 or window[3] <= 0:
            raise ConfigError(f"window must be x, y, width, height with a positive size, got {list(self.window)}")
        self.window = window
        if self.window_id is not None:
            try:
                self.window_id = int(str(self.window_id), 0)
            except ValueError:
                raise ConfigError(f"window_id must be an X11 window id, got {self.window_id!r}")


@dataclass
class Config:
    player: PlayerSettings = field(default_factory=PlayerSettings)
    actuator: ActuatorSettings = field(default_factory=ActuatorSettings)
    songs_dir: str = "./songs"


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(a)
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def config_from_dict(data: Dict[str, Any]) -> Config:
    merged = _deep_merge(DEFAULTS, data)
    unknown = set(merged) - set(DEFAULTS)
    if unknown:
        raise ConfigError(f"Unknown config sections: {', '.join(sorted(unknown))}")
    try:
        return Config(
            player=PlayerSettings(**merged["player"]),
            actuator=ActuatorSettings(**merged["actuator"]),
            songs_dir=str(merged["songs_dir"]),
        )
    except TypeError as e:
        # Unknown keyword in one of the sections
        raise ConfigError(f"Invalid config: {e}") from e


def load_config(path=None) -> Config:
    """
    Load settings from a JSON file merged over the defaults. Without a path
    the defaults are returned.
    """
    if path is None:
        return config_from_dict({})
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    log.debug("[config] Loaded %s", path)
    return config_from_dict(data)
