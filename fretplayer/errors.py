"""
errors.py


Exception types raised by the player.
"""


class PlayerError(Exception):
    """Base class for all player failures."""


class ScoreError(PlayerError):
    """The score could not be read or is malformed."""


class UnsupportedTimingError(ScoreError):
    """The score uses a timing mode other than ticks-per-beat."""


class ActuatorError(PlayerError):
    """An actuator could not be opened or failed to deliver an action."""


class ConfigError(PlayerError):
    """A configuration value is missing or out of range."""
