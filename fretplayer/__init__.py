"""
fretplayer

Plays MIDI scores on a six-string instrument through an input actuator.
"""

__version__ = "0.3.0"
