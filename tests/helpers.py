from fretplayer.score import EventKind, Score, ScoreEvent


def note(delta, pitch, velocity=64, channel=0):
    return ScoreEvent(delta, EventKind.NOTE_ON, value=pitch, velocity=velocity, channel=channel)


def off(delta, pitch, channel=0):
    return ScoreEvent(delta, EventKind.NOTE_OFF, value=pitch, channel=channel)


def tempo(delta, micros_per_beat):
    return ScoreEvent(delta, EventKind.TEMPO, value=micros_per_beat)


def meta(delta):
    return ScoreEvent(delta, EventKind.META)


def cc(delta):
    return ScoreEvent(delta, EventKind.MIDI)


def make_score(*tracks, ticks_per_beat=4):
    return Score(tracks, ticks_per_beat)


class FakeClock:
    """time()/sleep() pair where sleeping only moves the fake clock."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def time(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds
