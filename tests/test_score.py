import os
import tempfile
import unittest

import mido

from fretplayer.errors import ScoreError, UnsupportedTimingError
from fretplayer.score import EventKind, Score, check_timing

from tests.helpers import note, off


def build_midi(ticks_per_beat=480):
    mid = mido.MidiFile(ticks_per_beat=ticks_per_beat)
    conductor = mido.MidiTrack()
    conductor.append(mido.MetaMessage("track_name", name="Conductor", time=0))
    conductor.append(mido.MetaMessage("set_tempo", tempo=600000, time=0))
    mid.tracks.append(conductor)

    lead = mido.MidiTrack()
    lead.append(mido.MetaMessage("track_name", name="Lead", time=0))
    lead.append(mido.Message("note_on", note=64, velocity=90, channel=1, time=0))
    lead.append(mido.Message("control_change", control=64, value=127, time=10))
    lead.append(mido.Message("note_off", note=64, velocity=0, channel=1, time=230))
    lead.append(mido.Message("note_on", note=67, velocity=0, time=0))
    mid.tracks.append(lead)
    return mid


class ScoreFromMidiTests(unittest.TestCase):
    def test_event_kinds(self) -> None:
        score = Score.from_midi(build_midi())

        self.assertEqual(score.ticks_per_beat, 480)
        self.assertEqual(score.track_names, ("Conductor", "Lead"))
        self.assertEqual([ev.kind for ev in score.tracks[0]], [EventKind.META, EventKind.TEMPO])
        self.assertEqual(score.tracks[0][1].value, 600000)
        self.assertEqual(
            [ev.kind for ev in score.tracks[1]],
            [EventKind.META, EventKind.NOTE_ON, EventKind.MIDI, EventKind.NOTE_OFF, EventKind.NOTE_ON],
        )
        first = score.tracks[1][1]
        self.assertEqual((first.value, first.velocity, first.channel), (64, 90, 1))
        self.assertEqual(score.tracks[1][3].delta, 230)

    def test_note_pitches_skip_zero_velocity(self) -> None:
        score = Score.from_midi(build_midi())

        self.assertEqual(score.note_pitches(), [64])

    def test_summary(self) -> None:
        rows = Score.from_midi(build_midi()).summary()

        self.assertEqual(rows[1], {"index": 1, "name": "Lead", "notes": 1, "events": 5})

    def test_load_saved_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "song.mid")
            build_midi(ticks_per_beat=96).save(path)

            score = Score.load(path)

        self.assertEqual(score.ticks_per_beat, 96)
        self.assertEqual(len(score.tracks), 2)


class ScoreTimingTests(unittest.TestCase):
    def test_smpte_division_rejected(self) -> None:
        with self.assertRaises(UnsupportedTimingError):
            check_timing(0xE728)
        with self.assertRaises(UnsupportedTimingError):
            check_timing(-6360)
        with self.assertRaises(UnsupportedTimingError):
            Score([[note(0, 60)]], ticks_per_beat=0)

    def test_smpte_file_rejected_on_load(self) -> None:
        header = b"MThd" + (6).to_bytes(4, "big") + (0).to_bytes(2, "big") + (1).to_bytes(2, "big") + bytes([0xE7, 0x28])
        track = b"MTrk" + (4).to_bytes(4, "big") + b"\x00\xff\x2f\x00"
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "smpte.mid")
            with open(path, "wb") as f:
                f.write(header + track)

            with self.assertRaises(UnsupportedTimingError):
                Score.load(path)

    def test_unsupported_timing_is_a_score_error(self) -> None:
        self.assertTrue(issubclass(UnsupportedTimingError, ScoreError))


class ScoreValidationTests(unittest.TestCase):
    def test_garbage_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "junk.mid")
            with open(path, "wb") as f:
                f.write(b"this is not a midi file")

            with self.assertRaises(ScoreError):
                Score.load(path)

    def test_missing_file(self) -> None:
        with self.assertRaises(ScoreError):
            Score.load("/nonexistent/song.mid")

    def test_negative_delta_rejected(self) -> None:
        with self.assertRaises(ScoreError):
            Score([[note(-1, 60)]], ticks_per_beat=480)

    def test_tracks_are_immutable_tuples(self) -> None:
        score = Score([[note(0, 60), off(4, 60)]], ticks_per_beat=480)

        self.assertIsInstance(score.tracks, tuple)
        self.assertIsInstance(score.tracks[0], tuple)
        self.assertEqual(score.track_names, ("",))


if __name__ == "__main__":
    unittest.main()
