import unittest
from types import SimpleNamespace

from fretplayer.controls import Controls, KeyPoller, PlaybackState, key_name


def key(name=None, char=None):
    return SimpleNamespace(name=name, char=char)


class KeyPollerTests(unittest.TestCase):
    def test_pause_toggles_on_press_edge_only(self) -> None:
        controls = Controls()
        poller = KeyPoller(controls)

        poller.on_press(key("shift_r"))
        poller.on_press(key("shift_r"))              # auto-repeat while held
        poller.on_press(key("shift_r"))
        self.assertTrue(controls.paused)

        poller.on_release(key("shift_r"))
        poller.on_press(key("shift_r"))
        self.assertFalse(controls.paused)

    def test_escape_requests_stop(self) -> None:
        controls = Controls()
        KeyPoller(controls).on_press(key("esc"))

        self.assertTrue(controls.stopped)

    def test_backspace_signals_ready(self) -> None:
        controls = Controls()
        KeyPoller(controls).on_press(key("backspace"))

        self.assertTrue(controls.ready_event.is_set())
        self.assertFalse(controls.stopped)

    def test_other_keys_ignored(self) -> None:
        controls = Controls()
        poller = KeyPoller(controls)
        poller.on_press(key(char="Q"))
        poller.on_press(key())

        self.assertFalse(controls.paused)
        self.assertFalse(controls.stopped)

    def test_key_name(self) -> None:
        self.assertEqual(key_name(key("esc")), "esc")
        self.assertEqual(key_name(key(char="A")), "a")
        self.assertIsNone(key_name(key()))


class ControlsTests(unittest.TestCase):
    def test_reset_clears_signals(self) -> None:
        controls = Controls()
        controls.toggle_pause()
        controls.request_stop()
        controls.signal_ready()

        controls.reset()

        self.assertFalse(controls.paused)
        self.assertFalse(controls.stopped)
        self.assertFalse(controls.ready_event.is_set())


class PlaybackStateTests(unittest.TestCase):
    def test_snapshot(self) -> None:
        progress = PlaybackState(speed=1.5)
        progress.restart(final_tick=200)
        progress.advance(50, 1234)
        progress.advance(50, 66)

        snap = progress.snapshot()

        self.assertEqual(snap["elapsed_us"], 1300)
        self.assertEqual(snap["current_tick"], 50)
        self.assertEqual(snap["final_tick"], 200)
        self.assertEqual(snap["speed"], 1.5)
        self.assertAlmostEqual(snap["pct"], 0.25)
        self.assertFalse(snap["paused"])

    def test_restart_resets_counters(self) -> None:
        progress = PlaybackState()
        progress.restart(10)
        progress.advance(10, 999)
        progress.restart(10)

        self.assertEqual((progress.current_tick, progress.elapsed_us), (0, 0))

    def test_empty_song_progress(self) -> None:
        self.assertEqual(PlaybackState().snapshot()["pct"], 0.0)


if __name__ == "__main__":
    unittest.main()
