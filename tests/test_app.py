import os
import tempfile
import threading
import time
import unittest
from unittest import mock

import mido

from fretplayer import app as server
from fretplayer.config import ActuatorSettings, Config, PlayerSettings


def write_song(path, length_ticks):
    mid = mido.MidiFile(ticks_per_beat=480)
    track = mido.MidiTrack()
    track.append(mido.MetaMessage("set_tempo", tempo=48000, time=0))   # 100 µs per tick
    track.append(mido.Message("note_on", note=45, velocity=80, time=0))
    track.append(mido.Message("note_off", note=45, velocity=0, time=length_ticks))
    mid.tracks.append(track)
    mid.save(path)


class ControlServerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        write_song(os.path.join(self.tmp.name, "short.mid"), 20)
        write_song(os.path.join(self.tmp.name, "long.mid"), 1_000_000)
        with open(os.path.join(self.tmp.name, "notes.txt"), "w") as f:
            f.write("not a song")
        server.configure(Config(
            player=PlayerSettings(),
            actuator=ActuatorSettings(kind="dry-run"),
            songs_dir=self.tmp.name,
        ))
        server.reset_playback_state()
        server._controls.reset()
        self.client = server.app.test_client()

    def tearDown(self) -> None:
        self.client.post("/stop")
        self.tmp.cleanup()

    def wait_for_thread(self) -> None:
        thread = server._play_thread
        if thread is not None:
            thread.join(timeout=5.0)

    def test_list_songs(self) -> None:
        resp = self.client.get("/songs")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), ["long", "short"])

    def test_play_requires_song(self) -> None:
        resp = self.client.post("/play", json={})

        self.assertEqual(resp.status_code, 400)

    def test_play_unknown_song(self) -> None:
        resp = self.client.post("/play", json={"song": "missing"})

        self.assertEqual(resp.status_code, 404)

    def test_play_short_song_to_completion(self) -> None:
        resp = self.client.post("/play", json={"song": "short"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["status"], "started")
        player = server._player

        self.wait_for_thread()

        self.assertEqual(player.state.value, "finished")
        self.assertEqual(player.progress.current_tick, 20)
        self.assertEqual(self.client.get("/status").get_json()["state"], "idle")
        self.assertEqual(self.client.get("/progress").get_json(), {"state": "idle", "pct": 0.0})

    def test_progress_pause_and_stop(self) -> None:
        self.assertEqual(self.client.post("/play", json={"song": "long"}).status_code, 200)

        again = self.client.post("/play", json={"song": "short"})
        self.assertEqual(again.status_code, 409)

        status = self.client.get("/status").get_json()
        self.assertEqual((status["state"], status["song"]), ("playing", "long"))

        paused = self.client.post("/pause").get_json()
        self.assertEqual(paused["status"], "paused")
        progress = self.client.get("/progress").get_json()
        for field in ("paused", "elapsed_us", "current_tick", "final_tick", "speed", "pct"):
            self.assertIn(field, progress)
        self.assertEqual(progress["final_tick"], 1_000_000)

        stopped = self.client.post("/stop").get_json()
        self.assertEqual(stopped, {"status": "stopping", "song": "long"})
        self.assertIsNone(server._play_thread)

    def test_stop_and_pause_when_idle(self) -> None:
        self.assertEqual(self.client.post("/stop").get_json(), {"status": "idle"})
        self.assertEqual(self.client.post("/pause").status_code, 409)
        self.assertEqual(self.client.post("/ready").status_code, 409)

    def test_ready_releases_waiting_song(self) -> None:
        server.configure(Config(
            player=PlayerSettings(wait_for_ready=True),
            actuator=ActuatorSettings(kind="dry-run"),
            songs_dir=self.tmp.name,
        ))
        self.assertEqual(self.client.post("/play", json={"song": "short"}).status_code, 200)
        player = server._player

        deadline = time.monotonic() + 5.0
        while player.progress.state != "waiting" and time.monotonic() < deadline:
            time.sleep(0.01)
        self.assertEqual(self.client.get("/progress").get_json()["state"], "waiting")

        resp = self.client.post("/ready")
        self.assertEqual(resp.get_json(), {"status": "ready", "song": "short"})
        self.wait_for_thread()

        self.assertEqual(player.state.value, "finished")
        self.assertEqual(player.progress.current_tick, 20)

    def test_each_song_gets_its_own_controls(self) -> None:
        self.assertEqual(self.client.post("/play", json={"song": "long"}).status_code, 200)
        first = server._controls
        self.client.post("/stop")
        self.assertTrue(first.stopped)

        self.assertEqual(self.client.post("/play", json={"song": "short"}).status_code, 200)
        player = server._player
        self.wait_for_thread()

        self.assertIsNot(server._controls, first)
        self.assertTrue(first.stopped)
        self.assertEqual(player.state.value, "finished")

    def test_stop_keeps_thread_that_has_not_exited(self) -> None:
        blocker = threading.Event()
        thread = threading.Thread(target=blocker.wait, daemon=True)
        thread.start()
        server._play_thread = thread
        server._current_song = "long"
        try:
            with mock.patch.object(server, "STOP_TIMEOUT_S", 0.05):
                resp = self.client.post("/stop")

            self.assertEqual(resp.get_json(), {"status": "stopping", "song": "long"})
            self.assertIs(server._play_thread, thread)
            self.assertEqual(self.client.post("/play", json={"song": "short"}).status_code, 409)
        finally:
            blocker.set()
            thread.join(timeout=1.0)


if __name__ == "__main__":
    unittest.main()
