"""
app.py


HTTP control surface: start, stop and pause songs and read live progress.
"""

import logging                                       # Import logging to configure server logs.
import os                                            # Import os for filesystem operations.
import threading                                     # Import threading for background playback.

from flask import Flask, jsonify, request            # Import Flask web framework components.

from .actuators import create_actuator
from .config import Config, load_config
from .controls import Controls
from .errors import PlayerError
from .player import Player
from .score import Score

log = logging.getLogger(__name__)

# Silence Flask's default access logs below WARNING level to reduce console noise.
logging.getLogger('werkzeug').setLevel(logging.WARNING)

MIDI_SUFFIXES = ('.mid', '.midi')
STOP_TIMEOUT_S = 2.0                                 # How long /stop waits for the player thread.

app = Flask(__name__)                                # Initialise Flask application instance.

# Track playback state: background thread, current song and the player itself.
_config: Config = load_config()                      # Active settings, replaced by configure().
_controls = Controls()                               # Signals into the running player, new per song.
_play_thread: threading.Thread | None = None         # Thread object running Player.play().
_player: Player | None = None                        # Player of the current song.
_current_song: str | None = None                     # Name of song currently playing.
_last_error: str | None = None                       # Failure of the last playback, if any.


def configure(config: Config) -> None:
    global _config
    _config = config


def reset_playback_state():
    global _play_thread, _player, _current_song
    _play_thread = None
    _player = None
    _current_song = None


def _is_playing() -> bool:
    return _play_thread is not None and _play_thread.is_alive()


def _song_path(song: str):
    for suffix in MIDI_SUFFIXES:
        path = os.path.join(_config.songs_dir, song + suffix)
        if os.path.isfile(path):
            return path
    return None


def _run(player: Player) -> None:
    """Thread body: play and always release the actuator."""
    global _last_error
    try:
        with player.actuator:
            player.play()
    except PlayerError as e:
        _last_error = str(e)
        log.error("[play] Playback failed: %s", e)

# --- Route: List available songs --------------------------------------------


@app.route('/songs', methods=['GET'])
def list_songs():
    """
    Return list of MIDI song filenames (without extension).
    """
    if not os.path.isdir(_config.songs_dir):
        return jsonify([])
    files = sorted(os.listdir(_config.songs_dir))
    names = [os.path.splitext(f)[0] for f in files if f.lower().endswith(MIDI_SUFFIXES)]
    return jsonify(names)

# --- Route: Start song playback ---------------------------------------------


@app.route('/play', methods=['POST'])
def start_playback():
    """
    Launch the player in a background thread based on POST JSON {"song": name}.
    """
    global _play_thread, _player, _current_song, _last_error, _controls

    data = request.get_json(silent=True)            # Parse JSON payload safely.
    if not data or 'song' not in data:
        # Reject requests lacking required 'song' field.
        return jsonify({'error': 'Missing "song" parameter'}), 400

    song = data['song']                             # Extract requested song name.
    path = _song_path(song)
    if path is None:
        # Return not-found if the song file does not exist.
        return jsonify({'error': f'No such song: {song}'}), 404

    if _is_playing():
        # Prevent overlapping playback sessions.
        return jsonify({'status': 'already playing', 'song': _current_song}), 409

    try:
        score = Score.load(path)
        actuator = create_actuator(_config.actuator, _config.player.input_delay_ms)
    except PlayerError as e:
        return jsonify({'error': str(e)}), 422
    # Each session gets its own signals so a stop never leaks into the next song.
    controls = Controls()
    try:
        player = Player(score, actuator, _config.player, controls=controls)
    except PlayerError as e:
        actuator.close()
        return jsonify({'error': str(e)}), 422

    _controls = controls
    _last_error = None
    _player = player
    _current_song = song
    # Launch playback in daemon thread to avoid blocking server.
    _play_thread = threading.Thread(target=_run, args=(player,), daemon=True)
    _play_thread.start()

    return jsonify({'status': 'started', 'song': song, 'shift': player.shift})

# --- Route: Stop current playback -------------------------------------------


@app.route('/stop', methods=['POST'])
def stop_playback():
    thread = _play_thread
    if thread and thread.is_alive():
        song = _current_song
        _controls.request_stop()
        thread.join(timeout=STOP_TIMEOUT_S)
        if thread.is_alive():
            # Still holding the actuator; keep it registered so /play refuses.
            log.warning("[stop] Player thread did not exit within %.1fs", STOP_TIMEOUT_S)
        else:
            reset_playback_state()
        return jsonify({'status': 'stopping', 'song': song})
    reset_playback_state()
    return jsonify({'status': 'idle'})

# --- Route: Release a song waiting for the start signal ---------------------


@app.route('/ready', methods=['POST'])
def signal_ready():
    if not _is_playing():
        return jsonify({'status': 'idle'}), 409
    _controls.signal_ready()
    return jsonify({'status': 'ready', 'song': _current_song})

# --- Route: Pause / resume --------------------------------------------------


@app.route('/pause', methods=['POST'])
def toggle_pause():
    if not _is_playing():
        return jsonify({'status': 'idle'}), 409
    paused = _controls.toggle_pause()
    return jsonify({'status': 'paused' if paused else 'playing', 'song': _current_song})

# --- Route: Playback status -------------------------------------------------


@app.route('/status', methods=['GET'])
def get_status():
    """
    Report whether playback is active and current song name.
    """
    playing = _is_playing()
    return jsonify({
        'state': 'playing' if playing else 'idle',
        'song':  _current_song if playing else None,
        'error': _last_error,
    })

# --- Route: Playback progress -----------------------------------------------


@app.route('/progress', methods=['GET'])
def get_progress():
    player = _player
    if player is None or not _is_playing():
        return jsonify({'state': 'idle', 'pct': 0.0})
    return jsonify(player.progress.snapshot())
