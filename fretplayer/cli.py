from __future__ import annotations
import argparse, logging, pathlib, sys
from . import __version__
from .actuators import create_actuator
from .config import ACTUATOR_KINDS, load_config
from .controls import Controls, KeyPoller
from .errors import ConfigError, PlayerError, ScoreError
from .player import Player
from .score import Score

log = logging.getLogger("fretplayer")


def _int_list(text: str):
    try:
        return [int(v) for v in text.split(",") if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma separated integers, got '{text}'")


def _window(text: str):
    vals = _int_list(text)
    if len(vals) != 4:
        raise argparse.ArgumentTypeError("expected X,Y,WIDTH,HEIGHT")
    return vals


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="fretplayer", description="Play MIDI files on a six-string instrument")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p.add_argument("--config", dest="config", default=None, help="JSON config (defaults applied if omitted)")
    sub = p.add_subparsers(dest="command", required=True)

    play = sub.add_parser("play", help="Play a MIDI file")
    play.add_argument("infile", help="Input MIDI file (.mid)")
    play.add_argument("--loop", action="store_true", default=None, help="Restart the song when it ends")
    play.add_argument("--sing", action="store_true", default=None, help="Accent notes at or above --sing-above")
    play.add_argument("--sing-above", type=int, default=None, help="Accent threshold (MIDI pitch)")
    play.add_argument("--tracks", type=_int_list, default=None, help="Track indices to play, e.g. 0,2 (default: all)")
    play.add_argument("--speed", type=float, default=None, help="Playback speed multiplier")
    play.add_argument("--start-time", type=int, default=None, help="Wall-clock start time in epoch milliseconds")
    play.add_argument("--wait", action="store_true", default=None, help="Wait for backspace before playing")
    play.add_argument("--input-delay", type=int, default=None, help="Key hold time in ms")
    play.add_argument("--actuator", choices=ACTUATOR_KINDS, default=None)
    play.add_argument("--window", type=_window, default=None, help="Target window X,Y,WIDTH,HEIGHT")
    play.add_argument("--window-id", default=None, help="X11 window id for the x11 actuator (default: focused window)")
    play.add_argument("--port", default=None, help="Serial port for the serial actuator")
    play.add_argument("--no-keys", action="store_true", help="Disable the global escape / right shift shortcuts")

    tracks = sub.add_parser("tracks", help="List the tracks of a MIDI file")
    tracks.add_argument("infile")

    serve = sub.add_parser("serve", help="Run the HTTP control server")
    serve.add_argument("--songs", dest="songs_dir", default=None, help="Directory with MIDI songs")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=5000)
    return p


def apply_overrides(cfg, args):
    """Copy CLI flags that were given over the loaded config."""
    player = cfg.player
    for attr, value in (("loop", args.loop), ("sing", args.sing), ("sing_above", args.sing_above),
                        ("speed", args.speed), ("start_time", args.start_time),
                        ("wait_for_ready", args.wait), ("input_delay_ms", args.input_delay)):
        if value is not None:
            setattr(player, attr, value)
    if args.tracks is not None:
        player.tracks = tuple(args.tracks)
    player.validate()

    if args.actuator is not None:
        cfg.actuator.kind = args.actuator
    if args.window is not None:
        cfg.actuator.window = tuple(args.window)
    if args.window_id is not None:
        cfg.actuator.window_id = args.window_id
    if args.port is not None:
        cfg.actuator.serial_port = args.port
    cfg.actuator.validate()
    return cfg


def _cmd_tracks(args) -> int:
    score = Score.load(pathlib.Path(args.infile).expanduser())
    print(f"ticks per beat: {score.ticks_per_beat}")
    for row in score.summary():
        print(f"{row['index']:3d}  {row['name'] or '-':30s} notes={row['notes']:5d} events={row['events']}")
    return 0


def _cmd_play(args, cfg) -> int:
    cfg = apply_overrides(cfg, args)
    score = Score.load(pathlib.Path(args.infile).expanduser())

    controls = Controls()
    poller = None if args.no_keys else KeyPoller(controls)
    with create_actuator(cfg.actuator, cfg.player.input_delay_ms) as actuator:
        player = Player(score, actuator, cfg.player, controls=controls)
        if poller:
            poller.start()
        try:
            state = player.play()
        finally:
            if poller:
                poller.stop()
    snap = player.progress.snapshot()
    print(f"[cli] {state.value}: tick {snap['current_tick']}/{snap['final_tick']} "
          f"elapsed {snap['elapsed_us'] / 1e6:.1f}s shift {player.shift:+d}")
    return 0


def _cmd_serve(args, cfg) -> int:
    from . import app as server
    if args.songs_dir:
        cfg.songs_dir = args.songs_dir
    server.configure(cfg)
    server.app.run(host=args.host, port=args.port)
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    try:
        cfg = load_config(args.config)
        if args.command == "tracks":
            return _cmd_tracks(args)
        if args.command == "play":
            return _cmd_play(args, cfg)
        return _cmd_serve(args, cfg)
    except (ConfigError, ScoreError) as e:
        print(f"[cli] ERROR: {e}", file=sys.stderr)
        return 1
    except PlayerError as e:
        print(f"[cli] ERROR: playback failed: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        log.info("[cli] Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
