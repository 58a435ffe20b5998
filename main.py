# ========================= main.py =========================
import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from app import MidiPlayer
from config import AppConfig, LogConfig, PlaybackConfig
from errors import FormatError
from notes.model import LIFECYCLE_EVENTS, NOTE_OFF, NOTE_ON
from utils.crashlog import install_async_handler, log_dir, log_exception, setup_crashlog

FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

def _init_logging(cfg: LogConfig):
    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=cfg.level.upper(), format=FORMAT, encoding="utf-8")
    fh = RotatingFileHandler(os.path.join(log_dir(), cfg.log_file),
                             maxBytes=cfg.max_bytes, backupCount=cfg.backup_count, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(FORMAT))
    logging.getLogger().addHandler(fh)

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Decode a Standard MIDI File and replay its notes in real time.")
    ap.add_argument("path", help=".mid file to load")
    ap.add_argument("--speed", type=float, default=1.0, help="playback-rate multiplier")
    ap.add_argument("--note-shift", type=int, default=0, help="added to every note number (piano: -21)")
    ap.add_argument("--reverse", action="store_true", help="play the song backwards")
    ap.add_argument("--from", dest="start_ms", type=float, default=0.0, help="start position in ms")
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    ap.add_argument("--list", action="store_true", help="print the decoded note events and exit")
    return ap

def config_from_args(args) -> AppConfig:
    return AppConfig(
        playback=PlaybackConfig(speed=args.speed, note_shift=args.note_shift),
        log=LogConfig(level=args.log_level),
    )

def _log_note(event):
    logging.info("%7.1f ms  %-7s note=%s vel=%s ch=%s", event.timestamp, event.type,
                 event.note, event.velocity, event.channel)

async def _play(player: MidiPlayer):
    install_async_handler(asyncio.get_running_loop())
    await player.play()

def main(argv=None) -> int:
    setup_crashlog()
    args = build_parser().parse_args(argv)
    cfg = config_from_args(args)
    _init_logging(cfg.log)

    player = MidiPlayer(cfg.playback)
    try:
        player.load_from_file(args.path, cfg.playback.note_shift)
    except (FormatError, OSError) as e:
        logging.error("cannot load %s: %s", args.path, e)
        return 1

    if args.reverse:
        player.reverse()
    if args.start_ms:
        player.seek(args.start_ms)

    if args.list:
        for ev in player.get_all_events():
            print(f"{ev.timestamp:10.1f}  {ev.type:<7}  note={ev.note:<3} vel={ev.velocity} "
                  f"ch={ev.channel} track={ev.track} len={ev.length}")
        return 0

    player.on_event(NOTE_ON, _log_note)
    player.on_event(NOTE_OFF, _log_note)
    for name in LIFECYCLE_EVENTS:
        player.on_event(name, lambda e: logging.info("-- %s (%.1f ms)", e["type"], player.get_current_time()))

    logging.info("playing %s: %d events, %.1f s at %.2fx", args.path, len(player.get_all_events()),
                 player.get_duration() / 1000, player.get_speed())
    try:
        asyncio.run(_play(player))
    except KeyboardInterrupt:
        player.pause()
    return 0

if __name__ == '__main__':
    try:
        sys.exit(main())
    except Exception as e:
        log_exception("Top-level exception", e)
        logging.error("Unhandled exception: %s", e, exc_info=True)
        raise
