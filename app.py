# ========================= app.py =========================
import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

from config import PlaybackConfig
from errors import FormatError
from midi.parser import parse_midi_base64, parse_midi_bytes, parse_midi_file
from notes.model import NoteEvent, Record, coerce_event
from timeline.callbacks import Handler
from timeline.scheduler import PlaybackScheduler
from timeline.timeline import Timeline

logger = logging.getLogger(__name__)

class MidiPlayer:
    """Loads Standard MIDI Files and plays their note events back with callbacks.

    Every loader decodes first and only then resets the player, so a file
    that fails to decode leaves the current events in place.
    """
    def __init__(self, cfg: Optional[PlaybackConfig] = None, clock=None):
        self.cfg = cfg or PlaybackConfig()
        self.timeline = Timeline()
        kwargs = {"clock": clock} if clock is not None else {}
        self.scheduler = PlaybackScheduler(self.timeline, speed=self.cfg.speed, **kwargs)

    # ---------- Loading ----------
    def load_from_bytes(self, data: Union[bytes, bytearray], note_shift: int = 0) -> List[NoteEvent]:
        return self._load(parse_midi_bytes, data, note_shift, "bytes")

    def load_from_base64(self, text: str, note_shift: int = 0) -> List[NoteEvent]:
        return self._load(parse_midi_base64, text, note_shift, "base64")

    def load_from_file(self, path: Union[str, Path], note_shift: int = 0) -> List[NoteEvent]:
        return self._load(parse_midi_file, path, note_shift, str(path))

    def load_events(self, events: Iterable[Record], note_shift: int = 0) -> List[NoteEvent]:
        events = [coerce_event(e) for e in events]  # validate before touching state
        self.reset()
        self.timeline.load(events, note_shift)
        logger.info("loaded %d events (%.1f ms)", len(self.timeline), self.get_duration())
        return self.get_all_events()

    def _load(self, parse, source, note_shift: int, label: str) -> List[NoteEvent]:
        try:
            events = parse(source)
        except FormatError as e:
            logger.error("failed to decode MIDI from %s: %s", label, e)
            raise
        return self.load_events(events, note_shift)

    # ---------- Transport ----------
    async def play(self):
        await self.scheduler.play()

    def start(self) -> asyncio.Task:
        return self.scheduler.start()

    def pause(self):
        self.scheduler.pause()

    def stop(self):
        self.scheduler.stop()

    def reset(self):
        self.scheduler.reset()

    def seek(self, ms: float):
        self.scheduler.seek(ms)

    def set_speed(self, multiplier: float):
        self.scheduler.set_speed(multiplier)

    def get_speed(self) -> float:
        return self.scheduler.get_speed()

    def get_current_time(self) -> float:
        return self.scheduler.get_current_time()

    def is_playing(self) -> bool:
        return self.scheduler.is_playing()

    def get_duration(self) -> float:
        return self.scheduler.get_duration()

    # ---------- Events ----------
    def get_all_events(self) -> List[NoteEvent]:
        return self.timeline.get_all()

    def get_events_in_range(self, start_ms: float, end_ms: float) -> List[NoteEvent]:
        return self.timeline.get_range(start_ms, end_ms)

    def get_events_ahead_by(self, ms: float) -> List[NoteEvent]:
        now = self.get_current_time()
        return self.timeline.get_range(now, now + ms)

    def get_events_behind_by(self, ms: float) -> List[NoteEvent]:
        now = self.get_current_time()
        return self.timeline.get_range(now - ms, now)

    def add_event(self, event: Record) -> NoteEvent:
        return self.scheduler.add_event(event)

    def remove_events(self, pattern: Mapping[str, Any]) -> int:
        return self.scheduler.remove_events(pattern)

    def reverse(self) -> List[NoteEvent]:
        self.stop()
        self.timeline.reverse()
        return self.get_all_events()

    # ---------- Callbacks ----------
    def on_event(self, target, handler: Handler) -> int:
        return self.scheduler.add_callback(target, handler)

    def off(self, callback_id: int) -> bool:
        return self.scheduler.remove_callback(callback_id)

    def off_all(self):
        self.scheduler.remove_all_callbacks()

    def emit(self, event: Union[str, Record]) -> int:
        return self.scheduler.trigger_callbacks(event)
