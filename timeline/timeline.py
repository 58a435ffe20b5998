# ========================= timeline/timeline.py =========================
from bisect import bisect_left, bisect_right
from typing import Iterable, List, Mapping, Optional, Any

from notes.model import NOTE_OFF, NOTE_ON, NoteEvent, Record, coerce_event, matches, quantize_ms

def _ts(e: NoteEvent) -> float:
    return e.timestamp

class Timeline:
    """Note events in timestamp order, split at the play cursor.

    Everything before ``cursor`` has been played, everything from it on is
    pending, so ``played + pending`` is the whole song in order. ``played``
    and ``pending`` hand out copies.
    """
    def __init__(self, events: Iterable[Record] = ()):
        self._events: List[NoteEvent] = []
        self.cursor = 0
        self.load(events)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def played(self) -> List[NoteEvent]:
        return self._events[:self.cursor]

    @property
    def pending(self) -> List[NoteEvent]:
        return self._events[self.cursor:]

    @property
    def pending_count(self) -> int:
        return len(self._events) - self.cursor

    @property
    def duration(self) -> float:
        return self._events[-1].timestamp if self._events else 0

    # ---------- Loading ----------
    def load(self, events: Iterable[Record], note_shift: int = 0):
        loaded = [coerce_event(e) for e in events]
        if note_shift:
            loaded = [e.with_changes(note=e.note + note_shift) if e.note is not None else e
                      for e in loaded]
        loaded.sort(key=_ts)  # stable
        self._events = loaded
        self.cursor = 0

    # ---------- Cursor ----------
    def seek(self, target: float):
        # an event exactly at ``target`` ends up pending
        self.cursor = bisect_left(self._events, target, key=_ts)

    def peek(self) -> Optional[NoteEvent]:
        return self._events[self.cursor] if self.cursor < len(self._events) else None

    def advance(self) -> NoteEvent:
        ev = self._events[self.cursor]
        self.cursor += 1
        return ev

    # ---------- Mutation ----------
    def insert(self, event: Record, current_time: float) -> NoteEvent:
        ev = coerce_event(event)
        head = self.peek()
        # a late loop may not have reached events the clock has already passed
        if ev.timestamp > current_time or (head is not None and ev.timestamp >= head.timestamp):
            # ties go after existing events with the same timestamp
            self._events.insert(bisect_right(self._events, ev.timestamp, lo=self.cursor, key=_ts), ev)
        else:
            self._events.insert(bisect_right(self._events, ev.timestamp, hi=self.cursor, key=_ts), ev)
            self.cursor += 1
        return ev

    def remove_matching(self, pattern: Mapping[str, Any]) -> int:
        before = len(self)
        played = [e for e in self.played if not matches(e, pattern)]
        pending = [e for e in self.pending if not matches(e, pattern)]
        self._events = played + pending
        self.cursor = len(played)
        return before - len(self)

    # ---------- Queries ----------
    def get_all(self) -> List[NoteEvent]:
        return list(self._events)

    def get_range(self, start: float, end: float) -> List[NoteEvent]:
        lo = bisect_left(self._events, start, key=_ts)
        hi = bisect_right(self._events, end, key=_ts)
        return self._events[lo:hi]

    def reverse(self):
        """Mirror the song in time so it plays backwards from 0.

        noteOffs are mirrored around their noteOn again so each note still
        starts before it stops. Reversing twice gives back the original list
        for timestamps on the 1 ns grid (everything the decoder produces).
        """
        if not len(self):
            return
        duration = self.duration
        events = [e.with_changes(timestamp=quantize_ms(duration - e.timestamp))
                  for e in reversed(self._events)]

        for i, off in enumerate(events):
            if off.type != NOTE_OFF:
                continue
            for on in events[i + 1:]:
                if on.type == NOTE_ON and on.note == off.note:
                    events[i] = off.with_changes(timestamp=quantize_ms(2 * on.timestamp - off.timestamp))
                    break

        events.sort(key=_ts)
        offset = events[0].timestamp
        self.load(e.with_changes(timestamp=quantize_ms(e.timestamp - offset)) for e in events)
