# ========================= midi/replayer.py =========================
import logging
from dataclasses import dataclass
from typing import List, Optional

import mido

from midi.smf import MetaEvent, RawEvent, SmfData
from notes.model import quantize_ms

logger = logging.getLogger(__name__)

DEFAULT_TEMPO = mido.bpm2tempo(120)  # 500000 us/beat

@dataclass
class TimedEvent:
    """A raw event placed on the global timeline (ms from the start)."""
    event: RawEvent
    timestamp: float
    track: int
    ticks_to_event: int

    @property
    def subtype(self) -> Optional[str]:
        return getattr(self.event, "subtype", None)


@dataclass
class _TrackState:
    next_event_index: int
    ticks_to_next_event: Optional[int]


def _ticks_to_ms(ticks: int, ticks_per_beat: int, bpm: float) -> float:
    if ticks <= 0:
        return 0.0
    beats = ticks / ticks_per_beat
    return beats / (bpm / 60) * 1000


def replay(smf: SmfData) -> List[TimedEvent]:
    """Merge all tracks into one timestamp-ordered list.

    Tracks are consumed in lock step: the track whose next event is nearest
    fires first (lowest track index on ties). A setTempo event changes the
    rate for the delta of the *next* emitted event onwards.
    """
    tracks = smf.tracks
    ticks_per_beat = smf.header.ticks_per_beat
    states = [
        _TrackState(0, track[0].delta_time if track else None)
        for track in tracks
    ]
    bpm = mido.tempo2bpm(DEFAULT_TEMPO)
    current_time = 0.0
    out: List[TimedEvent] = []

    while True:
        nearest: Optional[int] = None
        for i, st in enumerate(states):
            if st.ticks_to_next_event is None:
                continue
            if nearest is None or st.ticks_to_next_event < states[nearest].ticks_to_next_event:
                nearest = i
        if nearest is None:
            break

        st = states[nearest]
        ticks = st.ticks_to_next_event
        track = tracks[nearest]
        event = track[st.next_event_index]
        st.next_event_index += 1
        if st.next_event_index < len(track):
            st.ticks_to_next_event += track[st.next_event_index].delta_time
        else:
            st.ticks_to_next_event = None
        for other in states:
            if other.ticks_to_next_event is not None:
                other.ticks_to_next_event -= ticks

        current_time += _ticks_to_ms(ticks, ticks_per_beat, bpm)
        out.append(TimedEvent(event=event, timestamp=quantize_ms(current_time),
                              track=nearest, ticks_to_event=ticks))

        if isinstance(event, MetaEvent) and event.subtype == "setTempo":
            bpm = mido.tempo2bpm(event.microseconds_per_beat)

    logger.debug("replayed %d events over %.1f ms", len(out), current_time)
    return out
