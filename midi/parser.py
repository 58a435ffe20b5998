# ========================= midi/parser.py =========================
import base64
import binascii
import logging
from pathlib import Path
from typing import List, Union

from errors import FormatError
from midi.replayer import TimedEvent, replay
from midi.smf import ChannelEvent, decode_smf
from notes.model import NOTE_OFF, NOTE_ON, NoteEvent, quantize_ms

logger = logging.getLogger(__name__)

def format_note_events(timed: List[TimedEvent]) -> List[NoteEvent]:
    """Keep noteOn/noteOff only and give every noteOn a ``length``.

    A noteOn pairs with the next noteOff carrying the same note number, in
    list order. Overlapping retriggers of one note are not untangled.
    """
    notes: List[NoteEvent] = []
    for te in timed:
        ev = te.event
        if isinstance(ev, ChannelEvent) and ev.subtype in (NOTE_ON, NOTE_OFF):
            notes.append(NoteEvent(
                type=ev.subtype,
                timestamp=te.timestamp,
                note=ev.note_number,
                channel=ev.channel,
                track=te.track,
                velocity=ev.velocity,
            ))

    for i, on in enumerate(notes):
        if on.type != NOTE_ON:
            continue
        for off in notes[i + 1:]:
            if off.type == NOTE_OFF and off.note == on.note:
                notes[i] = on.with_changes(length=quantize_ms(off.timestamp - on.timestamp))
                break
    return notes


def parse_midi_bytes(data: Union[bytes, bytearray]) -> List[NoteEvent]:
    notes = format_note_events(replay(decode_smf(bytes(data))))
    logger.debug("parsed %d note events", len(notes))
    return notes


def decode_base64(text: str) -> bytes:
    # accepts bare base64 or a data URL ("data:audio/mid;base64,....")
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    try:
        return base64.b64decode("".join(text.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Invalid base64 MIDI data: {e}") from e


def parse_midi_base64(text: str) -> List[NoteEvent]:
    return parse_midi_bytes(decode_base64(text))


def parse_midi_file(path: Union[str, Path]) -> List[NoteEvent]:
    return parse_midi_bytes(Path(path).read_bytes())
