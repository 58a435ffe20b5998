# ========================= midi/smf.py =========================
"""Standard MIDI File container decoding.

``decode_smf`` walks the MThd/MTrk chunks and turns every track into a list of
raw events (meta, sysex or channel). Timing is left as per-track delta ticks;
``midi.replayer`` turns it into wall-clock time.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from errors import FormatError
from midi.stream import ByteStream

logger = logging.getLogger(__name__)

HEADER_ID = b"MThd"
TRACK_ID = b"MTrk"

# subtype byte -> (name, exact payload length or None when free-form)
META_SUBTYPES: Dict[int, Tuple[str, Optional[int]]] = {
    0x00: ("sequenceNumber", 2),
    0x01: ("text", None),
    0x02: ("copyrightNotice", None),
    0x03: ("trackName", None),
    0x04: ("instrumentName", None),
    0x05: ("lyrics", None),
    0x06: ("marker", None),
    0x07: ("cuePoint", None),
    0x20: ("midiChannelPrefix", 1),
    0x2F: ("endOfTrack", 0),
    0x51: ("setTempo", 3),
    0x54: ("smpteOffset", 5),
    0x58: ("timeSignature", 4),
    0x59: ("keySignature", 2),
    0x7F: ("sequencerSpecific", None),
}
TEXT_SUBTYPES = {"text", "copyrightNotice", "trackName", "instrumentName", "lyrics", "marker", "cuePoint"}

SMPTE_FRAME_RATES = {0x00: 24, 0x20: 25, 0x40: 29, 0x60: 30}


@dataclass
class RawEvent:
    delta_time: int
    kind: ClassVar[str] = "raw"


@dataclass
class MetaEvent(RawEvent):
    subtype: str = "unknown"
    attrs: Dict[str, Any] = field(default_factory=dict)
    kind: ClassVar[str] = "meta"

    @property
    def microseconds_per_beat(self) -> Optional[int]:
        return self.attrs.get("microseconds_per_beat")


@dataclass
class SysExEvent(RawEvent):
    data: bytes = b""
    kind: ClassVar[str] = "sysEx"


@dataclass
class DividedSysExEvent(SysExEvent):
    kind: ClassVar[str] = "dividedSysEx"


@dataclass
class ChannelEvent(RawEvent):
    channel: int = 0
    subtype: str = ""
    note_number: Optional[int] = None
    velocity: Optional[int] = None
    amount: Optional[int] = None
    controller_type: Optional[int] = None
    value: Optional[int] = None
    program_number: Optional[int] = None
    kind: ClassVar[str] = "channel"


@dataclass(frozen=True)
class SmfHeader:
    format_type: int
    track_count: int
    ticks_per_beat: int


@dataclass
class SmfData:
    header: SmfHeader
    tracks: List[List[RawEvent]]


def _read_chunk(stream: ByteStream) -> Tuple[bytes, int, bytes]:
    chunk_id = stream.read(4)
    length = stream.read_uint32()
    return chunk_id, length, stream.read(length)


def _expect_length(subtype: str, expected: Optional[int], length: int):
    if expected is not None and length != expected:
        raise FormatError(f"Expected length for {subtype} event is {expected}, got {length}")


def _read_meta(stream: ByteStream, delta_time: int) -> MetaEvent:
    subtype_byte = stream.read_uint8()
    length = stream.read_var_len()
    subtype, expected = META_SUBTYPES.get(subtype_byte, ("unknown", None))
    _expect_length(subtype, expected, length)
    ev = MetaEvent(delta_time=delta_time, subtype=subtype)
    a = ev.attrs

    if subtype == "sequenceNumber":
        a["number"] = stream.read_uint16()
    elif subtype in TEXT_SUBTYPES:
        a["text"] = stream.read(length).decode("latin-1")
    elif subtype == "midiChannelPrefix":
        a["channel"] = stream.read_uint8()
    elif subtype == "endOfTrack":
        pass
    elif subtype == "setTempo":
        a["microseconds_per_beat"] = (
            (stream.read_uint8() << 16) + (stream.read_uint8() << 8) + stream.read_uint8()
        )
        if not a["microseconds_per_beat"]:
            raise FormatError("setTempo of 0 microseconds per beat")
    elif subtype == "smpteOffset":
        hour_byte = stream.read_uint8()
        a["frame_rate"] = SMPTE_FRAME_RATES[hour_byte & 0x60]
        a["hour"] = hour_byte & 0x1F
        a["min"] = stream.read_uint8()
        a["sec"] = stream.read_uint8()
        a["frame"] = stream.read_uint8()
        a["subframe"] = stream.read_uint8()
    elif subtype == "timeSignature":
        a["numerator"] = stream.read_uint8()
        a["denominator"] = 2 ** stream.read_uint8()
        a["metronome"] = stream.read_uint8()
        a["thirtyseconds"] = stream.read_uint8()
    elif subtype == "keySignature":
        a["key"] = stream.read_uint8(signed=True)
        a["scale"] = stream.read_uint8()
    else:
        # sequencerSpecific and unrecognised subtypes keep the raw payload
        if subtype == "unknown":
            a["subtype_byte"] = subtype_byte
        a["data"] = stream.read(length)
    return ev


def _read_channel(stream: ByteStream, delta_time: int, status: int, param1: int) -> ChannelEvent:
    event_type = status >> 4
    ev = ChannelEvent(delta_time=delta_time, channel=status & 0x0F)
    if event_type == 0x8:
        ev.subtype = "noteOff"
        ev.note_number = param1
        ev.velocity = stream.read_uint8()
    elif event_type == 0x9:
        ev.note_number = param1
        ev.velocity = stream.read_uint8()
        ev.subtype = "noteOff" if ev.velocity == 0 else "noteOn"
    elif event_type == 0xA:
        ev.subtype = "noteAftertouch"
        ev.note_number = param1
        ev.amount = stream.read_uint8()
    elif event_type == 0xB:
        ev.subtype = "controller"
        ev.controller_type = param1
        ev.value = stream.read_uint8()
    elif event_type == 0xC:
        ev.subtype = "programChange"
        ev.program_number = param1
    elif event_type == 0xD:
        ev.subtype = "channelAftertouch"
        ev.amount = param1
    elif event_type == 0xE:
        ev.subtype = "pitchBend"
        ev.value = param1 + (stream.read_uint8() << 7)
    else:
        raise FormatError(f"Unrecognised MIDI event type: {event_type:#x}")
    return ev


def _read_track(data: bytes) -> List[RawEvent]:
    stream = ByteStream(data)
    events: List[RawEvent] = []
    running_status: Optional[int] = None

    while not stream.eof():
        delta_time = stream.read_var_len()
        status = stream.read_uint8()

        if status == 0xFF:
            events.append(_read_meta(stream, delta_time))
        elif status == 0xF0:
            length = stream.read_var_len()
            events.append(SysExEvent(delta_time=delta_time, data=stream.read(length)))
        elif status == 0xF7:
            length = stream.read_var_len()
            events.append(DividedSysExEvent(delta_time=delta_time, data=stream.read(length)))
        elif (status & 0xF0) == 0xF0:
            raise FormatError(f"Unrecognised MIDI event type byte: {status:#x}")
        elif status & 0x80:
            running_status = status
            events.append(_read_channel(stream, delta_time, status, stream.read_uint8()))
        else:
            # running status: the byte just read is the first data parameter
            if running_status is None:
                raise FormatError(f"Running status byte {status:#x} without a preceding status byte")
            events.append(_read_channel(stream, delta_time, running_status, status))
    return events


def decode_smf(data: bytes) -> SmfData:
    stream = ByteStream(data)
    chunk_id, length, payload = _read_chunk(stream)
    if chunk_id != HEADER_ID or length != 6:
        raise FormatError("Bad .mid file - header not found")

    header_stream = ByteStream(payload)
    format_type = header_stream.read_uint16()
    track_count = header_stream.read_uint16()
    time_division = header_stream.read_uint16()
    if time_division & 0x8000:
        raise FormatError("Expressing time division in SMPTE frames is not supported")
    if time_division == 0:
        raise FormatError("Time division of 0 ticks per beat")

    header = SmfHeader(format_type=format_type, track_count=track_count, ticks_per_beat=time_division)
    tracks: List[List[RawEvent]] = []
    for _ in range(track_count):
        chunk_id, _, payload = _read_chunk(stream)
        if chunk_id != TRACK_ID:
            raise FormatError(f"Unexpected chunk - expected MTrk, got {chunk_id!r}")
        tracks.append(_read_track(payload))

    logger.debug("decoded SMF format %d: %d tracks, %d ticks/beat, %d events",
                 format_type, track_count, time_division, sum(len(t) for t in tracks))
    return SmfData(header=header, tracks=tracks)
