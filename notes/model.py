# ========================= notes/model.py =========================
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Union

from errors import ValidationError

NOTE_ON = "noteOn"
NOTE_OFF = "noteOff"
LIFECYCLE_EVENTS = ("play", "pause", "stop", "finish")

_MISSING = object()

# timestamps are kept on a 1 ns grid
MS_DECIMALS = 6

def quantize_ms(ms: float) -> float:
    return round(ms, MS_DECIMALS)

@dataclass(frozen=True)
class NoteEvent:
    type: str             # "noteOn" | "noteOff" (or any app-defined type)
    timestamp: float      # ms from the start
    note: Optional[int] = None
    channel: Optional[int] = None
    track: Optional[int] = None
    velocity: Optional[int] = None
    length: Optional[float] = None   # ms, noteOn only
    extra: Dict[str, Any] = field(default_factory=dict)  # app-defined fields, kept verbatim

    def __hash__(self):
        return hash((self.type, self.timestamp, self.note, self.channel, self.track,
                     self.velocity, self.length, tuple(sorted(self.extra.items()))))

    def get(self, name: str, default: Any = None) -> Any:
        """Field lookup across known fields and ``extra``; unset fields are absent."""
        if name != "extra" and name in _KNOWN_FIELDS:
            value = getattr(self, name)
            return default if value is None else value
        return self.extra.get(name, default)

    def has(self, name: str) -> bool:
        return self.get(name, _MISSING) is not _MISSING

    def with_changes(self, **changes) -> "NoteEvent":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        out = {k: getattr(self, k) for k in _KNOWN_FIELDS if getattr(self, k) is not None}
        out.update(self.extra)
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NoteEvent":
        if "timestamp" not in data or "type" not in data:
            raise ValidationError(
                "Couldn't add event because not all necessary properties were specified "
                f"(need timestamp and type, got {sorted(data)})"
            )
        ts = data["timestamp"]
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            raise ValidationError(f"timestamp must be a number, got {ts!r}")
        if data["type"] in (NOTE_ON, NOTE_OFF) and data.get("note") is None:
            raise ValidationError(f"{data['type']} event needs a note number")
        known = {k: data[k] for k in _KNOWN_FIELDS if k in data}
        extra = {k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        return cls(extra=extra, **known)


_KNOWN_FIELDS = tuple(f.name for f in fields(NoteEvent) if f.name != "extra")

Record = Union[NoteEvent, Mapping[str, Any]]


def coerce_event(event: Record) -> NoteEvent:
    if isinstance(event, NoteEvent):
        if event.type is None or event.timestamp is None:
            raise ValidationError("event needs both timestamp and type")
        if event.type in (NOTE_ON, NOTE_OFF) and event.note is None:
            raise ValidationError(f"{event.type} event needs a note number")
        return event
    if isinstance(event, Mapping):
        return NoteEvent.from_dict(event)
    raise ValidationError(f"expected a NoteEvent or a mapping, got {type(event).__name__}")


def get_field(record: Record, name: str, default: Any = _MISSING) -> Any:
    return record.get(name, default)


def same_value(a: Any, b: Any) -> bool:
    # strict equality: True is not 1
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


def matches(record: Record, pattern: Mapping[str, Any]) -> bool:
    """True when ``record`` has every key of ``pattern`` with an equal value.

    An empty pattern matches everything.
    """
    for key, expected in pattern.items():
        value = get_field(record, key)
        if value is _MISSING or not same_value(value, expected):
            return False
    return True
