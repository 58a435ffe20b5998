# ========================= timeline/callbacks.py =========================
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Tuple, Union

from errors import ValidationError
from notes.model import Record, matches

Handler = Callable[[Any], Any]

@dataclass(frozen=True)
class CallbackTarget:
    """What a callback listens for: ordered (field, value) pairs an event must carry.

    A bare name such as ``"noteOn"`` or ``"finish"`` is the pair ``("type", name)``.
    """
    fields: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def from_name(cls, name: str) -> "CallbackTarget":
        return cls(fields=(("type", name),))

    @classmethod
    def from_pattern(cls, pattern: Mapping[str, Any]) -> "CallbackTarget":
        return cls(fields=tuple(pattern.items()))

    @classmethod
    def coerce(cls, target: Union[str, Mapping[str, Any], "CallbackTarget"]) -> "CallbackTarget":
        if isinstance(target, CallbackTarget):
            return target
        if isinstance(target, str):
            return cls.from_name(target)
        if isinstance(target, Mapping):
            return cls.from_pattern(target)
        raise ValidationError(f"callback target must be a name or a pattern, got {target!r}")

    def matches(self, record: Record) -> bool:
        return matches(record, dict(self.fields))


@dataclass
class Callback:
    target: CallbackTarget
    handler: Handler
    id: int


class CallbackRegistry:
    def __init__(self):
        self._callbacks: List[Callback] = []
        self._highest_id = -1

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, target, handler: Handler) -> int:
        if not callable(handler):
            raise ValidationError(f"callback handler must be callable, got {handler!r}")
        self._highest_id += 1
        self._callbacks.append(Callback(CallbackTarget.coerce(target), handler, self._highest_id))
        return self._highest_id

    def remove(self, callback_id: int) -> bool:
        before = len(self._callbacks)
        self._callbacks = [c for c in self._callbacks if c.id != callback_id]
        return len(self._callbacks) < before

    def clear(self):
        self._callbacks = []

    def trigger(self, event: Union[str, Record]) -> int:
        """Call every matching handler in registration order; returns how many fired."""
        if isinstance(event, str):
            event = {"type": event}
        fired = 0
        # snapshot: handlers may add or remove callbacks
        for cb in list(self._callbacks):
            if cb.target.matches(event):
                cb.handler(event)
                fired += 1
        return fired
