# ========================= timeline/scheduler.py =========================
import asyncio
import logging
import math
import time
from typing import Callable, Optional, Union

from errors import ValidationError
from notes.model import NoteEvent, Record
from timeline.callbacks import CallbackRegistry, Handler
from timeline.timeline import Timeline

logger = logging.getLogger(__name__)

# a wake-up this close to the due time counts as on time
_EARLY_TOLERANCE_MS = 1.0

def _now_ms() -> float:
    return time.perf_counter() * 1000.0

class PlaybackScheduler:
    """Plays a Timeline in real time on the running asyncio loop.

    ``play()`` is a coroutine that sleeps until the next pending event is
    due, fires the callbacks matching it, and repeats. ``pause``/``stop``/
    ``seek`` are plain calls; a sleeping loop notices them when it wakes.
    """
    def __init__(self, timeline: Optional[Timeline] = None, speed: float = 1.0,
                 clock: Callable[[], float] = _now_ms):
        self.timeline = timeline if timeline is not None else Timeline()
        self.callbacks = CallbackRegistry()
        self._clock = clock
        self._speed = 1.0
        self.set_speed(speed)
        self._current_time = 0.0
        self._starting_time = 0.0
        self._playing = False
        self._run_id = 0          # bumped by every play(); older loops retire
        self._task: Optional[asyncio.Task] = None

    # ---------- State ----------
    def is_playing(self) -> bool:
        return self._playing

    def get_speed(self) -> float:
        return self._speed

    def get_duration(self) -> float:
        return self.timeline.duration

    def get_current_time(self) -> float:
        if self._playing:
            self._current_time = (self._clock() - self._starting_time) * self._speed
        return self._current_time

    def set_speed(self, speed: float):
        if isinstance(speed, bool) or not isinstance(speed, (int, float)) \
                or math.isnan(speed) or speed <= 0:
            raise ValidationError(f"speed must be a positive number, got {speed!r}")
        self._speed = float(speed)
        logger.debug("speed set to %.3f", self._speed)

    # ---------- Transport ----------
    async def play(self):
        if self._playing:
            return
        self._run_id += 1
        run_id = self._run_id
        self._starting_time = self._clock() - self.get_current_time() / self._speed
        self._playing = True
        logger.info("play from %.1f ms (%d events pending)", self._current_time, self.timeline.pending_count)
        self.trigger_callbacks("play")

        try:
            while self._active(run_id) and self.timeline.pending_count:
                event = self.timeline.peek()
                await self._wait_for(event)
                if not self._active(run_id):
                    break
                # a seek or an insert during the wait changes what is due next
                if self.timeline.peek() is not event \
                        or event.timestamp - self.get_current_time() > _EARLY_TOLERANCE_MS:
                    continue
                self.timeline.advance()
                self.trigger_callbacks(event)
        except BaseException:
            if self._run_id == run_id:
                self._playing = False
            raise

        if self._run_id != run_id:
            return
        self.pause()
        if not self.timeline.pending_count:
            logger.info("finished at %.1f ms", self._current_time)
            self.trigger_callbacks("finish")

    def start(self) -> asyncio.Task:
        """Schedule ``play()`` on the running loop (usable from sync callbacks)."""
        self._task = asyncio.get_running_loop().create_task(self.play())
        return self._task

    def pause(self):
        if not self._playing:
            return
        self.get_current_time()
        self._playing = False
        logger.info("pause at %.1f ms", self._current_time)
        self.trigger_callbacks("pause")

    def stop(self):
        self.pause()
        self.seek(0)
        self.trigger_callbacks("stop")

    def reset(self):
        self.stop()
        self.timeline.remove_matching({})

    def seek(self, ms: float):
        current = self.get_current_time()
        self.timeline.seek(ms)
        # keep the wall-clock anchor consistent with the new position
        self._starting_time -= (ms - current) / self._speed
        self._current_time = ms
        logger.debug("seek to %.1f ms", ms)

    async def _wait_for(self, event: NoteEvent):
        delay = (event.timestamp - self.get_current_time()) / self._speed
        await asyncio.sleep(max(0.0, delay) / 1000.0)

    def _active(self, run_id: int) -> bool:
        return self._playing and self._run_id == run_id

    # ---------- Events ----------
    def add_event(self, event: Record) -> NoteEvent:
        return self.timeline.insert(event, self.get_current_time())

    def remove_events(self, pattern) -> int:
        return self.timeline.remove_matching(pattern)

    # ---------- Callbacks ----------
    def add_callback(self, target, handler: Handler) -> int:
        return self.callbacks.add(target, handler)

    def remove_callback(self, callback_id: int) -> bool:
        return self.callbacks.remove(callback_id)

    def remove_all_callbacks(self):
        self.callbacks.clear()

    def trigger_callbacks(self, event: Union[str, Record]) -> int:
        return self.callbacks.trigger(event)
