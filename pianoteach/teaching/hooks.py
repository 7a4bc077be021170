"""Teaching hooks: where the session engine delivers interjections.

Every method is a coroutine the engine awaits before moving on, so a slow hook
(for example one that speaks) holds playback, and a failing hook fails the
session. Pick a variant at construction time:

  - ConsoleTeachingHook:   logs interjections (CLI / development)
  - SilentTeachingHook:    no-op (benchmarks, headless playback)
  - RecordingTeachingHook: keeps every call for assertions
  - CallbackTeachingHook:  routes calls to caller-supplied callables
  - CompositeTeachingHook: fans out to several hooks, in order
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Priority(str, Enum):
    """Display priority of an interjection. Never used to filter."""
    HIGH = "high"
    MED = "med"
    LOW = "low"


@dataclass(frozen=True)
class Interjection:
    """Something the teacher says or shows during practice."""
    text: str
    priority: Priority = Priority.MED
    reason: str = "custom"  # "key-moment", "style-tip", "encouragement", ...
    source: str | None = None  # e.g. "measure-3"


class TeachingHook(ABC):
    """Capability set the session engine calls into."""

    @abstractmethod
    async def on_measure_start(
        self,
        measure_number: int,
        teaching_note: str | None = None,
        dynamics: str | None = None,
    ) -> None:
        """Called before a measure plays."""

    @abstractmethod
    async def on_key_moment(self, moment: str) -> None:
        """Called when playback reaches an authored key moment."""

    @abstractmethod
    async def on_song_complete(self, measures_played: int, song_title: str) -> None:
        """Called once the final measure has played."""

    @abstractmethod
    async def push(self, interjection: Interjection) -> None:
        """Deliver an interjection."""


class ConsoleTeachingHook(TeachingHook):
    _PREFIX = {Priority.HIGH: "!!", Priority.MED: "*", Priority.LOW: "-"}

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    async def on_measure_start(self, measure_number, teaching_note=None, dynamics=None):
        parts = [f"[Measure {measure_number}]"]
        if dynamics:
            parts.append(f"({dynamics})")
        if teaching_note:
            parts.append(teaching_note)
        self.log.info(" ".join(parts))

    async def on_key_moment(self, moment):
        self.log.info(f"Key moment: {moment}")

    async def on_song_complete(self, measures_played, song_title):
        self.log.info(f'Finished "{song_title}": {measures_played} measures played')

    async def push(self, interjection):
        self.log.info(f"{self._PREFIX[Priority(interjection.priority)]} {interjection.text}")


class SilentTeachingHook(TeachingHook):
    async def on_measure_start(self, measure_number, teaching_note=None, dynamics=None):
        pass

    async def on_key_moment(self, moment):
        pass

    async def on_song_complete(self, measures_played, song_title):
        pass

    async def push(self, interjection):
        pass


@dataclass
class TeachingEvent:
    """A recorded hook call."""
    type: str  # "measure-start" | "key-moment" | "song-complete" | "push"
    measure_number: int | None = None
    teaching_note: str | None = None
    dynamics: str | None = None
    moment: str | None = None
    measures_played: int | None = None
    song_title: str | None = None
    interjection: Interjection | None = None


class RecordingTeachingHook(TeachingHook):
    def __init__(self):
        self.events: list[TeachingEvent] = []

    def of_type(self, event_type: str) -> list[TeachingEvent]:
        return [e for e in self.events if e.type == event_type]

    async def on_measure_start(self, measure_number, teaching_note=None, dynamics=None):
        self.events.append(TeachingEvent(
            type="measure-start",
            measure_number=measure_number,
            teaching_note=teaching_note,
            dynamics=dynamics,
        ))

    async def on_key_moment(self, moment):
        self.events.append(TeachingEvent(type="key-moment", moment=moment))

    async def on_song_complete(self, measures_played, song_title):
        self.events.append(TeachingEvent(
            type="song-complete",
            measures_played=measures_played,
            song_title=song_title,
        ))

    async def push(self, interjection):
        self.events.append(TeachingEvent(type="push", interjection=interjection))


Callback = Callable[..., Any]


async def _call(callback: Callback | None, *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class CallbackTeachingHook(TeachingHook):
    """Routes hook calls to callables; unset callbacks are no-ops.

    Callbacks may be plain functions or coroutine functions.
    """

    def __init__(
        self,
        on_measure_start: Callback | None = None,
        on_key_moment: Callback | None = None,
        on_song_complete: Callback | None = None,
        on_push: Callback | None = None,
    ):
        self._on_measure_start = on_measure_start
        self._on_key_moment = on_key_moment
        self._on_song_complete = on_song_complete
        self._on_push = on_push

    async def on_measure_start(self, measure_number, teaching_note=None, dynamics=None):
        await _call(self._on_measure_start, measure_number, teaching_note, dynamics)

    async def on_key_moment(self, moment):
        await _call(self._on_key_moment, moment)

    async def on_song_complete(self, measures_played, song_title):
        await _call(self._on_song_complete, measures_played, song_title)

    async def push(self, interjection):
        await _call(self._on_push, interjection)


class CompositeTeachingHook(TeachingHook):
    """Dispatches every call to each hook in turn (serially)."""

    def __init__(self, *hooks: TeachingHook):
        self.hooks = list(hooks)

    async def on_measure_start(self, measure_number, teaching_note=None, dynamics=None):
        for h in self.hooks:
            await h.on_measure_start(measure_number, teaching_note, dynamics)

    async def on_key_moment(self, moment):
        for h in self.hooks:
            await h.on_key_moment(moment)

    async def on_song_complete(self, measures_played, song_title):
        for h in self.hooks:
            await h.on_song_complete(measures_played, song_title)

    async def push(self, interjection):
        for h in self.hooks:
            await h.push(interjection)
