"""Session engine - paces a song's measures out to a connector in real time.

State machine::

    loaded -> playing <-> paused -> finished
         (playing | paused) -> stopped

One asyncio task runs the playback loop for a session. It suspends before every
note-on, before every note-off and inside every hook call; pause() and stop()
cancel that task, so they take effect before the next emission. Called from
inside a hook they take effect as soon as the hook returns. Whatever is still
sounding at that point is forced off. Loop mode never reaches finished.

Timing works on a schedule clock: the loop sleeps the scheduled gap before each
emission, so it never plays early. When the event loop is late it falls behind
rather than dropping notes.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

from pianoteach.config import Settings, settings as default_settings
from pianoteach.errors import ConnectorNotConnectedError, SessionError, SessionStateError
from pianoteach.ingest.models import Chord
from pianoteach.playback.connector import OutputConnector
from pianoteach.songs.models import Measure, SongEntry
from pianoteach.teaching.hooks import Interjection, Priority, SilentTeachingHook, TeachingHook
from pianoteach.teaching.key_moments import detect_key_moments

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


class SessionState(str, Enum):
    LOADED = "loaded"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"
    STOPPED = "stopped"


class PlaybackMode(str, Enum):
    CONTINUOUS = "continuous"  # play every remaining measure
    MEASURE = "measure"  # play one measure per play() call, then pause
    LOOP = "loop"  # repeat loop_range until paused or stopped
    HANDS = "hands"  # right hand, left hand, then both; one measure per play() call


@dataclass
class Session:
    """Playback state of one practice session."""
    id: str
    song: SongEntry
    mode: PlaybackMode = PlaybackMode.CONTINUOUS
    state: SessionState = SessionState.LOADED
    current_measure: int = 0  # 0-based index of the next measure to play
    measures_played: int = 0
    speed: float = 1.0
    tempo_override: float | None = None
    loop_range: tuple[int, int] | None = None  # 1-based, inclusive
    started_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class PlaybackProgress:
    """Progress snapshot passed to the on_progress callback."""
    current_measure: int  # 1-based number of the last completed measure
    total_measures: int
    ratio: float
    percent: str
    elapsed_seconds: float


@dataclass(order=True)
class _NoteOff:
    at: float  # schedule time, seconds since play() started
    seq: int
    note: int = field(compare=False)
    channel: int = field(compare=False)


ProgressCallback = Callable[[PlaybackProgress], None]
Sleep = Callable[[float], Awaitable[None]]


class SessionEngine:
    """Runs one Session against an output connector and a teaching hook.

    Parameters
    ----------
    song:
        The song to play. Borrowed read-only.
    connector:
        Output connector; must be connected before play().
    hook:
        Teaching hook (default: silent).
    mode:
        Continuous, measure-by-measure, loop or hands-separate.
    speed:
        Tempo multiplier in (0, max_speed].
    tempo_override:
        BPM to play at instead of the song's own tempi.
    loop_range:
        1-based inclusive (first, last) measures repeated in loop mode;
        the whole song if None.
    on_progress:
        Called after measures complete, at every ``progress_interval`` fraction
        of the song (0 = after every measure).
    sleep:
        Coroutine used for pacing; ``asyncio.sleep`` unless testing.
    """

    def __init__(
        self,
        song: SongEntry,
        connector: OutputConnector,
        hook: TeachingHook | None = None,
        mode: PlaybackMode | str = PlaybackMode.CONTINUOUS,
        speed: float = 1.0,
        tempo_override: float | None = None,
        loop_range: tuple[int, int] | None = None,
        on_progress: ProgressCallback | None = None,
        progress_interval: float | None = None,
        channel: int | None = None,
        sleep: Sleep = asyncio.sleep,
        config: Settings | None = None,
    ):
        self.settings = config or default_settings
        self._check_speed(speed)
        if tempo_override is not None:
            self._check_tempo(tempo_override)

        self.session = Session(
            id=f"session-{next(_session_ids)}",
            song=song,
            mode=PlaybackMode(mode),
            speed=speed,
            tempo_override=tempo_override,
            loop_range=self._check_loop_range(song, loop_range),
        )
        self.connector = connector
        self.hook = hook or SilentTeachingHook()
        self.on_progress = on_progress
        self.progress_interval = (
            self.settings.progress_interval if progress_interval is None else progress_interval
        )
        self.channel = self.settings.default_channel if channel is None else channel
        self._sleep = sleep

        self._task: asyncio.Task | None = None
        self._interrupt_target: SessionState | None = None
        self._sounding: Counter[tuple[int, int]] = Counter()
        self._pending_offs: list[_NoteOff] = []
        self._seq = itertools.count()
        self._clock = 0.0
        self._play_started = 0.0
        self._last_milestone = -1

    # ------------------------------------------------------------------
    # Properties and settings
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def measures_played(self) -> int:
        return self.session.measures_played

    @property
    def total_measures(self) -> int:
        return len(self.session.song.measures)

    @property
    def current_measure_display(self) -> int:
        """1-based number of the next measure to play."""
        return self.session.current_measure + 1

    def _check_speed(self, speed: float) -> None:
        if not 0 < speed <= self.settings.max_speed:
            raise ValueError(
                f"Speed must be between 0 (exclusive) and {self.settings.max_speed}: got {speed}"
            )

    def _check_tempo(self, bpm: float) -> None:
        if not self.settings.min_tempo <= bpm <= self.settings.max_tempo:
            raise ValueError(
                f"Tempo must be between {self.settings.min_tempo:g} and "
                f"{self.settings.max_tempo:g} BPM: got {bpm}"
            )

    @staticmethod
    def _check_loop_range(song: SongEntry, loop_range) -> tuple[int, int] | None:
        if loop_range is None:
            return None
        first, last = loop_range
        total = len(song.measures)
        if not 1 <= first <= last <= total:
            raise ValueError(f"Loop range {first}-{last} outside 1-{total}")
        return first, last

    def set_speed(self, speed: float) -> None:
        """Change the speed multiplier; applies from the next measure."""
        self._check_speed(speed)
        self.session.speed = speed

    def set_tempo(self, bpm: float | None) -> None:
        """Override (or, with None, restore) the tempo; applies from the next measure."""
        if bpm is not None:
            self._check_tempo(bpm)
        self.session.tempo_override = bpm

    def effective_tempo(self, measure: Measure | None = None) -> float:
        """BPM actually used for pacing *measure* (or the song, if None)."""
        s = self.session
        if s.tempo_override is not None:
            base = s.tempo_override
        elif measure is not None:
            base = measure.tempo_override or measure.bpm
        else:
            base = s.song.tempo
        return base * s.speed

    def go_to(self, measure_number: int) -> None:
        """Move to a 1-based measure number while not playing."""
        if self.state in (SessionState.PLAYING, SessionState.STOPPED):
            raise SessionStateError(f"Cannot move while {self.state.value}")
        if not 1 <= measure_number <= self.total_measures:
            raise ValueError(f"Measure {measure_number} outside 1-{self.total_measures}")
        self.session.current_measure = measure_number - 1
        if self.state is SessionState.FINISHED:
            self._set_state(SessionState.PAUSED)

    def next_measure(self) -> int:
        """Step forward one measure (clamped at the last); returns its number."""
        self.go_to(min(self.current_measure_display + 1, self.total_measures))
        return self.current_measure_display

    def prev_measure(self) -> int:
        """Step back one measure (clamped at the first); returns its number."""
        self.go_to(max(self.current_measure_display - 1, 1))
        return self.current_measure_display

    def _loop_bounds(self) -> tuple[int, int]:
        """0-based inclusive measure indices repeated in loop mode."""
        if self.session.loop_range is None:
            return 0, self.total_measures - 1
        first, last = self.session.loop_range
        return first - 1, last - 1

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if state is not self.session.state:
            logger.info(f"{self.session.id}: {self.session.state.value} -> {state.value}")
            self.session.state = state

    def _stable_state(self) -> SessionState:
        return SessionState.PAUSED if self.session.measures_played > 0 else SessionState.LOADED

    async def play(self) -> None:
        """Play from the current measure until finished, paused or stopped.

        Raises ConnectorNotConnectedError if the connector is not connected and
        SessionError if a hook or the connector fails mid-playback.
        """
        s = self.session
        if s.state is SessionState.PLAYING:
            logger.debug(f"{s.id}: play() while already playing")
            return
        if s.state is SessionState.STOPPED:
            raise SessionStateError(f"{s.id} is stopped; create a new session to play again")
        if not self.connector.is_connected:
            raise ConnectorNotConnectedError(
                f"{s.id}: output connector is {self.connector.status().value}; connect() first"
            )

        if s.state is SessionState.FINISHED:
            s.current_measure = 0

        self._interrupt_target = None
        self._clock = 0.0
        self._play_started = time.monotonic()
        self._last_milestone = -1
        self._set_state(SessionState.PLAYING)

        self._task = asyncio.create_task(self._run())
        try:
            await self._task
        except asyncio.CancelledError:
            if self._interrupt_target is None:
                raise
        finally:
            self._task = None

    async def pause(self) -> None:
        """Pause mid-measure. The interrupted measure replays on the next play()."""
        if self.state is not SessionState.PLAYING:
            return
        await self._interrupt(SessionState.PAUSED)

    async def stop(self) -> None:
        """Cancel playback, silence sounding notes and release the connector."""
        if self.state is SessionState.STOPPED:
            return

        await self._interrupt(SessionState.STOPPED)

        self._flush()
        self._set_state(SessionState.STOPPED)
        await self.connector.disconnect()

    async def _interrupt(self, target: SessionState) -> None:
        task = self._task
        if task is None or task.done():
            return
        self._interrupt_target = target
        if task is asyncio.current_task():
            # Called from inside a hook: the run loop unwinds when the hook returns.
            return
        task.cancel()
        await asyncio.wait({task})

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        s = self.session
        try:
            if s.mode is PlaybackMode.LOOP:
                await self._run_loop()
            elif s.mode in (PlaybackMode.MEASURE, PlaybackMode.HANDS):
                if s.current_measure < self.total_measures:
                    await self._play_measure(
                        s.song.measures[s.current_measure],
                        hands_separate=s.mode is PlaybackMode.HANDS,
                    )
                    await self._drain()
                if s.current_measure >= self.total_measures:
                    await self._finish()
                else:
                    self._set_state(SessionState.PAUSED)
            else:
                while s.current_measure < self.total_measures:
                    await self._play_measure(s.song.measures[s.current_measure])
                await self._drain()
                await self._finish()
        except asyncio.CancelledError:
            self._flush()
            self._set_state(self._interrupt_target or self._stable_state())
            raise
        except Exception as e:
            self._flush()
            self._set_state(self._stable_state())
            raise SessionError(
                f"{s.id}: playback failed in measure {s.current_measure + 1}: {e}"
            ) from e

    async def _run_loop(self) -> None:
        """Repeat the loop range until pause() or stop(); never finishes."""
        s = self.session
        first, last = self._loop_bounds()
        if not first <= s.current_measure <= last:
            s.current_measure = first
        while True:
            await self._play_measure(s.song.measures[s.current_measure])
            if s.current_measure > last:
                logger.debug(f"{s.id}: looping back to measure {first + 1}")
                s.current_measure = first

    def _check_interrupted(self) -> None:
        # A hook may call pause() or stop() on its own run task.
        if self._interrupt_target is not None:
            raise asyncio.CancelledError()

    async def _finish(self) -> None:
        s = self.session
        await self.hook.on_song_complete(s.measures_played, s.song.title)
        self._check_interrupted()
        self._set_state(SessionState.FINISHED)

    async def _play_measure(self, measure: Measure, hands_separate: bool = False) -> None:
        s = self.session
        await self.hook.on_measure_start(measure.number, measure.teaching_note, measure.dynamics)
        self._check_interrupted()

        if hands_separate:
            passes = [measure.right_hand, measure.left_hand, measure.left_hand + measure.right_hand]
        else:
            passes = [measure.left_hand + measure.right_hand]
        for chords in passes:
            await self._play_chords(measure, chords)

        for moment in detect_key_moments(s.song, measure.number):
            await self.hook.on_key_moment(moment)
            self._check_interrupted()
            await self.hook.push(Interjection(
                text=moment,
                priority=Priority.MED,
                reason="key-moment",
                source=f"measure-{measure.number}",
            ))
            self._check_interrupted()

        s.measures_played += 1
        s.current_measure += 1
        self._emit_progress()

    async def _play_chords(self, measure: Measure, chords: tuple[Chord, ...]) -> None:
        """Play *chords* across one pass of *measure*, ending on its barline."""
        seconds_per_beat = 60.0 / self.effective_tempo(measure)
        measure_start = self._clock
        measure_end = measure_start + measure.beats * seconds_per_beat

        for chord in sorted(chords, key=lambda c: (c.offset_beats, c.pitches)):
            onset = measure_start + chord.offset_beats * seconds_per_beat
            await self._emit_offs_until(onset)
            await self._wait_until(onset)
            self._emit_chord(chord, measure_start, seconds_per_beat)

        await self._emit_offs_until(measure_end)
        await self._wait_until(measure_end)

    def _emit_chord(self, chord: Chord, measure_start: float, seconds_per_beat: float) -> None:
        # Every member goes on before any of its note-offs is scheduled.
        for n in chord.notes:
            self.connector.note_on(n.note, n.velocity, self.channel)
            self._sounding[(n.note, self.channel)] += 1
        for n in chord.notes:
            off_at = measure_start + (n.offset_beats + n.duration_beats) * seconds_per_beat
            heapq.heappush(self._pending_offs, _NoteOff(off_at, next(self._seq), n.note, self.channel))

    async def _emit_offs_until(self, until: float) -> None:
        """Emit note-offs due at or before *until* (offs precede ons at equal times)."""
        while self._pending_offs and self._pending_offs[0].at <= until:
            off = heapq.heappop(self._pending_offs)
            await self._wait_until(off.at)
            self.connector.note_off(off.note, off.channel)
            key = (off.note, off.channel)
            self._sounding[key] -= 1
            if self._sounding[key] <= 0:
                del self._sounding[key]

    async def _drain(self) -> None:
        """Let every sounding note ring out to its scheduled note-off."""
        if self._pending_offs:
            await self._emit_offs_until(max(o.at for o in self._pending_offs))

    async def _wait_until(self, at: float) -> None:
        delay = at - self._clock
        await self._sleep(delay if delay > 0 else 0)
        self._clock = max(self._clock, at)

    def _flush(self) -> None:
        """Force every sounding note off and forget scheduled note-offs.

        Overlapping note-ons of one pitch each get their own note-off.
        """
        sounding = sorted(self._sounding.elements())
        self._pending_offs.clear()
        self._sounding.clear()
        if not sounding:
            return
        if not self.connector.is_connected:
            logger.warning(f"{self.session.id}: connector gone; {len(sounding)} notes could not be released")
            return
        logger.debug(f"{self.session.id}: forcing {len(sounding)} notes off")
        for note, channel in sounding:
            self.connector.note_off(note, channel)

    # ------------------------------------------------------------------
    # Progress and reporting
    # ------------------------------------------------------------------

    def progress(self) -> PlaybackProgress:
        current = self.session.measures_played
        total = self.total_measures
        ratio = min(current / total, 1.0) if total > 0 else 0.0
        return PlaybackProgress(
            current_measure=self.session.current_measure,
            total_measures=total,
            ratio=ratio,
            percent=f"{round(ratio * 100)}%",
            elapsed_seconds=time.monotonic() - self._play_started,
        )

    def _emit_progress(self) -> None:
        if self.on_progress is None:
            return
        snapshot = self.progress()
        if self.progress_interval <= 0:
            self.on_progress(snapshot)
            return
        milestone = int(snapshot.ratio / self.progress_interval)
        if milestone > self._last_milestone:
            self._last_milestone = milestone
            self.on_progress(snapshot)

    def summary(self) -> str:
        s = self.session
        speed = f" x {s.speed:g}" if s.speed != 1.0 else ""
        base = s.tempo_override if s.tempo_override is not None else s.song.tempo
        lines = [
            f"Session: {s.id}",
            f"Song: {s.song.title} ({s.song.composer or 'Traditional'})",
            f"Key: {s.song.key} | Tempo: {base:g} BPM{speed} | Time: {s.song.time_signature}",
            f"Mode: {s.mode.value} | State: {s.state.value}",
            f"Progress: measure {min(self.current_measure_display, self.total_measures)} / {self.total_measures}",
            f"Measures played: {s.measures_played}",
        ]
        if s.mode is PlaybackMode.LOOP:
            first, last = self._loop_bounds()
            lines.append(f"Loop: measures {first + 1}-{last + 1}")
        return "\n".join(lines)
