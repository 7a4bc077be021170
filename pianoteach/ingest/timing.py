"""Tempo map and measure grid.

Converts between seconds and MIDI ticks across a piecewise-constant tempo
timeline, and lays out measure boundaries from a time-signature timeline.

Tempo changes take effect immediately at their stated time. Time signature
changes only take effect on a barline: a change that lands mid-measure is
deferred to the next measure boundary.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from pianoteach.errors import TimelineError
from pianoteach.ingest.models import TempoSegment, TimeSignatureSegment

logger = logging.getLogger(__name__)

DEFAULT_BPM = 120.0
DEFAULT_SIGNATURE = (4, 4)

# Float noise from second-based input must not push a note across a barline.
_EPS_TICKS = 1e-4


def ticks_per_measure(ticks_per_beat: int, numerator: int, denominator: int) -> float:
    """Ticks in one measure; a beat is a quarter note."""
    return ticks_per_beat * numerator * 4 / denominator


def parse_time_signature(text: str | None) -> tuple[int, int] | None:
    """Parse '3/4' into (3, 4). Returns None for empty or malformed text."""
    if not text:
        return None
    parts = text.split("/")
    if len(parts) != 2:
        return None
    try:
        numerator, denominator = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if numerator <= 0 or denominator <= 0:
        return None
    return numerator, denominator


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


class TimeResolver:
    """Resolve absolute times and ticks to measures.

    Parameters
    ----------
    tempo_changes:
        Tempo segments sorted by time. 120 BPM applies before the first one,
        and throughout if there are none.
    time_signatures:
        Time signature segments sorted by tick (or time). 4/4 applies before
        the first one, and throughout if there are none.
    ticks_per_beat:
        MIDI resolution (ticks per quarter note).
    end_seconds:
        End of the piece. The measure grid covers ``[0, end_seconds)``.
    """

    def __init__(
        self,
        tempo_changes: Sequence[TempoSegment],
        time_signatures: Sequence[TimeSignatureSegment],
        ticks_per_beat: int,
        end_seconds: float,
    ) -> None:
        if ticks_per_beat <= 0:
            raise TimelineError(f"ticks_per_beat must be positive: got {ticks_per_beat}")
        if not math.isfinite(end_seconds) or end_seconds < 0:
            raise TimelineError(f"Song end must be a non-negative time: got {end_seconds}")

        self.ticks_per_beat = ticks_per_beat
        self.end_seconds = float(end_seconds)
        self._build_tempo_map(tempo_changes)
        self.end_tick = float(self.seconds_to_ticks(self.end_seconds))
        self._build_measure_grid(time_signatures)

    # ------------------------------------------------------------------
    # Tempo map
    # ------------------------------------------------------------------

    def _build_tempo_map(self, tempo_changes: Sequence[TempoSegment]) -> None:
        times: list[float] = []
        bpms: list[float] = []

        previous = 0.0
        for seg in tempo_changes:
            if not math.isfinite(seg.bpm) or seg.bpm <= 0:
                raise TimelineError(f"Tempo must be a positive BPM: got {seg.bpm} at {seg.time}s")
            if seg.time < 0:
                raise TimelineError(f"Tempo change at negative time {seg.time}s")
            if seg.time < previous:
                raise TimelineError(
                    f"Tempo changes out of order: {seg.time}s follows {previous}s"
                )
            previous = seg.time
            times.append(float(seg.time))
            bpms.append(float(seg.bpm))

        if not times or times[0] > 0:
            times.insert(0, 0.0)
            bpms.insert(0, DEFAULT_BPM)

        self._seg_times = np.array(times, dtype=np.float64)
        self._seg_bpm = np.array(bpms, dtype=np.float64)
        self._seg_tps = self._seg_bpm / 60.0 * self.ticks_per_beat  # ticks per second

        durations = np.diff(self._seg_times)
        self._seg_ticks = np.concatenate([[0.0], np.cumsum(durations * self._seg_tps[:-1])])

    def seconds_to_ticks(self, seconds):
        """Convert absolute seconds to ticks. Accepts a scalar or an array."""
        s = np.asarray(seconds, dtype=np.float64)
        idx = np.searchsorted(self._seg_times, s, side="right") - 1
        idx = np.clip(idx, 0, len(self._seg_times) - 1)
        ticks = self._seg_ticks[idx] + (s - self._seg_times[idx]) * self._seg_tps[idx]
        return float(ticks) if ticks.ndim == 0 else ticks

    def ticks_to_seconds(self, ticks):
        """Convert absolute ticks to seconds. Accepts a scalar or an array."""
        t = np.asarray(ticks, dtype=np.float64)
        idx = np.searchsorted(self._seg_ticks, t, side="right") - 1
        idx = np.clip(idx, 0, len(self._seg_ticks) - 1)
        seconds = self._seg_times[idx] + (t - self._seg_ticks[idx]) / self._seg_tps[idx]
        return float(seconds) if seconds.ndim == 0 else seconds

    def bpm_at(self, seconds: float) -> float:
        """Tempo in effect at *seconds*."""
        idx = int(np.searchsorted(self._seg_times, seconds, side="right")) - 1
        return float(self._seg_bpm[max(idx, 0)])

    @property
    def initial_bpm(self) -> float:
        return float(self._seg_bpm[0])

    # ------------------------------------------------------------------
    # Measure grid
    # ------------------------------------------------------------------

    def _signature_ticks(self, time_signatures: Sequence[TimeSignatureSegment]) -> list[tuple[float, int, int]]:
        changes: list[tuple[float, int, int]] = []
        previous = 0.0
        for sig in time_signatures:
            if sig.numerator <= 0:
                raise TimelineError(f"Time signature numerator must be positive: {sig.label}")
            if not _is_power_of_two(sig.denominator):
                raise TimelineError(f"Time signature denominator must be a power of two: {sig.label}")

            if sig.tick is not None:
                tick = float(sig.tick)
            elif sig.time is not None:
                tick = float(self.seconds_to_ticks(sig.time))
            else:
                raise TimelineError(f"Time signature {sig.label} has neither a tick nor a time")

            if tick < 0:
                raise TimelineError(f"Time signature {sig.label} at negative tick {tick}")
            if tick < previous:
                raise TimelineError(
                    f"Time signatures out of order: {sig.label} at tick {tick} follows tick {previous}"
                )
            previous = tick
            changes.append((tick, sig.numerator, sig.denominator))
        return changes

    def _build_measure_grid(self, time_signatures: Sequence[TimeSignatureSegment]) -> None:
        changes = self._signature_ticks(time_signatures)

        starts: list[float] = []
        signatures: list[tuple[int, int]] = []
        current = DEFAULT_SIGNATURE
        pending = 0
        tick = 0.0

        while tick < self.end_tick - _EPS_TICKS:
            # Every change at or before this barline applies; the last one wins.
            while pending < len(changes) and changes[pending][0] <= tick + _EPS_TICKS:
                current = (changes[pending][1], changes[pending][2])
                pending += 1
            starts.append(tick)
            signatures.append(current)
            tick += ticks_per_measure(self.ticks_per_beat, *current)

        # Signature of any measure past the end of the grid.
        while pending < len(changes) and changes[pending][0] <= tick + _EPS_TICKS:
            current = (changes[pending][1], changes[pending][2])
            pending += 1

        self._starts = np.array(starts, dtype=np.float64)
        self._signatures = signatures
        self._grid_end = tick
        self._trailing_signature = current

        logger.debug(
            f"Measure grid: {len(starts)} measures over {self.end_seconds:.2f}s "
            f"({len(changes)} time signature changes)"
        )

    @property
    def measure_count(self) -> int:
        return len(self._signatures)

    def measure_signature(self, index: int) -> tuple[int, int]:
        if 0 <= index < self.measure_count:
            return self._signatures[index]
        return self._trailing_signature

    def measure_start_tick(self, index: int) -> float:
        if index < 0:
            raise IndexError(f"Measure index must be non-negative: {index}")
        if index < self.measure_count:
            return float(self._starts[index])
        extra = index - self.measure_count
        return self._grid_end + extra * ticks_per_measure(self.ticks_per_beat, *self._trailing_signature)

    def measure_ticks(self, index: int) -> float:
        return ticks_per_measure(self.ticks_per_beat, *self.measure_signature(index))

    def measure_beats(self, index: int) -> float:
        """Length of a measure in quarter-note beats."""
        return self.measure_ticks(index) / self.ticks_per_beat

    def measure_start_seconds(self, index: int) -> float:
        return float(self.ticks_to_seconds(self.measure_start_tick(index)))

    def measure_duration_seconds(self, index: int) -> float:
        start = self.measure_start_tick(index)
        end = start + self.measure_ticks(index)
        return float(self.ticks_to_seconds(end) - self.ticks_to_seconds(start))

    def measure_index(self, tick: float) -> int:
        """Index of the measure containing *tick*; may be >= measure_count past the end."""
        if tick < -_EPS_TICKS:
            return -1
        if tick >= self._grid_end - _EPS_TICKS:
            trailing = ticks_per_measure(self.ticks_per_beat, *self._trailing_signature)
            return self.measure_count + int((tick - self._grid_end + _EPS_TICKS) // trailing)
        return int(np.searchsorted(self._starts, tick + _EPS_TICKS, side="right")) - 1

    def locate(self, tick: float) -> tuple[int, float]:
        """Return (measure index, offset in ticks from that measure's start)."""
        index = self.measure_index(tick)
        if index < 0:
            return index, float(tick)
        return index, max(0.0, float(tick) - self.measure_start_tick(index))

    def measure_index_at(self, seconds: float) -> int:
        return self.measure_index(self.seconds_to_ticks(seconds))


def count_measures(
    duration_seconds: float,
    tempo_changes: Sequence[TempoSegment] = (),
    time_signatures: Sequence[TimeSignatureSegment] = (),
    ticks_per_beat: int = 480,
) -> int:
    """Number of measures needed to cover *duration_seconds*."""
    return TimeResolver(tempo_changes, time_signatures, ticks_per_beat, duration_seconds).measure_count
