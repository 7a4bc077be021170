"""Measure slicing: bucket hand-labelled notes into per-measure chord lists."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from pianoteach.errors import IngestError, MeasureRangeError
from pianoteach.ingest.hands import DEFAULT_CHORD_TOLERANCE, group_chords
from pianoteach.ingest.models import Hand, MeasureBucket, MeasureSlice, ResolvedNote


def slice_measures(
    notes: Iterable[ResolvedNote],
    total_measures: int,
    tolerance: float = DEFAULT_CHORD_TOLERANCE,
) -> list[MeasureSlice]:
    """Produce one left and one right bucket for every measure index.

    Silent measures get empty buckets, so indices run 0..total_measures-1
    without gaps. Notes are ordered by (offset, pitch) before grouping.
    """
    if total_measures < 0:
        raise ValueError(f"total_measures must be non-negative: got {total_measures}")

    buckets: dict[tuple[int, Hand], list[ResolvedNote]] = defaultdict(list)
    for n in notes:
        if not 0 <= n.measure_index < total_measures:
            raise MeasureRangeError(
                f"Note {n.name} at {n.start:.3f}s falls in measure {n.measure_index + 1}, "
                f"outside the song's {total_measures} measures"
            )
        if n.hand is Hand.UNKNOWN:
            raise IngestError(f"Note {n.name} at {n.start:.3f}s has no hand assigned")
        buckets[(n.measure_index, n.hand)].append(n)

    slices = []
    for index in range(total_measures):
        sides = {}
        for hand in (Hand.LEFT, Hand.RIGHT):
            ordered = sorted(buckets.get((index, hand), ()), key=lambda n: (n.offset_ticks, n.note))
            chords = group_chords(ordered, tolerance) if ordered else []
            sides[hand] = MeasureBucket(index=index, hand=hand, chords=tuple(chords))
        slices.append(MeasureSlice(index=index, left=sides[Hand.LEFT], right=sides[Hand.RIGHT]))
    return slices
