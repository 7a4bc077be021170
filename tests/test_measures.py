"""Tests for measure slicing."""

import pytest

from pianoteach.errors import IngestError, MeasureRangeError
from pianoteach.ingest.measures import slice_measures
from pianoteach.ingest.models import Hand
from tests.conftest import make_note


def test_every_measure_gets_buckets():
    """Silent measures still produce (empty) left and right buckets."""
    notes = [make_note(72, start=0.0, hand=Hand.RIGHT), make_note(48, start=6.0, hand=Hand.LEFT, measure_index=3)]
    slices = slice_measures(notes, 4)
    assert [s.index for s in slices] == [0, 1, 2, 3]
    assert slices[1].left.chords == () and slices[1].right.chords == ()
    assert slices[0].right.notes[0].note == 72
    assert slices[3].left.notes[0].note == 48


def test_buckets_ordered_by_offset_then_pitch():
    notes = [
        make_note(76, start=1.0, hand=Hand.RIGHT),
        make_note(72, start=0.0, hand=Hand.RIGHT),
        make_note(74, start=0.5, hand=Hand.RIGHT),
    ]
    right = slice_measures(notes, 1)[0].right
    assert [c.pitches for c in right.chords] == [(72,), (74,), (76,)]


def test_chords_grouped_inside_bucket():
    notes = [make_note(60, hand=Hand.RIGHT), make_note(64, start=0.01, hand=Hand.RIGHT)]
    right = slice_measures(notes, 1)[0].right
    assert len(right.chords) == 1
    assert right.chords[0].pitches == (60, 64)


def test_zero_measures():
    assert slice_measures([], 0) == []


def test_negative_total_rejected():
    with pytest.raises(ValueError):
        slice_measures([], -1)


def test_note_outside_song_rejected():
    with pytest.raises(MeasureRangeError):
        slice_measures([make_note(60, start=8.0, hand=Hand.RIGHT, measure_index=4)], 4)


def test_unlabelled_note_rejected():
    with pytest.raises(IngestError):
        slice_measures([make_note(60)], 1)
