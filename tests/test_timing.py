"""Tests for the tempo map and measure grid."""

import pytest

from pianoteach.errors import TimelineError
from pianoteach.ingest.models import TempoSegment, TimeSignatureSegment
from pianoteach.ingest.timing import TimeResolver, count_measures, parse_time_signature, ticks_per_measure


def _resolver(end_seconds=8.0, tempo=(), signatures=(), tpb=480):
    return TimeResolver(tempo, signatures, tpb, end_seconds)


def test_defaults_apply_without_timelines():
    """No tempo or signature events: 120 BPM, 4/4."""
    r = _resolver(end_seconds=8.0)
    assert r.initial_bpm == 120.0
    assert r.measure_count == 4
    assert r.measure_signature(0) == (4, 4)
    assert r.measure_duration_seconds(0) == pytest.approx(2.0)


def test_seconds_ticks_round_trip_across_tempo_change():
    tempo = (TempoSegment(0.0, 120.0), TempoSegment(2.0, 60.0))
    r = _resolver(end_seconds=10.0, tempo=tempo)
    # 2s at 120 BPM = 4 beats; 1s more at 60 BPM = 1 beat
    assert r.seconds_to_ticks(3.0) == pytest.approx(5 * 480)
    for seconds in (0.0, 0.7, 2.0, 2.5, 9.9):
        assert r.ticks_to_seconds(r.seconds_to_ticks(seconds)) == pytest.approx(seconds)


def test_default_tempo_before_first_segment():
    r = _resolver(end_seconds=6.0, tempo=(TempoSegment(2.0, 60.0),))
    assert r.bpm_at(1.0) == 120.0
    assert r.bpm_at(2.0) == 60.0
    assert r.seconds_to_ticks(2.0) == pytest.approx(4 * 480)


def test_measure_count_agrees_with_helper():
    """count_measures and the resolver agree for the same inputs."""
    tempo = (TempoSegment(0.0, 90.0), TempoSegment(4.0, 140.0))
    sigs = (TimeSignatureSegment(3, 4, tick=0),)
    for duration in (0.5, 4.0, 7.3, 20.0):
        r = TimeResolver(tempo, sigs, 480, duration)
        assert count_measures(duration, tempo, sigs) == r.measure_count


def test_partial_last_measure_counts():
    assert count_measures(2.1) == 2
    assert count_measures(2.0) == 1
    assert count_measures(0.0) == 0


def test_signature_change_deferred_to_next_barline():
    """A 3/4 change in the middle of bar 1 takes effect at bar 2."""
    sigs = (TimeSignatureSegment(3, 4, tick=480 * 2),)
    r = _resolver(end_seconds=10.0, signatures=sigs)
    assert r.measure_signature(0) == (4, 4)
    assert r.measure_signature(1) == (3, 4)
    assert r.measure_start_tick(2) == pytest.approx(480 * 4 + 480 * 3)


def test_last_change_before_barline_wins():
    sigs = (
        TimeSignatureSegment(3, 4, tick=480),
        TimeSignatureSegment(6, 8, tick=480 * 3),
    )
    r = _resolver(end_seconds=10.0, signatures=sigs)
    assert r.measure_signature(1) == (6, 8)


def test_compound_meter_measure_length():
    assert ticks_per_measure(480, 6, 8) == 480 * 3
    r = _resolver(end_seconds=3.0, signatures=(TimeSignatureSegment(6, 8, tick=0),))
    assert r.measure_beats(0) == 3.0
    assert r.measure_count == 2


def test_locate_on_barline_belongs_to_next_measure():
    r = _resolver(end_seconds=8.0)
    assert r.locate(480 * 4) == (1, 0.0)
    # float noise just below the barline still lands on it
    index, offset = r.locate(480 * 4 - 1e-6)
    assert index == 1
    assert offset == 0.0


def test_measure_index_past_the_end():
    r = _resolver(end_seconds=4.0)
    assert r.measure_count == 2
    assert r.measure_index(480 * 8) == 2
    assert r.measure_index(-10) == -1


def test_signature_by_time():
    sigs = (TimeSignatureSegment(3, 4, time=0.0),)
    r = _resolver(end_seconds=3.0, signatures=sigs)
    assert r.measure_signature(0) == (3, 4)


@pytest.mark.parametrize("kwargs", [
    {"tempo": (TempoSegment(0.0, 0.0),)},
    {"tempo": (TempoSegment(2.0, 100.0), TempoSegment(1.0, 100.0))},
    {"signatures": (TimeSignatureSegment(3, 5, tick=0),)},
    {"signatures": (TimeSignatureSegment(0, 4, tick=0),)},
    {"signatures": (TimeSignatureSegment(3, 4),)},
    {"tpb": 0},
])
def test_malformed_timelines_raise(kwargs):
    with pytest.raises(TimelineError):
        _resolver(**kwargs)


@pytest.mark.parametrize("text,expected", [
    ("3/4", (3, 4)),
    ("6/8", (6, 8)),
    ("", None),
    ("3-4", None),
    ("x/4", None),
    ("0/4", None),
])
def test_parse_time_signature(text, expected):
    assert parse_time_signature(text) == expected
