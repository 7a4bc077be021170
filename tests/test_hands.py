"""Tests for hand separation and chord grouping."""

from pianoteach.ingest.hands import (
    group_chords,
    hand_for_pitch,
    infer_channel_hands,
    regroup,
    separate_hands,
)
from pianoteach.ingest.models import Hand
from tests.conftest import make_note


def test_split_point_boundary():
    """Middle C goes to the right hand; anything lower to the left."""
    assert hand_for_pitch(60) is Hand.RIGHT
    assert hand_for_pitch(59) is Hand.LEFT
    assert hand_for_pitch(59, split_point=55) is Hand.RIGHT


def test_separate_hands_by_pitch():
    notes = [make_note(48), make_note(72), make_note(60)]
    hands = [n.hand for n in separate_hands(notes)]
    assert hands == [Hand.LEFT, Hand.RIGHT, Hand.RIGHT]


def test_separate_hands_is_deterministic():
    """Same notes, same split point: same labels every time."""
    notes = [make_note(p, start=i * 0.1, channel=i % 2) for i, p in enumerate((40, 62, 55, 71, 59, 66))]
    first = separate_hands(notes)
    for _ in range(3):
        assert separate_hands(notes) == first


def test_separate_hands_preserves_timing():
    notes = [make_note(50, start=1.25, duration=0.3)]
    labelled = separate_hands(notes)[0]
    assert labelled.start == 1.25
    assert labelled.duration == 0.3
    assert labelled.offset_beats == notes[0].offset_beats


def test_channel_hints_win_over_pitch():
    """A high note on the bass channel stays in the left hand."""
    notes = [
        make_note(45, channel=1),
        make_note(48, channel=1),
        make_note(65, channel=1),  # above the split, still left
        make_note(72, channel=0),
        make_note(76, channel=0),
    ]
    assert infer_channel_hands(notes) == {1: Hand.LEFT, 0: Hand.RIGHT}
    assert [n.hand for n in separate_hands(notes)] == [Hand.LEFT] * 3 + [Hand.RIGHT] * 2


def test_single_channel_has_no_hints():
    assert infer_channel_hands([make_note(40), make_note(80)]) == {}


def test_explicit_channel_hands():
    notes = [make_note(80, channel=3), make_note(30, channel=4)]
    labelled = separate_hands(notes, channel_hands={3: Hand.LEFT})
    assert labelled[0].hand is Hand.LEFT
    assert labelled[1].hand is Hand.LEFT  # unmapped channel falls back to pitch


def test_group_chords_within_tolerance():
    notes = [
        make_note(64, start=0.01, hand=Hand.RIGHT),
        make_note(60, start=0.0, hand=Hand.RIGHT),
        make_note(67, start=0.02, hand=Hand.RIGHT),
        make_note(72, start=0.5, hand=Hand.RIGHT),
    ]
    chords = group_chords(notes, tolerance=0.03)
    assert [c.pitches for c in chords] == [(60, 64, 67), (72,)]
    assert chords[0].is_chord
    assert chords[0].onset == 0.0


def test_rolled_chord_groups_transitively():
    """Each onset is compared with the previous one, not with the first."""
    notes = [make_note(p, start=i * 0.02, hand=Hand.RIGHT) for i, p in enumerate((60, 64, 67, 72))]
    chords = group_chords(notes, tolerance=0.03)
    assert len(chords) == 1
    assert chords[0].pitches == (60, 64, 67, 72)


def test_chords_never_span_hands():
    notes = [make_note(48, hand=Hand.LEFT), make_note(72, hand=Hand.RIGHT)]
    chords = group_chords(notes)
    assert [(c.hand, c.pitches) for c in chords] == [(Hand.LEFT, (48,)), (Hand.RIGHT, (72,))]


def test_regroup_is_idempotent():
    notes = [
        make_note(p, start=t, hand=Hand.RIGHT if p >= 60 else Hand.LEFT)
        for p, t in ((60, 0.0), (64, 0.01), (48, 0.0), (52, 0.02), (67, 0.4), (71, 0.45), (74, 0.9))
    ]
    once = group_chords(notes)
    assert regroup(once) == once
    assert regroup(regroup(once)) == once
