"""Tests for pitch names and hand-string formatting."""

import pytest

from pianoteach.ingest.hands import group_chords
from pianoteach.ingest.models import Hand
from pianoteach.ingest.notation import REST, duration_suffix, format_chord, format_hand, midi_of, note_name
from tests.conftest import make_note


def test_note_name_middle_c():
    assert note_name(60) == "C4"
    assert note_name(61) == "C#4"
    assert note_name(0) == "C-1"
    assert note_name(127) == "G9"


def test_pitch_round_trip():
    """Every MIDI note survives name -> number -> name."""
    for n in range(128):
        assert midi_of(note_name(n)) == n


def test_midi_of_flats_and_case():
    assert midi_of("Bb3") == 58
    assert midi_of("a4") == 69
    assert midi_of(" E5 ") == 76


@pytest.mark.parametrize("bad", [128, -1])
def test_note_name_out_of_range(bad):
    with pytest.raises(ValueError):
        note_name(bad)


@pytest.mark.parametrize("bad", ["H4", "C", "C##4", "G9#", "Cb-1"])
def test_midi_of_rejects_invalid(bad):
    with pytest.raises(ValueError):
        midi_of(bad)


@pytest.mark.parametrize("beats,suffix", [
    (4.0, "w"), (3.0, "h."), (2.0, "h"), (1.5, "q."), (1.0, "q"),
    (0.5, "e"), (0.25, "s"), (0.98, "q"), (6.0, "w"), (0.1, "s"),
])
def test_duration_suffix(beats, suffix):
    assert duration_suffix(beats) == suffix


def test_format_chord_lists_pitches_low_to_high():
    notes = [make_note(67, hand=Hand.RIGHT), make_note(60, hand=Hand.RIGHT), make_note(64, hand=Hand.RIGHT)]
    chord = group_chords(notes)[0]
    assert format_chord(chord) == "C4+E4+G4:q"


def test_format_hand_empty_is_whole_rest():
    assert format_hand([]) == REST == "R:w"


def test_format_hand_sequence():
    notes = [
        make_note(72, start=0.0, duration=0.5, hand=Hand.RIGHT),
        make_note(74, start=0.5, duration=0.25, hand=Hand.RIGHT),
    ]
    assert format_hand(group_chords(notes)) == "C5:q D5:e"
