"""Scientific pitch notation and the hybrid hand-string format.

A hand string is a space-separated list of tokens. Each token is a note or a
``+``-joined chord followed by a duration suffix, e.g. ``"C4+E4+G4:q D4:e"``.
A hand with no notes renders as a whole rest, ``"R:w"``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from pianoteach.ingest.models import Chord

NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

_LETTER_OFFSETS = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_NAME_RE = re.compile(r"^([A-Ga-g])(#|b)?(-?\d+)$")

REST = "R:w"

# (quarter-note beats, suffix, tolerance), checked in order
_DURATIONS: list[tuple[float, str, float]] = [
    (4.0, "w", 0.15),
    (3.0, "h.", 0.15),
    (2.0, "h", 0.15),
    (1.5, "q.", 0.15),
    (4 / 3, "ht", 0.1),
    (1.0, "q", 0.15),
    (0.75, "e.", 0.05),
    (2 / 3, "qt", 0.08),
    (0.5, "e", 0.1),
    (1 / 3, "et", 0.06),
    (0.25, "s", 0.06),
]


def note_name(note: int) -> str:
    """Return the scientific pitch name for a MIDI note number (60 -> 'C4')."""
    if not 0 <= note <= 127:
        raise ValueError(f"MIDI note out of range: {note}")
    octave = note // 12 - 1
    return f"{NOTE_NAMES[note % 12]}{octave}"


def midi_of(name: str) -> int:
    """Parse a scientific pitch name ('C4', 'F#5', 'Bb3') into a MIDI note number."""
    match = _NAME_RE.match(name.strip())
    if not match:
        raise ValueError(f"Invalid note name: {name!r}")

    letter, accidental, octave = match.groups()
    midi = (int(octave) + 1) * 12 + _LETTER_OFFSETS[letter.upper()]
    if accidental == "#":
        midi += 1
    elif accidental == "b":
        midi -= 1

    if not 0 <= midi <= 127:
        raise ValueError(f"MIDI note out of range: {midi} (from {name!r})")
    return midi


def duration_suffix(beats: float) -> str:
    """Map a duration in quarter-note beats to its nearest suffix."""
    for target, suffix, tolerance in _DURATIONS:
        if abs(beats - target) < tolerance:
            return suffix

    if beats >= 3:
        return "w"
    if beats >= 1.5:
        return "h"
    if beats >= 0.75:
        return "q"
    if beats >= 0.375:
        return "e"
    return "s"


def format_chord(chord: Chord) -> str:
    """Format a chord as 'C4+E4+G4:q'; the duration is the longest member's."""
    names = "+".join(note_name(n.note) for n in chord.notes)
    return f"{names}:{duration_suffix(chord.duration_beats)}"


def format_hand(chords: Sequence[Chord]) -> str:
    """Format one hand of one measure."""
    if not chords:
        return REST
    return " ".join(format_chord(c) for c in chords)
