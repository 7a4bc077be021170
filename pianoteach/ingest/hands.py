"""Hand separation and chord grouping.

Notes are assigned to a hand by a pitch split point, unless channel hints say
otherwise: when a performance uses more than one channel, the channel layout is
treated as the author's hand assignment and wins over pitch.

Chord grouping merges onsets on the same hand that are closer than a tolerance.
The merge is transitive: each note is compared with the previous onset, not with
the first note of the chord, so a rolled chord still groups as one.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Iterable, Mapping, Sequence

import numpy as np

from pianoteach.ingest.models import Chord, Hand, ResolvedNote

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_POINT = 60  # middle C
DEFAULT_CHORD_TOLERANCE = 0.03  # seconds


def hand_for_pitch(note: int, split_point: int = DEFAULT_SPLIT_POINT) -> Hand:
    return Hand.LEFT if note < split_point else Hand.RIGHT


def infer_channel_hands(
    notes: Iterable[ResolvedNote],
    split_point: int = DEFAULT_SPLIT_POINT,
) -> dict[int, Hand]:
    """Derive a channel -> hand map when notes span two or more channels.

    Channels are ranked by median pitch: the lowest is the left hand, the
    highest the right hand, and any channel in between follows its median
    against the split point. Returns an empty map for single-channel input.
    """
    pitches: dict[int, list[int]] = defaultdict(list)
    for n in notes:
        pitches[n.channel].append(n.note)

    if len(pitches) < 2:
        return {}

    medians = {ch: float(np.median(p)) for ch, p in pitches.items()}
    ranked = sorted(medians, key=lambda ch: (medians[ch], ch))

    hands = {ch: hand_for_pitch(int(round(medians[ch])), split_point) for ch in ranked}
    hands[ranked[0]] = Hand.LEFT
    hands[ranked[-1]] = Hand.RIGHT
    return hands


def separate_hands(
    notes: Sequence[ResolvedNote],
    split_point: int = DEFAULT_SPLIT_POINT,
    channel_hands: Mapping[int, Hand] | None = None,
) -> list[ResolvedNote]:
    """Label every note with a hand. Order is preserved; timing is untouched.

    *channel_hands* pins channels to hands explicitly. Without it, hints are
    inferred from the channel layout (see :func:`infer_channel_hands`).
    """
    hints = dict(channel_hands) if channel_hands else infer_channel_hands(notes, split_point)
    if hints:
        summary = ", ".join(f"ch{ch}={h.value}" for ch, h in sorted(hints.items()))
        logger.debug(f"Channel hand hints: {summary}")

    labelled = []
    for n in notes:
        hand = hints.get(n.channel) or hand_for_pitch(n.note, split_point)
        labelled.append(replace(n, hand=hand))
    return labelled


def _onset_key(n: ResolvedNote) -> tuple[float, int]:
    return (n.start, n.note)


def group_chords(
    notes: Iterable[ResolvedNote],
    tolerance: float = DEFAULT_CHORD_TOLERANCE,
) -> list[Chord]:
    """Group near-simultaneous notes on the same hand into chords.

    Returns chords ordered by onset (ties broken by hand, left first).
    """
    by_hand: dict[Hand, list[ResolvedNote]] = defaultdict(list)
    for n in notes:
        by_hand[n.hand].append(n)

    chords: list[Chord] = []
    for hand, hand_notes in by_hand.items():
        ordered = sorted(hand_notes, key=_onset_key)
        current = [ordered[0]]
        for prev, note in zip(ordered, ordered[1:]):
            if note.start - prev.start < tolerance:
                current.append(note)
            else:
                chords.append(_make_chord(current, hand))
                current = [note]
        chords.append(_make_chord(current, hand))

    hand_order = {Hand.LEFT: 0, Hand.RIGHT: 1, Hand.UNKNOWN: 2}
    chords.sort(key=lambda c: (c.onset, hand_order[c.hand], c.pitches))
    return chords


def regroup(chords: Iterable[Chord], tolerance: float = DEFAULT_CHORD_TOLERANCE) -> list[Chord]:
    """Flatten chords back to notes and group them again."""
    return group_chords((n for c in chords for n in c.notes), tolerance)


def _make_chord(notes: list[ResolvedNote], hand: Hand) -> Chord:
    return Chord(notes=tuple(sorted(notes, key=lambda n: (n.note, n.start))), hand=hand)
