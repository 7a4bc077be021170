"""Match authored key moments ("Bar 9: ...", "Bars 3-4: ...") to bar numbers."""

from __future__ import annotations

import re

from pianoteach.songs.models import SongEntry

_BAR_RE = re.compile(r"^\s*bars?\s+(\d+)\s*(?:-\s*(\d+)\s*)?:", re.IGNORECASE)


def bar_range(moment: str) -> tuple[int, int] | None:
    """Return the inclusive bar range a key moment refers to, or None."""
    match = _BAR_RE.match(moment)
    if not match:
        return None
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else start
    return start, end


def detect_key_moments(song: SongEntry, measure_number: int) -> list[str]:
    """Key moments of *song* that cover the 1-based *measure_number*.

    Moments in any other format never match.
    """
    matches = []
    for moment in song.musical_language.key_moments:
        bars = bar_range(moment)
        if bars and bars[0] <= measure_number <= bars[1]:
            matches.append(moment)
    return matches
