"""Song data models: the assembled entry and the metadata it is built from."""

from dataclasses import dataclass, field

from pianoteach.ingest.models import Chord, Hand
from pianoteach.ingest.notation import format_hand


@dataclass(frozen=True)
class MusicalLanguage:
    """Human-readable context a teacher reads before teaching the song."""
    description: str = ""
    structure: str = ""
    key_moments: tuple[str, ...] = ()  # e.g. "Bars 3-4: crescendo into the theme"
    teaching_goals: tuple[str, ...] = ()
    style_tips: tuple[str, ...] = ()


@dataclass(frozen=True)
class MeasureOverride:
    """Hand-authored annotations for one bar (1-based)."""
    measure: int
    teaching_note: str | None = None
    dynamics: str | None = None  # "pp", "mf", "crescendo", ...
    fingering: str | None = None
    tempo_override: float | None = None


@dataclass(frozen=True)
class SongConfig:
    """Metadata merged with MIDI data at ingestion."""
    id: str
    title: str
    genre: str = "classical"
    difficulty: str = "beginner"
    key: str = "C major"
    composer: str | None = None
    arranger: str | None = None
    tags: tuple[str, ...] = ()
    source: str | None = None
    musical_language: MusicalLanguage = field(default_factory=MusicalLanguage)
    tempo: float | None = None
    time_signature: str | None = None  # "3/4"; wins over the MIDI's own
    measure_overrides: tuple[MeasureOverride, ...] = ()
    split_point: int | None = None
    channel_hands: dict[int, Hand] | None = None
    chord_tolerance: float | None = None


@dataclass(frozen=True)
class Measure:
    """One bar, ready for playback."""
    index: int  # 0-based
    left_hand: tuple[Chord, ...]
    right_hand: tuple[Chord, ...]
    beats: float  # quarter-note beats
    start_seconds: float
    duration_seconds: float
    bpm: float  # tempo in effect at the start of the measure
    time_signature: tuple[int, int] = (4, 4)
    teaching_note: str | None = None
    dynamics: str | None = None
    fingering: str | None = None
    tempo_override: float | None = None

    @property
    def number(self) -> int:
        """1-based bar number, as used by teaching notes and key moments."""
        return self.index + 1

    @property
    def left_notation(self) -> str:
        return format_hand(self.left_hand)

    @property
    def right_notation(self) -> str:
        return format_hand(self.right_hand)

    @property
    def is_silent(self) -> bool:
        return not self.left_hand and not self.right_hand


@dataclass(frozen=True)
class SongEntry:
    """A complete song. Never mutated after ingestion."""
    id: str
    title: str
    tempo: float
    time_signature: str
    duration_seconds: float
    measures: tuple[Measure, ...]
    musical_language: MusicalLanguage = field(default_factory=MusicalLanguage)
    genre: str = "classical"
    difficulty: str = "beginner"
    key: str = "C major"
    composer: str | None = None
    arranger: str | None = None
    tags: tuple[str, ...] = ()
    source: str | None = None
    track_names: tuple[str, ...] = ()

    @property
    def total_measures(self) -> int:
        return len(self.measures)
