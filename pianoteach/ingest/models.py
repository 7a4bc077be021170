"""Core data models for MIDI ingestion."""

from dataclasses import dataclass, field
from enum import Enum

from pianoteach.ingest.notation import note_name


class Hand(str, Enum):
    """Which hand plays a note."""
    LEFT = "left"
    RIGHT = "right"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RawNoteEvent:
    """A single note event as produced by the MIDI file parser."""
    note: int  # 0-127, 60 = middle C
    velocity: int  # 0-127, 0 = note off
    time: float  # absolute start, seconds
    duration: float  # seconds
    channel: int = 0  # 0-15


@dataclass(frozen=True)
class TempoSegment:
    """A tempo change, in effect from *time* until the next segment."""
    time: float  # seconds
    bpm: float
    microseconds_per_beat: int = 0

    @classmethod
    def from_microseconds(cls, time: float, microseconds_per_beat: int) -> "TempoSegment":
        return cls(
            time=time,
            bpm=60_000_000 / microseconds_per_beat,
            microseconds_per_beat=microseconds_per_beat,
        )


@dataclass(frozen=True)
class TimeSignatureSegment:
    """A time signature change at an absolute tick (or time, in seconds)."""
    numerator: int
    denominator: int
    tick: float | None = None
    time: float | None = None

    @property
    def label(self) -> str:
        return f"{self.numerator}/{self.denominator}"


@dataclass(frozen=True)
class ParsedMidi:
    """Output of the external MIDI parser; consumed read-only."""
    events: tuple[RawNoteEvent, ...]
    tempo_changes: tuple[TempoSegment, ...] = ()
    ticks_per_beat: int = 480
    format: int = 1  # 0 = single track, 1 = multi-track, 2 = multi-song
    duration_seconds: float = 0.0
    time_signatures: tuple[TimeSignatureSegment, ...] = ()
    track_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedNote:
    """A note placed on the measure grid."""
    note: int
    velocity: int
    start: float  # seconds
    duration: float  # seconds
    channel: int
    start_tick: float
    duration_ticks: float
    measure_index: int
    offset_ticks: float  # from the start of its measure
    offset_beats: float  # quarter-note beats from the start of its measure
    duration_beats: float
    hand: Hand = Hand.UNKNOWN

    @property
    def name(self) -> str:
        return note_name(self.note)


@dataclass(frozen=True)
class Chord:
    """Near-simultaneous notes on one hand, sorted low to high."""
    notes: tuple[ResolvedNote, ...]
    hand: Hand

    @property
    def onset(self) -> float:
        return min(n.start for n in self.notes)

    @property
    def offset_beats(self) -> float:
        return min(n.offset_beats for n in self.notes)

    @property
    def duration_beats(self) -> float:
        return max(n.duration_beats for n in self.notes)

    @property
    def pitches(self) -> tuple[int, ...]:
        return tuple(n.note for n in self.notes)

    @property
    def is_chord(self) -> bool:
        return len(self.notes) > 1


@dataclass(frozen=True)
class MeasureBucket:
    """Chords for one hand within one measure."""
    index: int
    hand: Hand
    chords: tuple[Chord, ...] = field(default_factory=tuple)

    @property
    def notes(self) -> list[ResolvedNote]:
        return [n for c in self.chords for n in c.notes]


@dataclass(frozen=True)
class MeasureSlice:
    """Both hands of one measure index."""
    index: int
    left: MeasureBucket
    right: MeasureBucket
