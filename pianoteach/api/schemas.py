"""Pydantic request/response models for API."""

from pydantic import BaseModel, model_validator

from pianoteach.config import settings
from pianoteach.ingest.models import (
    Chord,
    Hand,
    ParsedMidi,
    RawNoteEvent,
    TempoSegment,
    TimeSignatureSegment,
)
from pianoteach.ingest.notation import format_chord
from pianoteach.songs.models import (
    Measure,
    MeasureOverride,
    MusicalLanguage,
    SongConfig,
    SongEntry,
)


# Requests

class NoteEventIn(BaseModel):
    note: int
    velocity: int = settings.default_velocity
    time: float
    duration: float
    channel: int = 0

    def to_model(self) -> RawNoteEvent:
        return RawNoteEvent(
            note=self.note,
            velocity=self.velocity,
            time=self.time,
            duration=self.duration,
            channel=self.channel,
        )


class TempoSegmentIn(BaseModel):
    time: float
    bpm: float | None = None
    microseconds_per_beat: int | None = None

    @model_validator(mode="after")
    def _has_tempo(self):
        if self.bpm is None and self.microseconds_per_beat is None:
            raise ValueError("tempo segment needs bpm or microseconds_per_beat")
        if self.bpm is not None and self.bpm <= 0:
            raise ValueError(f"tempo segment bpm must be positive: got {self.bpm}")
        if self.microseconds_per_beat is not None and self.microseconds_per_beat <= 0:
            raise ValueError(
                f"tempo segment microseconds_per_beat must be positive: got {self.microseconds_per_beat}"
            )
        return self

    def to_model(self) -> TempoSegment:
        if self.microseconds_per_beat is not None:
            return TempoSegment.from_microseconds(self.time, self.microseconds_per_beat)
        return TempoSegment(time=self.time, bpm=self.bpm)


class TimeSignatureIn(BaseModel):
    numerator: int
    denominator: int
    tick: float | None = None
    time: float | None = None

    def to_model(self) -> TimeSignatureSegment:
        return TimeSignatureSegment(
            numerator=self.numerator,
            denominator=self.denominator,
            tick=self.tick,
            time=self.time,
        )


class ParsedMidiIn(BaseModel):
    events: list[NoteEventIn] = []
    tempo_changes: list[TempoSegmentIn] = []
    ticks_per_beat: int = settings.default_ticks_per_beat
    format: int = 1
    duration_seconds: float = 0.0
    time_signatures: list[TimeSignatureIn] = []
    track_names: list[str] = []

    def to_model(self) -> ParsedMidi:
        return ParsedMidi(
            events=tuple(e.to_model() for e in self.events),
            tempo_changes=tuple(t.to_model() for t in self.tempo_changes),
            ticks_per_beat=self.ticks_per_beat,
            format=self.format,
            duration_seconds=self.duration_seconds,
            time_signatures=tuple(ts.to_model() for ts in self.time_signatures),
            track_names=tuple(self.track_names),
        )


class MusicalLanguageSchema(BaseModel):
    description: str = ""
    structure: str = ""
    key_moments: list[str] = []
    teaching_goals: list[str] = []
    style_tips: list[str] = []

    def to_model(self) -> MusicalLanguage:
        return MusicalLanguage(
            description=self.description,
            structure=self.structure,
            key_moments=tuple(self.key_moments),
            teaching_goals=tuple(self.teaching_goals),
            style_tips=tuple(self.style_tips),
        )


class MeasureOverrideIn(BaseModel):
    measure: int
    teaching_note: str | None = None
    dynamics: str | None = None
    fingering: str | None = None
    tempo_override: float | None = None

    def to_model(self) -> MeasureOverride:
        return MeasureOverride(**self.model_dump())


class SongConfigIn(BaseModel):
    id: str
    title: str
    genre: str = "classical"
    difficulty: str = "beginner"
    key: str = "C major"
    composer: str | None = None
    arranger: str | None = None
    tags: list[str] = []
    source: str | None = None
    musical_language: MusicalLanguageSchema = MusicalLanguageSchema()
    tempo: float | None = None
    time_signature: str | None = None
    measure_overrides: list[MeasureOverrideIn] = []
    split_point: int | None = None
    channel_hands: dict[int, Hand] | None = None
    chord_tolerance: float | None = None

    def to_model(self) -> SongConfig:
        return SongConfig(
            id=self.id,
            title=self.title,
            genre=self.genre,
            difficulty=self.difficulty,
            key=self.key,
            composer=self.composer,
            arranger=self.arranger,
            tags=tuple(self.tags),
            source=self.source,
            musical_language=self.musical_language.to_model(),
            tempo=self.tempo,
            time_signature=self.time_signature,
            measure_overrides=tuple(o.to_model() for o in self.measure_overrides),
            split_point=self.split_point,
            channel_hands=dict(self.channel_hands) if self.channel_hands is not None else None,
            chord_tolerance=self.chord_tolerance,
        )


class IngestRequest(BaseModel):
    midi: ParsedMidiIn
    config: SongConfigIn


class BatchIngestRequest(BaseModel):
    songs: list[IngestRequest]


# Responses

class NoteResponse(BaseModel):
    note: int
    name: str
    velocity: int
    start: float
    duration: float
    offset_beats: float
    duration_beats: float
    channel: int
    hand: Hand


class ChordResponse(BaseModel):
    notation: str  # "C4+E4+G4:q"
    offset_beats: float
    duration_beats: float
    notes: list[NoteResponse]


class MeasureResponse(BaseModel):
    number: int
    beats: float
    start_seconds: float
    duration_seconds: float
    bpm: float
    time_signature: str
    left_hand: str
    right_hand: str
    left_chords: list[ChordResponse] = []
    right_chords: list[ChordResponse] = []
    teaching_note: str | None = None
    dynamics: str | None = None
    fingering: str | None = None
    tempo_override: float | None = None


class SongResponse(BaseModel):
    id: str
    title: str
    tempo: float
    time_signature: str
    duration_seconds: float
    total_measures: int
    measures: list[MeasureResponse]
    musical_language: MusicalLanguageSchema
    genre: str
    difficulty: str
    key: str
    composer: str | None = None
    arranger: str | None = None
    tags: list[str] = []
    source: str | None = None
    track_names: list[str] = []


class BatchFailureResponse(BaseModel):
    id: str
    error: str


class BatchResponse(BaseModel):
    songs: list[SongResponse]
    failures: list[BatchFailureResponse] = []


def _chord_to_response(chord: Chord) -> ChordResponse:
    return ChordResponse(
        notation=format_chord(chord),
        offset_beats=chord.offset_beats,
        duration_beats=chord.duration_beats,
        notes=[
            NoteResponse(
                note=n.note,
                name=n.name,
                velocity=n.velocity,
                start=n.start,
                duration=n.duration,
                offset_beats=n.offset_beats,
                duration_beats=n.duration_beats,
                channel=n.channel,
                hand=n.hand,
            )
            for n in chord.notes
        ],
    )


def _measure_to_response(m: Measure) -> MeasureResponse:
    num, den = m.time_signature
    return MeasureResponse(
        number=m.number,
        beats=m.beats,
        start_seconds=m.start_seconds,
        duration_seconds=m.duration_seconds,
        bpm=m.bpm,
        time_signature=f"{num}/{den}",
        left_hand=m.left_notation,
        right_hand=m.right_notation,
        left_chords=[_chord_to_response(c) for c in m.left_hand],
        right_chords=[_chord_to_response(c) for c in m.right_hand],
        teaching_note=m.teaching_note,
        dynamics=m.dynamics,
        fingering=m.fingering,
        tempo_override=m.tempo_override,
    )


def song_to_response(song: SongEntry) -> SongResponse:
    """Convert a SongEntry for JSON serialization."""
    ml = song.musical_language
    return SongResponse(
        id=song.id,
        title=song.title,
        tempo=song.tempo,
        time_signature=song.time_signature,
        duration_seconds=song.duration_seconds,
        total_measures=song.total_measures,
        measures=[_measure_to_response(m) for m in song.measures],
        musical_language=MusicalLanguageSchema(
            description=ml.description,
            structure=ml.structure,
            key_moments=list(ml.key_moments),
            teaching_goals=list(ml.teaching_goals),
            style_tips=list(ml.style_tips),
        ),
        genre=song.genre,
        difficulty=song.difficulty,
        key=song.key,
        composer=song.composer,
        arranger=song.arranger,
        tags=list(song.tags),
        source=song.source,
        track_names=list(song.track_names),
    )


# WebSocket message types

class LoadMessage(BaseModel):
    type: str = "load"
    song: IngestRequest
    mode: str = "continuous"
    speed: float = 1.0
    tempo: float | None = None
    loop_range: tuple[int, int] | None = None


class StateMessage(BaseModel):
    type: str = "state"
    state: str
    current_measure: int
    total_measures: int
    measures_played: int


class ErrorMessage(BaseModel):
    type: str = "error"
    message: str
