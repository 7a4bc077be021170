"""Shared test fixtures for ingestion and playback tests."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from pianoteach.ingest.assembler import midi_to_song
from pianoteach.ingest.models import (
    Hand,
    ParsedMidi,
    RawNoteEvent,
    ResolvedNote,
    TempoSegment,
    TimeSignatureSegment,
)
from pianoteach.main import app
from pianoteach.playback.connector import RecordingConnector
from pianoteach.songs.models import MusicalLanguage, SongConfig


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


def generate_midi(
    measures: int = 4,
    bpm: float = 120.0,
    beats_per_bar: int = 4,
    melody: tuple[int, ...] = (72, 74, 76, 77),
    bass: int | None = 48,
    ticks_per_beat: int = 480,
) -> ParsedMidi:
    """Generate a simple piano piece: a quarter-note melody over one bass note per bar.

    The melody cycles through *melody* on every beat (right hand); the bass
    holds for the whole bar (left hand).
    """
    beat = 60.0 / bpm
    events = []
    for m in range(measures):
        bar_start = m * beats_per_bar * beat
        if bass is not None:
            events.append(RawNoteEvent(note=bass, velocity=70, time=bar_start, duration=beats_per_bar * beat))
        for b in range(beats_per_bar):
            note = melody[(m * beats_per_bar + b) % len(melody)]
            events.append(RawNoteEvent(note=note, velocity=90, time=bar_start + b * beat, duration=beat))

    return ParsedMidi(
        events=tuple(events),
        tempo_changes=(TempoSegment(time=0.0, bpm=bpm),),
        ticks_per_beat=ticks_per_beat,
        duration_seconds=measures * beats_per_bar * beat,
        time_signatures=(TimeSignatureSegment(numerator=beats_per_bar, denominator=4, tick=0),),
    )


def song_config(song_id: str = "test-song", title: str = "Test Song", **kwargs) -> SongConfig:
    return SongConfig(id=song_id, title=title, **kwargs)


def build_song(measures: int = 4, key_moments: tuple[str, ...] = (), **midi_kwargs):
    """Ingest a generated piece into a SongEntry."""
    midi = generate_midi(measures=measures, **midi_kwargs)
    config = song_config(musical_language=MusicalLanguage(key_moments=key_moments))
    return midi_to_song(midi, config)


def midi_payload(measures: int = 2, bpm: float = 120.0) -> dict:
    """JSON body for the ingest endpoint."""
    beat = 60.0 / bpm
    events = []
    for m in range(measures):
        events.append({"note": 48, "velocity": 70, "time": m * 4 * beat, "duration": 4 * beat})
        events += [
            {"note": 72 + b, "velocity": 90, "time": (m * 4 + b) * beat, "duration": beat}
            for b in range(4)
        ]
    return {
        "events": events,
        "tempo_changes": [{"time": 0.0, "bpm": bpm}],
        "ticks_per_beat": 480,
        "duration_seconds": measures * 4 * beat,
        "time_signatures": [{"numerator": 4, "denominator": 4, "tick": 0}],
    }


class FakeSleep:
    """Stands in for asyncio.sleep; records delays and yields without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def song_12_bars():
    """12 measures of 4/4 at 120 BPM (24 seconds)."""
    return build_song(measures=12)


@pytest.fixture
def connector():
    """A recording connector (not yet connected)."""
    return RecordingConnector()


def make_note(
    note: int,
    start: float = 0.0,
    duration: float = 0.5,
    hand: Hand = Hand.UNKNOWN,
    channel: int = 0,
    measure_index: int = 0,
    bpm: float = 120.0,
    ticks_per_beat: int = 480,
) -> ResolvedNote:
    """A ResolvedNote placed as if the whole piece were 4/4 at *bpm*."""
    beat = 60.0 / bpm
    offset_beats = start / beat - measure_index * 4
    return ResolvedNote(
        note=note,
        velocity=80,
        start=start,
        duration=duration,
        channel=channel,
        start_tick=start / beat * ticks_per_beat,
        duration_ticks=duration / beat * ticks_per_beat,
        measure_index=measure_index,
        offset_ticks=offset_beats * ticks_per_beat,
        offset_beats=offset_beats,
        duration_beats=duration / beat,
        hand=hand,
    )
