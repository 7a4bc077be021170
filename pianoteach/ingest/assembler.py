"""Ingestion orchestrator - turns a parsed MIDI performance into a SongEntry."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable

from pianoteach.config import Settings, settings as default_settings
from pianoteach.errors import IngestError
from pianoteach.ingest.hands import separate_hands
from pianoteach.ingest.measures import slice_measures
from pianoteach.ingest.models import (
    Hand,
    MeasureSlice,
    ParsedMidi,
    RawNoteEvent,
    ResolvedNote,
    TimeSignatureSegment,
)
from pianoteach.ingest.timing import TimeResolver, parse_time_signature
from pianoteach.songs.models import Measure, MeasureOverride, SongConfig, SongEntry

logger = logging.getLogger(__name__)


def _validate_event(event: RawNoteEvent, position: int) -> None:
    if not 0 <= event.note <= 127:
        raise IngestError(f"Event {position}: note {event.note} outside 0-127")
    if not 0 <= event.velocity <= 127:
        raise IngestError(f"Event {position}: velocity {event.velocity} outside 0-127")
    if not 0 <= event.channel <= 15:
        raise IngestError(f"Event {position}: channel {event.channel} outside 0-15")
    if not math.isfinite(event.time) or event.time < 0:
        raise IngestError(f"Event {position}: start time {event.time} is not a valid time")
    if not math.isfinite(event.duration) or event.duration < 0:
        raise IngestError(f"Event {position}: duration {event.duration} is negative or invalid")


@dataclass
class BatchFailure:
    """A song that could not be ingested."""
    song_id: str
    error: str


@dataclass
class BatchResult:
    """Outcome of ingesting many songs; one failure never aborts the rest."""
    songs: list[SongEntry] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)


class SongAssembler:
    """Orchestrates the ingestion pipeline."""

    def __init__(self, config: Settings | None = None):
        self.settings = config or default_settings

    def assemble(self, midi: ParsedMidi, song: SongConfig) -> SongEntry:
        """Build a SongEntry or raise IngestError; nothing partial is returned."""
        logger.info(f"Ingesting '{song.id}': {len(midi.events)} events, "
                    f"{len(midi.tempo_changes)} tempo changes")

        # Step 1: Validate and drop note-off markers
        events = []
        for i, event in enumerate(midi.events):
            _validate_event(event, i)
            if event.velocity == 0:
                logger.debug(f"  Dropping zero-velocity event {i} (note {event.note})")
                continue
            events.append(event)

        # Step 2: Timelines
        end_seconds = midi.duration_seconds
        if end_seconds <= 0 and events:
            end_seconds = max(e.time + e.duration for e in events)
        resolver = TimeResolver(
            midi.tempo_changes,
            self._time_signatures(midi, song),
            midi.ticks_per_beat,
            end_seconds,
        )
        total = resolver.measure_count
        if total == 0:
            raise IngestError(f"Song '{song.id}' has no measures (duration {end_seconds:.3f}s)")
        logger.info(f"  {total} measures over {end_seconds:.2f}s")

        # Step 3: Resolve notes onto the measure grid
        notes = self._resolve(events, resolver)

        # Step 4: Hands
        split_point = song.split_point if song.split_point is not None else self.settings.split_point
        notes = separate_hands(notes, split_point, self._channel_hands(song))

        # Step 5: Measures and chords
        tolerance = song.chord_tolerance if song.chord_tolerance is not None else self.settings.chord_tolerance
        slices = slice_measures(notes, total, tolerance)

        # Step 6: Measure objects with authored annotations
        measures = self._build_measures(slices, resolver, song)

        tempo = song.tempo
        if tempo is None:
            tempo = midi.tempo_changes[0].bpm if midi.tempo_changes else self.settings.default_bpm
        num, den = resolver.measure_signature(0)

        return SongEntry(
            id=song.id,
            title=song.title,
            tempo=float(tempo),
            time_signature=f"{num}/{den}",
            duration_seconds=float(end_seconds),
            measures=tuple(measures),
            musical_language=song.musical_language,
            genre=song.genre,
            difficulty=song.difficulty,
            key=song.key,
            composer=song.composer,
            arranger=song.arranger,
            tags=tuple(song.tags),
            source=song.source,
            track_names=tuple(midi.track_names),
        )

    @staticmethod
    def _channel_hands(song: SongConfig) -> dict[int, Hand] | None:
        """Explicit channel pins; each must name a real hand."""
        if not song.channel_hands:
            return None
        pins = {}
        for channel, hand in song.channel_hands.items():
            if hand not in (Hand.LEFT, Hand.RIGHT):
                raise IngestError(
                    f"Song '{song.id}': channel_hands maps channel {channel} to "
                    f"{getattr(hand, 'value', hand)!r}; use 'left' or 'right'"
                )
            pins[channel] = Hand(hand)
        return pins

    @staticmethod
    def _time_signatures(midi: ParsedMidi, song: SongConfig) -> tuple[TimeSignatureSegment, ...]:
        if song.time_signature:
            parsed = parse_time_signature(song.time_signature)
            if parsed is None:
                raise IngestError(f"Song '{song.id}': invalid time signature {song.time_signature!r}")
            return (TimeSignatureSegment(numerator=parsed[0], denominator=parsed[1], tick=0),)
        return tuple(midi.time_signatures)

    @staticmethod
    def _resolve(events: list[RawNoteEvent], resolver: TimeResolver) -> list[ResolvedNote]:
        tpb = resolver.ticks_per_beat
        notes = []
        for e in sorted(events, key=lambda e: (e.time, e.note, e.channel)):
            start_tick = resolver.seconds_to_ticks(e.time)
            end_tick = resolver.seconds_to_ticks(e.time + e.duration)
            index, offset = resolver.locate(start_tick)
            notes.append(ResolvedNote(
                note=e.note,
                velocity=e.velocity,
                start=e.time,
                duration=e.duration,
                channel=e.channel,
                start_tick=start_tick,
                duration_ticks=end_tick - start_tick,
                measure_index=index,
                offset_ticks=offset,
                offset_beats=offset / tpb,
                duration_beats=(end_tick - start_tick) / tpb,
            ))
        return notes

    @staticmethod
    def _build_measures(
        slices: list[MeasureSlice],
        resolver: TimeResolver,
        song: SongConfig,
    ) -> list[Measure]:
        overrides: dict[int, MeasureOverride] = {}
        for ov in song.measure_overrides:
            if not 1 <= ov.measure <= len(slices):
                raise IngestError(
                    f"Song '{song.id}': override for bar {ov.measure} but the song has "
                    f"{len(slices)} measures"
                )
            overrides[ov.measure] = ov

        measures = []
        for s in slices:
            start = resolver.measure_start_seconds(s.index)
            ov = overrides.get(s.index + 1)
            measures.append(Measure(
                index=s.index,
                left_hand=s.left.chords,
                right_hand=s.right.chords,
                beats=resolver.measure_beats(s.index),
                start_seconds=start,
                duration_seconds=resolver.measure_duration_seconds(s.index),
                bpm=resolver.bpm_at(start),
                time_signature=resolver.measure_signature(s.index),
                teaching_note=ov.teaching_note if ov else None,
                dynamics=ov.dynamics if ov else None,
                fingering=ov.fingering if ov else None,
                tempo_override=ov.tempo_override if ov else None,
            ))
        return measures


def midi_to_song(midi: ParsedMidi, song: SongConfig, config: Settings | None = None) -> SongEntry:
    """Convenience wrapper around :class:`SongAssembler`."""
    return SongAssembler(config).assemble(midi, song)


def ingest_batch(
    jobs: Iterable[tuple[ParsedMidi, SongConfig]],
    config: Settings | None = None,
) -> BatchResult:
    """Ingest many songs, skipping (with a warning) any that fail."""
    assembler = SongAssembler(config)
    result = BatchResult()
    for midi, song in jobs:
        try:
            result.songs.append(assembler.assemble(midi, song))
        except IngestError as e:
            logger.warning(f"SKIP {song.id}: {e}")
            result.failures.append(BatchFailure(song_id=song.id, error=str(e)))
    logger.info(f"Batch ingest: {len(result.songs)} songs, {len(result.failures)} skipped")
    return result
