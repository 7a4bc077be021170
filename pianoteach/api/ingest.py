"""Ingestion endpoints: parsed MIDI + song metadata in, playable song out."""

from fastapi import APIRouter, HTTPException

from pianoteach.api.schemas import (
    BatchFailureResponse,
    BatchIngestRequest,
    BatchResponse,
    IngestRequest,
    SongResponse,
    song_to_response,
)
from pianoteach.config import settings
from pianoteach.errors import IngestError
from pianoteach.ingest.assembler import SongAssembler, ingest_batch

router = APIRouter()


@router.post("/ingest", response_model=SongResponse)
async def ingest_song(request: IngestRequest):
    """Build one song. Ingestion failures are reported as 422."""
    try:
        song = SongAssembler().assemble(request.midi.to_model(), request.config.to_model())
    except IngestError as e:
        raise HTTPException(422, f"Ingestion failed for '{request.config.id}': {e}")
    return song_to_response(song)


@router.post("/ingest/batch", response_model=BatchResponse)
async def ingest_songs(request: BatchIngestRequest):
    """Build many songs; failing songs are listed instead of aborting the batch."""
    if len(request.songs) > settings.max_batch_songs:
        raise HTTPException(413, f"Too many songs (max {settings.max_batch_songs})")

    result = ingest_batch((r.midi.to_model(), r.config.to_model()) for r in request.songs)
    return BatchResponse(
        songs=[song_to_response(s) for s in result.songs],
        failures=[BatchFailureResponse(id=f.song_id, error=f.error) for f in result.failures],
    )
