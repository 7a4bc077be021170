#!/usr/bin/env python3
"""Play an ingested song to a MIDI output port, with console teaching notes.

The song file is JSON of the form ``{"midi": {...}, "config": {...}}``, the
same body POST /api/ingest accepts.

Usage:
    python scripts/play_song.py --song songs/fur_elise.json
    python scripts/play_song.py --song song.json --port loop --mode measure
    python scripts/play_song.py --song song.json --mode loop --loop-range 5 8   # Ctrl-C to end
    python scripts/play_song.py --song song.json --mode hands
    python scripts/play_song.py --song song.json --speed 0.5
    python scripts/play_song.py --song song.json --dry-run    # no MIDI port
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

logging.basicConfig(level=logging.INFO, format="%(message)s")

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from pianoteach.api.schemas import IngestRequest
from pianoteach.config import settings
from pianoteach.errors import PianoTeachError
from pianoteach.ingest.assembler import midi_to_song
from pianoteach.playback.connector import MidoConnector, RecordingConnector
from pianoteach.playback.session import PlaybackMode, SessionEngine
from pianoteach.teaching.hooks import ConsoleTeachingHook

logger = logging.getLogger("play_song")


async def practice(args) -> int:
    request = IngestRequest.model_validate_json(Path(args.song).read_text())
    song = midi_to_song(request.midi.to_model(), request.config.to_model())

    connector = RecordingConnector() if args.dry_run else MidoConnector(args.port)
    await connector.connect()

    engine = SessionEngine(
        song,
        connector,
        hook=ConsoleTeachingHook(),
        mode=args.mode,
        speed=args.speed,
        tempo_override=args.tempo,
        loop_range=args.loop_range,
        on_progress=lambda p: logger.info(f"  {p.percent} ({p.current_measure}/{p.total_measures})"),
    )
    logger.info(engine.summary())

    try:
        if engine.session.mode in (PlaybackMode.MEASURE, PlaybackMode.HANDS):
            while engine.measures_played < engine.total_measures:
                await engine.play()
                if engine.measures_played < engine.total_measures:
                    await asyncio.to_thread(input, "Enter for the next measure...")
        else:
            await engine.play()
    finally:
        await engine.stop()

    if args.dry_run:
        logger.info(f"Dry run: {len(connector.of_kind('note_on'))} notes would have played")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Play a song through a MIDI output")
    parser.add_argument("--song", required=True, help="Song JSON ({midi, config})")
    parser.add_argument("--port", default=settings.midi_port,
                        help="Output port name pattern (default: %(default)s)")
    parser.add_argument("--mode", choices=[m.value for m in PlaybackMode], default="continuous")
    parser.add_argument("--speed", type=float, default=1.0, help="Tempo multiplier")
    parser.add_argument("--tempo", type=float, default=None, help="Override BPM")
    parser.add_argument("--loop-range", type=int, nargs=2, metavar=("FIRST", "LAST"), default=None,
                        help="Measures repeated in loop mode (default: whole song)")
    parser.add_argument("--dry-run", action="store_true", help="Record notes instead of sending them")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger("pianoteach").setLevel(logging.DEBUG)

    try:
        sys.exit(asyncio.run(practice(args)))
    except (PianoTeachError, ConnectionError, ValueError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
