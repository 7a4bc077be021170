"""WebSocket endpoint for browser-driven practice sessions."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from pianoteach.api.schemas import ErrorMessage, LoadMessage, StateMessage
from pianoteach.errors import PianoTeachError
from pianoteach.ingest.assembler import SongAssembler
from pianoteach.playback.connector import ConnectionStatus, OutputConnector
from pianoteach.playback.session import SessionEngine
from pianoteach.teaching.hooks import CallbackTeachingHook, Interjection

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketConnector(OutputConnector):
    """Forwards note commands as JSON messages through an outbox queue.

    The browser plays them with its own synth, so this connector never blocks.
    """

    def __init__(self, outbox: asyncio.Queue):
        self.outbox = outbox
        self._status = ConnectionStatus.DISCONNECTED

    async def connect(self) -> None:
        self._status = ConnectionStatus.CONNECTED

    async def disconnect(self) -> None:
        self._status = ConnectionStatus.DISCONNECTED

    def status(self) -> ConnectionStatus:
        return self._status

    def note_on(self, note: int, velocity: int, channel: int = 0) -> None:
        self.outbox.put_nowait({"type": "note_on", "note": note, "velocity": velocity, "channel": channel})

    def note_off(self, note: int, channel: int = 0) -> None:
        self.outbox.put_nowait({"type": "note_off", "note": note, "channel": channel})


def _state(engine: SessionEngine) -> dict:
    s = engine.session
    return StateMessage(
        state=s.state.value,
        current_measure=s.current_measure,
        total_measures=engine.total_measures,
        measures_played=s.measures_played,
    ).model_dump()


def _hook(outbox: asyncio.Queue) -> CallbackTeachingHook:
    def measure_start(measure_number, teaching_note, dynamics):
        outbox.put_nowait({
            "type": "measure_start",
            "measure": measure_number,
            "teaching_note": teaching_note,
            "dynamics": dynamics,
        })

    def interjection(i: Interjection):
        outbox.put_nowait({
            "type": "interjection",
            "text": i.text,
            "priority": i.priority.value,
            "reason": i.reason,
            "source": i.source,
        })

    return CallbackTeachingHook(
        on_measure_start=measure_start,
        on_key_moment=lambda moment: outbox.put_nowait({"type": "key_moment", "moment": moment}),
        on_song_complete=lambda played, title: outbox.put_nowait(
            {"type": "song_complete", "measures_played": played, "title": title}
        ),
        on_push=interjection,
    )


async def _play(engine: SessionEngine, outbox: asyncio.Queue) -> None:
    try:
        await engine.play()
    except PianoTeachError as e:
        outbox.put_nowait(ErrorMessage(message=str(e)).model_dump())
    outbox.put_nowait(_state(engine))


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


@router.websocket("/ws/session")
async def practice_session(websocket: WebSocket):
    """Practice session via WebSocket.

    Protocol:
    - Client sends JSON commands:
      - {"type": "load", "song": {"midi": ..., "config": ...}, "mode": "measure", "speed": 1.0, "tempo": null,
        "loop_range": [2, 4]}
      - {"type": "play"} / {"type": "pause"} / {"type": "stop"}
    - Server sends JSON messages:
      - {"type": "note_on" | "note_off", "note": N, ...}
      - {"type": "measure_start", "measure": N, "teaching_note": ..., "dynamics": ...}
      - {"type": "key_moment", "moment": "..."}, {"type": "interjection", "text": "...", ...}
      - {"type": "song_complete", ...}, {"type": "state", ...}, {"type": "error", "message": "..."}
    """
    await websocket.accept()

    outbox: asyncio.Queue = asyncio.Queue()
    pump = asyncio.create_task(_pump(websocket, outbox))
    engine: SessionEngine | None = None
    play_task: asyncio.Task | None = None

    try:
        while True:
            command = await websocket.receive_json()
            kind = command.get("type")

            if kind == "load":
                try:
                    load = LoadMessage.model_validate(command)
                    song = SongAssembler().assemble(load.song.midi.to_model(), load.song.config.to_model())
                    if engine is not None:
                        await engine.stop()
                    connector = WebSocketConnector(outbox)
                    await connector.connect()
                    engine = SessionEngine(
                        song,
                        connector,
                        hook=_hook(outbox),
                        mode=load.mode,
                        speed=load.speed,
                        tempo_override=load.tempo,
                        loop_range=load.loop_range,
                    )
                except (PianoTeachError, ValueError) as e:
                    outbox.put_nowait(ErrorMessage(message=str(e)).model_dump())
                    continue
                logger.info(f"{engine.session.id}: loaded '{song.id}' ({song.total_measures} measures)")
                outbox.put_nowait(_state(engine))
                continue

            if engine is None:
                outbox.put_nowait(ErrorMessage(message="No song loaded").model_dump())
                continue

            if kind == "play":
                if play_task is None or play_task.done():
                    play_task = asyncio.create_task(_play(engine, outbox))
            elif kind == "pause":
                await engine.pause()
            elif kind == "stop":
                await engine.stop()
                if play_task is None or play_task.done():
                    outbox.put_nowait(_state(engine))
            else:
                outbox.put_nowait(ErrorMessage(message=f"Unknown command {kind!r}").model_dump())

    except WebSocketDisconnect:
        pass
    finally:
        if engine is not None:
            await engine.stop()
        if play_task is not None:
            await asyncio.wait({play_task})
        pump.cancel()
