"""Output connectors: where the session engine sends note commands.

A connector is owned by one playing session at a time. It does no locking of
its own; callers must not share one across sessions playing concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import mido

logger = logging.getLogger(__name__)

_ALL_NOTES_OFF = 123  # channel mode message


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class OutputConnector(ABC):
    """Virtual instrument output."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the output. Raises ConnectionError on failure."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the output. Safe to call when already disconnected."""

    @abstractmethod
    def status(self) -> ConnectionStatus:
        """Current connection status."""

    @abstractmethod
    def note_on(self, note: int, velocity: int, channel: int = 0) -> None:
        """Send a note-on."""

    @abstractmethod
    def note_off(self, note: int, channel: int = 0) -> None:
        """Send a note-off."""

    def all_notes_off(self, channel: int = 0) -> None:
        """Panic: silence every note on *channel*. Optional for implementations."""

    @property
    def is_connected(self) -> bool:
        return self.status() is ConnectionStatus.CONNECTED


@dataclass(frozen=True)
class SentMessage:
    """A command received by a RecordingConnector."""
    kind: str  # "note_on" | "note_off" | "all_notes_off"
    note: int | None
    velocity: int
    channel: int


class RecordingConnector(OutputConnector):
    """Keeps every command in memory. Used by tests and dry runs."""

    def __init__(self):
        self.messages: list[SentMessage] = []
        self._status = ConnectionStatus.DISCONNECTED
        self.connect_count = 0
        self.disconnect_count = 0

    async def connect(self) -> None:
        self._status = ConnectionStatus.CONNECTED
        self.connect_count += 1

    async def disconnect(self) -> None:
        self._status = ConnectionStatus.DISCONNECTED
        self.disconnect_count += 1

    def status(self) -> ConnectionStatus:
        return self._status

    def _require_connection(self) -> None:
        if self._status is not ConnectionStatus.CONNECTED:
            raise ConnectionError("RecordingConnector is not connected")

    def note_on(self, note: int, velocity: int, channel: int = 0) -> None:
        self._require_connection()
        self.messages.append(SentMessage("note_on", note, velocity, channel))

    def note_off(self, note: int, channel: int = 0) -> None:
        self._require_connection()
        self.messages.append(SentMessage("note_off", note, 0, channel))

    def all_notes_off(self, channel: int = 0) -> None:
        self._require_connection()
        self.messages.append(SentMessage("all_notes_off", None, 0, channel))

    def of_kind(self, kind: str) -> list[SentMessage]:
        return [m for m in self.messages if m.kind == kind]

    def sounding(self) -> set[tuple[int, int]]:
        """(note, channel) pairs switched on and not yet off."""
        active: set[tuple[int, int]] = set()
        for m in self.messages:
            if m.kind == "note_on":
                active.add((m.note, m.channel))
            elif m.kind == "note_off":
                active.discard((m.note, m.channel))
            elif m.kind == "all_notes_off":
                active = {a for a in active if a[1] != m.channel}
        return active


class MidoConnector(OutputConnector):
    """Sends note commands to a MIDI output port through mido.

    Parameters
    ----------
    port_pattern:
        Case-insensitive regular expression matched against the available
        output port names; the first match is opened (e.g. ``"loop"`` for a
        loopMIDI port feeding a virtual piano).
    virtual:
        Create a virtual output port named *port_pattern* instead of opening
        an existing one (not supported by every backend).
    """

    def __init__(self, port_pattern: str = "loop", virtual: bool = False):
        self.port_pattern = port_pattern
        self.virtual = virtual
        self.port_name: str | None = None
        self._port = None
        self._status = ConnectionStatus.DISCONNECTED

    def _open(self):
        if self.virtual:
            return mido.open_output(self.port_pattern, virtual=True)

        names = mido.get_output_names()
        pattern = re.compile(self.port_pattern, re.IGNORECASE)
        for name in names:
            if pattern.search(name):
                self.port_name = name
                return mido.open_output(name)
        raise ConnectionError(
            f"No MIDI output port matches {self.port_pattern!r}. Available: {', '.join(names) or 'none'}"
        )

    async def connect(self) -> None:
        if self._status is ConnectionStatus.CONNECTED:
            return
        self._status = ConnectionStatus.CONNECTING
        loop = asyncio.get_running_loop()
        try:
            self._port = await loop.run_in_executor(None, self._open)
        except (OSError, IOError) as e:
            self._status = ConnectionStatus.ERROR
            raise ConnectionError(f"Could not open MIDI output: {e}") from e
        self._status = ConnectionStatus.CONNECTED
        logger.info(f"Connected to MIDI output {self.port_name or self.port_pattern!r}")

    async def disconnect(self) -> None:
        if self._port is not None:
            self._port.close()
            self._port = None
            logger.info("MIDI output closed")
        self._status = ConnectionStatus.DISCONNECTED

    def status(self) -> ConnectionStatus:
        return self._status

    def _send(self, message: mido.Message) -> None:
        if self._port is None:
            raise ConnectionError("MIDI output is not connected")
        self._port.send(message)

    def note_on(self, note: int, velocity: int, channel: int = 0) -> None:
        self._send(mido.Message("note_on", note=note, velocity=velocity, channel=channel))

    def note_off(self, note: int, channel: int = 0) -> None:
        self._send(mido.Message("note_off", note=note, velocity=0, channel=channel))

    def all_notes_off(self, channel: int = 0) -> None:
        self._send(mido.Message("control_change", control=_ALL_NOTES_OFF, value=0, channel=channel))
