"""Exception hierarchy shared by ingestion and playback."""


class PianoTeachError(Exception):
    """Base class for every error raised by pianoteach."""


class IngestError(PianoTeachError):
    """A song could not be built from its MIDI input. No partial entry exists."""


class TimelineError(IngestError):
    """Malformed tempo or time-signature timeline."""


class MeasureRangeError(IngestError):
    """A note resolved to a measure outside the song."""


class SessionError(PianoTeachError):
    """Playback failed; the session is left in its last stable state."""


class ConnectorNotConnectedError(SessionError):
    """play() was called before the output connector connected."""


class SessionStateError(SessionError):
    """The requested transition is not allowed from the current state."""
