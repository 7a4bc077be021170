"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Ingestion
    split_point: int = 60  # notes below middle C lean left hand
    chord_tolerance: float = 0.03  # seconds between onsets merged into one chord
    default_bpm: float = 120.0
    default_ticks_per_beat: int = 480
    max_batch_songs: int = 200

    # Playback
    default_velocity: int = 80
    default_channel: int = 0
    min_tempo: float = 10.0
    max_tempo: float = 400.0
    max_speed: float = 4.0
    progress_interval: float = 0.1  # fraction of the song between progress callbacks
    midi_port: str = "loop"  # case-insensitive pattern for the output port name

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_prefix": "PIANOTEACH_"}


settings = Settings()
