"""Teaching subpackage - hook variants and key-moment matching."""

from pianoteach.teaching.hooks import (
    CallbackTeachingHook,
    CompositeTeachingHook,
    ConsoleTeachingHook,
    Interjection,
    Priority,
    RecordingTeachingHook,
    SilentTeachingHook,
    TeachingEvent,
    TeachingHook,
)
from pianoteach.teaching.key_moments import bar_range, detect_key_moments

__all__ = [
    "CallbackTeachingHook",
    "CompositeTeachingHook",
    "ConsoleTeachingHook",
    "Interjection",
    "Priority",
    "RecordingTeachingHook",
    "SilentTeachingHook",
    "TeachingEvent",
    "TeachingHook",
    "bar_range",
    "detect_key_moments",
]
