"""Tests for key-moment matching and teaching hooks."""

import logging

import pytest

from pianoteach.teaching import (
    CallbackTeachingHook,
    CompositeTeachingHook,
    ConsoleTeachingHook,
    Interjection,
    Priority,
    RecordingTeachingHook,
    bar_range,
    detect_key_moments,
)
from tests.conftest import build_song


@pytest.mark.parametrize("moment,expected", [
    ("Bar 9: the melody climbs", (9, 9)),
    ("Bars 3-4: crescendo", (3, 4)),
    ("  bars 12 - 16 : coda", (12, 16)),
    ("BAR 2: watch the thumb", (2, 2)),
    ("Measure 3: not our format", None),
    ("Bars 3 to 4: neither", None),
    ("Bar 5 lacks a colon", None),
])
def test_bar_range(moment, expected):
    assert bar_range(moment) == expected


def test_detect_key_moments_range():
    """'Bars 3-4: crescendo' covers bars 3 and 4 only."""
    song = build_song(measures=6, key_moments=("Bars 3-4: crescendo", "Legato throughout"))
    assert detect_key_moments(song, 2) == []
    assert detect_key_moments(song, 3) == ["Bars 3-4: crescendo"]
    assert detect_key_moments(song, 4) == ["Bars 3-4: crescendo"]
    assert detect_key_moments(song, 5) == []


def test_detect_key_moments_keeps_authored_order():
    song = build_song(measures=4, key_moments=("Bar 2: second", "Bars 1-4: whole piece"))
    assert detect_key_moments(song, 2) == ["Bar 2: second", "Bars 1-4: whole piece"]


@pytest.mark.asyncio
async def test_console_hook_logs(caplog):
    hook = ConsoleTeachingHook()
    with caplog.at_level(logging.INFO):
        await hook.on_measure_start(3, "Keep the pulse", "mf")
        await hook.push(Interjection("Relax your shoulders", Priority.HIGH))
        await hook.on_song_complete(12, "Minuet")
    assert "[Measure 3] (mf) Keep the pulse" in caplog.text
    assert "!! Relax your shoulders" in caplog.text
    assert 'Finished "Minuet": 12 measures played' in caplog.text


@pytest.mark.asyncio
async def test_callback_hook_accepts_sync_and_async():
    seen = []

    async def on_moment(moment):
        seen.append(("moment", moment))

    hook = CallbackTeachingHook(
        on_measure_start=lambda n, note, dyn: seen.append(("start", n)),
        on_key_moment=on_moment,
    )
    await hook.on_measure_start(1)
    await hook.on_key_moment("Bar 1: go")
    await hook.on_song_complete(1, "unset callback is a no-op")
    assert seen == [("start", 1), ("moment", "Bar 1: go")]


@pytest.mark.asyncio
async def test_composite_hook_fans_out_in_order():
    a, b = RecordingTeachingHook(), RecordingTeachingHook()
    hook = CompositeTeachingHook(a, b)
    await hook.push(Interjection("hello"))
    await hook.on_key_moment("Bar 1: x")
    for recorder in (a, b):
        assert [e.type for e in recorder.events] == ["push", "key-moment"]
        assert recorder.of_type("push")[0].interjection.text == "hello"
