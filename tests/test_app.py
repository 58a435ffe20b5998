import asyncio
import base64
import io

import mido
import pytest

from app import MidiPlayer
from config import PlaybackConfig
from errors import FormatError, ValidationError
from notes.model import NoteEvent
from smf_builder import ev, minimal_song, smf, track


def two_notes() -> bytes:
    return smf(track(
        ev(0, 0x90, 60, 80),
        ev(480, 0x80, 60, 0),
        ev(0, 0x90, 62, 90),
        ev(480, 0x80, 62, 0),
    ))


def test_load_from_bytes_returns_note_events() -> None:
    player = MidiPlayer()
    events = player.load_from_bytes(minimal_song())
    assert [(e.type, e.note, e.timestamp, e.length, e.velocity) for e in events] == [
        ("noteOn", 60, 0.0, 500.0, 80),
        ("noteOff", 60, 500.0, None, 64),
    ]
    assert player.get_duration() == 500.0


def test_load_with_note_shift() -> None:
    player = MidiPlayer()
    shifted = player.load_from_bytes(two_notes(), note_shift=5)
    assert [e.note for e in shifted] == [65, 65, 67, 67]


def test_load_from_base64_data_url() -> None:
    player = MidiPlayer()
    url = "data:audio/mid;base64," + base64.b64encode(minimal_song()).decode()
    assert player.load_from_base64(url) == MidiPlayer().load_from_bytes(minimal_song())


def test_load_from_file(tmp_path) -> None:
    mid = mido.MidiFile(ticks_per_beat=100)
    mid.tracks.append(mido.MidiTrack([
        mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(60)),
        mido.Message("note_on", note=70, velocity=64, time=50),
        mido.Message("note_off", note=70, velocity=64, time=100),
    ]))
    path = tmp_path / "song.mid"
    mid.save(str(path))

    events = MidiPlayer().load_from_file(path)
    assert [(e.type, e.timestamp) for e in events] == [("noteOn", 500.0), ("noteOff", 1500.0)]
    assert events[0].length == 1000.0


def test_failed_load_keeps_previous_events() -> None:
    player = MidiPlayer()
    before = player.load_from_bytes(two_notes())
    stops = []
    player.on_event("stop", stops.append)
    with pytest.raises(FormatError):
        player.load_from_bytes(b"MThd\x00\x00\x00\x06\x00\x00\x00\x01\xe7\x28")
    with pytest.raises(FormatError):
        player.load_from_base64("@@@")
    assert player.get_all_events() == before
    assert stops == []


def test_invalid_events_do_not_replace_loaded_ones() -> None:
    player = MidiPlayer()
    before = player.load_from_bytes(two_notes())
    with pytest.raises(ValidationError):
        player.load_events([{"timestamp": 1, "type": "noteOn"}, {"note": 3}])
    assert player.get_all_events() == before


def test_loading_resets_playback() -> None:
    player = MidiPlayer()
    player.load_from_bytes(two_notes())
    player.seek(600)
    log = []
    player.on_event("stop", lambda e: log.append("stop"))
    player.load_events([NoteEvent(type="noteOn", timestamp=5, note=1)])
    assert log == ["stop"]
    assert player.get_current_time() == 0
    assert player.get_duration() == 5


def test_range_helpers() -> None:
    player = MidiPlayer()
    player.load_from_bytes(two_notes())  # 0, 500, 500, 1000
    assert [e.timestamp for e in player.get_events_in_range(0, 500)] == [0, 500, 500]
    player.seek(500)
    assert [e.timestamp for e in player.get_events_ahead_by(500)] == [500, 500, 1000]
    assert [e.timestamp for e in player.get_events_behind_by(100)] == [500, 500]


def test_add_and_remove_events() -> None:
    player = MidiPlayer()
    player.load_from_bytes(two_notes())
    player.add_event({"timestamp": 2000, "type": "noteOn", "note": 40, "length": 75, "finger": 2})
    assert player.get_duration() == 2000
    assert player.get_all_events()[-1].get("finger") == 2
    assert player.remove_events({"note": 60}) == 2
    assert [e.note for e in player.get_all_events()] == [62, 62, 40]
    with pytest.raises(ValidationError):
        player.add_event({"note": 1})


def test_reverse_twice_round_trip() -> None:
    player = MidiPlayer()
    original = player.load_from_bytes(two_notes())
    reversed_events = player.reverse()
    assert [(e.type, e.note) for e in reversed_events] == [
        ("noteOn", 62), ("noteOff", 62), ("noteOn", 60), ("noteOff", 60),
    ]
    assert player.reverse() == original


def test_callbacks_api() -> None:
    player = MidiPlayer()
    seen = []
    a = player.on_event("noteOn", lambda e: seen.append(("on", e.note)))
    player.on_event({"type": "noteOn", "note": 40}, lambda e: seen.append(("forty", e.note)))
    player.emit(NoteEvent(type="noteOn", timestamp=0, note=40))
    assert seen == [("on", 40), ("forty", 40)]

    assert player.off(a) is True
    assert player.off(a) is False
    seen.clear()
    player.emit(NoteEvent(type="noteOn", timestamp=1, note=40))
    assert seen == [("forty", 40)]

    player.off_all()
    assert player.emit("play") == 0


def test_play_through_the_facade() -> None:
    player = MidiPlayer(PlaybackConfig(speed=25.0))
    player.load_from_bytes(two_notes())
    notes = []
    player.on_event("noteOn", lambda e: notes.append(e.note))
    finished = []
    player.on_event("finish", finished.append)
    asyncio.run(player.play())
    assert notes == [60, 62]
    assert finished == [{"type": "finish"}]
    assert not player.is_playing()
    assert player.get_speed() == 25.0


def test_mido_authored_song_plays_in_order() -> None:
    mid = mido.MidiFile(ticks_per_beat=480)
    trk = mido.MidiTrack()
    for i, n in enumerate([60, 62, 64, 65]):
        trk.append(mido.Message("note_on", note=n, velocity=100, time=0 if i == 0 else 240))
        trk.append(mido.Message("note_off", note=n, velocity=0, time=120))
    mid.tracks.append(trk)
    buf = io.BytesIO()
    mid.save(file=buf)

    player = MidiPlayer(PlaybackConfig(speed=50.0))
    events = player.load_from_bytes(buf.getvalue())
    assert [e.length for e in events if e.type == "noteOn"] == [125.0] * 4
    order = []
    player.on_event({}, lambda e: order.append((e.type, e.note)) if isinstance(e, NoteEvent) else None)
    asyncio.run(player.play())
    assert order == [(e.type, e.note) for e in events]
