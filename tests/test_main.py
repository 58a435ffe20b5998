import sys
import threading

import pytest

import main
from smf_builder import ev, minimal_song, smf, track


@pytest.fixture(autouse=True)
def keep_excepthooks(monkeypatch):
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)


@pytest.fixture
def song(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "song.mid"
    path.write_bytes(minimal_song())
    return path


def test_list_prints_events(song, capsys) -> None:
    assert main.main([str(song), "--list"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert len(out) == 2
    assert "noteOn" in out[0] and "note=60" in out[0] and "len=500.0" in out[0]
    assert "noteOff" in out[1]


def test_list_reversed_with_shift(song, capsys) -> None:
    assert main.main([str(song), "--list", "--reverse", "--note-shift", "-21"]) == 0
    out = capsys.readouterr().out
    assert "note=39" in out


def test_plays_file(song) -> None:
    assert main.main([str(song), "--speed", "50"]) == 0


def test_missing_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert main.main([str(tmp_path / "nope.mid")]) == 1


def test_bad_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "bad.mid"
    path.write_bytes(smf(track(ev(0, 0xF4, 0, 0))))
    assert main.main([str(path)]) == 1


def test_config_from_args() -> None:
    args = main.build_parser().parse_args(["x.mid", "--speed", "1.5", "--note-shift", "-21", "--log-level", "DEBUG"])
    cfg = main.config_from_args(args)
    assert cfg.playback.speed == 1.5
    assert cfg.playback.note_shift == -21
    assert cfg.log.level == "DEBUG"


def test_main_installs_crash_hooks(song) -> None:
    hooks = (sys.excepthook, threading.excepthook)
    assert main.main([str(song), "--list"]) == 0
    assert sys.excepthook is not hooks[0]
    assert threading.excepthook is not hooks[1]
