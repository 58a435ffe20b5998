# ========================= config.py =========================
from dataclasses import dataclass, field

@dataclass
class PlaybackConfig:
    speed: float = 1.0    # playback-rate multiplier
    note_shift: int = 0   # added to every note on load (piano: -21)

@dataclass
class LogConfig:
    level: str = "INFO"
    log_file: str = "app.log"
    max_bytes: int = 2 * 1024 * 1024
    backup_count: int = 3

@dataclass
class AppConfig:
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    log: LogConfig = field(default_factory=LogConfig)
