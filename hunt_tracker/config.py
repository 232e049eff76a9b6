from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class TrackerConfig:
    player: str = ""
    log_path: str = ""
    tick_interval: float = 0.25
    watch_interval: float = 0.25
    host: str = "127.0.0.1"
    port: int = 8775
    autosave: bool = True
    patterns_file: Optional[str] = None

    def with_overrides(self, **overrides: Any) -> "TrackerConfig":
        """Copy with every override that is not None applied."""
        return _coerce(replace(self, **{k: v for k, v in overrides.items() if v is not None}))


def default_config_yaml() -> str:
    return """
# Avatar name exactly as it appears in global announcements
player: ""
# Path to the game's chat.log
log_path: ""
tick_interval: 0.25
watch_interval: 0.25
host: 127.0.0.1
port: 8775
autosave: true
# Optional YAML pattern catalogue replacing the built-in one
patterns_file: null
"""


def _coerce(cfg: TrackerConfig) -> TrackerConfig:
    try:
        out = replace(
            cfg,
            player=str(cfg.player or ""),
            log_path=str(cfg.log_path or ""),
            tick_interval=float(cfg.tick_interval),
            watch_interval=float(cfg.watch_interval),
            host=str(cfg.host),
            port=int(cfg.port),
            autosave=bool(cfg.autosave),
            patterns_file=str(cfg.patterns_file) if cfg.patterns_file else None,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid configuration value: {e}") from e
    if out.tick_interval <= 0 or out.watch_interval <= 0:
        raise ConfigError("tick_interval and watch_interval must be positive")
    if not 0 <= out.port <= 65535:
        raise ConfigError(f"port out of range: {out.port}")
    return out


def load_config(path: Path) -> TrackerConfig:
    if not path.exists():
        return TrackerConfig()
    try:
        data: Dict[str, Any] = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    known = {f.name for f in fields(TrackerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"{path}: unknown keys: {', '.join(unknown)}")
    return _coerce(TrackerConfig(**data))
