from pathlib import Path

import pytest

from hunt_tracker.config import ConfigError, TrackerConfig, default_config_yaml, load_config


def test_missing_file_gives_defaults(tmp_path: Path):
    assert load_config(tmp_path / "config.yaml") == TrackerConfig()


def test_default_yaml_matches_defaults(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(default_config_yaml(), encoding="utf-8")
    assert load_config(path) == TrackerConfig()


def test_values_are_read_and_coerced(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "player: Aardvark Nolin\nlog_path: /tmp/chat.log\ntick_interval: 1\nport: '9001'\nautosave: false\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.player == "Aardvark Nolin"
    assert cfg.log_path == "/tmp/chat.log"
    assert cfg.tick_interval == 1.0
    assert cfg.port == 9001
    assert cfg.autosave is False


@pytest.mark.parametrize("body", [
    "colour: blue\n",
    "tick_interval: 0\n",
    "watch_interval: -1\n",
    "port: 70000\n",
    "port: lots\n",
    "- just\n- a list\n",
    "player: [unclosed\n",
])
def test_invalid_config_is_rejected(tmp_path: Path, body):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_overrides_skip_none():
    cfg = TrackerConfig(player="A", port=9000).with_overrides(player=None, port=9100, log_path="chat.log")
    assert cfg.player == "A"
    assert cfg.port == 9100
    assert cfg.log_path == "chat.log"
    with pytest.raises(ConfigError):
        cfg.with_overrides(tick_interval=-0.5)
