import pytest

from builder_client.config import ClientConfig, TimelineSettings, load_config
from builder_client.errors import ConfigError


def test_defaults_without_file():
    config = load_config()
    assert config == ClientConfig()
    assert config.server.url == "ws://localhost:8080/3d-ws/websocket"
    assert config.timeline.max_time == 60.0
    assert config.timeline.label_gutter_px == 65.0


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(str(tmp_path / "nope.yaml")) == ClientConfig()


def test_yaml_overrides_via_env(tmp_path, monkeypatch):
    path = tmp_path / "client.yaml"
    path.write_text(
        "server:\n  url: ws://engine:9000/3d-ws/websocket\n  reconnect_delay: 1\n"
        "timeline:\n  max_time: 120\n"
        "logging:\n  level: DEBUG\n  console: true\n"
    )
    monkeypatch.setenv("BUILDER_CLIENT_CONFIG", str(path))

    config = load_config()
    assert config.server.url == "ws://engine:9000/3d-ws/websocket"
    assert config.server.reconnect_delay == 1.0
    assert config.server.world_topic == "/topic/world-updates"
    assert config.timeline.max_time == 120.0
    assert config.logging.level == "DEBUG"
    assert config.logging.console is True


@pytest.mark.parametrize(
    "content",
    [
        "server: [1, 2\n",
        "- just\n- a list\n",
        "server: nope\n",
        "timeline:\n  max_time: soon\n",
        "timeline:\n  max_time: 0\n",
        "timeline:\n  max_time: -5\n",
        "timeline:\n  min_clip_duration: 0.05\n",
        "timeline:\n  min_clip_duration: 0\n",
        "timeline:\n  label_gutter_px: -1\n",
        "timeline:\n  max_time: .nan\n",
    ],
)
def test_malformed_config_raises(tmp_path, content):
    path = tmp_path / "client.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        load_config(str(path))


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_time": 0},
        {"min_clip_duration": 0.01},
        {"max_time": 5, "min_clip_duration": 5},
        {"label_gutter_px": float("inf")},
    ],
)
def test_timeline_settings_reject_bad_limits(overrides):
    with pytest.raises(ConfigError):
        TimelineSettings(**overrides)


def test_timeline_settings_accept_tight_limits():
    settings = TimelineSettings(max_time=0.5, label_gutter_px=0, min_clip_duration=0.1)
    assert settings.min_clip_duration == 0.1
