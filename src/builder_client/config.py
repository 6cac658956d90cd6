"""
Client configuration.

Settings are read from a YAML file whose path is passed on the command line
or taken from the BUILDER_CLIENT_CONFIG environment variable. A missing file
yields the defaults below.

Example:

    server:
      url: ws://localhost:8080/3d-ws/websocket
      reconnect_delay: 2.0
    timeline:
      max_time: 60.0
    logging:
      level: DEBUG
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

CONFIG_ENV = "BUILDER_CLIENT_CONFIG"


@dataclass(frozen=True)
class ServerSettings:
    """Connection to the world server."""

    url: str = "ws://localhost:8080/3d-ws/websocket"
    command_destination: str = "/app/send-command"
    world_topic: str = "/topic/world-updates"
    reconnect_delay: float = 5.0
    max_reconnect_attempts: int = 10
    heartbeat_interval: float = 30.0
    connect_timeout: float = 10.0


@dataclass(frozen=True)
class TimelineSettings:
    """Timeline track geometry and clip limits."""

    max_time: float = 60.0
    label_gutter_px: float = 65.0
    min_clip_duration: float = 0.1

    def __post_init__(self):
        if not math.isfinite(self.max_time) or self.max_time <= 0:
            raise ConfigError(f"timeline.max_time must be positive, got {self.max_time}")
        if not math.isfinite(self.label_gutter_px) or self.label_gutter_px < 0:
            raise ConfigError(f"timeline.label_gutter_px must not be negative, got {self.label_gutter_px}")
        if not 0.1 <= self.min_clip_duration < self.max_time:
            raise ConfigError(
                f"timeline.min_clip_duration must be at least 0.1 and below max_time, got {self.min_clip_duration}"
            )


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    dir: Optional[str] = None
    console: bool = False


@dataclass(frozen=True)
class ClientConfig:
    server: ServerSettings = field(default_factory=ServerSettings)
    timeline: TimelineSettings = field(default_factory=TimelineSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping, raising ConfigError on bad content."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config root in {path} must be a mapping")
    return data


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


def load_config(path: Optional[str] = None) -> ClientConfig:
    """Load the client configuration.

    Args:
        path: Config file path; falls back to the BUILDER_CLIENT_CONFIG env var

    Returns:
        Parsed configuration, or defaults if no file is found

    Raises:
        ConfigError: If the file exists but is malformed
    """
    config_path = path or os.getenv(CONFIG_ENV)
    if not config_path:
        return ClientConfig()

    config_file = Path(config_path).expanduser()
    if not config_file.exists():
        return ClientConfig()

    raw = _load_yaml(config_file)
    server_raw = _section(raw, "server")
    timeline_raw = _section(raw, "timeline")
    logging_raw = _section(raw, "logging")

    defaults = ServerSettings()
    timeline_defaults = TimelineSettings()
    try:
        return ClientConfig(
            server=ServerSettings(
                url=str(server_raw.get("url", defaults.url)),
                command_destination=str(server_raw.get("command_destination", defaults.command_destination)),
                world_topic=str(server_raw.get("world_topic", defaults.world_topic)),
                reconnect_delay=float(server_raw.get("reconnect_delay", defaults.reconnect_delay)),
                max_reconnect_attempts=int(server_raw.get("max_reconnect_attempts", defaults.max_reconnect_attempts)),
                heartbeat_interval=float(server_raw.get("heartbeat_interval", defaults.heartbeat_interval)),
                connect_timeout=float(server_raw.get("connect_timeout", defaults.connect_timeout)),
            ),
            timeline=TimelineSettings(
                max_time=float(timeline_raw.get("max_time", timeline_defaults.max_time)),
                label_gutter_px=float(timeline_raw.get("label_gutter_px", timeline_defaults.label_gutter_px)),
                min_clip_duration=float(timeline_raw.get("min_clip_duration", timeline_defaults.min_clip_duration)),
            ),
            logging=LoggingSettings(
                level=str(logging_raw.get("level", "INFO")),
                dir=logging_raw.get("dir"),
                console=bool(logging_raw.get("console", False)),
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {config_file}: {e}") from e
