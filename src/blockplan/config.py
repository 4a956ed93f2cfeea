"""Engine configuration loaded from .blockplan.yml."""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".blockplan.yml"


class ConfigError(Exception):
    """Raised when the configuration file cannot be used."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"Invalid config {path}: {reason}")


@dataclass
class EngineConfig:
    default_priority: int = 2
    max_priority: int = 4
    status_aliases: dict[str, str] = field(default_factory=lambda: {"done": "closed"})
    wave_capacity: int = 3

    def clamp_priority(self, priority: int) -> int:
        return min(self.max_priority, max(0, priority))


def find_config(start: Path | None = None) -> Path | None:
    """Walk up from start (default cwd) to find a .blockplan.yml file."""
    path = (start or Path.cwd()).resolve()
    while True:
        candidate = path / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if path == path.parent:
            return None
        path = path.parent


def load_config(path: Path | None = None) -> EngineConfig:
    """Load config from path, or from the nearest .blockplan.yml, over defaults."""
    if path is None:
        path = find_config()
        if path is None:
            return EngineConfig()

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(path, str(e)) from e

    if data is None:
        return EngineConfig()
    if not isinstance(data, dict):
        raise ConfigError(path, "expected a mapping at the top level")

    known = {f.name for f in fields(EngineConfig)}
    for key in sorted(set(data) - known):
        logger.warning("Ignoring unknown config key %r in %s", key, path)

    overrides = {k: v for k, v in data.items() if k in known}
    config = EngineConfig(**overrides)

    for name in ("default_priority", "max_priority", "wave_capacity"):
        value = getattr(config, name)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigError(path, f"{name} must be an integer")
    if not isinstance(config.status_aliases, dict):
        raise ConfigError(path, "status_aliases must be a mapping")
    # file aliases extend the built-in ones
    config.status_aliases = {**EngineConfig().status_aliases, **config.status_aliases}
    if config.wave_capacity < 1:
        raise ConfigError(path, "wave_capacity must be at least 1")

    return config
