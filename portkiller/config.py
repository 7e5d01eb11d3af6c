import json
import logging
import os
from pathlib import Path

from portkiller.datatype import Config, WatchedPort
from portkiller.errors import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".portkiller" / "config.json"


def default_config_path() -> Path:
    override = os.getenv("PORTKILLER_CONFIG")
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_PATH


class ConfigStore:
    """
    Favorites and watched ports, persisted as JSON.

    Each call reads (and, for mutations, rewrites) the file, so separate calls
    are separate round trips with no atomicity between them.
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else default_config_path()

    def load(self) -> Config:
        try:
            raw = self.path.read_text()
        except FileNotFoundError:
            return Config()
        except OSError as e:
            raise ConfigError(f"Failed to read {self.path}: {e}") from e

        try:
            data = json.loads(raw) if raw.strip() else {}
            return Config(
                favorites=sorted({int(p) for p in data.get("favorites", [])}),
                watched_ports=[WatchedPort.from_dict(w) for w in data.get("watched_ports", [])],
            )
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise ConfigError(f"Invalid config file {self.path}: {e}") from e

    def save(self, config: Config) -> None:
        data = {
            "favorites": sorted(set(config.favorites)),
            "watched_ports": [w.to_dict() for w in config.watched_ports],
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2))
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise ConfigError(f"Failed to write {self.path}: {e}") from e
        LOGGER.debug("Saved config to %s", self.path)

    async def get_favorites(self) -> set[int]:
        return set(self.load().favorites)

    async def add_favorite(self, port: int) -> None:
        config = self.load()
        if port not in config.favorites:
            config.favorites.append(port)
            self.save(config)
        LOGGER.info("Port %i added to favorites", port)

    async def remove_favorite(self, port: int) -> None:
        config = self.load()
        if port in config.favorites:
            config.favorites.remove(port)
            self.save(config)
        LOGGER.info("Port %i removed from favorites", port)

    async def get_watched_ports(self) -> list[WatchedPort]:
        return self.load().watched_ports

    async def add_watched_port(self, port: int) -> WatchedPort:
        config = self.load()
        for watched in config.watched_ports:
            if watched.port == port:
                return watched
        watched = WatchedPort(port)
        config.watched_ports.append(watched)
        self.save(config)
        LOGGER.info("Now watching port %i", port)
        return watched

    async def remove_watched_port(self, port: int) -> None:
        config = self.load()
        remaining = [w for w in config.watched_ports if w.port != port]
        if len(remaining) != len(config.watched_ports):
            config.watched_ports = remaining
            self.save(config)
        LOGGER.info("Stopped watching port %i", port)

    async def update_watched_port(self, port: int, notify_on_start: bool, notify_on_stop: bool) -> WatchedPort:
        config = self.load()
        for watched in config.watched_ports:
            if watched.port == port:
                watched.notify_on_start = notify_on_start
                watched.notify_on_stop = notify_on_stop
                self.save(config)
                return watched
        raise ConfigError(f"Port {port} is not being watched")
