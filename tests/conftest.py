"""Pytest fixtures shared by the portkiller tests."""

import pytest

from portkiller.config import ConfigStore
from portkiller.datatype import PortInfo
from portkiller.errors import PortKillerError
from portkiller.killer import BaseProcessKiller
from portkiller.scanner.mock import MockScanner


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeKiller(BaseProcessKiller):
    """
    Killer that never touches real processes. ``results`` maps a pid to the
    value kill_gracefully should return, or an exception to raise.
    """

    def __init__(self, results: dict | None = None):
        super().__init__(grace_period=0)
        self.results = results or {}
        self.calls: list[tuple[int, bool]] = []

    async def kill(self, pid: int, force: bool = False) -> bool:
        self.calls.append((pid, force))
        result = self.results.get(pid, True)
        if isinstance(result, PortKillerError):
            raise result
        return result

    async def is_running(self, pid: int) -> bool:
        return False


def make_sample_ports() -> list[PortInfo]:
    return [
        PortInfo.active(3000, 1234, "node", "*", "user", "node server.js", "19u"),
        PortInfo.active(5432, 5678, "postgres", "*", "postgres", "postgres", "6u"),
        PortInfo.active(80, 1, "nginx", "*", "root", "nginx", "6u"),
        PortInfo.active(8080, 9999, "java", "*", "user", "java -jar app.jar", "10u"),
    ]


@pytest.fixture
def sample_ports() -> list[PortInfo]:
    return make_sample_ports()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def killer() -> FakeKiller:
    return FakeKiller()


@pytest.fixture
def scanner(sample_ports) -> MockScanner:
    return MockScanner(sample_ports)


@pytest.fixture
def config_store(tmp_path) -> ConfigStore:
    return ConfigStore(tmp_path / "config.json")
