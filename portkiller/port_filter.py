from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable

from .datatype import ALL_PROCESS_TYPES, PortInfo, ProcessType, WatchedPort


def _watched_port_numbers(watched: Iterable[int | WatchedPort]) -> set[int]:
    return {w.port if isinstance(w, WatchedPort) else int(w) for w in watched}


@dataclass(frozen=True)
class PortFilter:
    """
    Filter criteria for port listings.

    Every ``with_*`` method returns a new filter; the default filter lets
    everything through. ``process_types`` defaults to every known type, so
    "no restriction" is a full set rather than an empty one.
    """

    search_text: str = ""
    min_port: int | None = None
    max_port: int | None = None
    process_types: frozenset[ProcessType] = field(default_factory=lambda: ALL_PROCESS_TYPES)
    show_only_favorites: bool = False
    show_only_watched: bool = False

    def is_active(self) -> bool:
        return (
            bool(self.search_text)
            or self.min_port is not None
            or self.max_port is not None
            or len(self.process_types) < len(ALL_PROCESS_TYPES)
            or self.show_only_favorites
            or self.show_only_watched
        )

    def matches(
        self,
        port: PortInfo,
        favorites: Iterable[int] = (),
        watched: Iterable[int | WatchedPort] = (),
    ) -> bool:
        if self.search_text and not port.matches_search(self.search_text):
            return False
        if self.min_port is not None and port.port < self.min_port:
            return False
        if self.max_port is not None and port.port > self.max_port:
            return False
        if self.process_types and port.process_type not in self.process_types:
            return False
        if self.show_only_favorites and port.port not in set(favorites):
            return False
        if self.show_only_watched and port.port not in _watched_port_numbers(watched):
            return False
        return True

    def reset(self) -> "PortFilter":
        return PortFilter()

    def with_search(self, text: str) -> "PortFilter":
        return replace(self, search_text=text)

    def with_port_range(self, min_port: int | None, max_port: int | None) -> "PortFilter":
        return replace(self, min_port=min_port, max_port=max_port)

    def with_process_types(self, types: Iterable[ProcessType]) -> "PortFilter":
        return replace(self, process_types=frozenset(types))

    def with_favorites_only(self, enabled: bool) -> "PortFilter":
        return replace(self, show_only_favorites=enabled)

    def with_watched_only(self, enabled: bool) -> "PortFilter":
        return replace(self, show_only_watched=enabled)


def filter_ports(
    ports: Iterable[PortInfo],
    port_filter: PortFilter,
    favorites: Iterable[int] = (),
    watched: Iterable[int | WatchedPort] = (),
) -> list[PortInfo]:
    """Return the ports matching ``port_filter``, in their original order."""
    favorites = set(favorites)
    watched = _watched_port_numbers(watched)
    return [p for p in ports if port_filter.matches(p, favorites, watched)]


class SortMode(str, Enum):
    """Display order of the filtered view. SCAN keeps the scanner's order."""

    SCAN = "scan"
    PORT = "port"
    NAME = "name"


def sort_ports(ports: Iterable[PortInfo], mode: SortMode = SortMode.SCAN) -> list[PortInfo]:
    if mode == SortMode.PORT:
        return sorted(ports, key=lambda p: (p.port, p.pid))
    if mode == SortMode.NAME:
        return sorted(ports, key=lambda p: (p.process_name.lower(), p.port, p.pid))
    return list(ports)
