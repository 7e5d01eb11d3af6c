import logging
import time
from dataclasses import dataclass
from typing import Callable

from portkiller.config import ConfigStore
from portkiller.datatype import PortInfo
from portkiller.errors import PortKillerError
from portkiller.killer import BaseProcessKiller
from portkiller.port_filter import PortFilter, SortMode, filter_ports, sort_ports
from portkiller.scanner import AbstractScanner

LOGGER = logging.getLogger(__name__)

REFRESH_INTERVAL = 5.0
STATUS_TTL = 3.0
POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class StatusMessage:
    text: str
    created_at: float

    def is_visible(self, now: float) -> bool:
        return now - self.created_at < STATUS_TTL


class Session:
    """
    State of one interactive session: the last scanned port table, the
    favorite/watched snapshots, search text and the selection cursor.

    All mutation goes through the methods below and is expected to happen on
    a single control loop; the collaborators are awaited to completion before
    each method returns. ``selected`` indexes the filtered view, never the
    full table.
    """

    def __init__(
        self,
        scanner: AbstractScanner,
        killer: BaseProcessKiller,
        config: ConfigStore,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.scanner = scanner
        self.killer = killer
        self.config = config
        self.clock = clock

        self._ports: list[PortInfo] = []
        self._favorites: set[int] = set()
        self._watched: set[int] = set()
        self._selected = 0
        self._search_query = ""
        self._searching = False
        self._sort_mode = SortMode.SCAN
        self._status: StatusMessage | None = None
        self.last_refresh = clock()

    @classmethod
    async def create(
        cls,
        scanner: AbstractScanner,
        killer: BaseProcessKiller,
        config: ConfigStore,
        clock: Callable[[], float] = time.monotonic,
    ) -> "Session":
        """Build a session with an initial scan; scan or config errors propagate."""
        session = cls(scanner, killer, config, clock)
        await session._reload()
        return session

    async def _reload(self) -> None:
        ports = await self.scanner.scan()
        favorites = await self.config.get_favorites()
        watched = await self.config.get_watched_ports()

        self._ports = list(ports)
        self._favorites = set(favorites)
        self._watched = {w.port for w in watched}
        self.last_refresh = self.clock()
        self._clamp_selection()

    # read-only views

    @property
    def ports(self) -> tuple[PortInfo, ...]:
        return tuple(self._ports)

    @property
    def favorites(self) -> frozenset[int]:
        return frozenset(self._favorites)

    @property
    def watched(self) -> frozenset[int]:
        return frozenset(self._watched)

    @property
    def selected(self) -> int:
        return self._selected

    @property
    def search_query(self) -> str:
        return self._search_query

    @property
    def is_searching(self) -> bool:
        return self._searching

    @property
    def port_filter(self) -> PortFilter:
        return PortFilter().with_search(self._search_query)

    @property
    def sort_mode(self) -> SortMode:
        return self._sort_mode

    def filtered_ports(self) -> list[PortInfo]:
        filtered = filter_ports(self._ports, self.port_filter, self._favorites, self._watched)
        return sort_ports(filtered, self._sort_mode)

    def selected_port(self) -> PortInfo | None:
        filtered = self.filtered_ports()
        if 0 <= self._selected < len(filtered):
            return filtered[self._selected]
        return None

    # status line

    def set_status(self, text: str) -> None:
        self._status = StatusMessage(text, self.clock())

    def get_status(self) -> str | None:
        if self._status and self._status.is_visible(self.clock()):
            return self._status.text
        return None

    # refresh

    async def refresh(self) -> bool:
        try:
            await self._reload()
        except PortKillerError as e:
            LOGGER.warning("Refresh failed: %s", e)
            # stamp anyway so the poll doesn't retry every tick
            self.last_refresh = self.clock()
            self.set_status(f"Refresh failed: {e}")
            return False
        LOGGER.debug("Refreshed: %i ports", len(self._ports))
        self.set_status("Refreshed")
        return True

    def should_refresh(self) -> bool:
        return self.clock() - self.last_refresh >= REFRESH_INTERVAL

    def _clamp_selection(self) -> None:
        length = len(self.filtered_ports())
        if length == 0:
            self._selected = 0
        elif self._selected >= length:
            self._selected = length - 1

    # navigation

    def next(self) -> None:
        length = len(self.filtered_ports())
        if length:
            self._selected = (self._selected + 1) % length

    def previous(self) -> None:
        length = len(self.filtered_ports())
        if length:
            self._selected = (self._selected - 1) % length

    def first(self) -> None:
        if self.filtered_ports():
            self._selected = 0

    def last(self) -> None:
        length = len(self.filtered_ports())
        if length:
            self._selected = length - 1

    def set_sort_mode(self, mode: SortMode) -> None:
        """Reorder the view, keeping the cursor on the same process."""
        current = self.selected_port()
        self._sort_mode = mode
        if current is not None:
            self._selected = self.filtered_ports().index(current)
        self.set_status(f"Sorted by {mode.value}")

    # actions on the selected port

    async def kill_selected(self, force: bool = False) -> None:
        port = self.selected_port()
        if port is None:
            return

        try:
            if force:
                killed = await self.killer.kill(port.pid, force=True)
            else:
                killed = await self.killer.kill_gracefully(port.pid)
        except PortKillerError as e:
            LOGGER.error("Failed to kill %s (pid %i): %s", port.process_name, port.pid, e)
            self.set_status(f"Failed to kill: {e}")
            return

        if not killed:
            self.set_status(f"Process {port.pid} already terminated")
            return

        LOGGER.info("Killed %s on port %i%s", port.process_name, port.port, " (forced)" if force else "")
        if await self.refresh():
            self.set_status(f"Killed {port.process_name} on port {port.port}")

    async def toggle_favorite(self) -> None:
        port = self.selected_port()
        if port is None:
            return

        try:
            if port.port in self._favorites:
                await self.config.remove_favorite(port.port)
                self._favorites.discard(port.port)
                self.set_status(f"Removed {port.port} from favorites")
            else:
                await self.config.add_favorite(port.port)
                self._favorites.add(port.port)
                self.set_status(f"Added {port.port} to favorites")
        except PortKillerError as e:
            LOGGER.error("Failed to update favorites: %s", e)
            self.set_status(f"Failed to update favorites: {e}")

    async def toggle_watch(self) -> None:
        port = self.selected_port()
        if port is None:
            return

        try:
            if port.port in self._watched:
                await self.config.remove_watched_port(port.port)
                self._watched.discard(port.port)
                self.set_status(f"Stopped watching {port.port}")
            else:
                await self.config.add_watched_port(port.port)
                self._watched.add(port.port)
                self.set_status(f"Now watching {port.port}")
        except PortKillerError as e:
            LOGGER.error("Failed to update watched ports: %s", e)
            self.set_status(f"Failed to update watched ports: {e}")

    # search mode

    def start_search(self) -> None:
        self._searching = True
        self._search_query = ""
        self._selected = 0

    def end_search(self) -> None:
        self._searching = False

    def search_input(self, char: str) -> None:
        self._search_query += char
        self._selected = 0

    def search_backspace(self) -> None:
        self._search_query = self._search_query[:-1]
        self._selected = 0
