import asyncio
import logging
import os

from textual import events, on
from textual.app import App, ComposeResult
from textual.message import Message
from textual.widgets import DataTable, Footer, Header, Log, Static

from rich.text import Text

from .datatype import ProcessType
from .port_filter import SortMode
from .session import POLL_INTERVAL, Session

FORMATTER = logging.Formatter("[%(asctime)s %(levelname)-5s] %(message)s", datefmt="%H:%M:%S")

LOGGER = logging.getLogger(__name__)

TYPE_STYLES = {
    ProcessType.WEB_SERVER: "cyan",
    ProcessType.DATABASE: "magenta",
    ProcessType.DEVELOPMENT: "green",
    ProcessType.SYSTEM: "yellow",
    ProcessType.OTHER: "white",
}

HELP_TEXT = (
    "j/k move  g/G first/last  x kill  X force kill  f favorite  w watch  / search  "
    "1/2/0 sort port/name/scan  r refresh  q quit"
)

SORT_KEYS = {"1": SortMode.PORT, "2": SortMode.NAME, "0": SortMode.SCAN}


def configure_file_logging(log_dir: str = "logs") -> None:
    log_dir = os.path.expanduser(log_dir)
    os.makedirs(log_dir, exist_ok=True)

    file_handler = logging.FileHandler(os.path.join(log_dir, "tui.log"))
    file_handler.setFormatter(FORMATTER)

    root_logger = logging.getLogger()
    if root_logger.level == logging.NOTSET or root_logger.level > logging.INFO:
        root_logger.setLevel(logging.INFO)
    root_logger.addHandler(file_handler)


async def handle_key(session: Session, key: str, character: str | None) -> bool:
    """
    Apply one key press to the session. Returns False when the user asked to quit.
    """
    if session.is_searching:
        if key in ("enter", "escape"):
            session.end_search()
        elif key == "backspace":
            session.search_backspace()
        elif character and character.isprintable():
            session.search_input(character)
        return True

    if character == "q" or key == "escape":
        return False

    if character == "r":
        await session.refresh()
    elif character == "j" or key == "down":
        session.next()
    elif character == "k" or key == "up":
        session.previous()
    elif character == "g":
        session.first()
    elif character == "G":
        session.last()
    elif character == "x" or key == "delete":
        await session.kill_selected()
    elif character == "X":
        await session.kill_selected(force=True)
    elif character == "f":
        await session.toggle_favorite()
    elif character == "w":
        await session.toggle_watch()
    elif character == "/":
        session.start_search()
    elif character in SORT_KEYS:
        session.set_sort_mode(SORT_KEYS[character])
    return True


class PortTable(DataTable, can_focus=False):
    """
    The filtered port view. Keys are handled by the app, not the table.
    """

    COLUMNS = ("", "PORT", "PID", "PROCESS", "TYPE", "ADDRESS", "USER", "COMMAND")

    def __init__(self, session: Session):
        super().__init__(cursor_type="row", zebra_stripes=True)
        self.session = session
        self.last_view: tuple | None = None

    def on_mount(self) -> None:
        self.update_view()

    def is_new_view(self, view: tuple) -> bool:
        return view != self.last_view

    def update_view(self) -> None:
        if not self.columns:
            self.add_columns(*self.COLUMNS)

        session = self.session
        filtered = session.filtered_ports()
        view = (tuple(filtered), session.favorites, session.watched)

        if self.is_new_view(view):
            self.last_view = view
            self.clear()
            for port in filtered:
                marks = ("★" if port.port in session.favorites else " ") + (
                    "👁" if port.port in session.watched else " "
                )
                ptype = port.process_type
                self.add_row(
                    Text(marks, style="bold yellow"),
                    Text(str(port.port), style="bold cyan"),
                    str(port.pid),
                    Text(port.process_name, style="blue"),
                    Text(ptype.value, style=TYPE_STYLES[ptype]),
                    port.display_address,
                    port.user,
                    Text(port.command, overflow="ellipsis", no_wrap=True),
                )

        if filtered:
            self.move_cursor(row=session.selected)


class TuiLogHandler(logging.Handler):
    class NewLog(Message):
        """
        This is a message that is sent to the TUI logger.
        """

        def __init__(self, msg: str):
            super().__init__()
            self.msg = msg

    def __init__(self, tui_logger: Log):
        super().__init__()
        self.tui_logger = tui_logger

    def emit(self, record):
        msg = self.format(record)
        try:
            self.tui_logger.post_message(self.NewLog(msg))
        except Exception:
            self.handleError(record)


class PortKillerApp(App):
    CSS = """
    PortTable {
        height: 1fr;
    }
    #status-line {
        height: 1;
        color: yellow;
    }
    #help-line {
        height: 1;
        color: $text-muted;
    }
    #log-widget {
        height: 20%;
    }
    """

    TITLE = "portkiller"

    def __init__(self, session: Session):
        super().__init__()
        self.session = session
        # one session transition at a time; the poll timer runs in its own task
        self.session_lock = asyncio.Lock()
        self.port_table = PortTable(session)
        self.status_line = Static("", id="status-line")
        self.logger = Log(id="log-widget", max_lines=50)
        self.logger.can_focus = False

    @on(TuiLogHandler.NewLog)
    def handle_new_log(self, message: TuiLogHandler.NewLog) -> None:
        """
        These messages are bubbled up from the TUILogHandler.
        """
        self.logger.write_line(message.msg)

    def compose(self) -> ComposeResult:
        yield Header()
        yield self.port_table
        yield self.status_line
        yield Static(HELP_TEXT, id="help-line")
        yield self.logger
        yield Footer()

    def on_mount(self) -> None:
        self.tui_log_handler = TuiLogHandler(self.logger)
        self.tui_log_handler.setLevel(logging.DEBUG)
        self.tui_log_handler.setFormatter(FORMATTER)
        logging.getLogger().addHandler(self.tui_log_handler)

        self.set_interval(POLL_INTERVAL, self.tick)
        self.call_later(self.render_session)

    def on_unmount(self) -> None:
        logging.getLogger().removeHandler(self.tui_log_handler)

    def render_session(self) -> None:
        session = self.session
        self.port_table.update_view()

        count = len(session.filtered_ports())
        self.sub_title = f"{count} of {len(session.ports)} ports"

        status = session.get_status()
        if session.is_searching:
            self.status_line.update(f"/{session.search_query}▏")
        elif status:
            self.status_line.update(status)
        elif session.search_query:
            self.status_line.update(f"filter: {session.search_query}")
        else:
            self.status_line.update("")

    async def tick(self) -> None:
        if self.session_lock.locked():
            return
        async with self.session_lock:
            if self.session.should_refresh():
                LOGGER.debug("Refresh interval elapsed")
                await self.session.refresh()
            self.render_session()

    async def on_key(self, event: events.Key) -> None:
        event.stop()
        async with self.session_lock:
            running = await handle_key(self.session, event.key, event.character)
        if not running:
            self.exit()
            return
        self.render_session()
