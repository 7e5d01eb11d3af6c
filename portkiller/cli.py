import sys
import json
import asyncio
import logging
import argparse

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from portkiller import __version__
from portkiller.config import ConfigStore
from portkiller.datatype import ProcessType
from portkiller.errors import PortKillerError
from portkiller.killer import BaseProcessKiller, MockProcessKiller, get_killer
from portkiller.port_filter import PortFilter, filter_ports
from portkiller.scanner import AbstractScanner, get_scanner

LOGGER = logging.getLogger(__name__)

console = Console(highlight=False)


def port_number(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port must be between 1 and 65535, got {port}")
    return port


def make_scanner(args) -> AbstractScanner:
    if args.mock:
        from portkiller.scanner.mock import MockScanner

        return MockScanner()
    return get_scanner()


def make_killer(args) -> BaseProcessKiller:
    if args.mock:
        return MockProcessKiller()
    return get_killer()


def make_store(args) -> ConfigStore:
    return ConfigStore(args.config)


def print_json(data) -> None:
    print(json.dumps(data, indent=2))


async def cmd_list(args) -> int:
    ports = await make_scanner(args).scan()
    store = make_store(args)
    favorites = await store.get_favorites()
    watched = await store.get_watched_ports()

    port_filter = (
        PortFilter()
        .with_search(args.search or "")
        .with_port_range(args.min_port, args.max_port)
        .with_favorites_only(args.favorites)
        .with_watched_only(args.watched)
    )
    if args.type:
        port_filter = port_filter.with_process_types(ProcessType(t) for t in args.type)

    ports = sorted(filter_ports(ports, port_filter, favorites, watched), key=lambda p: (p.port, p.pid))

    if args.json:
        print_json([p.to_dict() for p in ports])
        return 0

    if not ports:
        console.print("No listening ports found.")
        return 0

    watched_ports = {w.port for w in watched}
    table = Table(box=None, header_style="bold")
    for column in ("", "PORT", "PID", "PROCESS", "TYPE", "ADDRESS", "USER", "COMMAND"):
        table.add_column(column)
    for p in ports:
        marks = ("★" if p.port in favorites else " ") + ("👁" if p.port in watched_ports else " ")
        table.add_row(
            marks,
            f"[bold cyan]{p.port}[/]",
            str(p.pid),
            escape(p.process_name),
            p.process_type.value,
            p.display_address,
            escape(p.user),
            escape(p.command),
        )
    console.print(table)
    return 0


async def cmd_kill(args) -> int:
    ports = await make_scanner(args).scan()
    port_info = next((p for p in ports if p.port == args.port), None)
    if port_info is None:
        console.print(f"No process found on port {args.port}.")
        return 0

    console.print(
        f"Killing {escape(port_info.process_name)} (PID: {port_info.pid}) on port {args.port}"
        f"{escape(' [FORCE]') if args.force else ''}..."
    )
    killer = make_killer(args)
    if args.force:
        killed = await killer.kill(port_info.pid, force=True)
    else:
        killed = await killer.kill_gracefully(port_info.pid)

    if killed:
        console.print("[green]✓[/] Process killed successfully.")
    else:
        console.print("Process already terminated.")
    return 0


async def cmd_favorites(args) -> int:
    store = make_store(args)
    if args.action == "add":
        await store.add_favorite(args.port)
        console.print(f"[green]✓[/] Added port {args.port} to favorites.")
    elif args.action == "remove":
        await store.remove_favorite(args.port)
        console.print(f"[green]✓[/] Removed port {args.port} from favorites.")
    else:
        favorites = sorted(await store.get_favorites())
        if args.json:
            print_json(favorites)
        elif not favorites:
            console.print("No favorite ports.")
        else:
            console.print("Favorite ports:")
            for port in favorites:
                console.print(f"  {port}")
    return 0


async def cmd_watch(args) -> int:
    store = make_store(args)
    if args.action == "add":
        watched = await store.get_watched_ports()
        if any(w.port == args.port for w in watched):
            console.print(f"Port {args.port} is already being watched.")
            return 0

        wp = await store.add_watched_port(args.port)
        if not args.on_start or not args.on_stop:
            wp = await store.update_watched_port(args.port, args.on_start, args.on_stop)
        console.print(
            f"[green]✓[/] Now watching port {wp.port} "
            f"(notify: start={wp.notify_on_start}, stop={wp.notify_on_stop})"
        )
    elif args.action == "remove":
        await store.remove_watched_port(args.port)
        console.print(f"[green]✓[/] Stopped watching port {args.port}.")
    else:
        watched = await store.get_watched_ports()
        if args.json:
            print_json([w.to_dict() for w in watched])
        elif not watched:
            console.print("No watched ports.")
        else:
            table = Table(title="Watched ports", box=None, header_style="bold")
            table.add_column("PORT")
            table.add_column("ON START")
            table.add_column("ON STOP")
            for w in watched:
                table.add_row(
                    str(w.port),
                    "✓" if w.notify_on_start else "-",
                    "✓" if w.notify_on_stop else "-",
                )
            console.print(table)
    return 0


async def cmd_config(args) -> int:
    store = make_store(args)
    favorites = sorted(await store.get_favorites())
    watched = await store.get_watched_ports()

    if args.json:
        print_json({"favorites": favorites, "watched_ports": [w.to_dict() for w in watched]})
        return 0

    console.print(f"Configuration ({escape(str(store.path))})\n")
    console.print("Favorites:")
    if not favorites:
        console.print("  (none)")
    for port in favorites:
        console.print(f"  {port}")

    console.print("\nWatched Ports:")
    if not watched:
        console.print("  (none)")
    for w in watched:
        console.print(
            f"  {w.port} (start: {'✓' if w.notify_on_start else '✗'}, "
            f"stop: {'✓' if w.notify_on_stop else '✗'})"
        )
    return 0


def run_tui(args) -> int:
    from portkiller.session import Session
    from portkiller.tui import PortKillerApp, configure_file_logging

    configure_file_logging()
    session = asyncio.run(Session.create(make_scanner(args), make_killer(args), make_store(args)))
    app = PortKillerApp(session)
    app.run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portkiller",
        description=(
            "Find which processes are listening on which ports, and free them. "
            "Without a command an interactive dashboard is started that refreshes "
            "automatically; favorite and watched ports are kept in a config file."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--mock", action="store_true", help="Use a fixed mock port table and never signal real processes")
    parser.add_argument("--config", metavar="PATH", help="Config file (default: ~/.portkiller/config.json)")
    subparsers = parser.add_subparsers(dest="command")

    list_parser = subparsers.add_parser("list", help="List listening ports")
    list_parser.add_argument("--json", action="store_true", help="Output JSON")
    list_parser.add_argument("-s", "--search", help="Match process name, port or command")
    list_parser.add_argument("--min-port", type=port_number)
    list_parser.add_argument("--max-port", type=port_number)
    list_parser.add_argument(
        "-t",
        "--type",
        nargs="+",
        choices=[t.value for t in ProcessType],
        help="Only show these process types",
    )
    list_parser.add_argument("--favorites", action="store_true", help="Only show favorite ports")
    list_parser.add_argument("--watched", action="store_true", help="Only show watched ports")
    list_parser.set_defaults(handler=cmd_list)

    kill_parser = subparsers.add_parser("kill", help="Kill the process listening on a port")
    kill_parser.add_argument("port", type=port_number)
    kill_parser.add_argument("-f", "--force", action="store_true", help="Skip the graceful stop")
    kill_parser.set_defaults(handler=cmd_kill)

    fav_parser = subparsers.add_parser("favorites", help="Manage favorite ports")
    fav_sub = fav_parser.add_subparsers(dest="action", required=True)
    for action in ("add", "remove"):
        p = fav_sub.add_parser(action)
        p.add_argument("port", type=port_number)
    fav_list = fav_sub.add_parser("list")
    fav_list.add_argument("--json", action="store_true")
    fav_parser.set_defaults(handler=cmd_favorites)

    watch_parser = subparsers.add_parser("watch", help="Manage watched ports")
    watch_sub = watch_parser.add_subparsers(dest="action", required=True)
    watch_add = watch_sub.add_parser("add")
    watch_add.add_argument("port", type=port_number)
    watch_add.add_argument(
        "--no-start", dest="on_start", action="store_false", help="Don't notify when the port starts"
    )
    watch_add.add_argument("--no-stop", dest="on_stop", action="store_false", help="Don't notify when the port stops")
    watch_remove = watch_sub.add_parser("remove")
    watch_remove.add_argument("port", type=port_number)
    watch_list = watch_sub.add_parser("list")
    watch_list.add_argument("--json", action="store_true")
    watch_parser.set_defaults(handler=cmd_watch)

    config_parser = subparsers.add_parser("config", help="Show the current configuration")
    config_parser.add_argument("--json", action="store_true")
    config_parser.set_defaults(handler=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        if args.command is not None:
            logging.basicConfig(format="[%(asctime)s %(levelname)-5s] %(message)s", datefmt="%H:%M:%S")

    try:
        if args.command is None:
            return run_tui(args)
        return asyncio.run(args.handler(args))
    except PortKillerError as e:
        LOGGER.debug("Command failed", exc_info=True)
        console.print(f"[red]Error:[/] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
