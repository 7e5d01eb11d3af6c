import asyncio
import logging

import psutil

from portkiller import datatype
from portkiller.errors import CommandFailed
from .abstract_scanner import AbstractScanner

LOGGER = logging.getLogger(__name__)

LSOF_ARGS = ["lsof", "-iTCP", "-sTCP:LISTEN", "-P", "-n", "+c", "0"]


def extract_pids(output: str) -> set[int]:
    pids = set()
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 2 and parts[1].isdigit():
            pids.add(int(parts[1]))
    return pids


def get_commands(pids: set[int]) -> dict[int, str]:
    commands = {}
    for pid in pids:
        try:
            cmdline = psutil.Process(pid).cmdline()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
        if cmdline:
            commands[pid] = " ".join(cmdline)
    return commands


def parse_address(address: str) -> tuple[str, int] | None:
    """
    Split "127.0.0.1:3000", "*:8080" or "[::1]:3000" into (address, port).
    """
    if address.startswith("["):
        host, sep, port_str = address.partition("]:")
        if not sep:
            return None
        host += "]"
    else:
        host, sep, port_str = address.rpartition(":")
        if not sep:
            return None
    if not port_str.isdigit():
        return None
    return host or "*", int(port_str)


def parse_lsof(output: str, commands: dict[int, str] | None = None) -> list[datatype.PortInfo]:
    """
    Parse `lsof -iTCP -sTCP:LISTEN -P -n` output. Example line:

        node     34805  code   19u  IPv6 0x3d8015e195af1f3f      0t0  TCP [::1]:3000 (LISTEN)
    """
    commands = commands or {}
    ports = []
    seen = set()

    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 9:
            continue

        # lsof escapes special characters in names, e.g. "Code\x20Helper"
        process_name = parts[0].replace("\\x20", " ").replace("\\x2f", "/")
        if not parts[1].isdigit():
            continue
        pid = int(parts[1])
        user = parts[2]
        fd = parts[3]

        address_part = ""
        for comp in reversed(parts[8:]):
            if ":" in comp and not comp.startswith(("0x", "0t")):
                address_part = comp
                break
        if not address_part:
            continue

        parsed = parse_address(address_part)
        if parsed is None:
            continue
        address, port = parsed

        if (port, pid) in seen:
            continue
        try:
            info = datatype.PortInfo.active(
                port=port,
                pid=pid,
                process_name=process_name,
                address=address,
                user=user,
                command=commands.get(pid, process_name),
                fd=fd,
            )
        except ValueError:
            LOGGER.debug("Skipping unparsable lsof line: %s", line)
            continue
        seen.add((port, pid))
        ports.append(info)

    return ports


class DarwinScanner(AbstractScanner):
    async def scan(self) -> list[datatype.PortInfo]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *LSOF_ARGS,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise CommandFailed(f"Failed to run lsof: {e}") from e

        # communicate() drains stdout before waiting, so a large table can't block lsof
        stdout, _ = await proc.communicate()
        output = stdout.decode("utf-8", errors="replace")

        # lsof exits with 1 when nothing matched
        if proc.returncode not in (0, 1):
            raise CommandFailed(f"lsof exited with status {proc.returncode}")
        if not output.strip():
            return []

        commands = await asyncio.to_thread(get_commands, extract_pids(output))
        ports = parse_lsof(output, commands)
        LOGGER.debug("lsof reported %i listening ports", len(ports))
        return ports
