import asyncio
import logging

import psutil

from portkiller import datatype
from portkiller.errors import PermissionDenied
from .abstract_scanner import AbstractScanner

LOGGER = logging.getLogger(__name__)


def describe_process(pid: int) -> tuple[str, str, str]:
    """Return (name, user, command) for a pid; fields it cannot read stay empty."""
    try:
        proc = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return "", "", ""

    with proc.oneshot():
        try:
            name = proc.name()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            name = ""
        try:
            user = proc.username()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess, KeyError):
            user = ""
        try:
            command = " ".join(proc.cmdline())
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            command = ""
    return name, user, command


def get_listening_ports() -> list[datatype.PortInfo]:
    try:
        connections = psutil.net_connections(kind="tcp")
    except psutil.AccessDenied as e:
        raise PermissionDenied(f"Permission denied while listing sockets: {e}") from e

    ports = []
    seen = set()
    described: dict[int, tuple[str, str, str]] = {}

    for c in connections:
        if c.status != psutil.CONN_LISTEN or not c.pid or not c.laddr:
            continue
        port = c.laddr.port
        if (port, c.pid) in seen:
            continue
        seen.add((port, c.pid))

        if c.pid not in described:
            described[c.pid] = describe_process(c.pid)
        name, user, command = described[c.pid]

        host = c.laddr.ip
        if host in ("0.0.0.0", "::"):
            host = "*"
        elif ":" in host:
            host = f"[{host}]"

        ports.append(
            datatype.PortInfo.active(
                port=port,
                pid=c.pid,
                process_name=name,
                address=host,
                user=user,
                command=command or name,
                fd=str(c.fd) if c.fd not in (None, -1) else "",
            )
        )
    return ports


class LinuxScanner(AbstractScanner):
    async def scan(self) -> list[datatype.PortInfo]:
        ports = await asyncio.to_thread(get_listening_ports)
        LOGGER.debug("psutil reported %i listening ports", len(ports))
        return ports
