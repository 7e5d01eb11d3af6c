import asyncio
import csv
import errno
import logging
import os
import signal
import sys

from abc import ABC, abstractmethod

from portkiller.errors import CommandFailed, KillFailed, PermissionDenied

LOGGER = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 0.5


class BaseProcessKiller(ABC):
    """
    Terminates processes by pid.

    ``kill`` sends a single signal; ``kill_gracefully`` asks nicely, waits
    ``grace_period`` seconds, then forces. The only state is the grace
    period, so one instance can be shared freely.
    """

    def __init__(self, grace_period: float = DEFAULT_GRACE_PERIOD):
        self.grace_period = grace_period

    @abstractmethod
    async def kill(self, pid: int, force: bool = False) -> bool:
        """
        Returns True if the signal was delivered, False if the process did not
        exist. Raises PermissionDenied or KillFailed otherwise.
        """

    @abstractmethod
    async def is_running(self, pid: int) -> bool:
        pass

    async def kill_gracefully(self, pid: int) -> bool:
        graceful = await self.kill(pid, force=False)
        if graceful:
            LOGGER.debug("Sent graceful stop to %i, waiting %.2fs", pid, self.grace_period)
            await asyncio.sleep(self.grace_period)

        # Always escalate, even when the first signal found nothing: the pid
        # may have been reused in between, which is an accepted race.
        return await self.kill(pid, force=True)

    @staticmethod
    def _check_pid(pid: int) -> None:
        # pid 0 and negative pids address process groups
        if pid <= 0:
            raise KillFailed(pid, "invalid process id")


class PosixProcessKiller(BaseProcessKiller):
    async def kill(self, pid: int, force: bool = False) -> bool:
        self._check_pid(pid)
        sig = signal.SIGKILL if force else signal.SIGTERM
        try:
            os.kill(pid, sig)
        except OSError as e:
            if e.errno == errno.ESRCH:
                return False
            if e.errno == errno.EPERM:
                raise PermissionDenied(f"Permission denied to kill process {pid}") from e
            raise KillFailed(pid, e.strerror or str(e)) from e
        LOGGER.info("Sent %s to process %i", sig.name, pid)
        return True

    async def is_running(self, pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except OSError as e:
            # EPERM: the process exists but belongs to someone else
            return e.errno == errno.EPERM
        return True


async def run_command(*args: str) -> tuple[int, str, str]:
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandFailed(f"Failed to run {args[0]}: {e}") from e
    stdout, stderr = await proc.communicate()
    return (
        proc.returncode,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )


class WindowsProcessKiller(BaseProcessKiller):
    """
    taskkill only offers forced termination, so both stages of the graceful
    protocol issue the same command. Whether a failure means "no such
    process" is guessed from the message text; treat it as best effort.
    """

    NOT_FOUND_MARKERS = ("not found", "No such process")
    DENIED_MARKERS = ("Access is denied",)

    async def kill(self, pid: int, force: bool = False) -> bool:
        self._check_pid(pid)
        returncode, stdout, stderr = await run_command("taskkill", "/F", "/PID", str(pid))
        if returncode == 0:
            LOGGER.info("taskkill terminated process %i", pid)
            return True

        message = stderr or stdout
        if any(marker in message for marker in self.NOT_FOUND_MARKERS):
            return False
        if any(marker in message for marker in self.DENIED_MARKERS):
            raise PermissionDenied(f"Permission denied to kill process {pid}")
        raise KillFailed(pid, message.strip())

    async def is_running(self, pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            _, stdout, _ = await run_command("tasklist", "/FI", f"PID eq {pid}", "/FO", "CSV", "/NH")
        except CommandFailed:
            return False
        # "image","pid","session","session#","mem usage"
        return any(len(row) > 1 and row[1] == str(pid) for row in csv.reader(stdout.splitlines()))


class MockProcessKiller(BaseProcessKiller):
    """
    Pairs with MockScanner: remembers which pids it was asked to kill and
    never signals a real process.
    """

    def __init__(self, grace_period: float = 0):
        super().__init__(grace_period)
        self.killed: set[int] = set()

    async def kill(self, pid: int, force: bool = False) -> bool:
        self._check_pid(pid)
        if pid in self.killed:
            return False
        if force:
            self.killed.add(pid)
        LOGGER.info("mock: %s process %i", "killed" if force else "stopping", pid)
        return True

    async def is_running(self, pid: int) -> bool:
        return pid > 0 and pid not in self.killed


def get_killer(grace_period: float = DEFAULT_GRACE_PERIOD, platform: str = sys.platform) -> BaseProcessKiller:
    if platform.startswith("win32"):
        return WindowsProcessKiller(grace_period)
    return PosixProcessKiller(grace_period)
