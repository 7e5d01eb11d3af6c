"""Tests for process termination."""

import errno
import os
import signal
import subprocess
import sys

import pytest

from portkiller import killer as killer_module
from portkiller.errors import KillFailed, PermissionDenied
from portkiller.killer import (
    DEFAULT_GRACE_PERIOD,
    MockProcessKiller,
    PosixProcessKiller,
    WindowsProcessKiller,
    get_killer,
)

NONEXISTENT_PID = 999999999

posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX signals")


class TestKillerConstruction:
    """Tests for grace period and platform selection."""

    def test_default_grace_period(self):
        assert get_killer().grace_period == DEFAULT_GRACE_PERIOD == 0.5

    def test_custom_grace_period(self):
        assert get_killer(grace_period=2).grace_period == 2

    def test_platform_selection(self):
        assert isinstance(get_killer(platform="linux"), PosixProcessKiller)
        assert isinstance(get_killer(platform="darwin"), PosixProcessKiller)
        assert isinstance(get_killer(platform="win32"), WindowsProcessKiller)


@posix_only
class TestPosixProcessKiller:
    """Tests for the signal based killer."""

    @pytest.mark.asyncio
    async def test_kill_nonexistent_process(self):
        assert await PosixProcessKiller().kill(NONEXISTENT_PID, force=False) is False

    @pytest.mark.asyncio
    async def test_kill_gracefully_nonexistent_process(self):
        killer = PosixProcessKiller(grace_period=0)
        assert await killer.kill_gracefully(NONEXISTENT_PID) is False

    @pytest.mark.asyncio
    async def test_is_running(self):
        killer = PosixProcessKiller()
        assert await killer.is_running(os.getpid())
        assert not await killer.is_running(NONEXISTENT_PID)
        assert not await killer.is_running(0)

    @pytest.mark.asyncio
    async def test_signals_sent(self, monkeypatch):
        sent = []
        monkeypatch.setattr(killer_module.os, "kill", lambda pid, sig: sent.append((pid, sig)))

        killer = PosixProcessKiller(grace_period=0)
        assert await killer.kill(42) is True
        assert await killer.kill(42, force=True) is True
        assert sent == [(42, signal.SIGTERM), (42, signal.SIGKILL)]

    @pytest.mark.asyncio
    async def test_permission_denied(self, monkeypatch):
        def deny(pid, sig):
            raise PermissionError(errno.EPERM, "Operation not permitted")

        monkeypatch.setattr(killer_module.os, "kill", deny)
        with pytest.raises(PermissionDenied, match="42"):
            await PosixProcessKiller().kill(42)

    @pytest.mark.asyncio
    async def test_other_errors_are_kill_failed(self, monkeypatch):
        def fail(pid, sig):
            raise OSError(errno.EINVAL, "Invalid argument")

        monkeypatch.setattr(killer_module.os, "kill", fail)
        with pytest.raises(KillFailed) as exc_info:
            await PosixProcessKiller().kill(42)
        assert exc_info.value.pid == 42
        assert exc_info.value.reason == "Invalid argument"

    @pytest.mark.asyncio
    async def test_rejects_process_group_pids(self, monkeypatch):
        monkeypatch.setattr(killer_module.os, "kill", pytest.fail)
        for pid in (0, -1):
            with pytest.raises(KillFailed):
                await PosixProcessKiller().kill(pid)

    @pytest.mark.asyncio
    async def test_kill_gracefully_real_process(self):
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
        try:
            killer = PosixProcessKiller(grace_period=0.1)
            assert await killer.kill_gracefully(child.pid) in (True, False)
            assert child.wait(timeout=5) is not None
        finally:
            if child.poll() is None:
                child.kill()
                child.wait()


class TestGracefulProtocol:
    """Tests for the two stage kill_gracefully protocol."""

    @pytest.fixture
    def record_kills(self, monkeypatch):
        calls = []
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        monkeypatch.setattr(killer_module.asyncio, "sleep", fake_sleep)
        return calls, sleeps

    @staticmethod
    def scripted_killer(results, calls):
        class ScriptedKiller(PosixProcessKiller):
            async def kill(self, pid, force=False):
                calls.append(force)
                return results[len(calls) - 1]

        return ScriptedKiller(grace_period=0.25)

    @pytest.mark.asyncio
    async def test_waits_then_forces(self, record_kills):
        calls, sleeps = record_kills
        killer = self.scripted_killer([True, True], calls)

        assert await killer.kill_gracefully(7) is True
        assert calls == [False, True]
        assert sleeps == [0.25]

    @pytest.mark.asyncio
    async def test_exited_during_grace_period(self, record_kills):
        calls, sleeps = record_kills
        killer = self.scripted_killer([True, False], calls)

        assert await killer.kill_gracefully(7) is False
        assert calls == [False, True]

    @pytest.mark.asyncio
    async def test_second_stage_issued_even_if_absent(self, record_kills):
        calls, sleeps = record_kills
        killer = self.scripted_killer([False, True], calls)

        assert await killer.kill_gracefully(7) is True
        assert calls == [False, True]
        assert sleeps == []


class TestWindowsProcessKiller:
    """Tests for the taskkill based killer, with the command stubbed out."""

    @pytest.fixture
    def taskkill(self, monkeypatch):
        state = {"result": (0, "SUCCESS", ""), "calls": []}

        async def fake_run_command(*args):
            state["calls"].append(args)
            return state["result"]

        monkeypatch.setattr(killer_module, "run_command", fake_run_command)
        return state

    @pytest.mark.asyncio
    async def test_success(self, taskkill):
        assert await WindowsProcessKiller().kill(42) is True
        assert taskkill["calls"] == [("taskkill", "/F", "/PID", "42")]

    @pytest.mark.asyncio
    async def test_graceful_request_still_terminates(self, taskkill):
        await WindowsProcessKiller().kill(42, force=False)
        assert "/F" in taskkill["calls"][0]

    @pytest.mark.asyncio
    async def test_not_found(self, taskkill):
        taskkill["result"] = (128, "", 'ERROR: The process "42" not found.')
        assert await WindowsProcessKiller().kill(42) is False

    @pytest.mark.asyncio
    async def test_kill_gracefully_not_found(self, taskkill):
        taskkill["result"] = (128, "", 'ERROR: The process "42" not found.')
        assert await WindowsProcessKiller(grace_period=0).kill_gracefully(42) is False
        assert len(taskkill["calls"]) == 2

    @pytest.mark.asyncio
    async def test_access_denied(self, taskkill):
        taskkill["result"] = (1, "", "ERROR: Access is denied.")
        with pytest.raises(PermissionDenied):
            await WindowsProcessKiller().kill(42)

    @pytest.mark.asyncio
    async def test_other_failure(self, taskkill):
        taskkill["result"] = (1, "", "ERROR: something odd\r\n")
        with pytest.raises(KillFailed, match="something odd"):
            await WindowsProcessKiller().kill(42)

    @pytest.mark.asyncio
    async def test_is_running(self, taskkill):
        taskkill["result"] = (0, '"python.exe","42","Console","1","10,000 K"\r\n', "")
        assert await WindowsProcessKiller().is_running(42)
        assert taskkill["calls"][0][-2:] == ("CSV", "/NH")
        taskkill["result"] = (0, "INFO: No tasks are running which match the specified criteria.", "")
        assert not await WindowsProcessKiller().is_running(42)

    @pytest.mark.asyncio
    async def test_is_running_matches_whole_pid(self, taskkill):
        taskkill["result"] = (0, '"python.exe","420","Console","1","10,042 K"\r\n', "")
        assert not await WindowsProcessKiller().is_running(42)


class TestMockProcessKiller:
    """Tests for the killer used with --mock."""

    @pytest.mark.asyncio
    async def test_never_signals(self, monkeypatch):
        monkeypatch.setattr(os, "kill", lambda pid, sig: pytest.fail("signal sent"))
        killer = MockProcessKiller()
        assert await killer.kill_gracefully(1) is True
        assert not await killer.is_running(1)
        assert await killer.kill(1, force=True) is False

    @pytest.mark.asyncio
    async def test_graceful_request_alone_does_not_kill(self):
        killer = MockProcessKiller()
        assert await killer.kill(1234) is True
        assert await killer.is_running(1234)

    @pytest.mark.asyncio
    async def test_rejects_process_group_pids(self):
        with pytest.raises(KillFailed):
            await MockProcessKiller().kill(0)
