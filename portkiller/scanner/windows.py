from portkiller import datatype
from portkiller.errors import UnsupportedPlatform
from .abstract_scanner import AbstractScanner


class UnsupportedScanner(AbstractScanner):
    """Stands in for a platform we cannot enumerate yet; every scan fails."""

    platform_name = "this platform"

    def __init__(self, platform_name: str | None = None):
        if platform_name:
            self.platform_name = platform_name

    async def scan(self) -> list[datatype.PortInfo]:
        raise UnsupportedPlatform(f"Port scanning is not supported on {self.platform_name}")


class WindowsScanner(UnsupportedScanner):
    # netstat -ano parsing is not implemented yet
    platform_name = "Windows"
