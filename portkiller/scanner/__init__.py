import sys

from .abstract_scanner import AbstractScanner


def get_scanner(platform: str = sys.platform) -> AbstractScanner:
    """Pick the scanner for the host platform. Called once at startup."""
    if platform.startswith("darwin"):
        from .darwin import DarwinScanner

        return DarwinScanner()
    elif platform.startswith("linux"):
        from .linux import LinuxScanner

        return LinuxScanner()
    elif platform.startswith(("win32", "cygwin")):
        from .windows import WindowsScanner

        return WindowsScanner()
    else:
        from .windows import UnsupportedScanner

        return UnsupportedScanner(platform)


__all__ = ["AbstractScanner", "get_scanner"]
