class PortKillerError(Exception):
    pass


class UnsupportedPlatform(PortKillerError):
    pass


class PermissionDenied(PortKillerError):
    pass


class KillFailed(PortKillerError):
    def __init__(self, pid: int, reason: str):
        super().__init__(f"Failed to kill process {pid}: {reason}")
        self.pid = pid
        self.reason = reason


class CommandFailed(PortKillerError):
    pass


class ConfigError(PortKillerError):
    pass
