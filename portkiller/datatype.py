import os
from dataclasses import asdict, dataclass, field
from enum import Enum


class ProcessType(str, Enum):
    WEB_SERVER = "WebServer"
    DATABASE = "Database"
    DEVELOPMENT = "Development"
    SYSTEM = "System"
    OTHER = "Other"

    @classmethod
    def detect(cls, process_name: str, command: str = "") -> "ProcessType":
        """
        Guess the kind of service from its process name, falling back to the
        executable of the command line. Ambiguous binaries end up as OTHER.
        """
        candidates = [process_name.lower()]
        if command:
            executable = command.split()[0] if command.split() else ""
            candidates.append(os.path.basename(executable).lower())

        for candidate in candidates:
            if not candidate:
                continue
            # exact names win over substrings; short keywords only match exactly
            for ptype, keywords in PROCESS_KEYWORDS:
                if candidate in keywords:
                    return ptype
            for ptype, keywords in PROCESS_KEYWORDS:
                if any(len(k) > 3 and k in candidate for k in keywords):
                    return ptype
        return cls.OTHER


PROCESS_KEYWORDS: list[tuple[ProcessType, tuple[str, ...]]] = [
    (
        ProcessType.WEB_SERVER,
        ("nginx", "apache", "apache2", "httpd", "caddy", "traefik", "lighttpd", "haproxy", "envoy"),
    ),
    (
        ProcessType.DATABASE,
        (
            "postgres",
            "mysqld",
            "mysql",
            "mariadb",
            "mongod",
            "mongo",
            "redis-server",
            "redis",
            "sqlite",
            "cockroach",
            "elasticsearch",
            "elastic",
            "clickhouse",
            "memcached",
        ),
    ),
    (
        ProcessType.DEVELOPMENT,
        (
            "node",
            "deno",
            "bun",
            "python",
            "python3",
            "ruby",
            "php",
            "vite",
            "webpack",
            "esbuild",
            "npm",
            "yarn",
            "pnpm",
            "cargo",
            "go",
            "turbo",
        ),
    ),
    (
        ProcessType.SYSTEM,
        ("launchd", "systemd", "kernel", "init", "cron", "sshd", "rapportd", "controlcenter"),
    ),
]

ALL_PROCESS_TYPES: frozenset[ProcessType] = frozenset(ProcessType)


@dataclass(frozen=True)
class PortInfo:
    port: int
    pid: int
    process_name: str
    address: str = "*"
    user: str = ""
    command: str = ""
    fd: str = ""

    def __post_init__(self):
        if not 0 < self.port <= 65535:
            raise ValueError(f"invalid port: {self.port}")
        if self.pid <= 0:
            raise ValueError(f"invalid pid: {self.pid}")

    @classmethod
    def active(
        cls,
        port: int,
        pid: int,
        process_name: str,
        address: str,
        user: str,
        command: str,
        fd: str,
    ) -> "PortInfo":
        return cls(
            port=port,
            pid=pid,
            process_name=process_name,
            address=address,
            user=user,
            command=command,
            fd=fd,
        )

    @property
    def process_type(self) -> ProcessType:
        return ProcessType.detect(self.process_name, self.command)

    @property
    def display_address(self) -> str:
        return "0.0.0.0" if self.address == "*" else self.address

    def matches_search(self, query: str) -> bool:
        query = query.lower()
        return (
            query in self.process_name.lower()
            or query in str(self.port)
            or query in self.command.lower()
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["process_type"] = self.process_type.value
        return data


@dataclass
class WatchedPort:
    port: int
    notify_on_start: bool = True
    notify_on_stop: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "WatchedPort":
        return cls(
            port=int(data["port"]),
            notify_on_start=bool(data.get("notify_on_start", True)),
            notify_on_stop=bool(data.get("notify_on_stop", True)),
        )


@dataclass
class Config:
    favorites: list[int] = field(default_factory=list)
    watched_ports: list[WatchedPort] = field(default_factory=list)
