from portkiller import datatype
from .abstract_scanner import AbstractScanner


class MockScanner(AbstractScanner):
    def __init__(self, ports: list[datatype.PortInfo] | None = None):
        self.ports = ports

    async def scan(self) -> list[datatype.PortInfo]:
        if self.ports is not None:
            return list(self.ports)
        return [
            datatype.PortInfo.active(3000, 1234, "node", "*", "user", "node server.js", "19u"),
            datatype.PortInfo.active(5432, 5678, "postgres", "*", "postgres", "postgres", "6u"),
            datatype.PortInfo.active(80, 1, "nginx", "*", "root", "nginx", "6u"),
            datatype.PortInfo.active(8080, 9999, "java", "*", "user", "java -jar app.jar", "10u"),
        ]
