import logging

from abc import ABC, abstractmethod

from portkiller import datatype

LOGGER = logging.getLogger(__name__)


class AbstractScanner(ABC):
    """
    Produces the table of listening ports on the current host.

    Every call to ``scan`` re-reads live OS state; nothing is cached between
    calls and no ordering of the returned records is guaranteed.
    """

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def scan(self) -> list[datatype.PortInfo]:
        pass
