from abc import ABC, abstractmethod

from core.intent import ConcreteIntent


class BaseExecutor(ABC):
    """
    Base contract for the submission boundary.
    Executors take a finalized, concrete intent and return a response dict.
    No parsing, no name resolution here.
    """

    @abstractmethod
    async def execute(self, intent: ConcreteIntent) -> dict:
        pass
