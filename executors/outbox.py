import logging
from typing import List

from core.intent import ConcreteIntent
from executors.base import BaseExecutor
from services.intent_describer import describe_intent
from services.utils import deep_serialize

logger = logging.getLogger("pesamirror.outbox")


class OutboxExecutor(BaseExecutor):
    """
    Queues confirmed intents for the remote-push transport.
    Delivery itself happens elsewhere; nothing here assumes it succeeds.
    """

    def __init__(self):
        self.outbox: List[ConcreteIntent] = []

    async def execute(self, intent: ConcreteIntent) -> dict:
        if not intent.type.is_concrete():
            raise ValueError(f"Refusing to submit unresolved intent {intent.type.value}")

        self.outbox.append(intent)
        logger.info(f"[SUBMITTED] type={intent.type.value}, queued={len(self.outbox)}")

        return {
            "type": intent.type.value,
            "data": deep_serialize(intent),
            "message": describe_intent(intent),
        }
