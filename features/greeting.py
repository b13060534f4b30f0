"""Greeting feature: waves back at hello/hey/hi."""
import logging
import re
from typing import List, Tuple

from core.client import ZulipTrioClient
from core.dispatcher import FeatureHandler
from core.models import InboundEvent
from core.registry import PatternKind, Regex

logger = logging.getLogger(__name__)

GREETING_RE = re.compile(r"^(?:hello!?|hey!?|hi!?|:wave:)$", re.IGNORECASE)


class GreetingFeature(FeatureHandler):
    """
    Reacts with :wave: to greetings, replying in text if the reaction fails.
    """

    name = "greeting"

    def __init__(self, client: ZulipTrioClient) -> None:
        self.client = client

    def patterns(self) -> List[Tuple[PatternKind, int]]:
        return [(Regex(GREETING_RE), 10)]

    async def respond(self, event: InboundEvent, text: str) -> None:
        if await self.client.react_to_message(event.id, "wave"):
            return
        logger.info("Wave reaction failed for message_id=%s, replying instead", event.id)
        await self.client.send_reply(event, f"Hello @**{event.user_name}**!!")
