"""Botsnack feature: thanks whoever feeds the bot."""
import random
import re
from typing import List, Optional, Tuple

from core.client import ZulipTrioClient
from core.dispatcher import FeatureHandler
from core.models import InboundEvent
from core.registry import PatternKind, Regex

SNACK_RE = re.compile(r"^botsnack$", re.IGNORECASE)

THANK_YOU_MESSAGES = [
    "Thank you! :cookie:",
    "Om nom nom nom :yum:",
    "Delicious! :hamburger:",
    "Yummy! :cake:",
    "How thoughtful of you! :candy:",
    "*happy bot noises* :robot:",
    "I appreciate the snack! :pizza:",
    "Tasty! :taco:",
    "Mmmmm :doughnut:",
    "You're the best! :ice_cream:",
]


class BotsnackFeature(FeatureHandler):
    """
    Replies to ``botsnack`` with a random thank-you.
    """

    name = "botsnack"

    def __init__(self, client: ZulipTrioClient, rng: Optional[random.Random] = None) -> None:
        self.client = client
        self._rng = rng or random.Random()

    def patterns(self) -> List[Tuple[PatternKind, int]]:
        return [(Regex(SNACK_RE), 10)]

    async def respond(self, event: InboundEvent, text: str) -> None:
        await self.client.send_reply(event, self._rng.choice(THANK_YOU_MESSAGES))
