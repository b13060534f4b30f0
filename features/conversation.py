"""Conversational fallback for the karma bot.

Answers direct messages and mentions that no command claims by asking a
language model, using the last few turns of the channel as context.
"""
import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from core.client import ZulipTrioClient
from core.completion import CompletionClient, CompletionError
from core.dispatcher import FeatureHandler
from core.models import InboundEvent

logger = logging.getLogger(__name__)

APOLOGY = "I'm having trouble processing that request right now. Please try again later."


class ConversationFeature(FeatureHandler):
    """
    Catch-all handler for addressed messages; owns no patterns.
    """

    name = "conversation"

    def __init__(
        self,
        client: ZulipTrioClient,
        completion: CompletionClient,
        system_prompt: str,
        history_size: int = 10,
    ) -> None:
        self.client = client
        self.completion = completion
        self.system_prompt = system_prompt
        self.history_size = history_size
        # key: channel id, value: alternating user/assistant turns
        self._history: Dict[str, Deque[Dict[str, str]]] = {}

    def history(self, channel_id: str) -> List[Dict[str, str]]:
        return list(self._history.get(channel_id, ()))

    def clear_history(self, channel_id: Optional[str] = None) -> None:
        """Forget one channel's conversation, or all of them."""
        if channel_id is None:
            self._history.clear()
        else:
            self._history.pop(channel_id, None)

    async def respond(self, event: InboundEvent, text: str) -> None:
        if self.registry is not None and self.registry.matches_any(text):
            logger.debug("Declining %r: claimed by another feature", text)
            return

        prior = self.history(event.channel_id)
        try:
            answer = await self.completion.complete(self.system_prompt, prior, text)
        except CompletionError:
            logger.exception("Completion failed for channel %s", event.channel_id)
            await self.client.send_reply(event, APOLOGY)
            return

        turns = self._history.setdefault(event.channel_id, deque(maxlen=self.history_size))
        turns.append({"role": "user", "content": text})
        turns.append({"role": "assistant", "content": answer})
        await self.client.send_reply(event, answer)
