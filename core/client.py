"""Trio-friendly wrapper for the Zulip API client.

Every blocking zulip call runs through ``trio.to_thread.run_sync`` so the
event loop keeps serving other messages while a request is in flight.

Rate limiting: the events() generator long-polls (90s), so the server holds
the connection instead of the bot polling. Responses carrying a
RATE_LIMIT_HIT code are retried after the server-provided delay, and a
warning is logged when fewer than 20% of the request budget remains.
"""
import json
import logging
import os
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import trio
import zulip

from core.models import InboundEvent

logger = logging.getLogger(__name__)


class ZulipTrioClient:
    """
    Trio-friendly wrapper around zulip.Client.
    Uses trio.to_thread.run_sync for blocking calls.
    """

    max_send_attempts = 3

    def __init__(self, client: zulip.Client) -> None:
        self._client = client

    @classmethod
    def from_env_or_rc(cls) -> "ZulipTrioClient":
        """Create a ZulipTrioClient from environment variables or ~/.zuliprc."""
        config_file = os.environ.get("ZULIP_CONFIG_FILE")  # optional override
        if config_file:
            client = zulip.Client(config_file=config_file)
        else:
            client = zulip.Client()
        return cls(client)

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Dict[str, Any]:
        fn = getattr(self._client, method)
        return await trio.to_thread.run_sync(lambda: fn(*args, **kwargs))

    async def register(self, **kwargs: Any) -> Dict[str, Any]:
        """Register an event queue with the Zulip server."""
        return await self._call("register", **kwargs)

    async def events(self, queue: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """
        Async generator yielding events from Zulip.

        The server blocks until events arrive or the 90s timeout expires, so
        an empty batch is normal and is retried immediately.
        """
        queue_id = queue["queue_id"]
        last_event_id = queue["last_event_id"]

        while True:
            try:
                res = await self._call(
                    "get_events",
                    queue_id=queue_id,
                    last_event_id=last_event_id,
                    dont_block=False,
                    timeout=90,
                )
                self._log_rate_limit_info(res)

                if res.get("code") == "RATE_LIMIT_HIT":
                    retry_after = self._get_rate_limit_reset(res)
                    logger.warning(
                        "Rate limit hit while polling. Waiting %s seconds. Message: %s",
                        retry_after,
                        res.get("msg", "No message"),
                    )
                    await trio.sleep(retry_after)
                    continue

                if res.get("result") != "success":
                    logger.warning("Error from get_events: %s", json.dumps(res))
                    await trio.sleep(5)
                    continue

                for event in res.get("events", []):
                    last_event_id = max(last_event_id, event.get("id", last_event_id))
                    yield event

            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Unexpected error in event loop: %s", e, exc_info=True)
                await trio.sleep(10)

    def _get_rate_limit_reset(self, response: Dict[str, Any]) -> float:
        """Extract the number of seconds to wait from a rate-limited response."""
        retry_after = response.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except (ValueError, TypeError):
                pass

        reset_time = response.get("x-ratelimit-reset") or response.get("X-RateLimit-Reset")
        if reset_time:
            try:
                return max(0.0, float(reset_time) - time.time())
            except (ValueError, TypeError):
                pass

        logger.warning("Could not determine rate limit reset time, using default 60s")
        return 60.0

    def _log_rate_limit_info(self, response: Dict[str, Any]) -> None:
        remaining = response.get("x-ratelimit-remaining") or response.get("X-RateLimit-Remaining")
        limit = response.get("x-ratelimit-limit") or response.get("X-RateLimit-Limit")

        if remaining is not None and limit is not None:
            try:
                remaining_count = int(remaining)
                total_limit = int(limit)
                if remaining_count < (total_limit * 0.2):
                    logger.warning(
                        "Approaching rate limit: %s/%s requests remaining",
                        remaining_count,
                        total_limit,
                    )
            except (ValueError, TypeError):
                pass

    async def _send_message(self, request: Dict[str, Any]) -> Optional[int]:
        """Send a message, retrying when the server reports a rate limit.

        Returns:
            The new message id, or None if sending failed
        """
        for attempt in range(self.max_send_attempts):
            res = await self._call("send_message", request)
            self._log_rate_limit_info(res)

            if res.get("code") == "RATE_LIMIT_HIT":
                if attempt < self.max_send_attempts - 1:
                    retry_after = self._get_rate_limit_reset(res)
                    logger.warning(
                        "Rate limit hit sending %s message. Waiting %s seconds (attempt %s/%s)",
                        request["type"], retry_after, attempt + 1, self.max_send_attempts,
                    )
                    await trio.sleep(retry_after)
                    continue
                logger.error("Rate limit exceeded after %s attempts", self.max_send_attempts)
                return None

            if res.get("result") == "success":
                return res.get("id")

            logger.warning("Failed to send %s message: %s", request["type"], res)
            return None

        return None

    async def send_private_message(self, to_user_id: int, content: str) -> Optional[int]:
        """Send a private message to a user."""
        return await self._send_message(
            {"type": "private", "to": [to_user_id], "content": content}
        )

    async def send_stream_message(
        self, stream: str, topic: str, content: str
    ) -> Optional[int]:
        """Send a message to a stream topic."""
        return await self._send_message(
            {"type": "stream", "to": stream, "topic": topic, "content": content}
        )

    async def send_reply(self, event: InboundEvent, content: str) -> Optional[int]:
        """Reply where the event came from: same topic, or back to the sender."""
        if event.is_private:
            return await self.send_private_message(int(event.user_id), content)
        return await self.send_stream_message(
            event.channel_id, event.thread_id or "general", content
        )

    async def react_to_message(self, message_id: int, emoji_name: str) -> bool:
        """Add an emoji reaction to a message.

        Returns:
            True if the reaction was added
        """
        res = await self._call(
            "add_reaction", {"message_id": message_id, "emoji_name": emoji_name}
        )
        if res.get("result") != "success":
            logger.warning("Failed to add reaction: %s", res)
            return False
        return True

    async def get_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Get user information by user ID."""
        res = await self._call("get_user_by_id", user_id)
        if res.get("result") != "success":
            logger.warning("Failed to get user by id %s: %s", user_id, res)
            return None
        return res.get("user")

    async def get_own_user(self) -> Optional[Dict[str, Any]]:
        """Get the bot's own user profile."""
        res = await self._call("get_profile")
        if res.get("result") != "success":
            logger.warning("Failed to get own profile: %s", res)
            return None
        return res

    async def list_users(self) -> List[Dict[str, Any]]:
        """List all users in the Zulip organization."""
        res = await self._call("get_users")
        if res.get("result") != "success":
            logger.warning("Failed to list users: %s", res)
            return []
        return res.get("members", [])
