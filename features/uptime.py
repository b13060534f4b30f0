"""Uptime feature: reports who the bot is and how long it has been running."""
import re
import socket
import time
from typing import Callable, List, Optional, Tuple

from core.client import ZulipTrioClient
from core.dispatcher import FeatureHandler
from core.models import InboundEvent
from core.registry import PatternKind, Regex

UPTIME_RE = re.compile(
    r"^(?:uptime|identify yourself|who are you|what is your name)$", re.IGNORECASE
)


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit if n == 1 else unit + 's'}"


def format_uptime(seconds: float) -> str:
    """Format a duration as e.g. "1 day, 0 hours, 5 minutes, 2 seconds".

    Leading units that are zero are omitted; once a unit is shown every
    smaller unit is shown too.
    """
    remaining = int(seconds)
    days, remaining = divmod(remaining, 86400)
    hours, remaining = divmod(remaining, 3600)
    minutes, secs = divmod(remaining, 60)

    result = []
    if days:
        result.append(_plural(days, "day"))
    if days or hours:
        result.append(_plural(hours, "hour"))
    if days or hours or minutes:
        result.append(_plural(minutes, "minute"))
    if days or hours or minutes or secs:
        result.append(_plural(secs, "second"))
    return ", ".join(result)


class UptimeFeature(FeatureHandler):
    """
    Answers "uptime", "who are you" and friends.
    """

    name = "uptime"

    def __init__(
        self,
        client: ZulipTrioClient,
        bot_name: str,
        hostname: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.bot_name = bot_name
        self.hostname = hostname or socket.gethostname()
        self._clock = clock
        self.started_at = clock()

    def patterns(self) -> List[Tuple[PatternKind, int]]:
        return [(Regex(UPTIME_RE), 10)]

    async def respond(self, event: InboundEvent, text: str) -> None:
        uptime = format_uptime(self._clock() - self.started_at) or "0 seconds"
        await self.client.send_reply(
            event,
            (
                f":robot: I am a bot named @**{self.bot_name}**. "
                f"I have been running for {uptime} on {self.hostname}."
            ),
        )
