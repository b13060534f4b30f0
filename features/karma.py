"""Karma feature for the karma bot.

Tracks a per-team integer score for users and things:

- ``thing++`` / ``thing--`` and ``@**User**++`` change a score
- ``karma thing`` / ``karma @**User**`` report it

Users cannot change their own karma. Scores are stored per team under the
``<team>_karma`` key and persist across channels.
"""
import logging
import re
from typing import List, Tuple

from core.client import ZulipTrioClient
from core.directory import UserDirectory
from core.dispatcher import FeatureHandler
from core.models import InboundEvent
from core.registry import PatternKind, Regex
from storage.file_store import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

QUERY_RE = re.compile(r"^karma\s+(?P<subject>.+)$", re.IGNORECASE)
MENTION_PREFIX_RE = re.compile(r"^@_?\*\*")
BARE_RE = re.compile(r"^karma$", re.IGNORECASE)
CHANGE_RE = re.compile(r"(?P<subject>.+?)(?P<op>-{2,}|\+{2,})\s*$")


def karma_key(team_id: str) -> str:
    return f"{team_id}_karma"


class KarmaFeature(FeatureHandler):
    """
    Handles karma changes and queries.
    """

    name = "karma"

    def __init__(
        self,
        client: ZulipTrioClient,
        directory: UserDirectory,
        store: KeyValueStore,
        max_subject_length: int = 34,
    ) -> None:
        self.client = client
        self.directory = directory
        self.store = store
        self.max_subject_length = max_subject_length

    def patterns(self) -> List[Tuple[PatternKind, int]]:
        return [
            (Regex(QUERY_RE), 10),
            (Regex(BARE_RE), 10),
            (Regex(CHANGE_RE), 5),
        ]

    async def respond(self, event: InboundEvent, text: str) -> None:
        if BARE_RE.match(text):
            await self.client.send_reply(event, "Usage: `karma <thing>` or `karma @**user**`")
            return

        query = QUERY_RE.match(text)
        if query:
            await self._query(event, query.group("subject"))
            return

        change = CHANGE_RE.search(text)
        if change:
            delta = 1 if "+" in change.group("op") else -1
            await self._change(event, change.group("subject"), delta)

    async def _resolve(self, subject: str) -> Tuple[str, str, bool]:
        """Map a subject to (storage index, display text, is_user)."""
        subject = subject.strip()
        user = await self.directory.resolve(subject)
        if user:
            return user.id, user.display_name, True
        return subject.lower(), subject, False

    async def _change(self, event: InboundEvent, subject: str, delta: int) -> None:
        index, display, is_user = await self._resolve(subject)
        if not index or len(index) > self.max_subject_length:
            return

        if is_user and index == event.user_id:
            await self.client.send_reply(event, f"Nice try @**{event.user_name}**, but no...")
            return

        # load -> mutate -> save is not isolated; last writer wins per key
        key = karma_key(event.team_id)
        try:
            karma = await self.store.load(key)
            karma[index] = int(karma.get(index, 0)) + delta
            await self.store.save(key, karma)
        except StorageError:
            logger.exception("Failed to update karma for %s", index)
            await self.client.send_reply(event, f"Failed to update karma for {display}")
            return

        logger.info("Karma for %s is now %s", index, karma[index])
        await self.client.send_reply(event, f"{display} has karma of {karma[index]}")

    async def _query(self, event: InboundEvent, subject: str) -> None:
        subject = subject.strip()
        if subject.endswith("?"):
            subject = subject[:-1].strip()
        # "karma @bob" means bob; "@**Bob**" is a real mention
        if subject.startswith("@") and not MENTION_PREFIX_RE.match(subject):
            subject = subject[1:]
        index, display, _ = await self._resolve(subject)

        try:
            karma = await self.store.load(karma_key(event.team_id))
        except StorageError:
            logger.exception("Failed to get karma for %s", index)
            await self.client.send_reply(event, f"Failed to get karma for {display}")
            return

        await self.client.send_reply(event, f"{display} has karma {int(karma.get(index, 0))}")
