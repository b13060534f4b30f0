"""Factoid feature for the karma bot.

Stores short "X is Y" facts per team and replays them on request.

- ``pizza?`` or ``pizza!`` recalls a factoid (anywhere the bot can read)
- ``@**bot** pizza is delicious`` teaches one; ``... is <reply>text``
  stores a verbatim reply
- ``@**bot** forget pizza`` deletes one after a YES/NO confirmation
- ``!factoid: list`` lists what is known

Teaching a key that already exists does not overwrite it. The user is shown
the current value and asked to answer YES (replace), APPEND or NO. Answers
are matched to the asking user's pending request, which expires after a few
minutes.
"""
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from core.client import ZulipTrioClient
from core.directory import UserDirectory
from core.dispatcher import FeatureHandler
from core.models import InboundEvent
from core.registry import PatternKind, Predicate, Regex
from storage.file_store import KeyValueStore, StorageError
from utils.scheduling import PendingRequestStore

logger = logging.getLogger(__name__)

LIST_RE = re.compile(r"^!factoid:\s*list$", re.IGNORECASE)
FORGET_RE = re.compile(r"^forget\s+(?P<key>.+)$", re.IGNORECASE)
SET_RE = re.compile(
    r"^(?P<key>.+?)\s(?P<be>is|are)\s(?P<reply><reply>)?(?P<value>.+)(?<!\?)$",
    re.IGNORECASE,
)
ANSWER_RE = re.compile(r"^(?P<answer>yes|no|update|append|cancel)$", re.IGNORECASE)
QUERY_RE = re.compile(r"^(?P<key>.*\S)[?!]$")
# "@**Jane** are you around?" is talking to Jane, not asking for a factoid
MENTION_WITH_TEXT_RE = re.compile(
    r"^(?:hey\s+)?(?:@_?\*\*[^*]+\*\*|@[\w\s]+)(?:\s+.+|\s*[,:].+)[!?]$",
    re.IGNORECASE,
)
LEGACY_QUERY_PREFIX_RE = re.compile(r"^!factoid:\s*", re.IGNORECASE)

MAX_QUERY_WORDS = 5


def factoids_key(team_id: str) -> str:
    return f"{team_id}_factoids"


def query_key(match: "re.Match[str]") -> str:
    """The looked-up key of a query match, without prefix or trailing punctuation."""
    key = LEGACY_QUERY_PREFIX_RE.sub("", match.group("key"))
    return key.rstrip("?!").strip()


@dataclass
class FactRecord:
    """A stored factoid.

    Attributes:
        key: Text shown when rendering (a mention for user factoids)
        be: Relation word, "is" or "are"
        reply: Render the value verbatim instead of "key be value"
        value: One or more values, in the order they were added
    """
    key: str
    be: str = "is"
    reply: bool = False
    value: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FactRecord":
        value = data.get("value") or []
        if isinstance(value, str):
            value = [value]
        return cls(
            key=str(data.get("key", "")),
            be=str(data.get("be", "is")),
            reply=bool(data.get("reply", False)),
            value=[str(v) for v in value],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def render(self) -> str:
        parts: List[str] = []
        for value in self.value:
            if parts or self.reply:
                parts.append(value)
            else:
                parts.append(f"{self.key} {self.be} {value}")
        return ", and also ".join(parts)


@dataclass
class PendingUpdate:
    """A set request for a key that already has a factoid."""
    index: str
    fact: FactRecord


@dataclass
class PendingForget:
    """A forget request awaiting YES/NO."""
    index: str
    label: str


PendingRequest = Union[PendingUpdate, PendingForget]


class FactoidFeature(FeatureHandler):
    """
    Handles factoid queries, teaching, updates and forgetting.
    """

    name = "factoids"

    def __init__(
        self,
        client: ZulipTrioClient,
        directory: UserDirectory,
        store: KeyValueStore,
        pending: Optional[PendingRequestStore[PendingRequest]] = None,
    ) -> None:
        self.client = client
        self.directory = directory
        self.store = store
        # key: acting user id; one pending request per user, last one wins
        self.pending: PendingRequestStore[PendingRequest] = pending or PendingRequestStore()

    def patterns(self) -> List[Tuple[PatternKind, int]]:
        return [
            (Regex(LIST_RE), 10),
            (Regex(FORGET_RE), 5),
            (Regex(SET_RE), 3),
            (Regex(ANSWER_RE), 2),
            (Predicate(self.is_query, "factoid query"), 1),
        ]

    def is_query(self, text: str) -> bool:
        """Whether text looks like a factoid lookup such as ``pizza?``."""
        match = QUERY_RE.match(text)
        if not match or MENTION_WITH_TEXT_RE.match(text):
            return False
        key = query_key(match)
        if not key or len(key.split()) > MAX_QUERY_WORDS:
            return False
        # "karma!" must not become a factoid lookup for a reserved command
        return not self._claimed_elsewhere(key)

    def _claimed_elsewhere(self, text: str) -> bool:
        """Whether a rule owned by another feature matches text.

        Only other owners' rules are consulted, so this never re-enters
        ``is_query``.
        """
        if self.registry is None:
            return False
        return any(r.owner != self.name and r.matches(text) for r in self.registry.rules())

    async def run_housekeeping(self) -> None:
        """Periodically purge expired pending requests until cancelled."""
        logger.info(
            "Factoid housekeeping every %ss (ttl %ss)",
            self.pending.sweep_interval_seconds,
            self.pending.ttl_seconds,
        )
        await self.pending.run()

    async def respond(self, event: InboundEvent, text: str) -> None:
        if LIST_RE.match(text):
            await self._list(event)
            return

        forget = FORGET_RE.match(text)
        if forget:
            if event.is_direct_or_mention:
                await self._forget(event, forget.group("key").strip())
            return

        teach = SET_RE.match(text)
        if teach:
            if event.is_direct_or_mention:
                await self._set(event, teach)
            return

        answer = ANSWER_RE.match(text)
        if answer:
            await self._answer(event, answer.group("answer").lower())
            return

        query = QUERY_RE.match(text)
        if query:
            await self._query(event, query_key(query))

    async def _load(self, event: InboundEvent) -> Optional[Dict[str, Any]]:
        try:
            return await self.store.load(factoids_key(event.team_id))
        except StorageError:
            logger.exception("Failed to load factoids for %s", event.team_id)
            await self.client.send_reply(event, "Sorry, I couldn't read my factoids right now.")
            return None

    async def _save(self, event: InboundEvent, facts: Dict[str, Any]) -> bool:
        try:
            await self.store.save(factoids_key(event.team_id), facts)
        except StorageError:
            logger.exception("Failed to save factoids for %s", event.team_id)
            await self.client.send_reply(event, "Sorry, there was a problem saving the factoid.")
            return False
        return True

    async def _find(
        self, facts: Dict[str, Any], key: str
    ) -> Optional[Tuple[str, FactRecord]]:
        """Look up by resolved user id first, then by lowercased text."""
        user = await self.directory.resolve(key)
        candidates = [user.id] if user else []
        candidates.append(key.lower())
        for index in candidates:
            if index in facts:
                return index, FactRecord.from_dict(facts[index])
        return None

    async def _query(self, event: InboundEvent, key: str) -> None:
        if not key:
            return
        facts = await self._load(event)
        if facts is None:
            return
        found = await self._find(facts, key)
        if found:
            await self.client.send_reply(event, found[1].render())

    async def _list(self, event: InboundEvent) -> None:
        facts = await self._load(event)
        if facts is None:
            return
        if not facts:
            await self.client.send_reply(event, "No factoids stored yet.")
            return
        names = [FactRecord.from_dict(facts[index]).key for index in sorted(facts)]
        await self.client.send_reply(event, f"Available factoids: {', '.join(names)}")

    async def _set(self, event: InboundEvent, match: "re.Match[str]") -> None:
        key = match.group("key").strip()
        if not key:
            return
        if self.registry is not None and self.registry.matches_any(key):
            logger.info("Refusing factoid for reserved command text %r", key)
            return

        user = await self.directory.resolve(key)
        index = user.id if user else key.lower()
        fact = FactRecord(
            key=user.mention if user else key.lower(),
            be=match.group("be").lower(),
            reply=bool(match.group("reply")),
            value=[match.group("value").strip()],
        )

        facts = await self._load(event)
        if facts is None:
            return

        if index not in facts:
            facts[index] = fact.to_dict()
            if await self._save(event, facts):
                await self.client.send_reply(event, "Got it!")
            return

        existing = FactRecord.from_dict(facts[index])
        self.pending.put(event.user_id, PendingUpdate(index, fact))
        await self.client.send_reply(
            event,
            (
                f'I already have a factoid for "{existing.key}". It says "{existing.render()}".\n'
                "Do you want me to update it? Say YES, NO, or APPEND"
            ),
        )

    async def _forget(self, event: InboundEvent, key: str) -> None:
        facts = await self._load(event)
        if facts is None:
            return
        found = await self._find(facts, key)
        if not found:
            await self.client.send_reply(event, f'I don\'t have any factoid for "{key}"')
            return

        index, existing = found
        self.pending.put(event.user_id, PendingForget(index, key))
        await self.client.send_reply(
            event,
            (
                f'Are you sure you want me to forget "{key}"? It says "{existing.render()}".\n'
                "Reply YES or NO."
            ),
        )

    async def _answer(self, event: InboundEvent, answer: str) -> None:
        request = self.pending.get(event.user_id)
        if request is None:
            # Nothing pending (or it expired): not ours to answer
            return

        if isinstance(request, PendingForget) and answer in ("update", "append"):
            await self.client.send_reply(event, "Please answer YES or NO.")
            return

        self.pending.pop(event.user_id)
        if answer in ("no", "cancel"):
            await self.client.send_reply(event, "Okay, I'll leave it as is.")
            return

        facts = await self._load(event)
        if facts is None:
            return

        if isinstance(request, PendingForget):
            if request.index not in facts:
                await self.client.send_reply(
                    event, f'I don\'t have any factoid for "{request.label}"'
                )
                return
            del facts[request.index]
            if await self._save(event, facts):
                await self.client.send_reply(event, f'I\'ve forgotten about "{request.label}"')
            return

        if request.index not in facts:
            # Forgotten while the answer was pending; nothing left to update
            fact = request.fact
            message = f'The old factoid for "{fact.key}" is gone, so I saved the new one'
        elif answer == "append":
            fact = FactRecord.from_dict(facts[request.index])
            fact.value.extend(request.fact.value)
            message = "Okay, I've updated it"
        else:
            fact = request.fact
            message = "Okay, I've overwritten the existing factoid"

        facts[request.index] = fact.to_dict()
        if await self._save(event, facts):
            await self.client.send_reply(event, f"{message}: {fact.render()}")
