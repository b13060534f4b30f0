"""Shared test fixtures for the karmabot test suite."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from core.directory import UserDirectory
from core.dispatcher import Dispatcher
from core.models import InboundEvent
from features.botsnack import BotsnackFeature
from features.conversation import ConversationFeature
from features.factoids import FactoidFeature
from features.greeting import GreetingFeature
from features.help import HelpFeature
from features.karma import KarmaFeature
from features.uptime import UptimeFeature
from storage.file_store import KeyValueStore
from utils.scheduling import PendingRequestStore

BOT_USER_ID = "99"
BOT_NAME = "Karmabot"

USERS = [
    {"user_id": 1, "full_name": "Alice Smith", "email": "alice@example.com"},
    {"user_id": 2, "full_name": "Bob Jones", "email": "bob@example.com"},
    {"user_id": 99, "full_name": BOT_NAME, "email": "bot@example.com"},
]


class FakeClient:
    """Records replies and reactions instead of talking to Zulip."""

    def __init__(self, react_ok: bool = True) -> None:
        self.react_ok = react_ok
        self.replies: List[Tuple[InboundEvent, str]] = []
        self.reactions: List[Tuple[int, str]] = []
        self.users: List[Dict[str, Any]] = [dict(u) for u in USERS]

    @property
    def texts(self) -> List[str]:
        return [text for _, text in self.replies]

    async def send_reply(self, event: InboundEvent, content: str) -> Optional[int]:
        self.replies.append((event, content))
        return len(self.replies)

    async def react_to_message(self, message_id: int, emoji_name: str) -> bool:
        self.reactions.append((message_id, emoji_name))
        return self.react_ok

    async def get_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        return next((u for u in self.users if u["user_id"] == user_id), None)

    async def list_users(self) -> List[Dict[str, Any]]:
        return list(self.users)


class FakeCompletion:
    """Completion collaborator returning canned answers."""

    def __init__(self, answer: str = "Sure thing.", error: Optional[Exception] = None) -> None:
        self.answer = answer
        self.error = error
        self.calls: List[Tuple[str, List[Dict[str, str]], str]] = []

    async def complete(self, system_prompt, history, user_message) -> str:
        self.calls.append((system_prompt, list(history), user_message))
        if self.error is not None:
            raise self.error
        return self.answer


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def anyio_backend() -> str:
    """The bot runs on trio, so async tests do too."""
    return "trio"


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def directory(client: FakeClient) -> UserDirectory:
    return UserDirectory(client)


@pytest.fixture
def store(tmp_path: Path) -> KeyValueStore:
    return KeyValueStore(str(tmp_path / "data"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def make_event():
    """Factory for inbound events; defaults to a mention from Alice."""
    counter = iter(range(1, 10_000))

    def _make(
        text: str,
        user_id: str = "1",
        user_name: str = "Alice Smith",
        direct: bool = True,
        private: bool = False,
        channel_id: str = "general",
        thread_id: Optional[str] = "chat",
        team_id: str = "default",
    ) -> InboundEvent:
        return InboundEvent(
            id=next(counter),
            text=text,
            channel_id=user_id if private else channel_id,
            thread_id=None if private else thread_id,
            user_id=user_id,
            user_name=user_name,
            team_id=team_id,
            is_direct_or_mention=direct or private,
            is_private=private,
        )

    return _make


@pytest.fixture
def bot(client, directory, store, clock, completion) -> Dispatcher:
    """A dispatcher wired with every feature, frozen and ready."""
    dispatcher = Dispatcher(bot_user_id=BOT_USER_ID, bot_name=BOT_NAME)
    for feature in (
        GreetingFeature(client),
        UptimeFeature(client, bot_name=BOT_NAME, hostname="testhost", clock=clock),
        BotsnackFeature(client),
        HelpFeature(client),
        KarmaFeature(client, directory, store),
        FactoidFeature(
            client, directory, store, pending=PendingRequestStore(ttl_seconds=300, clock=clock)
        ),
    ):
        dispatcher.register_feature(feature)
    dispatcher.set_fallback(
        ConversationFeature(client, completion, system_prompt="Be nice.", history_size=10)
    )
    dispatcher.freeze()
    return dispatcher
