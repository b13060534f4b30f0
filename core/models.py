"""Data models for inbound Zulip message events.

Defines the InboundEvent dataclass handed to features and the parsing
utility that builds it from a raw Zulip event.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class InboundEvent:  # pylint: disable=too-many-instance-attributes
    """Represents a parsed Zulip message event.

    Attributes:
        id: Message ID
        text: Message content text
        channel_id: Stream name, or the sender id for private messages
        thread_id: Topic name (None for private messages)
        user_id: ID of the user who sent the message
        user_name: Full name of the sender
        team_id: Team (realm) the message belongs to
        is_direct_or_mention: Private message or the bot was mentioned
        is_private: Whether this is a private message
        raw_event: Original event dictionary from Zulip API
    """
    id: int
    text: str
    channel_id: str
    thread_id: Optional[str]
    user_id: str
    user_name: str
    team_id: str
    is_direct_or_mention: bool
    is_private: bool = False
    raw_event: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class UserRecord:
    """Canonical user identity from the Zulip user directory."""
    id: str
    display_name: str

    @property
    def mention(self) -> str:
        return f"@**{self.display_name}**"


def parse_message_event(
    event: Dict[str, Any], team_id: str = "default"
) -> Optional[InboundEvent]:
    """Parse a Zulip event dictionary into an InboundEvent.

    Args:
        event: Raw event dictionary from Zulip API
        team_id: Team identifier used to scope persisted data

    Returns:
        InboundEvent if this is a valid message event, None otherwise
    """
    if event.get("type") != "message":
        return None
    msg = event.get("message", {})
    msg_type = msg.get("type")
    if msg_type not in ("private", "stream"):
        return None

    is_private = msg_type == "private"
    flags = event.get("flags") or msg.get("flags") or []
    sender_id = str(msg.get("sender_id"))

    return InboundEvent(
        id=msg.get("id"),
        text=msg.get("content") or "",
        channel_id=sender_id if is_private else str(msg.get("display_recipient")),
        thread_id=None if is_private else msg.get("subject"),
        user_id=sender_id,
        user_name=msg.get("sender_full_name") or "",
        team_id=team_id,
        is_direct_or_mention=is_private or "mentioned" in flags,
        is_private=is_private,
        raw_event=event,
    )
