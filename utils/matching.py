"""Text matching utilities for inbound Zulip messages.

Provides normalization of message text before it reaches the pattern
registry, and helpers for recognising Zulip user mentions.
"""
import re
from typing import Optional

# @**Full Name**, @**Full Name|123** and the silent @_**Full Name** form
MENTION_RE = re.compile(r"@_?\*\*(?P<name>[^*|]+?)(?:\|(?P<id>\d+))?\*\*")


def normalize_phrase(s: str) -> str:
    """
    Normalize a phrase for strict-but-whitespace/case-insensitive matching.
    - strip leading/trailing whitespace
    - lower-case
    """
    return s.strip().lower()


def strip_self_mention(
    text: str,
    bot_name: Optional[str] = None,
    bot_user_id: Optional[str] = None,
) -> str:
    """Remove a leading mention of the bot and trim surrounding whitespace.

    Only a mention of the bot itself is removed; mentions of other users are
    kept because karma and factoid subjects are often users.

    Args:
        text: Raw message content
        bot_name: The bot's full name as used in mentions
        bot_user_id: The bot's user id

    Returns:
        Normalized text, possibly empty
    """
    text = (text or "").strip()
    match = MENTION_RE.match(text)
    if match and _is_self(match, bot_name, bot_user_id):
        text = text[match.end():].lstrip(" ,:")
    return text.strip()


def _is_self(
    match: "re.Match[str]",
    bot_name: Optional[str],
    bot_user_id: Optional[str],
) -> bool:
    if bot_user_id is not None and match.group("id") is not None:
        return match.group("id") == str(bot_user_id)
    if bot_name is not None:
        return normalize_phrase(match.group("name")) == normalize_phrase(bot_name)
    return False


def find_mention(text: str) -> Optional["re.Match[str]"]:
    """Return the first user mention in text, if any."""
    return MENTION_RE.search(text)
