"""User directory lookups for karma and factoid subject resolution."""
import logging
from typing import Optional

from core.client import ZulipTrioClient
from core.models import UserRecord
from utils.matching import find_mention, normalize_phrase

logger = logging.getLogger(__name__)


class UserDirectory:
    """Resolves Zulip mention tokens to canonical user records."""

    def __init__(self, client: ZulipTrioClient) -> None:
        self.client = client

    async def resolve(self, token: str) -> Optional[UserRecord]:
        """Resolve a mention such as ``@**Jane Doe|42**`` to a user.

        Plain text that contains no mention never resolves. Lookup failures
        are logged and treated as "not found".

        Args:
            token: Text that may contain a user mention

        Returns:
            UserRecord, or None if no user could be resolved
        """
        match = find_mention(token or "")
        if match is None:
            return None

        try:
            if match.group("id"):
                user = await self.client.get_user_by_id(int(match.group("id")))
            else:
                wanted = normalize_phrase(match.group("name"))
                user = next(
                    (
                        u for u in await self.client.list_users()
                        if normalize_phrase(u.get("full_name", "")) == wanted
                    ),
                    None,
                )
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("User lookup failed for %r", token)
            return None

        if not user:
            return None
        return UserRecord(
            id=str(user["user_id"]),
            display_name=user.get("full_name") or match.group("name"),
        )
