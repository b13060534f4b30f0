"""Event dispatching system for routing Zulip messages to feature handlers.

Each inbound message is normalized, the pattern registry names the single
feature that owns the text, and only that feature responds. Direct messages
and mentions nobody claims go to the conversational fallback, if one is
installed.
"""
import logging
from typing import Dict, List, Optional, Tuple

from core.models import InboundEvent, parse_message_event
from core.registry import PatternKind, PatternRegistry, RegistryFrozenError
from utils.matching import strip_self_mention

logger = logging.getLogger(__name__)


class FeatureHandler:
    """
    Interface for feature modules.

    Subclasses set ``name``, list the patterns they own in ``patterns()`` and
    implement ``respond()``. Parsing happens inside ``respond()``; the
    registry only decides ownership.
    """

    name: str = ""

    registry: Optional[PatternRegistry] = None

    def patterns(self) -> List[Tuple[PatternKind, int]]:
        """Patterns claimed by this feature as (matcher, priority) pairs."""
        return []

    def bind(self, registry: PatternRegistry) -> None:
        """Keep a reference to the registry and register owned patterns."""
        self.registry = registry
        for matcher, priority in self.patterns():
            registry.register(self.name, matcher, priority)

    def matches(self, text: str) -> bool:
        """Check if any of this feature's own patterns match the text."""
        return any(matcher.matches(text) for matcher, _ in self.patterns())

    async def respond(self, event: InboundEvent, text: str) -> None:
        """Process an event whose normalized text this feature owns.

        Args:
            event: The message event
            text: Normalized text (bot mention stripped, trimmed)
        """
        raise NotImplementedError


class Dispatcher:
    """Routes Zulip message events to at most one feature handler.

    Errors in the chosen handler are logged and isolated; they never reach
    the event loop and never hand the event to another handler.
    """
    def __init__(
        self,
        registry: Optional[PatternRegistry] = None,
        bot_user_id: Optional[str] = None,
        bot_name: Optional[str] = None,
        team_id: str = "default",
    ) -> None:
        self.registry = registry or PatternRegistry()
        self.bot_user_id = bot_user_id
        self.bot_name = bot_name
        self.team_id = team_id
        self._features: Dict[str, FeatureHandler] = {}
        self._fallback: Optional[FeatureHandler] = None

    def register_feature(self, feature: FeatureHandler) -> None:
        """Register a feature handler and its patterns.

        Args:
            feature: FeatureHandler instance to register

        Raises:
            ValueError: If a feature with the same name is already registered
            RegistryFrozenError: If called after freeze()
        """
        if self.registry.frozen:
            raise RegistryFrozenError(f"Cannot register {feature.name!r} after startup")
        if not feature.name:
            raise ValueError(f"{feature.__class__.__name__} has no name")
        if feature.name in self._features:
            raise ValueError(f"Feature {feature.name!r} already registered")
        feature.bind(self.registry)
        self._features[feature.name] = feature
        logger.info("Registered feature %s", feature.name)

    def set_fallback(self, feature: FeatureHandler) -> None:
        """Install the handler for addressed messages nobody else claims."""
        if self.registry.frozen:
            raise RegistryFrozenError("Cannot set the fallback after startup")
        if feature.patterns():
            raise ValueError("The fallback feature must not own patterns")
        feature.bind(self.registry)
        self._fallback = feature
        logger.info("Fallback feature set to %s", feature.name)

    def freeze(self) -> None:
        """End the registration phase; later registrations raise."""
        self.registry.freeze()

    def feature(self, name: str) -> Optional[FeatureHandler]:
        return self._features.get(name)

    def normalize(self, text: str) -> str:
        return strip_self_mention(text, self.bot_name, self.bot_user_id)

    async def dispatch(self, event: InboundEvent) -> Optional[str]:
        """Route one event to the feature that owns its text.

        Args:
            event: Parsed inbound event

        Returns:
            Name of the feature that was invoked, or None
        """
        try:
            text = self.normalize(event.text)
            owner = self.registry.find_owner(text) if text else None
        except Exception:  # pylint: disable=broad-exception-caught
            # A failing matcher drops this message only
            logger.exception("Error routing message_id=%s", event.id)
            return None
        if not text:
            return None

        feature = self._features.get(owner) if owner else None
        if feature is None:
            if not event.is_direct_or_mention or self._fallback is None:
                return None
            feature = self._fallback

        logger.debug("Dispatching message_id=%s to %s", event.id, feature.name)
        try:
            await feature.respond(event, text)
        except Exception:  # pylint: disable=broad-exception-caught
            # The owning feature failed; no other feature gets the event
            logger.exception("Error in feature %s", feature.name)
        return feature.name

    async def dispatch_event(self, event_dict: dict) -> Optional[str]:
        """Parse a raw Zulip event and dispatch it.

        Messages sent by the bot itself are ignored, as are events that
        cannot be parsed.

        Args:
            event_dict: Raw event dictionary from Zulip
        """
        try:
            msg_event = parse_message_event(event_dict, team_id=self.team_id)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Failed to parse event: %r", event_dict)
            return None
        if msg_event is None:
            return None
        if self.bot_user_id is not None and msg_event.user_id == str(self.bot_user_id):
            return None
        return await self.dispatch(msg_event)
