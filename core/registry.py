"""Pattern registry for arbitrating which feature owns a message.

Features declare the patterns they claim together with a priority. The
registry keeps every rule sorted by descending priority, with registration
order as the stable secondary key, and answers which single feature (if any)
claims a piece of normalized text.

Lifecycle: construct -> register (all features) -> freeze -> read-only
dispatch. Rules are never added after ``freeze()``, so dispatch-time reads
need no locking.
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

logger = logging.getLogger(__name__)


class RegistryFrozenError(RuntimeError):
    """Raised when a rule is registered after the registry was frozen."""


@dataclass(frozen=True)
class Regex:
    """Matches when the compiled expression is found anywhere in the text."""
    pattern: "re.Pattern[str]"

    @classmethod
    def of(cls, expression: str, flags: int = 0) -> "Regex":
        return cls(re.compile(expression, flags))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    def __str__(self) -> str:
        return f"/{self.pattern.pattern}/"


@dataclass(frozen=True)
class Literal:
    """Matches the whole text, case-insensitively unless told otherwise."""
    text: str
    case_sensitive: bool = False

    def matches(self, text: str) -> bool:
        if self.case_sensitive:
            return text == self.text
        return text.lower() == self.text.lower()

    def __str__(self) -> str:
        return repr(self.text)


@dataclass(frozen=True)
class Predicate:
    """Matches when the wrapped callable returns true."""
    fn: Callable[[str], bool]
    label: str = "predicate"

    def matches(self, text: str) -> bool:
        return bool(self.fn(text))

    def __str__(self) -> str:
        return f"<{self.label}>"


PatternKind = Union[Regex, Literal, Predicate]


@dataclass(frozen=True)
class PatternRule:
    """A (matcher, owner, priority) triple.

    Attributes:
        matcher: Pattern deciding whether the rule applies to a text
        owner: Name of the feature claiming matching texts
        priority: Higher priority rules are consulted first
        index: Registration order, used to break priority ties
    """
    matcher: PatternKind
    owner: str
    priority: int
    index: int

    def matches(self, text: str) -> bool:
        return self.matcher.matches(text)


class PatternRegistry:
    """Ordered collection of pattern rules with first-match ownership."""

    def __init__(self) -> None:
        self._rules: List[PatternRule] = []
        self._counter = 0
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, owner: str, matcher: PatternKind, priority: int = 1) -> PatternRule:
        """Add a rule and keep the collection sorted.

        Duplicate patterns from different owners are allowed and coexist.

        Args:
            owner: Feature name claiming the pattern
            matcher: Regex, Literal or Predicate
            priority: Higher wins when several rules match

        Returns:
            The stored rule

        Raises:
            RegistryFrozenError: If called after freeze()
        """
        if self._frozen:
            raise RegistryFrozenError(
                f"cannot register {matcher} for {owner!r}: registry is frozen"
            )
        rule = PatternRule(matcher=matcher, owner=owner, priority=priority, index=self._counter)
        self._counter += 1
        self._rules.append(rule)
        self._rules.sort(key=lambda r: (-r.priority, r.index))
        logger.debug(
            "Registered pattern %s from %s with priority %s", matcher, owner, priority
        )
        return rule

    def freeze(self) -> None:
        """Close the registration phase."""
        self._frozen = True
        logger.info("Pattern registry frozen with %s rules", len(self._rules))

    def find_owner(self, text: str) -> Optional[str]:
        """Return the owner of the first matching rule, or None.

        Evaluation stops at the first match; lower priority rules are not
        consulted for ownership.
        """
        if not text:
            return None
        for rule in self._rules:
            if rule.matches(text):
                return rule.owner
        return None

    def matches_any(self, text: str) -> bool:
        """True if some registered rule claims the text."""
        return self.find_owner(text) is not None

    def rules(self) -> List[PatternRule]:
        """Snapshot of the rules in evaluation order."""
        return list(self._rules)
