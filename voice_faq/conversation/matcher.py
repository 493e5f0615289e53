"""
Response Matcher.
Maps free-form user text to a canned FAQ response using ordered keyword rules.
First matching rule wins; anything else falls through to the default response.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """A set of alternative keywords/phrases and the response they trigger."""
    keywords: Tuple[str, ...]
    response: str

    def __post_init__(self):
        keywords = tuple(k.lower() for k in self.keywords)
        if not keywords:
            raise ValueError("Rule needs at least one keyword")
        if any(not k for k in keywords):
            # An empty keyword is a substring of every input
            raise ValueError(f"Rule has an empty keyword: {self.keywords!r}")
        if not self.response:
            raise ValueError("Rule response must not be empty")
        object.__setattr__(self, "keywords", keywords)

    @classmethod
    def from_pattern(cls, pattern: str, response: str) -> "Rule":
        """Build a rule from a legacy ``"a|b|c"`` alternation string."""
        return cls(tuple(part.strip() for part in pattern.split("|")), response)

    def matches(self, normalized: str) -> bool:
        """True when the (already lower-cased) text contains any keyword."""
        return any(keyword in normalized for keyword in self.keywords)


class ResponseMatcher:
    """
    Selects a response for user input.
    Rules are checked in declaration order; the order is part of the contract.
    """

    def __init__(self, rules: Iterable[Rule], default_response: str):
        if not default_response:
            raise ValueError("Default response must not be empty")
        self._rules: Tuple[Rule, ...] = tuple(rules)
        self._default = default_response

    @property
    def rules(self) -> Sequence[Rule]:
        return self._rules

    @property
    def default_response(self) -> str:
        return self._default

    def match_rule(self, text: str) -> Optional[Rule]:
        """Return the first rule that matches ``text``, or None."""
        normalized = (text or "").lower()
        if not normalized:
            return None
        for rule in self._rules:
            if rule.matches(normalized):
                return rule
        return None

    def match(self, text: str) -> str:
        """Return the response for ``text``. Never fails, never empty."""
        rule = self.match_rule(text)
        if rule is None:
            logger.debug("No rule matched, using default: %r", text[:80] if text else text)
            return self._default
        logger.debug("Matched rule %s for %r", "|".join(rule.keywords), text[:80])
        return rule.response
