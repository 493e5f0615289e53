"""
Rule packs: the FAQ content (rules, default, greeting, quick actions)
kept as JSON data so different deployments can swap answers without code changes.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple, Union

from ..errors import RulePackError
from .matcher import ResponseMatcher, Rule

logger = logging.getLogger(__name__)

PACKS_DIR = Path(__file__).parent / "packs"


@dataclass(frozen=True)
class RulePack:
    """Everything the engine needs to answer questions for one deployment."""
    name: str
    rules: Tuple[Rule, ...]
    default_response: str
    greeting: Optional[str] = None
    quick_actions: Tuple[str, ...] = field(default_factory=tuple)

    def build_matcher(self) -> ResponseMatcher:
        return ResponseMatcher(self.rules, self.default_response)


def available_packs() -> Tuple[str, ...]:
    """Names of the packs bundled with the package."""
    return tuple(sorted(p.stem for p in PACKS_DIR.glob("*.json")))


def load_rule_pack(name_or_path: Union[str, Path]) -> RulePack:
    """
    Load a pack by bundled name (e.g. ``"gromo"``) or from a JSON file path.

    Raises:
        RulePackError: the file is missing or does not describe a valid pack.
    """
    path = Path(name_or_path)
    if not path.suffix:
        path = PACKS_DIR / f"{name_or_path}.json"
    if not path.is_file():
        raise RulePackError(f"Rule pack not found: {name_or_path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise RulePackError(f"Cannot read rule pack {path}: {exc}") from exc

    pack = parse_rule_pack(raw, default_name=path.stem)
    logger.info("Loaded rule pack '%s' (%d rules)", pack.name, len(pack.rules))
    return pack


def parse_rule_pack(raw: dict, default_name: str = "custom") -> RulePack:
    """Validate a decoded JSON document and turn it into a RulePack."""
    if not isinstance(raw, dict):
        raise RulePackError("Rule pack must be a JSON object")

    default = raw.get("default")
    if not isinstance(default, str) or not default:
        raise RulePackError("Rule pack needs a non-empty 'default' response")

    rules = []
    for index, entry in enumerate(raw.get("rules", [])):
        try:
            rules.append(_parse_rule(entry))
        except (AttributeError, TypeError, ValueError, KeyError) as exc:
            raise RulePackError(f"Invalid rule #{index}: {exc}") from exc

    greeting = raw.get("greeting") or None
    quick_actions = raw.get("quick_actions", [])
    if not all(isinstance(q, str) and q for q in quick_actions):
        raise RulePackError("Quick actions must be non-empty strings")

    return RulePack(
        name=raw.get("name", default_name),
        rules=tuple(rules),
        default_response=default,
        greeting=greeting,
        quick_actions=tuple(quick_actions),
    )


def _parse_rule(entry: dict) -> Rule:
    response = entry["response"]
    if "keywords" in entry:
        keywords = entry["keywords"]
        if isinstance(keywords, str):
            raise TypeError("'keywords' must be a list of strings")
        return Rule(tuple(keywords), response)
    return Rule.from_pattern(entry["pattern"], response)
