"""Match OCR-parsed bowler names against known bowlers and their aliases.

Matching works in confidence tiers (see ``MatchingPolicy``):

* ``exact``: canonical-name similarity at or above ``exact_threshold``
* ``alias``: similarity to any recorded alias at or above ``alias_threshold``
* ``fuzzy``: a weaker canonical-name match, tried only for bowlers that had
  neither of the above

``resolve_bowler_name`` turns the ranked matches into a decision: resolve
automatically, ask the user to choose, or let the caller create a new bowler.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Literal, Optional

from scoresnap.names import calculate_similarity, normalize_name
from scoresnap.settings import DEFAULT_POLICY, MatchingPolicy
from scoresnap.store import Store, StoreError

logger = logging.getLogger(__name__)

MatchType = Literal["exact", "alias", "fuzzy"]
AliasSource = Literal["manual", "auto_vision"]


@dataclass(frozen=True)
class BowlerMatch:
    bowler: dict
    aliases: list[dict]
    confidence: float
    match_type: MatchType

    @property
    def bowler_id(self) -> str:
        return self.bowler["id"]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class NameResolution:
    resolved_bowler_id: Optional[str]
    needs_user_input: bool
    parsed_name: str
    suggestions: list[BowlerMatch] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "resolved_bowler_id": self.resolved_bowler_id,
            "needs_user_input": self.needs_user_input,
            "suggestions": [match.to_dict() for match in self.suggestions],
            "parsed_name": self.parsed_name,
        }


def _match_for(bowler: dict, confidence: float, match_type: MatchType) -> BowlerMatch:
    return BowlerMatch(
        bowler={
            "id": bowler["id"],
            "canonical_name": bowler["canonical_name"],
            "primary_user_id": bowler.get("primary_user_id"),
        },
        aliases=list(bowler.get("aliases") or []),
        confidence=confidence,
        match_type=match_type,
    )


def _matches_for_bowler(
    normalized_parsed: str, bowler: dict, policy: MatchingPolicy
) -> list[BowlerMatch]:
    matches: list[BowlerMatch] = []
    canonical_similarity = calculate_similarity(
        normalized_parsed, normalize_name(bowler["canonical_name"])
    )
    if canonical_similarity >= policy.exact_threshold:
        matches.append(_match_for(bowler, canonical_similarity, "exact"))

    for alias in bowler.get("aliases") or []:
        alias_similarity = calculate_similarity(normalized_parsed, normalize_name(alias["alias"]))
        if alias_similarity >= policy.alias_threshold:
            matches.append(_match_for(bowler, alias_similarity, "alias"))

    # A weak alias hit still suppresses the fuzzy canonical fallback.
    if not matches and canonical_similarity >= policy.fuzzy_threshold:
        matches.append(_match_for(bowler, canonical_similarity, "fuzzy"))
    return matches


def rank_bowler_matches(
    parsed_name: str,
    bowlers: list[dict],
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> list[BowlerMatch]:
    """Score ``bowlers`` against ``parsed_name``; best match per bowler, highest first."""
    normalized_parsed = normalize_name(parsed_name)
    candidates: list[BowlerMatch] = []
    for bowler in bowlers:
        candidates.extend(_matches_for_bowler(normalized_parsed, bowler, policy))

    candidates.sort(key=lambda match: match.confidence, reverse=True)
    seen: set[str] = set()
    unique: list[BowlerMatch] = []
    for match in candidates:
        if match.bowler_id in seen:
            continue
        seen.add(match.bowler_id)
        unique.append(match)
    return unique


def find_bowler_matches(
    store: Store,
    parsed_name: str,
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> list[BowlerMatch]:
    bowlers = store.fetch_bowlers_with_aliases()
    matches = rank_bowler_matches(parsed_name, bowlers, policy)
    logger.debug(
        "Matched %r against %d bowlers: %d candidate(s)",
        parsed_name,
        len(bowlers),
        len(matches),
    )
    return matches


def decide_resolution(
    parsed_name: str,
    matches: list[BowlerMatch],
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> NameResolution:
    if matches and matches[0].confidence >= policy.auto_resolve_threshold:
        return NameResolution(
            resolved_bowler_id=matches[0].bowler_id,
            needs_user_input=False,
            parsed_name=parsed_name,
            suggestions=matches[: policy.resolved_suggestion_limit],
        )
    if matches:
        return NameResolution(
            resolved_bowler_id=None,
            needs_user_input=True,
            parsed_name=parsed_name,
            suggestions=matches[: policy.ambiguous_suggestion_limit],
        )
    # Unknown names are created silently rather than interrupting the upload.
    return NameResolution(
        resolved_bowler_id=None,
        needs_user_input=False,
        parsed_name=parsed_name,
    )


def resolve_bowler_name(
    store: Store,
    parsed_name: str,
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> NameResolution:
    resolution = decide_resolution(parsed_name, find_bowler_matches(store, parsed_name, policy), policy)
    if resolution.resolved_bowler_id:
        logger.info("Resolved %r to bowler %s", parsed_name, resolution.resolved_bowler_id)
    elif resolution.needs_user_input:
        logger.info(
            "Name %r is ambiguous (%d suggestion(s))",
            parsed_name,
            len(resolution.suggestions),
        )
    return resolution


def create_new_bowler(store: Store, canonical_name: str, created_by_user_id: str) -> Optional[str]:
    try:
        bowler_id = store.insert_bowler(canonical_name, created_by_user_id)
    except StoreError:
        logger.exception("Could not create bowler %r", canonical_name)
        return None
    logger.info("Created bowler %s (%r)", bowler_id, canonical_name)
    return bowler_id


def add_bowler_alias(
    store: Store,
    bowler_id: str,
    alias: str,
    source: AliasSource = "auto_vision",
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> bool:
    try:
        store.insert_bowler_alias(bowler_id, alias, source, policy.alias_confidence)
    except StoreError:
        logger.exception("Could not add alias %r to bowler %s", alias, bowler_id)
        return False
    return True


def get_bowler_aliases(store: Store, bowler_id: str) -> list[dict]:
    try:
        return store.fetch_bowler_aliases(bowler_id)
    except StoreError:
        logger.exception("Could not fetch aliases for bowler %s", bowler_id)
        return []


def search_bowlers(store: Store, search_term: str, limit: int = 10) -> list[dict]:
    normalized = normalize_name(search_term)
    try:
        return store.search_bowlers(normalized, limit)
    except StoreError:
        logger.exception("Bowler search failed for %r", search_term)
        return []
