"""
Client name matching for imported documents

Matches a free-text client name (from a scanned invoice) against the user's clients.
Tiers are tried in priority order: exact, contains, fuzzy (Levenshtein), token overlap.
When nothing matches, the closest candidates are returned for manual selection.
"""

import math
from typing import Any, Optional

from rapidfuzz.distance import Levenshtein

from .similarity import normalize_name, similarity, token_overlap

FUZZY_THRESHOLD = 0.85
TOKEN_THRESHOLD = 0.7
CONTAINS_MIN_CONFIDENCE = 0.9
FUZZY_SUGGESTION_MIN = 0.7
TOKEN_SUGGESTION_MIN = 0.5
MATCH_SUGGESTION_COUNT = 3
MANUAL_SUGGESTION_COUNT = 5


def _client_id(client: Any):
    return client.get("id") if isinstance(client, dict) else client.id


def _client_name(client: Any) -> str:
    return (client.get("name") if isinstance(client, dict) else client.name) or ""


def _suggestion(client: Any, score: float) -> dict:
    return {
        "client_id": _client_id(client),
        "client_name": _client_name(client),
        "confidence": round(score, 3),
    }


def _result(
    client: Optional[Any], confidence: float, method: str, suggestions: list[dict]
) -> dict:
    return {
        "client_id": _client_id(client) if client is not None else None,
        "client_name": _client_name(client) if client is not None else None,
        "confidence": round(confidence, 3),
        "method": method,
        "suggestions": suggestions,
    }


def _top(scored: list[tuple[Any, float]], count: int, minimum: float, exclude: Any = None) -> list[dict]:
    ranked = sorted(
        (item for item in scored if item[1] > minimum and item[0] is not exclude),
        key=lambda item: item[1],
        reverse=True,
    )
    return [_suggestion(client, score) for client, score in ranked[:count]]


def match_client(name: str, clients: list) -> dict:
    """
    Match name against clients (dicts or ORM rows with id and name).

    Returns a dict with client_id, client_name, confidence, method
    (exact, contains, fuzzy, token or manual) and suggestions.
    """
    if not clients:
        return _result(None, 0.0, "manual", [])

    target = normalize_name(name)
    normalized = [(client, normalize_name(_client_name(client))) for client in clients]

    # Level 1: exact
    for client, client_norm in normalized:
        if client_norm == target:
            return _result(client, 1.0, "exact", [])

    scored = [(client, similarity(target, client_norm)) for client, client_norm in normalized]

    # Level 2: containment in either direction
    if target:
        contained = [
            (client, score)
            for (client, client_norm), (_, score) in zip(normalized, scored)
            if client_norm and (target in client_norm or client_norm in target)
        ]
        if contained:
            best, best_score = max(contained, key=lambda item: item[1])
            return _result(
                best,
                max(best_score, CONTAINS_MIN_CONFIDENCE),
                "contains",
                _top(scored, MATCH_SUGGESTION_COUNT, FUZZY_SUGGESTION_MIN, exclude=best),
            )

    # Level 3: Levenshtein similarity
    best, best_score = max(scored, key=lambda item: item[1])
    if best_score >= FUZZY_THRESHOLD:
        return _result(
            best,
            best_score,
            "fuzzy",
            _top(scored, MATCH_SUGGESTION_COUNT, FUZZY_SUGGESTION_MIN, exclude=best),
        )

    # Level 4: token overlap
    token_scored = [(client, token_overlap(name, _client_name(client))) for client in clients]
    best_token, best_overlap = max(token_scored, key=lambda item: item[1])
    if best_overlap >= TOKEN_THRESHOLD:
        return _result(
            best_token,
            best_overlap,
            "token",
            _top(token_scored, MATCH_SUGGESTION_COUNT, TOKEN_SUGGESTION_MIN, exclude=best_token),
        )

    # No automatic match
    return _result(None, 0.0, "manual", _top(scored, MANUAL_SUGGESTION_COUNT, -1.0))


def find_closest_client_name(name: str, client_names: list[str]) -> Optional[str]:
    """
    Closest client name by edit distance, or None if nothing is within
    30% of the input length.
    """
    if not name or not client_names:
        return None

    target = name.lower().strip()
    max_distance = math.ceil(len(target) * 0.3)

    best_name = None
    best_distance = None
    for candidate in client_names:
        distance = Levenshtein.distance(target, candidate.lower().strip())
        if distance <= max_distance and (best_distance is None or distance < best_distance):
            best_name = candidate
            best_distance = distance
    return best_name
