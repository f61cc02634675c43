"""
Fuzzy name similarity
Shared primitives for supplier duplicate detection and client name matching
"""

import re

from rapidfuzz.distance import Levenshtein

# Legal-entity suffixes stripped before comparison ("Spotify AB", "Patagonia, Inc.")
# A separator is required so names like "Atlas" keep their last letters
COMPANY_SUFFIX_PATTERN = re.compile(r"(?:,\s*|\s+)(pbc|ab|hb|kb|inc|llc|ltd|gmbh|as|oy|a/s)\.?$")

# Words that carry no identity when comparing names token by token
STOP_WORDS = {"ab", "hb", "kb", "the", "i", "of", "and", "för", "och"}

TOKEN_CHAR_PATTERN = re.compile(r"[^a-zåäö0-9\s]")

TOKEN_MATCH_THRESHOLD = 0.8


def normalize_name(name: str) -> str:
    """Lower-case, trim, strip one legal-entity suffix and collapse whitespace"""
    normalized = (name or "").lower().strip()
    normalized = COMPANY_SUFFIX_PATTERN.sub("", normalized)
    return " ".join(normalized.split())


def similarity(a: str, b: str) -> float:
    """Levenshtein similarity in [0, 1]: 1 - distance / longest length"""
    max_length = max(len(a), len(b))
    if max_length == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / max_length


def extract_tokens(name: str) -> list[str]:
    """
    Split a name into significant words (longer than 2 chars, no stop words).
    Punctuation is deleted, not split on: "O'Brien" is the single token "obrien".
    """
    cleaned = TOKEN_CHAR_PATTERN.sub("", (name or "").lower())
    return [token for token in cleaned.split() if len(token) > 2 and token not in STOP_WORDS]


def token_overlap(a: str, b: str) -> float:
    """
    Share of tokens that have a close counterpart in the other name.

    Each token of the shorter token list counts once if some token on the other
    side reaches TOKEN_MATCH_THRESHOLD similarity. The count is divided by the
    larger token count so that extra unmatched words lower the score.
    """
    tokens_a = extract_tokens(a)
    tokens_b = extract_tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0

    shorter, longer = (tokens_a, tokens_b) if len(tokens_a) <= len(tokens_b) else (tokens_b, tokens_a)
    matched = sum(
        1
        for token in shorter
        if any(similarity(token, other) >= TOKEN_MATCH_THRESHOLD for other in longer)
    )
    return matched / max(len(tokens_a), len(tokens_b))
