"""Deterministic scoring of ledger names against a search term."""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein

from tallymatch.config import ScoringConfig, StrategyScores


def score_candidate(
    candidate_name: str,
    search_term: str,
    base_score: float,
    config: ScoringConfig | None = None,
) -> float:
    """Adjust a strategy's base score for one candidate, clamped to [0, 100]."""
    if config is None:
        config = ScoringConfig()

    score = base_score

    # 1. Near-length names are more likely the intended ledger
    if len(candidate_name) <= len(search_term) + config.near_length_slack:
        score += config.near_length_bonus

    # 2. Whole-word overlap
    name_words = set(candidate_name.upper().split())
    shared = sum(1 for w in search_term.upper().split() if w in name_words)
    score += shared * config.word_match_bonus

    # 3. Much longer names are usually unrelated supersets
    if len(candidate_name) > len(search_term) * config.long_name_factor:
        score -= config.long_name_penalty

    return max(0.0, min(100.0, score))


def similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity in [0, 1], case-insensitive."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    distance = Levenshtein.distance(a.lower(), b.lower())
    return (max_len - distance) / max_len


def fallback_score(
    candidate_name: str,
    search_term: str,
    scores: StrategyScores | None = None,
) -> float:
    """Three-level score used when scanning the whole ledger set client-side.

    exact > contains > proportional word overlap; 0 means no relation.
    """
    if scores is None:
        scores = StrategyScores()

    name = candidate_name.upper()
    term = search_term.upper()
    if not term:
        return 0.0

    if name == term:
        return scores.fallback_exact
    if term in name:
        return scores.fallback_contains

    search_words = term.split()
    name_words = name.split()
    matching = [
        sw for sw in search_words
        if any(sw in nw or (len(nw) > 1 and nw in sw) for nw in name_words)
    ]
    if not matching:
        return 0.0
    return min(
        scores.fallback_word_overlap,
        len(matching) / len(search_words) * scores.fallback_word_overlap,
    )
