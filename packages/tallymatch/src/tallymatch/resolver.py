"""Ledger name resolution: exact, fuzzy, client-side fallback, suggestions."""

from __future__ import annotations

import re
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog

from tallymatch import sql
from tallymatch.config import ResolverConfig, StrategyScores
from tallymatch.errors import DataSourceUnavailable, QueryError, QueryTimeout
from tallymatch.normalize import alnum_key, compact, meaningful_terms, normalize
from tallymatch.scoring import fallback_score, score_candidate
from tallymatch.sources import GuardedSource
from tallymatch.sql import SqlDialect
from tallymatch.suggestions import SuggestionFinder, no_match_message
from tallymatch.types import (
    ExactMatch,
    Ledger,
    MatchCandidate,
    MultipleMatches,
    NoMatch,
    ResolutionResult,
)

log = structlog.get_logger()

PER_WORD_SPLIT = r"[\s&]+"


@dataclass
class ResolverStats:
    """Statistics collected during resolution."""

    resolves: int = 0
    snapshot_loads: int = 0
    snapshot_failures: int = 0
    strategy_failures: int = 0
    strategy_timeouts: int = 0
    tiers: dict[str, int] = field(default_factory=lambda: {
        "exact": 0, "fuzzy": 0, "fallback": 0, "suggestions": 0, "none": 0
    })


@dataclass(frozen=True)
class FuzzyStrategy:
    """One server-side search: a name, its base score and a query builder."""

    name: str
    base_score: float
    build: Callable[[SqlDialect], str]


def fuzzy_strategies(term: str, scores: StrategyScores | None = None) -> list[FuzzyStrategy]:
    """The ordered strategy table for a search term."""
    if scores is None:
        scores = StrategyScores()

    strategies = [
        FuzzyStrategy("starts_with", scores.starts_with, lambda d: sql.name_starts_with(d, term)),
        FuzzyStrategy(
            "dot_normalized",
            scores.dot_normalized,
            lambda d, c=compact(term): sql.compact_name_contains(d, c),
        ),
        FuzzyStrategy("contains", scores.contains, lambda d: sql.name_contains(d, term)),
    ]
    for word in re.split(PER_WORD_SPLIT, term):
        if len(word) > 1:
            strategies.append(
                FuzzyStrategy(
                    f"word:{word}",
                    scores.per_word,
                    lambda d, w=word: sql.name_contains(d, w),
                )
            )
    return strategies


def exact_scan(ledgers: list[Ledger], term: str) -> list[Ledger]:
    """Client-side equality in decreasing strictness, then a lone prefix hit."""
    upper = term.upper()
    hits = [l for l in ledgers if l.name.upper() == upper]
    if hits:
        return hits

    collapsed = " ".join(upper.split())
    hits = [l for l in ledgers if " ".join(l.name.upper().split()) == collapsed]
    if hits:
        return hits

    key = alnum_key(term)
    if key:
        hits = [l for l in ledgers if alnum_key(l.name) == key]
        if hits:
            return hits

    prefixed = [l for l in ledgers if l.name.upper().startswith(upper)]
    if len(_distinct(prefixed)) == 1:
        return prefixed
    return []


def _distinct(ledgers: list[Ledger]) -> list[Ledger]:
    seen: set[str] = set()
    unique: list[Ledger] = []
    for ledger in ledgers:
        if ledger.name in seen:
            continue
        seen.add(ledger.name)
        unique.append(ledger)
    return unique


def _found(ledger: Ledger, search_term: str, tier: str, score: float = 100.0) -> ExactMatch:
    suffix = " (using fallback search)" if tier == "fallback" else ""
    return ExactMatch(
        ledger=ledger,
        search_term=search_term,
        message=f"Found: {ledger.name}{suffix}",
        tier=tier,
        score=score,
    )


class _Snapshot:
    """The full ledger list, loaded at most once per resolve.

    After a failed load, ``get`` returns None without querying again; the
    fallback tier passes ``retry=True`` for one more attempt.
    """

    def __init__(self, source: GuardedSource, stats: ResolverStats) -> None:
        self._source = source
        self._stats = stats
        self._ledgers: list[Ledger] | None = None
        self._failed = False
        self._retried = False

    def get(self, retry: bool = False) -> list[Ledger] | None:
        if self._ledgers is not None:
            return self._ledgers
        if self._failed:
            if not retry or self._retried:
                return None
            self._retried = True

        try:
            self._ledgers = self._source.fetch_ledgers(sql.all_ledgers(self._source.dialect))
        except QueryError as e:
            self._failed = True
            self._stats.snapshot_failures += 1
            log.warning("snapshot_load_failed", error=str(e), retry=self._retried)
            return None
        self._stats.snapshot_loads += 1
        log.debug("snapshot_loaded", ledgers=len(self._ledgers))
        return self._ledgers


class LedgerResolver:
    """Resolve a noisy account name to ledger(s) in the data source."""

    def __init__(
        self,
        source: GuardedSource,
        config: ResolverConfig | None = None,
        suggestion_finder: SuggestionFinder | None = None,
    ) -> None:
        self.source = source
        self.config = config or ResolverConfig()
        self.suggestions = suggestion_finder or SuggestionFinder(source, self.config)
        self.stats = ResolverStats()
        workers = self.config.search.parallel_strategies
        self._pool = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None

    def resolve(self, user_input: str) -> ResolutionResult:
        """Run the tiers in order and return the first decisive result.

        Raises:
            DataSourceUnavailable: There is no live connection. Every other
                failure is handled inside the tier that hit it.
        """
        if not self.source.is_connected():
            raise DataSourceUnavailable()

        self.stats.resolves += 1
        term = normalize(user_input)
        log.debug("resolve_start", raw=user_input, search_term=term)
        if not term:
            self.stats.tiers["none"] += 1
            return NoMatch(search_term="", message=no_match_message(""))

        snapshot = _Snapshot(self.source, self.stats)

        result = self._exact_tier(term, snapshot)
        if result is None:
            result = self._fuzzy_tier(term)
        if result is None:
            result = self._fallback_tier(term, snapshot)
        if result is None:
            result = self.suggestions.find(term)
            self.stats.tiers["suggestions" if result.kind == "suggestions" else "none"] += 1
        else:
            self.stats.tiers[result.tier] += 1

        log.debug("resolve_done", search_term=term, kind=result.kind, tier=result.tier)
        return result

    # Tier 1

    def _exact_tier(self, term: str, snapshot: _Snapshot) -> ExactMatch | None:
        hits = _distinct(self._exact_lookup(term, snapshot))
        if len(hits) == 1:
            log.debug("exact_match", term=term, name=hits[0].name)
            return _found(hits[0], term, "exact")

        if " " in term:
            for sub in meaningful_terms(term):
                sub_hits = _distinct(self._exact_lookup(sub, snapshot))
                if len(sub_hits) == 1:
                    log.debug("exact_subterm_match", term=term, sub_term=sub, name=sub_hits[0].name)
                    return _found(sub_hits[0], term, "exact")
                if sub_hits:
                    log.debug("exact_subterm_ambiguous", sub_term=sub, count=len(sub_hits))
        return None

    def _exact_lookup(self, term: str, snapshot: _Snapshot) -> list[Ledger]:
        ledgers = snapshot.get()
        if ledgers is not None:
            return exact_scan(ledgers, term)
        return self._exact_sql(term)

    def _exact_sql(self, term: str) -> list[Ledger]:
        """Server-side equality, for when the ledger list cannot be loaded."""
        dialect = self.source.dialect
        for build in (sql.name_equals, sql.trimmed_name_equals):
            try:
                hits = self.source.fetch_ledgers(build(dialect, term))
            except QueryError as e:
                log.debug("exact_sql_failed", strategy=build.__name__, error=str(e))
                continue
            if hits:
                return hits
        return []

    def names_ledger(self, text: str) -> bool:
        """Whether the cleaned-up text is exactly some ledger's name.

        Raises:
            DataSourceUnavailable: There is no live connection.
        """
        term = normalize(text)
        if not term:
            return False
        return bool(self._exact_sql(term))

    # Tier 2

    def _run_strategy(self, strategy: FuzzyStrategy) -> list[Ledger]:
        try:
            ledgers = self.source.fetch_ledgers(strategy.build(self.source.dialect))
        except QueryTimeout as e:
            self.stats.strategy_timeouts += 1
            log.warning("fuzzy_strategy_timeout", strategy=strategy.name, error=str(e))
            return []
        except QueryError as e:
            self.stats.strategy_failures += 1
            log.warning("fuzzy_strategy_failed", strategy=strategy.name, error=str(e))
            return []
        log.debug("fuzzy_strategy_done", strategy=strategy.name, rows=len(ledgers))
        return ledgers

    def fuzzy_candidates(self, term: str) -> list[MatchCandidate]:
        """Scored, de-duplicated server-side candidates, best first."""
        strategies = fuzzy_strategies(term, self.config.strategies)
        if self._pool is not None:
            per_strategy = list(self._pool.map(self._run_strategy, strategies))
        else:
            per_strategy = [self._run_strategy(s) for s in strategies]

        scored: list[MatchCandidate] = []
        for strategy, ledgers in zip(strategies, per_strategy):
            for ledger in ledgers:
                scored.append(
                    MatchCandidate(
                        ledger=ledger,
                        score=score_candidate(
                            ledger.name, term, strategy.base_score, self.config.scoring
                        ),
                        strategy=strategy.name,
                    )
                )

        # Stable: equal scores keep strategy order
        scored.sort(key=lambda c: c.score, reverse=True)
        seen: set[str] = set()
        unique: list[MatchCandidate] = []
        for candidate in scored:
            if candidate.name in seen:
                continue
            seen.add(candidate.name)
            unique.append(candidate)
        return unique[: self.config.search.top_k]

    def _fuzzy_tier(self, term: str) -> ExactMatch | MultipleMatches | None:
        candidates = self.fuzzy_candidates(term)
        if not candidates:
            return None
        if len(candidates) == 1:
            best = candidates[0]
            return _found(best.ledger, term, "fuzzy", best.score)
        return MultipleMatches(
            candidates=candidates,
            search_term=term,
            message=f'Found {len(candidates)} ledgers matching "{term}". Please specify which one:',
            tier="fuzzy",
            display_limit=self.config.search.display_limit,
        )

    # Tier 3

    def _fallback_tier(
        self, term: str, snapshot: _Snapshot
    ) -> ExactMatch | MultipleMatches | None:
        ledgers = snapshot.get(retry=True)
        if not ledgers:
            return None

        scored = [
            MatchCandidate(
                ledger=ledger,
                score=fallback_score(ledger.name, term, self.config.strategies),
                strategy="fallback",
            )
            for ledger in _distinct(ledgers)
        ]
        matches = [c for c in scored if c.score > 0]
        matches.sort(key=lambda c: c.score, reverse=True)
        matches = matches[: self.config.search.top_k]
        log.debug("fallback_scan_done", scanned=len(ledgers), matches=len(matches))

        if not matches:
            return None
        if len(matches) == 1:
            return _found(matches[0].ledger, term, "fallback", matches[0].score)
        return MultipleMatches(
            candidates=matches,
            search_term=term,
            message=f"Found {len(matches)} possible matches (using fallback search):",
            tier="fallback",
            display_limit=self.config.search.display_limit,
        )

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=False)
