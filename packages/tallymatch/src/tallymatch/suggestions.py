"""Last-tier suggestions when nothing matched the search term."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from tallymatch import sql
from tallymatch.config import ResolverConfig
from tallymatch.errors import QueryError
from tallymatch.normalize import translate_vocabulary
from tallymatch.rows import names_from_rows
from tallymatch.scoring import similarity
from tallymatch.sources import GuardedSource
from tallymatch.sql import SqlDialect
from tallymatch.types import NoMatch, Suggestions

log = structlog.get_logger()

# Keyword -> query for the accounts a user probably means. Checked in order.
CATEGORY_PATTERNS: dict[str, Callable[[SqlDialect], str]] = {
    "cash": lambda d: sql.name_or_parent(d, "CASH", "Cash-in-Hand"),
    "bank": lambda d: sql.name_or_parent(d, "BANK", "Bank Accounts"),
    "customer": lambda d: sql.parent_equals(d, "Sundry Debtors"),
    "supplier": lambda d: sql.parent_equals(d, "Sundry Creditors"),
    "expense": lambda d: sql.parent_contains(d, "Expenses"),
    "income": lambda d: sql.parent_contains(d, "Income"),
}

# Shown only when the ledger set could not be searched.
STATIC_SUGGESTIONS: dict[str, list[str]] = {
    "cash": ["Cash Account", "Petty Cash", "Cash-in-Hand"],
    "bank": ["Bank Account", "Current Account", "Savings Account"],
    "customer": ['Try: "List all customers"', 'Or: "Show sundry debtors"'],
    "supplier": ['Try: "List all suppliers"', 'Or: "Show sundry creditors"'],
}
DEFAULT_STATIC_SUGGESTIONS = [
    'Try: "List all ledger accounts"',
    'Or: "Show bank accounts"',
    'Or: "Show cash accounts"',
]


def no_match_message(search_term: str) -> str:
    return (
        f'No ledger found matching "{search_term}".\n\n'
        "Tips:\n"
        "- Try shorter search terms\n"
        '- Ask for "list all ledger accounts" first\n'
        "- Use specific balance amounts if known"
    )


def suggestions_message(search_term: str) -> str:
    return f'No exact match for "{search_term}". Did you mean one of these?'


def static_suggestions(search_term: str) -> list[str]:
    term = search_term.lower()
    for keyword, hints in STATIC_SUGGESTIONS.items():
        if keyword in term:
            return list(hints)
    return list(DEFAULT_STATIC_SUGGESTIONS)


class SuggestionFinder:
    """Category patterns, then a similarity scan, then static hints."""

    def __init__(self, source: GuardedSource, config: ResolverConfig | None = None) -> None:
        self.source = source
        self.config = config or ResolverConfig()

    def find(self, search_term: str) -> Suggestions | NoMatch:
        limit = self.config.search.suggestion_limit

        names = self._category_suggestions(search_term)
        if names:
            log.debug("suggestions_from_category", count=len(names))
            return Suggestions(
                terms=names[:limit],
                search_term=search_term,
                message=suggestions_message(search_term),
                tier="suggestions_category",
            )

        try:
            names = self._similar_names(search_term)
        except QueryError as e:
            log.warning("similarity_suggestion_failed", error=str(e))
            return Suggestions(
                terms=static_suggestions(search_term),
                search_term=search_term,
                message=suggestions_message(search_term),
                tier="suggestions_static",
                from_ledgers=False,
            )

        if names:
            log.debug("suggestions_from_similarity", count=len(names))
            return Suggestions(
                terms=names[:limit],
                search_term=search_term,
                message=suggestions_message(search_term),
                tier="suggestions_similarity",
            )

        return NoMatch(search_term=search_term, message=no_match_message(search_term))

    def _category_suggestions(self, search_term: str) -> list[str]:
        """Ledger names for the first category keyword that yields any."""
        term = translate_vocabulary(search_term).lower()
        dialect = self.source.dialect
        for keyword, build in CATEGORY_PATTERNS.items():
            if keyword not in term:
                continue
            try:
                ledgers = self.source.fetch_ledgers(build(dialect))
            except QueryError as e:
                log.warning("category_suggestion_failed", keyword=keyword, error=str(e))
                continue
            if ledgers:
                return [ledger.name for ledger in ledgers]
        return []

    def _similar_names(self, search_term: str) -> list[str]:
        search = self.config.search
        prefix = search_term[: search.suggestion_prefix_length]
        rows = self.source.query(sql.names_containing_ordered(self.source.dialect, prefix))

        head = search_term.upper()[:4]
        scored = [
            (name, similarity(name, search_term))
            for name in names_from_rows(rows)
        ]
        kept = [
            (name, sim) for name, sim in scored
            if sim > search.suggestion_min_similarity or head in name.upper()
        ]
        kept.sort(key=lambda pair: pair[1], reverse=True)
        return [name for name, _ in kept[: search.suggestion_limit]]
