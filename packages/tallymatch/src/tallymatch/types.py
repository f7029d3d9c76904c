"""Core types for the tallymatch ledger resolution system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Literal, Union


@dataclass(frozen=True)
class Ledger:
    name: str
    parent: str = ""
    closing_balance: Decimal = Decimal("0")  # positive = debit, negative = credit


@dataclass
class MatchCandidate:
    ledger: Ledger
    score: float
    strategy: str = ""

    @property
    def name(self) -> str:
        return self.ledger.name


@dataclass
class ExactMatch:
    kind: ClassVar[str] = "exact_match"

    ledger: Ledger
    search_term: str
    message: str
    tier: str = "exact"
    score: float = 100.0


@dataclass
class MultipleMatches:
    kind: ClassVar[str] = "multiple_matches"

    candidates: list[MatchCandidate]
    search_term: str
    message: str
    tier: str = "fuzzy"
    display_limit: int = 5

    @property
    def shown(self) -> list[MatchCandidate]:
        """Candidates presented to the user, numbered from 1."""
        return self.candidates[: self.display_limit]


@dataclass
class Suggestions:
    kind: ClassVar[str] = "suggestions"

    terms: list[str]
    search_term: str
    message: str
    tier: str = "suggestions"
    # False for static hints that are not ledger names
    from_ledgers: bool = True


@dataclass
class NoMatch:
    kind: ClassVar[str] = "no_match"

    search_term: str
    message: str
    tier: str = "none"


ResolutionResult = Union[ExactMatch, MultipleMatches, Suggestions, NoMatch]

PendingKind = Literal["multi_match", "suggestions"]


@dataclass(frozen=True)
class PendingCandidate:
    display_name: str
    ledger_name: str | None = None


@dataclass(frozen=True)
class PendingDisambiguation:
    search_term: str
    candidates: tuple[PendingCandidate, ...]
    created_at: datetime
    kind: PendingKind


@dataclass(frozen=True)
class Selection:
    index: int  # 0-based
    candidate: PendingCandidate


@dataclass
class Intent:
    category: str
    query: str | None = None


@dataclass
class RouterResponse:
    kind: str
    display_message: str
    payload: object = None
    category: str = "ledger"
    meta: dict = field(default_factory=dict)
