"""tallymatch - Tally ledger name resolution and conversational routing."""

from tallymatch.config import ResolverConfig
from tallymatch.context import ConversationContextStore
from tallymatch.errors import (
    AmbiguousContinuation,
    DataSourceUnavailable,
    QueryError,
    QueryStrategyFailed,
    QueryTimeout,
    TallyMatchError,
)
from tallymatch.resolver import LedgerResolver, ResolverStats
from tallymatch.router import QueryRouter
from tallymatch.sources import GuardedSource, OdbcLedgerSource, SqliteLedgerSource
from tallymatch.types import (
    ExactMatch,
    Ledger,
    MatchCandidate,
    MultipleMatches,
    NoMatch,
    RouterResponse,
    Suggestions,
)

__all__ = [
    "AmbiguousContinuation",
    "ConversationContextStore",
    "DataSourceUnavailable",
    "ExactMatch",
    "GuardedSource",
    "Ledger",
    "LedgerResolver",
    "MatchCandidate",
    "MultipleMatches",
    "NoMatch",
    "OdbcLedgerSource",
    "QueryError",
    "QueryRouter",
    "QueryStrategyFailed",
    "QueryTimeout",
    "ResolverConfig",
    "ResolverStats",
    "RouterResponse",
    "SqliteLedgerSource",
    "Suggestions",
    "TallyMatchError",
]
