"""Error taxonomy for ledger resolution."""

from __future__ import annotations


class TallyMatchError(Exception):
    """Base class for tallymatch errors."""


class DataSourceUnavailable(TallyMatchError):
    """No live connection to the ledger data source.

    The only error that propagates out of the resolver; callers should ask the
    user to reconnect rather than retry.
    """

    def __init__(self, message: str = "Not connected to Tally database. Please connect first.") -> None:
        super().__init__(message)


class QueryError(TallyMatchError):
    """A single query failed; the connection is still usable."""

    def __init__(self, message: str, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql


class QueryStrategyFailed(QueryError):
    """The query engine rejected or failed to execute a query."""


class QueryTimeout(QueryError):
    """A query exceeded its time budget."""


class AmbiguousContinuation(TallyMatchError):
    """A reply to a disambiguation prompt did not identify one candidate."""

    def __init__(self, reply: str, candidate_count: int) -> None:
        super().__init__(f"could not map reply {reply!r} to one of {candidate_count} candidates")
        self.reply = reply
        self.candidate_count = candidate_count
