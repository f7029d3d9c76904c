"""Configuration for the tallymatch ledger resolution system."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class ScoringConfig:
    near_length_slack: int = 5
    near_length_bonus: float = 10.0
    word_match_bonus: float = 5.0
    long_name_factor: int = 3
    long_name_penalty: float = 10.0


@dataclass
class StrategyScores:
    starts_with: float = 90.0
    dot_normalized: float = 85.0
    contains: float = 80.0
    per_word: float = 70.0
    exact: float = 100.0
    # Client-side fallback tier
    fallback_exact: float = 100.0
    fallback_contains: float = 90.0
    fallback_word_overlap: float = 80.0


@dataclass
class SearchConfig:
    top_k: int = 10
    display_limit: int = 5
    suggestion_limit: int = 5
    suggestion_prefix_length: int = 5
    suggestion_min_similarity: float = 0.1
    parallel_strategies: int = 1  # >1 runs fuzzy strategies on a thread pool


@dataclass
class DataSourceConfig:
    query_timeout: float = 30.0
    max_workers: int = 8
    odbc_dsn: str = "TallyODBC64_9000"
    odbc_connection_string: str | None = None

    def __post_init__(self) -> None:
        if self.odbc_connection_string is None:
            self.odbc_connection_string = os.environ.get("TALLY_ODBC_CONNECTION_STRING")

    def connection_string(self) -> str:
        return self.odbc_connection_string or f"DSN={self.odbc_dsn}"


@dataclass
class ContextConfig:
    ttl_seconds: float = 600.0


@dataclass
class ResolverConfig:
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    strategies: StrategyScores = field(default_factory=StrategyScores)
    search: SearchConfig = field(default_factory=SearchConfig)
    data_source: DataSourceConfig = field(default_factory=DataSourceConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
