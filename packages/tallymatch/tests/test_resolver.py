"""Tests for tiered ledger resolution against a real SQLite snapshot."""

from decimal import Decimal

import pytest

from tallymatch.config import ResolverConfig, SearchConfig
from tallymatch.errors import DataSourceUnavailable, QueryStrategyFailed, QueryTimeout
from tallymatch.resolver import LedgerResolver, exact_scan, fuzzy_strategies
from tallymatch.sources import GuardedSource
from tallymatch.sql import SQLITE, all_ledgers
from tallymatch.types import ExactMatch, Ledger, MultipleMatches, NoMatch, Suggestions


class LikeQueriesTimeOut(GuardedSource):
    """Every pattern query times out; plain selects still work."""

    def query(self, sql, timeout=None):
        if " LIKE " in sql:
            raise QueryTimeout("query timeout after 30s", sql=sql)
        return super().query(sql, timeout)


class LikeQueriesFail(GuardedSource):
    def query(self, sql, timeout=None):
        if " LIKE " in sql:
            raise QueryStrategyFailed("ODBC driver does not support LIKE here", sql=sql)
        return super().query(sql, timeout)


class FullScanTimesOut(GuardedSource):
    """Loading the whole ledger list always times out."""

    def query(self, sql, timeout=None):
        if sql == all_ledgers(self.dialect):
            raise QueryTimeout("query timeout after 30s", sql=sql)
        return super().query(sql, timeout)


class TestExactTier:
    def test_exact_name(self, make_source):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve("HDFC Bank")
        assert isinstance(result, ExactMatch)
        assert result.ledger.name == "HDFC Bank"
        assert result.ledger.closing_balance == Decimal("250000")
        assert result.message == "Found: HDFC Bank"
        assert result.tier == "exact"

    def test_question_boilerplate_is_stripped(self, make_source):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve("What is the closing balance of hdfc bank?")
        assert isinstance(result, ExactMatch)
        assert result.ledger.name == "HDFC Bank"
        assert result.search_term == "hdfc bank"

    def test_echoed_name_is_deduplicated(self, make_source):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve("7 SHORE IMEX (P) SHORE IMEX (P)")
        assert isinstance(result, ExactMatch)
        assert result.ledger.name == "7 SHORE IMEX (P)"

    def test_single_prefix_hit_counts_as_exact(self, make_source):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve("A.A.MALLA")
        assert isinstance(result, ExactMatch)
        assert result.ledger.name == "A.A.MALLA & CO."
        assert result.tier == "exact"

    def test_meaningful_sub_term(self, make_source):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve("office rent")
        assert isinstance(result, ExactMatch)

        result = resolver.resolve("the hdfc")
        assert isinstance(result, ExactMatch)
        assert result.ledger.name == "HDFC Bank"

    def test_duplicate_rows_are_one_ledger(self, make_source):
        ledgers = [
            {"name": "Cash", "parent": "Cash-in-Hand", "closing_balance": 10},
            {"name": "Cash", "parent": "Cash-in-Hand", "closing_balance": 10},
        ]
        resolver = LedgerResolver(make_source(ledgers=ledgers))
        result = resolver.resolve("cash")
        assert isinstance(result, ExactMatch)

    def test_exact_scan_prefers_strict_equality(self):
        ledgers = [Ledger("Cash"), Ledger("Cash Account")]
        assert exact_scan(ledgers, "CASH") == [Ledger("Cash")]
        assert exact_scan(ledgers, "cash   account") == [Ledger("Cash Account")]
        assert exact_scan(ledgers, "ca") == []


class TestFuzzyTier:
    def test_containment_gives_multiple_matches_by_score(self, make_source):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve("sharma")
        assert isinstance(result, MultipleMatches)
        names = [c.name for c in result.candidates]
        assert names == ["Sharma Traders", "Sharma Steel", "Sharma Cement Agency"]
        scores = [c.score for c in result.candidates]
        assert scores == sorted(scores, reverse=True)
        assert result.message == 'Found 3 ledgers matching "sharma". Please specify which one:'

    def test_only_five_shown_but_all_kept(self, make_source):
        ledgers = [
            {"name": f"Gupta Store {i}", "parent": "Sundry Debtors", "closing_balance": i}
            for i in range(1, 8)
        ]
        resolver = LedgerResolver(make_source(ledgers=ledgers))
        result = resolver.resolve("gupta")
        assert isinstance(result, MultipleMatches)
        assert len(result.candidates) == 7
        assert len(result.shown) == 5
        assert len({c.name for c in result.candidates}) == 7

    @pytest.mark.parametrize("term", ["AAMALLA", "A A MALLA", "aamalla"])
    def test_dot_and_space_insensitive(self, make_source, term):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve(term)
        assert isinstance(result, ExactMatch)
        assert result.ledger.name == "A.A.MALLA & CO."

    def test_quotes_in_term_are_escaped(self, make_source):
        ledgers = [
            {"name": "O'Brien & Sons", "parent": "Sundry Debtors", "closing_balance": 1},
            {"name": "O'Brien Transport", "parent": "Sundry Creditors", "closing_balance": -1},
        ]
        resolver = LedgerResolver(make_source(ledgers=ledgers))
        result = resolver.resolve("o'brien")
        assert isinstance(result, MultipleMatches)
        assert result.tier == "fuzzy"
        assert resolver.stats.strategy_failures == 0

    def test_parallel_strategies_match_sequential(self, make_source):
        sequential = LedgerResolver(make_source()).resolve("sharma")
        config = ResolverConfig(search=SearchConfig(parallel_strategies=4))
        resolver = LedgerResolver(make_source(), config)
        parallel = resolver.resolve("sharma")
        resolver.close()
        assert [c.name for c in parallel.candidates] == [c.name for c in sequential.candidates]

    def test_strategy_table(self):
        names = [s.name for s in fuzzy_strategies("A.A.MALLA & CO")]
        assert names[:3] == ["starts_with", "dot_normalized", "contains"]
        assert names[3:] == ["word:A.A.MALLA", "word:CO"]
        compact_sql = fuzzy_strategies("a.a. malla")[1].build(SQLITE)
        assert "'%AAMALLA%'" in compact_sql


class TestFallbackTier:
    def test_runs_after_fuzzy_queries_time_out(self, make_source):
        resolver = LedgerResolver(make_source(source_cls=LikeQueriesTimeOut))
        result = resolver.resolve("traders sharma")
        assert isinstance(result, MultipleMatches)
        assert result.tier == "fallback"
        assert result.candidates[0].name == "Sharma Traders"
        assert result.candidates[0].score == 80.0
        assert "(using fallback search)" in result.message
        assert resolver.stats.strategy_timeouts > 0

    def test_single_fallback_hit(self, make_source):
        resolver = LedgerResolver(make_source(source_cls=LikeQueriesFail))
        result = resolver.resolve("rent ofice")
        assert isinstance(result, ExactMatch)
        assert result.ledger.name == "Office Rent"
        assert result.message == "Found: Office Rent (using fallback search)"


class TestSuggestionTier:
    def test_cash_suggests_cash_in_hand_ledger(self, make_source):
        ledgers = [
            {"name": "Petty Float", "parent": "Cash-in-Hand", "closing_balance": 500},
            {"name": "HDFC Bank", "parent": "Bank Accounts", "closing_balance": 100},
        ]
        resolver = LedgerResolver(make_source(ledgers=ledgers))
        result = resolver.resolve("cash")
        assert isinstance(result, Suggestions)
        assert result.terms == ["Petty Float"]
        assert result.from_ledgers is True
        assert result.message == 'No exact match for "cash". Did you mean one of these?'

    def test_hinglish_category(self, make_source):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve("grahak")
        assert isinstance(result, Suggestions)
        assert result.terms == ["7 SHORE IMEX (P)", "A.A.MALLA & CO.", "Sharma Cement Agency"]

    def test_similar_names(self, make_source):
        resolver = LedgerResolver(make_source())
        result = resolver.resolve("Sharmx Trdrs")
        assert isinstance(result, Suggestions)
        assert result.tier == "suggestions_similarity"
        assert result.terms[0] == "Sharma Traders"
        assert len(result.terms) <= 5

    def test_static_hints_only_when_queries_fail(self, make_source):
        ledgers = [{"name": "HDFC Bank", "parent": "Bank Accounts", "closing_balance": 100}]
        resolver = LedgerResolver(make_source(ledgers=ledgers, source_cls=LikeQueriesFail))
        result = resolver.resolve("cash")
        assert isinstance(result, Suggestions)
        assert result.from_ledgers is False
        assert result.terms == ["Cash Account", "Petty Cash", "Cash-in-Hand"]


class TestNoMatch:
    def test_empty_ledger_set(self, make_source):
        resolver = LedgerResolver(make_source(ledgers=[]))
        result = resolver.resolve("anything at all")
        assert isinstance(result, NoMatch)
        assert 'No ledger found matching "anything at all"' in result.message

    def test_empty_ledger_set_with_category_word(self, make_source):
        resolver = LedgerResolver(make_source(ledgers=[]))
        assert isinstance(resolver.resolve("cash"), NoMatch)

    def test_blank_input(self, make_source):
        resolver = LedgerResolver(make_source())
        assert isinstance(resolver.resolve("   "), NoMatch)


class TestUnavailable:
    def test_disconnected_source_raises(self, make_source):
        source = make_source()
        source.source.invalidate()
        resolver = LedgerResolver(source)
        with pytest.raises(DataSourceUnavailable):
            resolver.resolve("cash")


def test_stats_count_tiers(make_source):
    resolver = LedgerResolver(make_source())
    resolver.resolve("HDFC Bank")
    resolver.resolve("sharma")
    assert resolver.stats.resolves == 2
    assert resolver.stats.tiers["exact"] == 1
    assert resolver.stats.tiers["fuzzy"] == 1
    assert resolver.stats.snapshot_loads == 2


class TestSnapshotFailure:
    def test_failed_load_is_not_retried_per_sub_term(self, make_source):
        resolver = LedgerResolver(make_source(source_cls=FullScanTimesOut))
        result = resolver.resolve("sharma cement agency delhi branch")
        assert isinstance(result, MultipleMatches)
        assert resolver.stats.snapshot_failures == 1

    def test_fallback_tier_retries_once(self, make_source):
        resolver = LedgerResolver(make_source(source_cls=FullScanTimesOut))
        result = resolver.resolve("zqx wvy kpj")
        assert isinstance(result, NoMatch)
        assert resolver.stats.snapshot_failures == 2
        assert resolver.stats.snapshot_loads == 0

    def test_exact_name_still_found_through_sql(self, make_source):
        resolver = LedgerResolver(make_source(source_cls=FullScanTimesOut))
        result = resolver.resolve("hdfc bank")
        assert isinstance(result, ExactMatch)
        assert result.ledger.name == "HDFC Bank"
        assert resolver.stats.snapshot_failures == 1


def test_names_ledger(make_source):
    resolver = LedgerResolver(make_source())
    assert resolver.names_ledger("Sales Account")
    assert resolver.names_ledger("balance of hdfc bank")
    assert not resolver.names_ledger("sales")
    assert not resolver.names_ledger("")


def test_underscore_in_term_is_not_a_wildcard(make_source):
    ledgers = [
        {"name": "GST_IN Payable", "parent": "Duties & Taxes", "closing_balance": -10},
        {"name": "GSTXIN Refund", "parent": "Current Assets", "closing_balance": 10},
    ]
    resolver = LedgerResolver(make_source(ledgers=ledgers))
    assert [c.name for c in resolver.fuzzy_candidates("GST_IN")] == ["GST_IN Payable"]
