"""Tests for the multi-turn query router."""

from datetime import datetime, timedelta, timezone

from tallymatch.context import ConversationContextStore
from tallymatch.resolver import LedgerResolver
from tallymatch.router import QueryRouter
from tallymatch.types import Intent, PendingCandidate, PendingDisambiguation

TWO_SHARMAS = [
    {"name": "Sharma Traders", "parent": "Sundry Creditors", "closing_balance": -40000},
    {"name": "Sharma Steel", "parent": "Sundry Creditors", "closing_balance": -12000},
    {"name": "HDFC Bank", "parent": "Bank Accounts", "closing_balance": 250000},
    {"name": "Sales Account", "parent": "Sales Accounts", "closing_balance": -900000},
]


class MockClassifier:
    """Classifier returning a fixed intent and recording calls."""

    def __init__(self, intent: Intent | None = None, error: Exception | None = None):
        self.intent = intent or Intent(category="ledger")
        self.error = error
        self.calls: list[str] = []

    def classify(self, text: str) -> Intent:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.intent


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 4, 1, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def make_router(make_source, ledgers=TWO_SHARMAS, **kwargs) -> QueryRouter:
    return QueryRouter(LedgerResolver(make_source(ledgers=ledgers)), **kwargs)


class TestResolveLedger:
    def test_exact_match_clears_pending(self, make_source):
        router = make_router(make_source)
        response = router.resolve_ledger("s1", "sharma")
        assert response.kind == "multiple_matches"
        assert router.context.get_pending("s1") is not None

        response = router.resolve_ledger("s1", "HDFC Bank")
        assert response.kind == "exact_match"
        assert response.payload.ledger.name == "HDFC Bank"
        assert router.context.get_pending("s1") is None

    def test_multiple_matches_store_shown_candidates(self, make_source):
        router = make_router(make_source)
        response = router.resolve_ledger("s1", "balance of sharma")
        pending = router.context.get_pending("s1")
        assert pending.kind == "multi_match"
        assert [c.display_name for c in pending.candidates] == ["Sharma Traders", "Sharma Steel"]
        assert "1. Sharma Traders" in response.display_message
        assert response.meta["tier"] == "fuzzy"

    def test_suggestions_store_pending(self, make_source):
        ledgers = [{"name": "Petty Float", "parent": "Cash-in-Hand", "closing_balance": 500}]
        router = make_router(make_source, ledgers=ledgers)
        response = router.resolve_ledger("s1", "cash")
        assert response.kind == "suggestions"
        assert router.context.get_pending("s1").kind == "suggestions"

    def test_no_match(self, make_source):
        router = make_router(make_source, ledgers=[])
        response = router.resolve_ledger("s1", "nothing here")
        assert response.kind == "no_match"
        assert router.context.get_pending("s1") is None

    def test_unavailable_is_distinct_from_no_match(self, make_source):
        router = make_router(make_source)
        router.resolver.source.source.invalidate()
        response = router.resolve_ledger("s1", "HDFC Bank")
        assert response.kind == "unavailable"
        assert response.display_message == "Not connected to Tally database. Please connect first."


class TestContinuation:
    def test_number_selects_candidate(self, make_source):
        router = make_router(make_source)
        router.handle("s1", "balance of sharma")
        response = router.handle("s1", "2")
        assert response.kind == "exact_match"
        assert response.payload.ledger.name == "Sharma Steel"
        assert response.meta["selected_index"] == 2
        assert router.context.get_pending("s1") is None

    def test_exact_name_selects_candidate(self, make_source):
        router = make_router(make_source)
        router.handle("s1", "balance of sharma")
        response = router.handle("s1", "sharma traders")
        assert response.kind == "exact_match"
        assert response.payload.ledger.name == "Sharma Traders"

    def test_out_of_range_asks_again_and_keeps_pending(self, make_source):
        router = make_router(make_source)
        router.handle("s1", "balance of sharma")
        response = router.handle("s1", "3")
        assert response.kind == "clarification"
        assert "between 1 and 2" in response.display_message
        assert router.context.get_pending("s1") is not None

        response = router.handle("s1", "1")
        assert response.payload.ledger.name == "Sharma Traders"

    def test_new_question_replaces_pending(self, make_source):
        router = make_router(make_source)
        router.handle("s1", "balance of sharma")
        response = router.handle("s1", "closing balance of HDFC Bank")
        assert response.kind == "exact_match"
        assert router.context.get_pending("s1") is None

    def test_sessions_do_not_share_pending(self, make_source):
        router = make_router(make_source)
        router.handle("s1", "balance of sharma")
        response = router.handle("s2", "2")
        assert response.kind == "no_match"
        assert router.context.get_pending("s1") is not None

    def test_expired_pending_is_ignored(self, make_source):
        clock = FakeClock()
        router = make_router(make_source, context=ConversationContextStore(clock=clock))
        router.handle("s1", "balance of sharma")
        clock.now += timedelta(minutes=11)
        response = router.handle("s1", "2")
        assert response.meta.get("selected_index") is None

    def test_selecting_a_static_hint_reroutes_it(self, make_source):
        router = make_router(make_source)
        hint = PendingDisambiguation(
            search_term="customer",
            candidates=(PendingCandidate('Try: "List all customers"'),),
            created_at=router.context.now(),
            kind="suggestions",
        )
        router.context.set_pending("s1", hint)
        response = router.handle("s1", "1")
        assert response.kind == "ledger_list"


class TestDispatch:
    def test_keyword_routing_to_handlers(self, make_source):
        router = make_router(make_source)
        assert router.handle("s1", "bikri").kind == "sales_summary"
        assert router.handle("s1", "hello").kind == "help"

    def test_injected_classifier(self, make_source):
        classifier = MockClassifier(Intent(category="Sales"))
        router = make_router(make_source, classifier=classifier)
        response = router.handle("s1", "how did we do")
        assert response.kind == "sales_summary"
        assert classifier.calls == ["how did we do"]

    def test_cash_and_bank_category_resolves_ledger(self, make_source):
        router = make_router(make_source, classifier=MockClassifier(Intent(category="Cash & Bank")))
        response = router.handle("s1", "HDFC Bank")
        assert response.kind == "exact_match"

    def test_classifier_query_is_passed_through(self, make_source):
        intent = Intent(
            category="outstanding",
            query="SELECT name, parent, closing_balance FROM Ledger WHERE parent = 'Sundry Creditors'",
        )
        router = make_router(make_source, classifier=MockClassifier(intent))
        response = router.handle("s1", "who do I owe")
        assert response.kind == "query_result"
        assert response.category == "outstanding"

    def test_failing_classifier_falls_back_to_keywords(self, make_source):
        router = make_router(make_source, classifier=MockClassifier(error=RuntimeError("LLM down")))
        response = router.handle("s1", "balance of HDFC Bank")
        assert response.kind == "exact_match"

    def test_unavailable_source_in_handler(self, make_source):
        router = make_router(make_source)
        router.resolver.source.source.invalidate()
        assert router.handle("s1", "bikri").kind == "unavailable"

    def test_ledger_named_like_a_category(self, make_source):
        ledgers = TWO_SHARMAS + [
            {"name": "Bharat Trading Company", "parent": "Sundry Debtors", "closing_balance": 7000}
        ]
        router = make_router(make_source, ledgers=ledgers)
        response = router.handle("s1", "Bharat Trading Company")
        assert response.kind == "exact_match"
        assert response.payload.ledger.name == "Bharat Trading Company"
        assert router.handle("s1", "company details").kind == "company_info"
