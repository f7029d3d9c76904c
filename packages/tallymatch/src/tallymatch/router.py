"""Query routing: continuation check, classification, dispatch."""

from __future__ import annotations

from datetime import datetime

import structlog

from tallymatch.context import ConversationContextStore, match_selection
from tallymatch.errors import AmbiguousContinuation, DataSourceUnavailable
from tallymatch.formatting import format_clarification, format_result
from tallymatch.handlers import CategoryHandlers
from tallymatch.intent import IntentClassifier, KeywordIntentClassifier
from tallymatch.resolver import LedgerResolver
from tallymatch.types import (
    Intent,
    MultipleMatches,
    PendingCandidate,
    PendingDisambiguation,
    ResolutionResult,
    RouterResponse,
    Suggestions,
)

log = structlog.get_logger()

# Classifier labels that all mean "look up an account by name"
LEDGER_CATEGORIES = frozenset({"ledger", "balance", "cash & bank", "cash and bank", "account"})
CATEGORY_ALIASES = {
    "company information": "company",
    "inventory": "stock",
    "receivables": "outstanding",
    "payables": "outstanding",
}
# Categories whose keywords also turn up inside ledger names
NAMEABLE_CATEGORIES = frozenset({"sales", "outstanding", "stock", "company"})


def pending_from_result(
    result: MultipleMatches | Suggestions, created_at: datetime
) -> PendingDisambiguation:
    """Remember exactly the options the user was shown, in display order."""
    if isinstance(result, MultipleMatches):
        candidates = tuple(
            PendingCandidate(display_name=c.name, ledger_name=c.name) for c in result.shown
        )
        kind = "multi_match"
    else:
        candidates = tuple(
            PendingCandidate(
                display_name=term, ledger_name=term if result.from_ledgers else None
            )
            for term in result.terms
        )
        kind = "suggestions"
    return PendingDisambiguation(
        search_term=result.search_term,
        candidates=candidates,
        created_at=created_at,
        kind=kind,
    )


class QueryRouter:
    """Entry point for one user message in one session."""

    def __init__(
        self,
        resolver: LedgerResolver,
        context: ConversationContextStore | None = None,
        classifier: IntentClassifier | None = None,
        handlers: CategoryHandlers | None = None,
    ) -> None:
        self.resolver = resolver
        self.context = context or ConversationContextStore(resolver.config.context)
        self.classifier = classifier or KeywordIntentClassifier()
        self.fallback_classifier = KeywordIntentClassifier()
        self.handlers = handlers or CategoryHandlers(resolver.source, resolver.config)

    def handle(self, session_id: str, text: str) -> RouterResponse:
        pending = self.context.get_pending(session_id)
        if pending is not None:
            try:
                selection = match_selection(pending, text)
            except AmbiguousContinuation as e:
                log.info("continuation_ambiguous", session_id=session_id, reply=e.reply)
                return RouterResponse(
                    kind="clarification",
                    display_message=format_clarification(pending, text),
                    payload=pending,
                    meta={"reply": text},
                )

            if selection is not None:
                self.context.clear(session_id)
                candidate = selection.candidate
                log.info(
                    "continuation_selected",
                    session_id=session_id,
                    index=selection.index + 1,
                    name=candidate.display_name,
                )
                if candidate.ledger_name is None:
                    # A static hint: treat it as if the user had typed it
                    text = candidate.display_name
                    return self._dispatch(session_id, text, self._classify(text))
                response = self.resolve_ledger(session_id, candidate.ledger_name)
                response.meta["selected_index"] = selection.index + 1
                return response

            # A new question abandons the old prompt
            self.context.clear(session_id)

        intent = self._classify(text)
        log.debug("intent_classified", session_id=session_id, category=intent.category)
        return self._dispatch(session_id, text, intent)

    def _classify(self, text: str) -> Intent:
        try:
            return self.classifier.classify(text)
        except Exception as e:  # external classifiers fail in their own ways
            log.warning("classifier_failed", error=str(e))
            return self.fallback_classifier.classify(text)

    def _dispatch(self, session_id: str, text: str, intent: Intent) -> RouterResponse:
        category = intent.category.strip().lower()
        category = CATEGORY_ALIASES.get(category, category)

        if category in LEDGER_CATEGORIES:
            return self.resolve_ledger(session_id, text)

        try:
            if intent.query:
                return self.handlers.passthrough(category, intent.query)
            # "Bharat Trading Company" names a ledger, not the company category
            if category in NAMEABLE_CATEGORIES and self.resolver.names_ledger(text):
                log.info("category_is_ledger_name", category=category)
                return self.resolve_ledger(session_id, text)
            if category == "sales":
                return self.handlers.sales(text)
            if category == "outstanding":
                return self.handlers.outstanding(text)
            if category == "stock":
                return self.handlers.stock(text)
            if category == "company":
                return self.handlers.company(text)
            if category == "general":
                return self.handlers.general(text)
        except DataSourceUnavailable as e:
            return self._unavailable(e, category)

        log.info("category_unhandled", category=category)
        return self.resolve_ledger(session_id, text)

    def resolve_ledger(self, session_id: str, raw_text: str) -> RouterResponse:
        """Resolve an account name and update the session's pending prompt."""
        try:
            result = self.resolver.resolve(raw_text)
        except DataSourceUnavailable as e:
            return self._unavailable(e, "ledger")

        self._remember(session_id, result)
        return RouterResponse(
            kind=result.kind,
            display_message=format_result(result),
            payload=result,
            category="ledger",
            meta={"tier": result.tier, "search_term": result.search_term},
        )

    def _remember(self, session_id: str, result: ResolutionResult) -> None:
        if isinstance(result, (MultipleMatches, Suggestions)):
            self.context.set_pending(session_id, pending_from_result(result, self.context.now()))
        else:
            self.context.clear(session_id)

    @staticmethod
    def _unavailable(e: DataSourceUnavailable, category: str) -> RouterResponse:
        log.warning("data_source_unavailable", category=category)
        return RouterResponse(kind="unavailable", display_message=str(e), category=category)
