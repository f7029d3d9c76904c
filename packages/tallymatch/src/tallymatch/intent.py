"""Intent classification: the collaborator protocol and a keyword fallback."""

from __future__ import annotations

import re
from typing import Protocol

from tallymatch.normalize import translate_vocabulary
from tallymatch.types import Intent

LIST_PHRASES = ("list all", "show all", "all ledger", "sare accounts", "sabhi accounts")
GREETINGS = frozenset({"hi", "hello", "hey", "namaste", "help", "menu", "start"})

# Checked in order against the vocabulary-translated text
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "ledger": ("balance", "ledger", "account"),
    "outstanding": ("outstanding", "receivable", "payable", "debtors", "creditors", "dues"),
    "sales": ("sales", "revenue", "turnover"),
    "stock": ("stock", "item", "goods", "quantity", "product", "material"),
    "company": ("company", "address", "gstin", "my details"),
}


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    # Whole words only, plural "s" allowed ("items", "receivables")
    alternation = "|".join(re.escape(k) for k in keywords)
    return re.compile(rf"(?<!\w)(?:{alternation})s?(?!\w)")


_CATEGORY_RES = [
    (category, _keyword_pattern(keywords)) for category, keywords in CATEGORY_KEYWORDS.items()
]
_LIST_RE = _keyword_pattern(LIST_PHRASES)


class IntentClassifier(Protocol):
    """Decides which category a user message belongs to."""

    def classify(self, text: str) -> Intent:
        ...


class KeywordIntentClassifier:
    """Keyword routing for English and Hinglish queries.

    Anything that names no category is taken to be an account name.
    """

    def classify(self, text: str) -> Intent:
        lowered = " ".join(text.lower().split())
        if not lowered:
            return Intent(category="general")
        if lowered in GREETINGS or _LIST_RE.search(lowered):
            return Intent(category="general")

        translated = translate_vocabulary(lowered).lower()
        for category, pattern in _CATEGORY_RES:
            if pattern.search(translated):
                return Intent(category=category)
        return Intent(category="ledger")
