"""Search term normalization: boilerplate stripping, dedupe, vocabulary."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path

DATA_DIR = Path(os.environ.get("TALLYMATCH_CONFIG_DATA") or "config_data")

BOILERPLATE_PHRASES: list[str] = [
    "what is the closing balance of",
    "what is the balance of",
    "closing balance of",
    "closing balance for",
    "closing balance",
    "balance of",
    "balance for",
    "what is",
    "show me",
    "tell me",
]

# Significant in business names ("A.A.MALLA & CO."), so only ? and ! go.
NOISE_CHARS = re.compile(r"[?!]")

SUBTERM_STOPWORDS: frozenset[str] = frozenset(
    {"the", "and", "for", "with", "from", "&", "co", "ltd", "pvt", "p", "s"}
)

VOCABULARY: dict[str, str] = {
    # Phrases first so they win over their single words
    "kitna stock hai": "stock quantity",
    "stock kya hai": "stock status",
    "samaan kitna": "goods quantity",
    "kitne items": "how many items",
    "mera stock": "my stock",
    "kitna": "how much",
    "kitne": "how many",
    "kya": "what",
    "hai": "is",
    "hain": "are",
    "mere": "my",
    "mera": "my",
    "paas": "have",
    "khata": "ledger",
    "khaata": "ledger",
    "hisab": "ledger",
    "udhaar": "outstanding",
    "udhar": "outstanding",
    "baki": "outstanding",
    "baaki": "outstanding",
    "saman": "stock",
    "samaan": "stock",
    "inventory": "stock",
    "maal": "goods",
    "chij": "items",
    "cheez": "items",
    "loha": "iron",
    "sariya": "rod",
    "balu": "sand",
    "gitti": "gravel",
    "bikri": "sales",
    "becha": "sales",
    "bechna": "sales",
    "nakad": "cash",
    "rokad": "cash",
    "kharcha": "expense",
    "kharch": "expense",
    "aamdani": "income",
    "kamai": "income",
    "grahak": "customer",
    "vyapari": "supplier",
}

TRANSLATION_STOPWORDS: list[str] = ["is", "are", "have", "my", "the", "how", "what", "much", "many"]

MAX_PASSES = 10


def _load_vocabulary() -> dict[str, str]:
    """Built-in vocabulary merged with vocabulary.json from the config data dir."""
    vocabulary = dict(VOCABULARY)
    path = DATA_DIR / "vocabulary.json"
    if not path.exists():
        return vocabulary
    try:
        extra = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return vocabulary
    vocabulary.update({str(k).lower(): str(v) for k, v in extra.items()})
    return vocabulary


def _phrase_pattern(phrases: list[str]) -> re.Pattern[str]:
    # Longest first so "closing balance of" beats "closing balance"
    ordered = sorted(phrases, key=len, reverse=True)
    alternation = "|".join(re.escape(p) for p in ordered)
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE)


_BOILERPLATE_RE = _phrase_pattern(BOILERPLATE_PHRASES)
_VOCABULARY = _load_vocabulary()
_VOCABULARY_RES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE), english)
    for term, english in sorted(_VOCABULARY.items(), key=lambda kv: len(kv[0]), reverse=True)
]
_STOPWORD_RE = re.compile(
    r"\b(?:" + "|".join(TRANSLATION_STOPWORDS) + r")\b", re.IGNORECASE
)


def dedupe_tokens(text: str) -> str:
    """Drop case-insensitive repeated tokens, keeping first-seen order and casing."""
    seen: set[str] = set()
    unique: list[str] = []
    for token in text.split():
        key = token.upper()
        if key in seen:
            continue
        seen.add(key)
        unique.append(token)
    return " ".join(unique)


def normalize(raw: str) -> str:
    """Clean raw user text into a canonical search term.

    Boilerplate stripping and token dedupe run to a fixed point, so the
    result is stable under a second call. Never empty unless ``raw`` is.
    """
    if not raw or not raw.strip():
        return ""

    cleaned = dedupe_tokens(NOISE_CHARS.sub("", raw))
    s = cleaned
    for _ in range(MAX_PASSES):
        prev = s
        s = _BOILERPLATE_RE.sub(" ", s)
        s = dedupe_tokens(s)
        if s == prev:
            break

    if s:
        return s
    # Input was nothing but boilerplate; keep it rather than return nothing
    return cleaned or raw.strip()


def translate_vocabulary(term: str) -> str:
    """Map Hindi/Hinglish financial words to English and drop filler words.

    Returns ``term`` unchanged when nothing meaningful is left.
    """
    translated = term.lower()
    for pattern, english in _VOCABULARY_RES:
        translated = pattern.sub(english, translated)
    translated = _STOPWORD_RE.sub("", translated)
    translated = re.sub(r"\s+", " ", translated).strip()
    return translated or term


def meaningful_terms(term: str) -> list[str]:
    """Words of a multi-word term worth searching on their own."""
    return [
        t for t in term.split()
        if len(t) > 2 and t.lower() not in SUBTERM_STOPWORDS
    ]


def compact(text: str) -> str:
    """Uppercase with dots and whitespace removed ("A.A. Malla" -> "AAMALLA")."""
    return re.sub(r"[.\s]+", "", text).upper()


def alnum_key(text: str) -> str:
    """Uppercase alphanumerics only, for punctuation-blind equality."""
    return re.sub(r"[^A-Z0-9]", "", text.upper())
