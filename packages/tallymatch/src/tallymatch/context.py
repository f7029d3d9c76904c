"""Per-session memory of the last disambiguation prompt."""

from __future__ import annotations

import re
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from tallymatch.config import ContextConfig
from tallymatch.errors import AmbiguousContinuation
from tallymatch.types import PendingDisambiguation, Selection

log = structlog.get_logger()

ORDINALS: dict[str, int] = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "1st": 1,
    "2nd": 2,
    "3rd": 3,
    "4th": 4,
    "5th": 5,
}

_NUMBER_RE = re.compile(r"^(?:no\.?\s*|#)?(\d+)$", re.IGNORECASE)
_ORDINAL_RE = re.compile(
    r"^(?:the\s+)?(" + "|".join(ORDINALS) + r")(?:\s+one)?$", re.IGNORECASE
)

MIN_FRAGMENT_LENGTH = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _collapse(text: str) -> str:
    return " ".join(text.split()).upper()


def match_selection(pending: PendingDisambiguation, text: str) -> Selection | None:
    """Interpret a reply to a disambiguation prompt.

    Returns the selected candidate, or None when the reply reads as a new
    query.

    Raises:
        AmbiguousContinuation: The reply is a number/ordinal outside the list,
            or a fragment of one or more candidate names.
    """
    reply = text.strip()
    count = len(pending.candidates)

    index: int | None = None
    number = _NUMBER_RE.match(reply)
    if number:
        index = int(number.group(1))
    else:
        ordinal = _ORDINAL_RE.match(reply)
        if ordinal:
            index = ORDINALS[ordinal.group(1).lower()]
    if index is not None:
        if 1 <= index <= count:
            return Selection(index=index - 1, candidate=pending.candidates[index - 1])
        raise AmbiguousContinuation(reply, count)

    wanted = _collapse(reply)
    if not wanted:
        return None
    for i, candidate in enumerate(pending.candidates):
        if _collapse(candidate.display_name) == wanted:
            return Selection(index=i, candidate=candidate)

    if len(wanted) >= MIN_FRAGMENT_LENGTH and any(
        wanted in _collapse(c.display_name) for c in pending.candidates
    ):
        raise AmbiguousContinuation(reply, count)
    return None


class ConversationContextStore:
    """At most one pending disambiguation per session, expiring after a TTL.

    Safe to share between threads serving different sessions.
    """

    def __init__(
        self,
        config: ContextConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or ContextConfig()
        self.clock = clock or _utcnow
        self._pending: dict[str, PendingDisambiguation] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.config.ttl_seconds)

    def now(self) -> datetime:
        return self.clock()

    def _expired(self, pending: PendingDisambiguation, now: datetime) -> bool:
        return now - pending.created_at > self.ttl

    def set_pending(self, session_id: str, pending: PendingDisambiguation) -> None:
        with self._lock:
            self._pending[session_id] = pending
        log.debug(
            "context_set",
            session_id=session_id,
            kind=pending.kind,
            candidates=len(pending.candidates),
        )

    def get_pending(self, session_id: str) -> PendingDisambiguation | None:
        now = self.now()
        with self._lock:
            pending = self._pending.get(session_id)
            if pending is None:
                return None
            if self._expired(pending, now):
                del self._pending[session_id]
                log.debug("context_expired", session_id=session_id)
                return None
            return pending

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._pending.pop(session_id, None)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self.now()
        with self._lock:
            stale = [sid for sid, p in self._pending.items() if self._expired(p, now)]
            for sid in stale:
                del self._pending[sid]
        if stale:
            log.info("context_purged", sessions=len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
