"""Plain-text rendering of resolution results for chat replies."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from tallymatch.types import (
    ExactMatch,
    MultipleMatches,
    NoMatch,
    PendingDisambiguation,
    ResolutionResult,
    Suggestions,
)

RUPEE = "₹"


def group_indian(digits: str) -> str:
    """Group an integer digit string the Indian way: 12,34,56,789."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_amount(amount: Decimal) -> str:
    """Rupee amount with two decimals and Indian grouping, sign dropped."""
    quantized = abs(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    whole, _, fraction = f"{quantized:f}".partition(".")
    return f"{RUPEE}{group_indian(whole)}.{fraction or '00'}"


def format_balance(amount: Decimal) -> str:
    """Balance with a Dr/Cr side; credits are stored negative."""
    side = "Cr" if amount < 0 else "Dr"
    return f"{format_amount(amount)} {side}"


def _numbered(lines: list[str]) -> list[str]:
    return [f"{i}. {line}" for i, line in enumerate(lines, start=1)]


def format_result(result: ResolutionResult) -> str:
    if isinstance(result, ExactMatch):
        ledger = result.ledger
        lines = [result.message, f"Closing balance: {format_balance(ledger.closing_balance)}"]
        if ledger.parent:
            lines.append(f"Group: {ledger.parent}")
        return "\n".join(lines)

    if isinstance(result, MultipleMatches):
        shown = result.shown
        lines = [result.message]
        lines += _numbered(
            [f"{c.name} ({format_balance(c.ledger.closing_balance)})" for c in shown]
        )
        hidden = len(result.candidates) - len(shown)
        if hidden > 0:
            lines.append(f"...and {hidden} more")
        lines.append(f"Reply with a number (1-{len(shown)}) or the full ledger name.")
        return "\n".join(lines)

    if isinstance(result, Suggestions):
        lines = [result.message] + _numbered(result.terms)
        if result.from_ledgers:
            lines.append(f"Reply with a number (1-{len(result.terms)}) or the full ledger name.")
        return "\n".join(lines)

    if isinstance(result, NoMatch):
        return result.message

    raise TypeError(f"unknown result type: {type(result).__name__}")


def format_clarification(pending: PendingDisambiguation, reply: str) -> str:
    names = [c.display_name for c in pending.candidates]
    lines = [
        f'"{reply.strip()}" does not pick out a single option. '
        f"Please reply with a number between 1 and {len(names)}, or the full ledger name:"
    ]
    lines += _numbered(names)
    return "\n".join(lines)
