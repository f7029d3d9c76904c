"""Direct lookups for the non-ledger categories (sales, stock, ...)."""

from __future__ import annotations

from decimal import Decimal

import structlog

from tallymatch import sql
from tallymatch.config import ResolverConfig
from tallymatch.errors import QueryError
from tallymatch.formatting import format_amount, format_balance
from tallymatch.intent import LIST_PHRASES
from tallymatch.normalize import TRANSLATION_STOPWORDS, translate_vocabulary
from tallymatch.rows import RawCompanyRow, RawStockRow, ledgers_from_rows
from tallymatch.sources import GuardedSource
from tallymatch.types import Ledger, RouterResponse

log = structlog.get_logger()

SALES_GROUP = "Sales Accounts"
DEBTORS_GROUP = "Sundry Debtors"
CREDITORS_GROUP = "Sundry Creditors"

# Words that say what is asked for rather than which item
STOCK_QUERY_WORDS = frozenset(
    {"stock", "quantity", "status", "goods", "items", "item", "show", "list", "all",
     "of", "in", "me", "kitna", "hai", "current", "closing", "summary"}
    | set(TRANSLATION_STOPWORDS)
)

HELP_TEXT = (
    "Ask about any account by name, for example:\n"
    '- "closing balance of Cash"\n'
    '- "what is the balance of A.A.MALLA & CO."\n'
    '- "sales", "outstanding", "stock of cement", "company details"'
)

LIST_LIMIT = 20
TOP_BALANCES = 5


def _error(category: str, e: QueryError) -> RouterResponse:
    return RouterResponse(
        kind="error",
        display_message=f"Query error: {e}",
        category=category,
        meta={"sql": e.sql},
    )


class CategoryHandlers:
    """One method per category; each returns a ready-to-send response."""

    def __init__(self, source: GuardedSource, config: ResolverConfig | None = None) -> None:
        self.source = source
        self.config = config or ResolverConfig()

    @property
    def dialect(self) -> sql.SqlDialect:
        return self.source.dialect

    def general(self, text: str) -> RouterResponse:
        lowered = text.lower()
        if not any(p in lowered for p in LIST_PHRASES):
            return RouterResponse(kind="help", display_message=HELP_TEXT, category="general")

        try:
            ledgers = self.source.fetch_ledgers(sql.all_ledgers(self.dialect))
        except QueryError as e:
            return _error("general", e)
        names = sorted({l.name for l in ledgers}, key=str.upper)
        lines = [f"{len(names)} ledger accounts:"]
        lines += [f"{i}. {name}" for i, name in enumerate(names[:LIST_LIMIT], start=1)]
        if len(names) > LIST_LIMIT:
            lines.append(f"...and {len(names) - LIST_LIMIT} more")
        return RouterResponse(
            kind="ledger_list", display_message="\n".join(lines), payload=names, category="general"
        )

    def sales(self, text: str) -> RouterResponse:
        try:
            ledgers = self.source.fetch_ledgers(sql.parent_equals(self.dialect, SALES_GROUP))
        except QueryError as e:
            return _error("sales", e)
        if not ledgers:
            return RouterResponse(
                kind="no_data",
                display_message=f'No ledgers found under "{SALES_GROUP}".',
                category="sales",
            )

        # Sales accounts carry credit balances
        total = sum((-l.closing_balance for l in ledgers), Decimal("0"))
        lines = [f"Total sales: {format_amount(total)}"]
        for ledger in sorted(ledgers, key=lambda l: l.closing_balance)[:TOP_BALANCES]:
            lines.append(f"- {ledger.name}: {format_balance(ledger.closing_balance)}")
        return RouterResponse(
            kind="sales_summary",
            display_message="\n".join(lines),
            payload={"total": total, "ledgers": ledgers},
            category="sales",
        )

    def outstanding(self, text: str) -> RouterResponse:
        try:
            debtors = self.source.fetch_ledgers(sql.parent_equals(self.dialect, DEBTORS_GROUP))
            creditors = self.source.fetch_ledgers(sql.parent_equals(self.dialect, CREDITORS_GROUP))
        except QueryError as e:
            return _error("outstanding", e)

        receivable = sum((l.closing_balance for l in debtors), Decimal("0"))
        payable = -sum((l.closing_balance for l in creditors), Decimal("0"))
        lines = [
            f"Receivables ({DEBTORS_GROUP}): {format_amount(receivable)}",
            *self._largest(debtors, reverse=True),
            f"Payables ({CREDITORS_GROUP}): {format_amount(payable)}",
            *self._largest(creditors, reverse=False),
        ]
        return RouterResponse(
            kind="outstanding_summary",
            display_message="\n".join(lines),
            payload={
                "receivable": receivable,
                "payable": payable,
                "debtors": debtors,
                "creditors": creditors,
            },
            category="outstanding",
        )

    @staticmethod
    def _largest(ledgers: list[Ledger], reverse: bool) -> list[str]:
        ranked = sorted(
            (l for l in ledgers if l.closing_balance != 0),
            key=lambda l: l.closing_balance,
            reverse=reverse,
        )
        return [
            f"- {l.name}: {format_balance(l.closing_balance)}" for l in ranked[:TOP_BALANCES]
        ]

    def stock(self, text: str) -> RouterResponse:
        words = [
            w for w in translate_vocabulary(text).lower().split()
            if w not in STOCK_QUERY_WORDS
        ]
        item = " ".join(words)
        try:
            rows = self.source.query(sql.stock_items(self.dialect, item or None))
        except QueryError as e:
            return _error("stock", e)

        items = [RawStockRow.model_validate(r) for r in rows]
        items = [i for i in items if i.name]
        if not items:
            what = f' matching "{item}"' if item else ""
            return RouterResponse(
                kind="no_data", display_message=f"No stock items found{what}.", category="stock"
            )

        header = f'Stock items matching "{item}":' if item else f"{len(items)} stock items:"
        lines = [header]
        for i, stock in enumerate(items[:LIST_LIMIT], start=1):
            group = f" [{stock.group}]" if stock.group else ""
            lines.append(f"{i}. {stock.name}{group}: {stock.closing_balance:f} {stock.units}")
        if len(items) > LIST_LIMIT:
            lines.append(f"...and {len(items) - LIST_LIMIT} more")
        return RouterResponse(
            kind="stock_list",
            display_message="\n".join(lines),
            payload=items,
            category="stock",
            meta={"item": item},
        )

    def company(self, text: str) -> RouterResponse:
        try:
            rows = self.source.query(sql.company(self.dialect))
        except QueryError as e:
            return _error("company", e)
        companies = [RawCompanyRow.model_validate(r) for r in rows]
        companies = [c for c in companies if c.name]
        if not companies:
            return RouterResponse(
                kind="no_data", display_message="No company information found.", category="company"
            )
        lines = []
        for c in companies:
            lines.append(f"Company: {c.name}")
            if c.address:
                lines.append(f"Address: {c.address}")
        return RouterResponse(
            kind="company_info",
            display_message="\n".join(lines),
            payload=companies,
            category="company",
        )

    def passthrough(self, category: str, query: str) -> RouterResponse:
        """Run a query prepared by an external classifier and summarize it."""
        if sql.is_blocked(query):
            log.warning("passthrough_blocked", category=category)
            return RouterResponse(
                kind="error",
                display_message="Voucher-level queries are not supported by the Tally ODBC server.",
                category=category,
                meta={"sql": query},
            )
        try:
            rows = self.source.query(query)
        except QueryError as e:
            return _error(category, e)

        ledgers = ledgers_from_rows(rows)
        if not ledgers:
            return RouterResponse(
                kind="no_data", display_message="No records found.", category=category, payload=rows
            )
        lines = [f"{len(ledgers)} records:"]
        for i, ledger in enumerate(ledgers[:LIST_LIMIT], start=1):
            lines.append(f"{i}. {ledger.name}: {format_balance(ledger.closing_balance)}")
        if len(ledgers) > LIST_LIMIT:
            lines.append(f"...and {len(ledgers) - LIST_LIMIT} more")
        return RouterResponse(
            kind="query_result", display_message="\n".join(lines), payload=rows, category=category
        )
