"""Shared ledger data for the tallymatch tests."""

import pytest

from tallymatch.config import DataSourceConfig
from tallymatch.sources import GuardedSource, SqliteLedgerSource

LEDGERS = [
    {"name": "Cash", "parent": "Cash-in-Hand", "closing_balance": 15000},
    {"name": "A.A.MALLA & CO.", "parent": "Sundry Debtors", "closing_balance": "1,25,000.00 Dr"},
    {"name": "7 SHORE IMEX (P)", "parent": "Sundry Debtors", "closing_balance": 5000},
    {"name": "HDFC Bank", "parent": "Bank Accounts", "closing_balance": 250000},
    {"name": "Sharma Traders", "parent": "Sundry Creditors", "closing_balance": "40,000.00 Cr"},
    {"name": "Sharma Steel", "parent": "Sundry Creditors", "closing_balance": -12000},
    {"name": "Sharma Cement Agency", "parent": "Sundry Debtors", "closing_balance": 20000},
    {"name": "Sales Account", "parent": "Sales Accounts", "closing_balance": -900000},
    {"name": "Office Rent", "parent": "Indirect Expenses", "closing_balance": 36000},
]

STOCK_ITEMS = [
    {"name": "Cement OPC 53", "parent": "Building Material", "closing_balance": 120, "base_units": "Bags"},
    {"name": "TMT Bar 12mm", "parent": "Steel", "closing_balance": 45, "base_units": "Qtl"},
]

COMPANIES = [{"name": "Demo Traders", "address": "Station Road, Patna"}]


@pytest.fixture
def make_source():
    """Factory for a guarded in-memory snapshot over the given ledger rows."""
    created: list[GuardedSource] = []

    def _make(
        ledgers=None,
        stock_items=None,
        companies=None,
        timeout: float = 5.0,
        source_cls=GuardedSource,
    ) -> GuardedSource:
        raw = SqliteLedgerSource.from_records(
            LEDGERS if ledgers is None else ledgers,
            STOCK_ITEMS if stock_items is None else stock_items,
            COMPANIES if companies is None else companies,
        )
        guarded = source_cls(raw, DataSourceConfig(query_timeout=timeout))
        created.append(guarded)
        return guarded

    yield _make

    for guarded in created:
        guarded.close()
