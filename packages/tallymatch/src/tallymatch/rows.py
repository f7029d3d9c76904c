"""Raw row shapes returned by the query engine, mapped once to core types.

The Tally ODBC driver, SQL aliases and exported snapshots all name the same
fields differently ($Name, Name, name, ...). Every alias we have seen is
listed here; nothing else in the package reads raw rows.
"""

from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from tallymatch.types import Ledger

log = structlog.get_logger()

NAME_ALIASES = ("name", "$Name", "Name", "NAME", "ledger_name", "LedgerName")
PARENT_ALIASES = ("parent", "$Parent", "Parent", "PARENT", "parent_group", "group")
BALANCE_ALIASES = (
    "closingBalance",
    "closing_balance",
    "$ClosingBalance",
    "ClosingBalance",
    "CLOSINGBALANCE",
    "balance",
    "Balance",
)
STOCK_GROUP_ALIASES = ("$StockGroup", "StockGroup", "stock_group", *PARENT_ALIASES)
UNIT_ALIASES = ("$BaseUnits", "BaseUnits", "base_units", "uom", "units")
ADDRESS_ALIASES = ("$Address", "Address", "address", "ADDRESS")

_AMOUNT_NOISE = re.compile(r"[₹,\s]")


def parse_balance(value: Any) -> Decimal:
    """Parse a balance from the many shapes the engine returns.

    Numbers pass through; strings may carry a rupee sign, digit grouping and a
    trailing Dr/Cr marker (Cr is negative). Unparseable values are zero.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return Decimal("0")
        return Decimal(str(value))

    text = str(value).strip()
    sign = 1
    lowered = text.lower()
    if lowered.endswith("cr"):
        sign = -1
        text = text[:-2]
    elif lowered.endswith("dr"):
        text = text[:-2]
    text = _AMOUNT_NOISE.sub("", text).replace("—", "0")
    if not text:
        return Decimal("0")
    try:
        return Decimal(text) * sign
    except InvalidOperation:
        return Decimal("0")


def _blank_if_missing(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


class RawLedgerRow(BaseModel):
    """A ledger row under any of its known key spellings."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="", validation_alias=AliasChoices(*NAME_ALIASES))
    parent: str = Field(default="", validation_alias=AliasChoices(*PARENT_ALIASES))
    closing_balance: Decimal = Field(
        default=Decimal("0"), validation_alias=AliasChoices(*BALANCE_ALIASES)
    )

    @field_validator("name", "parent", mode="before")
    @classmethod
    def clean_text(cls, value: Any) -> str:
        return _blank_if_missing(value)

    @field_validator("closing_balance", mode="before")
    @classmethod
    def parse_closing_balance(cls, value: Any) -> Decimal:
        return parse_balance(value)

    def to_ledger(self) -> Ledger:
        return Ledger(name=self.name, parent=self.parent, closing_balance=self.closing_balance)


class RawStockRow(BaseModel):
    """A stock item row from StockItem / ListofStockItems."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="", validation_alias=AliasChoices(*NAME_ALIASES))
    group: str = Field(default="", validation_alias=AliasChoices(*STOCK_GROUP_ALIASES))
    closing_balance: Decimal = Field(
        default=Decimal("0"), validation_alias=AliasChoices(*BALANCE_ALIASES)
    )
    units: str = Field(default="Units", validation_alias=AliasChoices(*UNIT_ALIASES))

    @field_validator("name", "group", mode="before")
    @classmethod
    def clean_text(cls, value: Any) -> str:
        return _blank_if_missing(value)

    @field_validator("units", mode="before")
    @classmethod
    def default_units(cls, value: Any) -> str:
        return _blank_if_missing(value) or "Units"

    @field_validator("closing_balance", mode="before")
    @classmethod
    def parse_closing_balance(cls, value: Any) -> Decimal:
        return parse_balance(value)


class RawCompanyRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="", validation_alias=AliasChoices(*NAME_ALIASES))
    address: str = Field(default="", validation_alias=AliasChoices(*ADDRESS_ALIASES))

    @field_validator("name", "address", mode="before")
    @classmethod
    def clean_text(cls, value: Any) -> str:
        return _blank_if_missing(value)


def ledgers_from_rows(rows: list[dict[str, Any]]) -> list[Ledger]:
    """Map engine rows to ledgers, dropping rows without a usable name."""
    ledgers: list[Ledger] = []
    for row in rows:
        ledger = RawLedgerRow.model_validate(row).to_ledger()
        if ledger.name:
            ledgers.append(ledger)
    if len(ledgers) < len(rows):
        log.debug("ledger_rows_dropped", dropped=len(rows) - len(ledgers))
    return ledgers


def names_from_rows(rows: list[dict[str, Any]]) -> list[str]:
    return [ledger.name for ledger in ledgers_from_rows(rows)]
