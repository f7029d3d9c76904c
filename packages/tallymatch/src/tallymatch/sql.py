"""SQL text for ledger lookups, per query-engine dialect.

Tally's ODBC engine exposes fields as ``$Name``-style columns while an
exported snapshot uses plain column names; everything else about the queries
is shared.
"""

from __future__ import annotations

from dataclasses import dataclass

BLOCKED_TABLES = ("voucherhead", "voucheritem")


@dataclass(frozen=True)
class SqlDialect:
    name: str
    columns: dict[str, str]
    like_escape: bool = False

    def col(self, field: str) -> str:
        return self.columns[field]


TALLY = SqlDialect(
    name="tally",
    columns={
        "name": "$Name",
        "parent": "$Parent",
        "closing_balance": "$ClosingBalance",
        "stock_group": "$StockGroup",
        "base_units": "$BaseUnits",
        "address": "$Address",
    },
)

SQLITE = SqlDialect(
    name="sqlite",
    columns={
        "name": "name",
        "parent": "parent",
        "closing_balance": "closing_balance",
        "stock_group": "parent",
        "base_units": "base_units",
        "address": "address",
    },
    like_escape=True,
)


def quote(value: str) -> str:
    """Render a string literal, doubling embedded single quotes."""
    return "'" + value.replace("'", "''") + "'"


def like_pattern(
    d: SqlDialect,
    fragment: str,
    leading: bool = True,
    trailing: bool = True,
    upper: bool = False,
) -> str:
    """Right-hand side of a LIKE that matches ``fragment`` as literal text.

    Tally is not sent an ESCAPE clause, so ``%`` and ``_`` in a term stay
    wildcards there.
    """
    if d.like_escape:
        fragment = fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    text = ("%" if leading else "") + fragment + ("%" if trailing else "")
    literal = f"UPPER({quote(text)})" if upper else quote(text)
    if d.like_escape:
        literal += " ESCAPE '\\'"
    return literal


def _ledger_select(d: SqlDialect) -> str:
    return f"SELECT {d.col('name')}, {d.col('parent')}, {d.col('closing_balance')} FROM Ledger"


def all_ledgers(d: SqlDialect) -> str:
    return _ledger_select(d)


def name_equals(d: SqlDialect, term: str) -> str:
    return f"{_ledger_select(d)} WHERE UPPER({d.col('name')}) = UPPER({quote(term)})"


def trimmed_name_equals(d: SqlDialect, term: str) -> str:
    return (
        f"{_ledger_select(d)} "
        f"WHERE UPPER(LTRIM(RTRIM({d.col('name')}))) = UPPER({quote(term.strip())})"
    )


def name_starts_with(d: SqlDialect, term: str) -> str:
    pattern = like_pattern(d, term, leading=False, upper=True)
    return f"{_ledger_select(d)} WHERE UPPER({d.col('name')}) LIKE {pattern}"


def name_contains(d: SqlDialect, term: str) -> str:
    pattern = like_pattern(d, term, upper=True)
    return f"{_ledger_select(d)} WHERE UPPER({d.col('name')}) LIKE {pattern}"


def compact_name_contains(d: SqlDialect, compact_term: str) -> str:
    """Match with dots and spaces removed from the name ("A.A. MALLA" ~ "AAMALLA")."""
    stripped = f"REPLACE(REPLACE(UPPER({d.col('name')}), '.', ''), ' ', '')"
    return f"{_ledger_select(d)} WHERE {stripped} LIKE {like_pattern(d, compact_term.upper())}"


def name_or_parent(d: SqlDialect, name_fragment: str, parent: str) -> str:
    return (
        f"{_ledger_select(d)} "
        f"WHERE UPPER({d.col('name')}) LIKE {like_pattern(d, name_fragment.upper())} "
        f"OR {d.col('parent')} = {quote(parent)}"
    )


def parent_equals(d: SqlDialect, parent: str) -> str:
    return f"{_ledger_select(d)} WHERE {d.col('parent')} = {quote(parent)} ORDER BY {d.col('name')}"


def parent_contains(d: SqlDialect, fragment: str) -> str:
    return f"{_ledger_select(d)} WHERE {d.col('parent')} LIKE {like_pattern(d, fragment)}"


def names_containing_ordered(d: SqlDialect, fragment: str) -> str:
    return (
        f"SELECT {d.col('name')} FROM Ledger "
        f"WHERE UPPER({d.col('name')}) LIKE {like_pattern(d, fragment, upper=True)} "
        f"ORDER BY {d.col('name')}"
    )


def stock_items(d: SqlDialect, fragment: str | None = None) -> str:
    sql = (
        f"SELECT {d.col('name')}, {d.col('stock_group')}, {d.col('closing_balance')}, "
        f"{d.col('base_units')} FROM StockItem"
    )
    if fragment:
        sql += f" WHERE UPPER({d.col('name')}) LIKE {like_pattern(d, fragment, upper=True)}"
    return sql


def company(d: SqlDialect) -> str:
    return f"SELECT {d.col('name')}, {d.col('address')} FROM Company"


def is_blocked(sql: str) -> bool:
    """Transaction tables make the Tally engine raise TDL errors."""
    lowered = sql.lower()
    return any(table in lowered for table in BLOCKED_TABLES)
