"""Ledger data sources and the guard every query goes through.

A source only knows how to run SQL and hand back rows as dicts. Timeouts,
error classification and row mapping live in :class:`GuardedSource` so the
resolver sees one behaviour whatever the engine underneath.
"""

from __future__ import annotations

import sqlite3
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import Any, Protocol

import pandas as pd
import structlog

from tallymatch import rows
from tallymatch.config import DataSourceConfig
from tallymatch.errors import DataSourceUnavailable, QueryStrategyFailed, QueryTimeout
from tallymatch.sql import SQLITE, TALLY, SqlDialect
from tallymatch.types import Ledger

log = structlog.get_logger()


class LedgerDataSource(Protocol):
    """Anything that can run a read-only query against the ledger tables."""

    dialect: SqlDialect

    def is_connected(self) -> bool:
        ...

    def query(self, sql: str) -> list[dict[str, Any]]:
        ...


class OdbcLedgerSource:
    """Tally ERP over its ODBC server (port 9000 by default)."""

    dialect = TALLY

    def __init__(self, config: DataSourceConfig | None = None) -> None:
        self.config = config or DataSourceConfig()
        self._conn: Any = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        import pyodbc

        conn_str = self.config.connection_string()
        log.info("odbc_connect_start", dsn=self.config.odbc_dsn)
        with self._lock:
            self._conn = pyodbc.connect(conn_str, autocommit=True)
        log.info("odbc_connect_done")

    def is_connected(self) -> bool:
        return self._conn is not None

    def query(self, sql: str) -> list[dict[str, Any]]:
        with self._lock:
            if self._conn is None:
                raise DataSourceUnavailable()
            cursor = self._conn.cursor()
            try:
                cursor.execute(sql)
                columns = [column[0] for column in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()

    def invalidate(self) -> None:
        """Drop the connection; the next query reports the source unavailable."""
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except Exception as e:  # driver already considers it gone
            log.debug("odbc_close_failed", error=str(e))

    close = invalidate


def _pick_column(frame: pd.DataFrame, aliases: tuple[str, ...]) -> str | None:
    for alias in aliases:
        if alias in frame.columns:
            return alias
    return None


def _canonical_frame(
    frame: pd.DataFrame,
    fields: dict[str, tuple[str, ...]],
    required: str,
) -> pd.DataFrame:
    """Rename aliased export columns to the snapshot's canonical names."""
    out = pd.DataFrame()
    for field, aliases in fields.items():
        column = _pick_column(frame, aliases)
        if column is None:
            if field == required:
                raise ValueError(
                    f"no {field} column found; expected one of {', '.join(aliases)}"
                )
            out[field] = [""] * len(frame)
        else:
            out[field] = frame[column].tolist()
    return out


_LEDGER_FIELDS = {
    "name": rows.NAME_ALIASES,
    "parent": rows.PARENT_ALIASES,
    "closing_balance": rows.BALANCE_ALIASES,
}
_STOCK_FIELDS = {
    "name": rows.NAME_ALIASES,
    "parent": rows.STOCK_GROUP_ALIASES,
    "closing_balance": rows.BALANCE_ALIASES,
    "base_units": rows.UNIT_ALIASES,
}
_COMPANY_FIELDS = {
    "name": rows.NAME_ALIASES,
    "address": rows.ADDRESS_ALIASES,
}


def read_table(path: str | Path, sheet: str | int = 0) -> pd.DataFrame:
    """Read an exported table from .xlsx/.xls or .csv."""
    path = Path(path)
    if path.suffix.lower() in (".xlsx", ".xls"):
        return pd.read_excel(path, sheet_name=sheet)
    return pd.read_csv(path)


class SqliteLedgerSource:
    """An exported ledger snapshot held in an in-memory SQLite database.

    Tables mirror Tally's (Ledger, StockItem, Company) with plain column names,
    so the same query builders work against both engines.
    """

    dialect = SQLITE

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn: sqlite3.Connection | None = conn
        self._lock = threading.Lock()

    @classmethod
    def from_frame(
        cls,
        ledgers: pd.DataFrame,
        stock_items: pd.DataFrame | None = None,
        companies: pd.DataFrame | None = None,
    ) -> SqliteLedgerSource:
        conn = sqlite3.connect(":memory:", check_same_thread=False)

        ledger_frame = _canonical_frame(ledgers, _LEDGER_FIELDS, required="name")
        ledger_frame["closing_balance"] = [
            float(rows.parse_balance(v)) for v in ledger_frame["closing_balance"]
        ]
        ledger_frame.to_sql("Ledger", conn, index=False)

        if stock_items is None:
            stock_items = pd.DataFrame(columns=["name"])
        stock_frame = _canonical_frame(stock_items, _STOCK_FIELDS, required="name")
        stock_frame["closing_balance"] = [
            float(rows.parse_balance(v)) for v in stock_frame["closing_balance"]
        ]
        stock_frame.to_sql("StockItem", conn, index=False)

        if companies is None:
            companies = pd.DataFrame(columns=["name"])
        _canonical_frame(companies, _COMPANY_FIELDS, required="name").to_sql(
            "Company", conn, index=False
        )

        log.info(
            "snapshot_loaded",
            ledgers=len(ledger_frame),
            stock_items=len(stock_frame),
        )
        return cls(conn)

    @classmethod
    def from_records(
        cls,
        ledgers: list[dict[str, Any]],
        stock_items: list[dict[str, Any]] | None = None,
        companies: list[dict[str, Any]] | None = None,
    ) -> SqliteLedgerSource:
        def frame(records: list[dict[str, Any]] | None) -> pd.DataFrame | None:
            if records is None:
                return None
            return pd.DataFrame(records) if records else pd.DataFrame(columns=["name"])

        return cls.from_frame(frame(ledgers), frame(stock_items), frame(companies))

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        stock_path: str | Path | None = None,
    ) -> SqliteLedgerSource:
        log.info("snapshot_read_start", path=str(path))
        ledgers = read_table(path)
        stock = read_table(stock_path) if stock_path else None
        return cls.from_frame(ledgers, stock)

    def is_connected(self) -> bool:
        return self._conn is not None

    def query(self, sql: str) -> list[dict[str, Any]]:
        with self._lock:
            if self._conn is None:
                raise DataSourceUnavailable()
            cursor = self._conn.execute(sql)
            columns = [column[0] for column in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def invalidate(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    close = invalidate


def _is_connection_failure(message: str) -> bool:
    lowered = message.lower()
    if "timeout" in lowered or "timed out" in lowered:
        return False
    return "connection" in lowered or "closed" in lowered


class GuardedSource:
    """Run queries against a source with a timeout and typed failures.

    - a query over its time budget raises :class:`QueryTimeout`; the
      connection is left alone.
    - an error naming a connection/closed condition invalidates the source and
      raises :class:`DataSourceUnavailable`.
    - anything else raises :class:`QueryStrategyFailed`.

    A timed-out query keeps running on its worker and holds the source, so
    until it finishes every new query fails fast with :class:`QueryTimeout`
    instead of queueing behind it.
    """

    def __init__(
        self,
        source: LedgerDataSource,
        config: DataSourceConfig | None = None,
    ) -> None:
        self.source = source
        self.config = config or DataSourceConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="tallymatch-query"
        )
        self._stalled: list[Future] = []
        self._stalled_lock = threading.Lock()

    @property
    def stalled_queries(self) -> int:
        """Timed-out queries still running against the source."""
        with self._stalled_lock:
            self._stalled = [f for f in self._stalled if not f.done()]
            return len(self._stalled)

    @property
    def dialect(self) -> SqlDialect:
        return self.source.dialect

    def is_connected(self) -> bool:
        return self.source.is_connected()

    def query(self, sql: str, timeout: float | None = None) -> list[dict[str, Any]]:
        if not self.source.is_connected():
            raise DataSourceUnavailable()

        stalled = self.stalled_queries
        if stalled:
            log.warning("query_skipped_source_busy", stalled=stalled, sql=sql[:120])
            raise QueryTimeout("an earlier query is still running", sql=sql)

        budget = self.config.query_timeout if timeout is None else timeout
        future = self._executor.submit(self.source.query, sql)
        try:
            result = future.result(timeout=budget)
        except FutureTimeout:
            with self._stalled_lock:
                self._stalled.append(future)
            log.warning("query_timeout", timeout=budget, still_running=True, sql=sql[:120])
            raise QueryTimeout(f"query timeout after {budget}s", sql=sql) from None
        except (DataSourceUnavailable, QueryTimeout, QueryStrategyFailed):
            raise
        except Exception as e:  # driver errors have no common base class
            message = str(e)
            if _is_connection_failure(message):
                log.error("query_connection_lost", error=message)
                self._invalidate()
                raise DataSourceUnavailable() from e
            log.debug("query_failed", error=message, sql=sql[:120])
            raise QueryStrategyFailed(message, sql=sql) from e

        log.debug("query_done", rows=len(result))
        return result

    def fetch_ledgers(self, sql: str, timeout: float | None = None) -> list[Ledger]:
        return rows.ledgers_from_rows(self.query(sql, timeout=timeout))

    def _invalidate(self) -> None:
        invalidate = getattr(self.source, "invalidate", None)
        if invalidate is not None:
            invalidate()

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        close = getattr(self.source, "close", None)
        if close is not None:
            close()
