"""CLI tool for resolving Tally ledger names and chatting with a ledger set."""

import argparse
import sys
import uuid

import pandas as pd
import structlog

from tallymatch.config import ResolverConfig
from tallymatch.errors import DataSourceUnavailable
from tallymatch.formatting import format_balance, format_result
from tallymatch.logging import configure_logging
from tallymatch.normalize import normalize, translate_vocabulary
from tallymatch.resolver import LedgerResolver
from tallymatch.router import QueryRouter
from tallymatch.sources import GuardedSource, OdbcLedgerSource, SqliteLedgerSource
from tallymatch.sql import all_ledgers


def _build_config(args: argparse.Namespace) -> ResolverConfig:
    config = ResolverConfig()
    if args.timeout is not None:
        config.data_source.query_timeout = args.timeout
    if args.dsn:
        config.data_source.odbc_dsn = args.dsn
    if getattr(args, "parallel", None):
        config.search.parallel_strategies = args.parallel
    return config


def _build_source(args: argparse.Namespace, config: ResolverConfig) -> GuardedSource:
    """Open the ledger export, or connect to Tally over ODBC."""
    log = structlog.get_logger()
    if args.odbc:
        source = OdbcLedgerSource(config.data_source)
        source.connect()
        log.info("source_ready", kind="odbc")
    elif args.ledgers:
        source = SqliteLedgerSource.from_file(args.ledgers, stock_path=args.stock)
        log.info("source_ready", kind="snapshot", path=args.ledgers)
    else:
        print("error: pass --ledgers PATH (an .xlsx/.csv export) or --odbc", file=sys.stderr)
        sys.exit(2)
    return GuardedSource(source, config.data_source)


def _build_resolver(args: argparse.Namespace) -> LedgerResolver:
    config = _build_config(args)
    return LedgerResolver(_build_source(args, config), config)


def cmd_resolve(args: argparse.Namespace) -> None:
    resolver = _build_resolver(args)
    try:
        for text in args.text:
            result = resolver.resolve(text)
            print(f"> {text}")
            print(format_result(result))
            print()
    except DataSourceUnavailable as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    if args.stats:
        _print_stats(resolver)


def cmd_chat(args: argparse.Namespace) -> None:
    """Interactive multi-turn session: replies to prompts are selections."""
    resolver = _build_resolver(args)
    router = QueryRouter(resolver)
    session_id = args.session or uuid.uuid4().hex

    print("Ask about a ledger (empty line or Ctrl-D to quit).")
    while True:
        try:
            text = input("you> ")
        except EOFError:
            print()
            break
        if not text.strip():
            break
        response = router.handle(session_id, text)
        print(response.display_message)
        print()

    if args.stats:
        _print_stats(resolver)


def cmd_normalize(args: argparse.Namespace) -> None:
    for text in args.text:
        term = normalize(text)
        print(f"{text!r} -> {term!r}")
        if args.translate:
            print(f"  translated: {translate_vocabulary(term)!r}")


def cmd_ledgers(args: argparse.Namespace) -> None:
    """Print the ledger set, optionally filtered by name or group."""
    config = _build_config(args)
    source = _build_source(args, config)
    ledgers = source.fetch_ledgers(all_ledgers(source.dialect))
    df = pd.DataFrame(
        [
            {
                "name": l.name,
                "parent": l.parent,
                "closing_balance": format_balance(l.closing_balance),
            }
            for l in ledgers
        ]
    )
    if args.filter and not df.empty:
        needle = args.filter.lower()
        mask = df.apply(
            lambda row: needle in row["name"].lower() or needle in row["parent"].lower(),
            axis=1,
        )
        df = df[mask]

    print(f"=== Ledgers ({len(df)}) ===")
    if df.empty:
        print("  No ledgers found.")
    else:
        print(df.to_string(index=False))


def _print_stats(resolver: LedgerResolver) -> None:
    s = resolver.stats
    print("\n--- Statistics ---")
    print(f"Resolves: {s.resolves}")
    print(f"Snapshot loads: {s.snapshot_loads}")
    if s.snapshot_failures:
        print(f"Snapshot failures: {s.snapshot_failures}")
    print(f"Strategy failures: {s.strategy_failures}")
    print(f"Strategy timeouts: {s.strategy_timeouts}")
    print("Tiers: " + ", ".join(f"{tier}={count}" for tier, count in s.tiers.items()))


def main() -> None:
    # Parent parser with global options (inherited by all subcommands)
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging level (default: $LOG_LEVEL or WARNING)",
    )

    # Data source options for the commands that read ledgers
    source_parser = argparse.ArgumentParser(add_help=False)
    source_parser.add_argument("--ledgers", help="Ledger export (.xlsx/.csv) to search")
    source_parser.add_argument("--stock", help="Stock item export (.xlsx/.csv), optional")
    source_parser.add_argument(
        "--odbc",
        action="store_true",
        help="Query Tally over ODBC ($TALLY_ODBC_CONNECTION_STRING or --dsn)",
    )
    source_parser.add_argument("--dsn", help="ODBC data source name (default: TallyODBC64_9000)")
    source_parser.add_argument("--timeout", type=float, help="Per-query timeout in seconds (default: 30)")
    source_parser.add_argument("--stats", action="store_true", help="Print resolver statistics at the end")

    # Main parser
    parser = argparse.ArgumentParser(
        description="Tally ledger name resolution CLI",
        parents=[parent_parser],
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # resolve subcommand
    resolve_parser = subparsers.add_parser(
        "resolve", parents=[parent_parser, source_parser], help="Resolve ledger names once"
    )
    resolve_parser.add_argument("text", nargs="+", help="Account names or questions")
    resolve_parser.add_argument(
        "--parallel", type=int, help="Run fuzzy strategies on this many threads"
    )
    resolve_parser.set_defaults(func=cmd_resolve)

    # chat subcommand
    chat_parser = subparsers.add_parser(
        "chat", parents=[parent_parser, source_parser], help="Interactive multi-turn session"
    )
    chat_parser.add_argument("--session", help="Session id (default: random)")
    chat_parser.set_defaults(func=cmd_chat)

    # normalize subcommand
    normalize_parser = subparsers.add_parser(
        "normalize", parents=[parent_parser], help="Show how input text is cleaned"
    )
    normalize_parser.add_argument("text", nargs="+", help="Raw user text")
    normalize_parser.add_argument(
        "--translate", action="store_true", help="Also show the Hinglish-to-English translation"
    )
    normalize_parser.set_defaults(func=cmd_normalize)

    # ledgers subcommand
    ledgers_parser = subparsers.add_parser(
        "ledgers", parents=[parent_parser, source_parser], help="List ledgers in the data source"
    )
    ledgers_parser.add_argument("--filter", "-f", help="Show ledgers whose name or group contains this")
    ledgers_parser.set_defaults(func=cmd_ledgers)

    args = parser.parse_args()
    configure_logging(args.log_level)
    args.func(args)


if __name__ == "__main__":
    main()
