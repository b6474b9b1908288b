# remediation/cli.py
# --------------------------------------------------------------------------- #
# Command-line entry point: pays back nominators of operators slashed for
# invalid bundles, one sudo batch per operator.
# --------------------------------------------------------------------------- #

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from remediation.chain import HistoricalStateReader, load_keypair, open_substrate
from remediation.config import (
    DRY_RUN,
    LOG_LEVEL,
    REMEDIATION_RPC_URL,
    WAIT_FOR_FINALIZATION,
)
from remediation.engine import BatchDispatcher, RemediationRun, TreasurySolvencyChecker
from remediation.models import RunReport, SlashRecord
from remediation.slashes import (
    GEMINI_3H_SLASHES,
    dump_records,
    load_indexer_export,
    load_records,
    select_operators,
)
from remediation.utils.logging import setup_logging
from remediation.utils.pretty_logs import fmt_balance, pretty


def _parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="remediation-run",
        description="Refund nominators of operators slashed for invalid bundles from the treasury.",
    )
    parser.add_argument(
        "--keystore-suri",
        required=True,
        help='Secret URI of the sudo key, e.g. "//Alice".',
    )
    parser.add_argument(
        "--url",
        default=REMEDIATION_RPC_URL,
        help=f"Websocket endpoint of an archive node (default: {REMEDIATION_RPC_URL}).",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--slash-list",
        type=Path,
        help="YAML/JSON slash list to use instead of the built-in Gemini-3h list.",
    )
    source.add_argument(
        "--indexer-events",
        type=Path,
        help="JSON export of slash events from the indexer; only InvalidBundle slashes are used.",
    )
    parser.add_argument(
        "--operator",
        action="append",
        type=int,
        dest="operators",
        help="Only process this operator id (can be provided multiple times).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=DRY_RUN,
        help="Compute and check everything but submit nothing.",
    )
    parser.add_argument(
        "--wait-finalization",
        action="store_true",
        default=WAIT_FOR_FINALIZATION,
        help="Wait for each batch to be finalized instead of just included.",
    )
    parser.add_argument("--log-level", default=LOG_LEVEL, help="DEBUG, INFO, WARNING …")
    return parser.parse_args(list(argv) if argv is not None else None)


def resolve_records(args: argparse.Namespace) -> List[SlashRecord]:
    if args.slash_list is not None:
        records = load_records(args.slash_list)
    elif args.indexer_events is not None:
        records = load_indexer_export(args.indexer_events)
    else:
        records = list(GEMINI_3H_SLASHES)
    if args.operators:
        records = select_operators(records, args.operators)
    return records


async def run(argv: Optional[Iterable[str]] = None) -> RunReport:
    args = _parse_args(argv)
    setup_logging(args.log_level)

    records = resolve_records(args)
    if not records:
        raise ValueError("No slash records to process.")
    keypair = load_keypair(args.keystore_suri)

    logger.info(f"Connecting to {args.url}…")
    async with open_substrate(args.url) as substrate:
        reader = HistoricalStateReader(substrate)
        checker = TreasurySolvencyChecker(reader)
        treasury = await checker.treasury_account()
        pretty.kv_panel(
            "Remediation",
            [
                ("Operators", len(records)),
                ("Treasury", treasury),
                ("Treasury balance", fmt_balance(await checker.available())),
                ("Sudo", keypair.ss58_address),
                ("Dry run", args.dry_run),
            ],
        )
        dispatcher = BatchDispatcher(substrate, keypair, wait_for_finalization=args.wait_finalization)
        report = await RemediationRun(reader, checker, dispatcher, dry_run=args.dry_run).run(records)

    pretty.show_report(report)
    if report.rerun_records and not report.dry_run:
        pretty.rule("[bold yellow]rerun with --slash-list[/bold yellow]")
        print(dump_records(report.rerun_records), flush=True)
    return report


def main() -> None:
    report = asyncio.run(run())
    ok = not report.halted and not report.failed
    if not report.dry_run:
        ok = ok and report.complete
    sys.exit(0 if ok else 1)


if __name__ == "__main__":  # pragma: no cover
    main()
