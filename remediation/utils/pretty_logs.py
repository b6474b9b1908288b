# ====================================================================== #
# remediation/utils/pretty_logs.py
# Rich-based console tables for entitlements and the end-of-run summary;
# plain prints when PRETTY_LOGS is off.
# ====================================================================== #

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, List, Tuple

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from remediation.chain.substrate import mask
from remediation.config import LOG_TOP_N, PRETTY_LOGS, SHANNON, TOKEN_SYMBOL
from remediation.models import Entitlement, OperatorOutcome, RunReport


def fmt_balance(amount: int) -> str:
    """Shannons rendered as whole tokens, exact (display only)."""
    tokens = Decimal(amount) / Decimal(SHANNON)
    return f"{tokens.normalize():f} {TOKEN_SYMBOL}"


class Pretty:
    def __init__(self, enable: bool = True):
        self.enable = bool(enable)
        self.console = Console(log_path=False, highlight=False, stderr=True) if self.enable else None

    def rule(self, title: str = ""):
        if self.console is not None:
            self.console.rule(Text.from_markup(title))
        else:
            line = "─" * 30
            print(f"{line} {title} {line}" if title else line * 2)

    def log(self, msg: str):
        if self.console is not None:
            self.console.log(msg)
        else:
            print(msg)

    def kv_panel(self, title: str, items: Iterable[Tuple[str, Any]], style: str = "bold"):
        if self.console is not None:
            body = "\n".join([f"[white]{k}[/white]: {v}" for k, v in items])
            self.console.print(Panel(body, title=title, border_style=style))
        else:
            print(f"\n[{title}]")
            for k, v in items:
                print(f"  - {k}: {v}")

    def table(self, title: str, columns: List[str], rows: List[List[Any]], caption: str | None = None):
        hidden = max(0, len(rows) - LOG_TOP_N)
        rows = rows[:LOG_TOP_N]
        if hidden:
            caption = f"{caption}  (+{hidden} more)" if caption else f"+{hidden} more"
        if self.console is not None:
            t = Table(title=title, box=box.MINIMAL_DOUBLE_HEAD, show_lines=False)
            for c in columns:
                t.add_column(c)
            for r in rows:
                t.add_row(*[str(x) for x in r])
            if caption:
                t.caption = caption
            self.console.print(t)
        else:
            print(f"\n{title}")
            print(" | ".join(columns))
            for r in rows:
                print(" | ".join([str(x) for x in r]))
            if caption:
                print(caption)

    # Convenience formatters
    def show_entitlements(self, operator_id: int, entitlements: List[Entitlement], residual: int):
        if not entitlements:
            self.log(f"[yellow]Operator {operator_id}: no nominators[/yellow]")
            return
        rows = [
            [mask(e.account_id), fmt_balance(e.amount), fmt_balance(e.unpooled), fmt_balance(e.payout)]
            for e in entitlements
        ]
        total = sum(e.payout for e in entitlements)
        self.table(
            f"Operator {operator_id} entitlements",
            ["Nominator", "Pool share", "Unpooled", "Payout"],
            rows,
            caption=f"total={fmt_balance(total)}  residual={residual} shannons",
        )

    def show_outcomes(self, outcomes: List[OperatorOutcome]):
        rows = [
            [
                o.operator_id,
                o.record.slash_block_height,
                o.state.value,
                o.nominator_count,
                fmt_balance(o.plan.total) if o.plan is not None else "-",
                o.block_hash or o.reason or "",
            ]
            for o in outcomes
        ]
        if rows:
            self.table("Remediation outcomes", ["Operator", "Slash block", "State", "Nominators", "Batch", "Block / reason"], rows)

    def show_report(self, report: RunReport):
        self.show_outcomes(report.outcomes)
        style = "bold green" if report.complete else "bold red"
        items = [
            ("Succeeded", report.succeeded or "-"),
            ("Failed", report.failed or "-"),
            ("Unattempted", report.unattempted or "-"),
            ("Paid", fmt_balance(report.total_paid)),
        ]
        if report.halted:
            items.append(("Halted", report.halt_reason))
        if report.dry_run:
            items.append(("Mode", "dry-run (nothing submitted)"))
        self.kv_panel("Run summary", items, style=style)


pretty = Pretty(enable=PRETTY_LOGS)
