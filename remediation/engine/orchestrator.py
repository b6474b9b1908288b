# remediation/engine/orchestrator.py
# --------------------------------------------------------------------------- #
# Drives every slash record through read → compute → solvency → dispatch.
# One record at a time, in input order; nothing runs concurrently.
# --------------------------------------------------------------------------- #

from __future__ import annotations

from typing import List, Sequence

from loguru import logger

from remediation.errors import InconsistentState, RemediationError, StateUnavailable
from remediation.models import (
    BatchPlan,
    OperatorOutcome,
    OperatorState,
    RunReport,
    SlashRecord,
)
from remediation.utils.pretty_logs import fmt_balance, pretty

from .entitlements import compute_entitlements, residual


class RemediationRun:
    """
    Two passes over the records:

    1. prepare: read the pre-slash state and compute each operator's plan.
       Per-operator errors mark the record FAILED and the pass moves on.
    2. dispatch: before each batch the treasury is re-read and must cover the
       batch plus every later computed batch. A shortfall, or a treasury that
       cannot be read, halts the run; the remaining records are left
       unattempted.

    Reading every operator before the first batch goes out is deliberate: the
    solvency gate needs the totals of the operators still pending, so the
    state reads of later records run before earlier ones are settled.

    No retries and no persisted progress: the report's rerun list is the way
    back in after a partial run.
    """

    def __init__(self, reader, checker, dispatcher, *, dry_run: bool = False):
        self.reader = reader
        self.checker = checker
        self.dispatcher = dispatcher
        self.dry_run = dry_run

    # ------------------------------------------------------------------ #
    # Prepare
    # ------------------------------------------------------------------ #

    async def prepare(self, outcome: OperatorOutcome) -> None:
        record = outcome.record
        try:
            snapshot, nominators = await self.reader.read_operator(record)
            outcome.advance(OperatorState.STATE_READ)
            outcome.nominator_count = len(nominators)

            entitlements = compute_entitlements(snapshot, nominators)
        except (StateUnavailable, InconsistentState) as exc:
            logger.error(f"[run] operator {record.operator_id} failed: {exc}")
            outcome.fail(str(exc))
            return

        outcome.entitlements = entitlements
        outcome.residual = residual(snapshot, entitlements)
        outcome.plan = BatchPlan.from_entitlements(record.operator_id, entitlements)
        outcome.advance(OperatorState.COMPUTED)
        pretty.show_entitlements(record.operator_id, entitlements, outcome.residual)

        if not outcome.plan.entries:
            if not nominators:
                logger.warning(f"[run] operator {record.operator_id}: empty nominator set, nothing to pay")
            else:
                logger.warning(f"[run] operator {record.operator_id}: every entitlement is zero, nothing to pay")
            outcome.advance(OperatorState.DONE)

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    async def settle(self, outcome: OperatorOutcome, outstanding: int) -> None:
        """Gate and submit one computed plan. Solvency errors propagate."""
        plan = outcome.plan
        if outcome.state is not OperatorState.COMPUTED or plan is None:
            raise ValueError(f"operator {outcome.operator_id} has no computed plan ({outcome.state.value})")
        available = await self.checker.check(outstanding)
        outcome.advance(OperatorState.SOLVENCY_CHECKED)
        logger.info(
            f"[run] operator {outcome.operator_id}: paying {fmt_balance(plan.total)} "
            f"to {len(plan)} nominators (treasury {fmt_balance(available)})"
        )
        if self.dry_run:
            return

        result = await self.dispatcher.dispatch(plan)
        outcome.advance(OperatorState.DISPATCHED)
        if result.success:
            outcome.block_hash = result.block_hash
            outcome.advance(OperatorState.DONE)
        else:
            outcome.fail(result.reason)

    async def run(self, records: Sequence[SlashRecord]) -> RunReport:
        _reject_duplicates(records)
        report = RunReport(outcomes=[OperatorOutcome(record=r) for r in records], dry_run=self.dry_run)

        for outcome in report.outcomes:
            await self.prepare(outcome)

        pending = [o for o in report.outcomes if o.state is OperatorState.COMPUTED]
        outstanding = sum(o.plan.total for o in pending)
        logger.info(f"[run] {len(pending)} batches to send, {fmt_balance(outstanding)} outstanding")

        for outcome in pending:
            try:
                await self.settle(outcome, outstanding)
            except RemediationError as exc:
                logger.error(f"[run] halting before operator {outcome.operator_id}: {exc}")
                report.halted = True
                report.halt_reason = str(exc)
                break
            outstanding -= outcome.plan.total

        _log_summary(report)
        return report


def _reject_duplicates(records: Sequence[SlashRecord]) -> None:
    seen = set()
    dupes: List[int] = []
    for r in records:
        if r.operator_id in seen:
            dupes.append(r.operator_id)
        seen.add(r.operator_id)
    if dupes:
        raise ValueError(f"operators listed more than once: {sorted(set(dupes))}")


def _log_summary(report: RunReport) -> None:
    if report.succeeded:
        logger.info(f"[run] done: {report.succeeded}")
    if report.failed:
        logger.error(f"[run] failed: {report.failed}")
    if report.unattempted:
        logger.warning(f"[run] not attempted: {report.unattempted}")
