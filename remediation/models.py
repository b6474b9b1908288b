# remediation/models.py
# --------------------------------------------------------------------------- #
# Dataclasses shared across the remediation engine. They carry plain ints for
# every amount (shannons) so they can be built in tests without a chain.
# --------------------------------------------------------------------------- #

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Dict, Iterable, List, Optional

# --------------------------------------------------------------------------- #
# Inputs
# --------------------------------------------------------------------------- #


@dataclass(slots=True, frozen=True)
class SlashRecord:
    """
    One confirmed invalid-bundle slash.

    Attributes:
        operator_id: Operator that was slashed.
        slash_block_height: Block the slash landed in.
    """

    operator_id: int
    slash_block_height: int

    def __post_init__(self) -> None:
        if self.operator_id < 0:
            raise ValueError(f"operator id must be non-negative, got {self.operator_id}")
        if self.slash_block_height < 1:
            raise ValueError(
                f"slash block for operator {self.operator_id} must be >= 1, "
                f"got {self.slash_block_height}"
            )

    @property
    def reference_height(self) -> int:
        """Block whose post-state is used for every read of this operator."""
        return self.slash_block_height - 1

    def to_dict(self) -> Dict[str, int]:
        return {
            "operator_id": self.operator_id,
            "slash_block_height": self.slash_block_height,
        }


@dataclass(slots=True, frozen=True)
class Nominator:
    """
    A nominator's position under an operator at the reference block.

    ``unpooled`` is balance owed to the nominator that is not represented by
    shares: deposits still waiting for their epoch to close and withdrawals
    already converted to balance.
    """

    account_id: str
    operator_id: int
    staked_shares: int
    unpooled: int = 0


@dataclass(slots=True, frozen=True)
class OperatorSnapshot:
    operator_id: int
    block_height: int
    total_stake: int
    total_storage_fee_deposit: int
    total_shares: int

    @property
    def total_pool(self) -> int:
        return self.total_stake + self.total_storage_fee_deposit

    @property
    def share_price(self) -> Optional[Fraction]:
        """Currency per share, exact. ``None`` when no shares are issued."""
        if self.total_shares == 0:
            return None
        return Fraction(self.total_pool, self.total_shares)


# --------------------------------------------------------------------------- #
# Derived values
# --------------------------------------------------------------------------- #


@dataclass(slots=True, frozen=True)
class Entitlement:
    account_id: str
    amount: int
    unpooled: int = 0

    @property
    def payout(self) -> int:
        """What actually gets transferred: pool share plus unpooled balance."""
        return self.amount + self.unpooled


@dataclass(slots=True, frozen=True)
class BatchPlan:
    operator_id: int
    entries: tuple[Entitlement, ...]

    @classmethod
    def from_entitlements(
        cls, operator_id: int, entitlements: Iterable[Entitlement]
    ) -> "BatchPlan":
        # zero payouts are no-op transfers; keep them out of the extrinsic
        return cls(
            operator_id=operator_id,
            entries=tuple(e for e in entitlements if e.payout > 0),
        )

    @property
    def total(self) -> int:
        return sum(e.payout for e in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(slots=True, frozen=True)
class DispatchOutcome:
    success: bool
    reason: str = ""
    block_hash: Optional[str] = None

    @classmethod
    def ok(cls, block_hash: Optional[str]) -> "DispatchOutcome":
        return cls(success=True, block_hash=block_hash)

    @classmethod
    def failure(cls, reason: str, block_hash: Optional[str] = None) -> "DispatchOutcome":
        return cls(success=False, reason=reason, block_hash=block_hash)


# --------------------------------------------------------------------------- #
# Run bookkeeping
# --------------------------------------------------------------------------- #


class OperatorState(Enum):
    PENDING = "pending"
    STATE_READ = "state-read"
    COMPUTED = "computed"
    SOLVENCY_CHECKED = "solvency-checked"
    DISPATCHED = "dispatched"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (OperatorState.DONE, OperatorState.FAILED)


@dataclass(slots=True)
class OperatorOutcome:
    """Progress of one slash record through the pipeline."""

    record: SlashRecord
    state: OperatorState = OperatorState.PENDING
    nominator_count: int = 0
    entitlements: List[Entitlement] = field(default_factory=list)
    plan: Optional[BatchPlan] = None
    residual: int = 0
    reason: str = ""
    block_hash: Optional[str] = None

    @property
    def operator_id(self) -> int:
        return self.record.operator_id

    @property
    def transferred(self) -> int:
        """Amount that actually left the treasury for this operator."""
        if self.state is not OperatorState.DONE or self.plan is None or self.block_hash is None:
            return 0
        return self.plan.total

    def advance(self, state: OperatorState) -> None:
        self.state = state

    def fail(self, reason: str) -> None:
        self.state = OperatorState.FAILED
        self.reason = reason


@dataclass(slots=True)
class RunReport:
    outcomes: List[OperatorOutcome] = field(default_factory=list)
    halted: bool = False
    halt_reason: str = ""
    dry_run: bool = False

    @property
    def succeeded(self) -> List[int]:
        return [o.operator_id for o in self.outcomes if o.state is OperatorState.DONE]

    @property
    def failed(self) -> List[int]:
        return [o.operator_id for o in self.outcomes if o.state is OperatorState.FAILED]

    @property
    def unattempted(self) -> List[int]:
        return [o.operator_id for o in self.outcomes if not o.state.terminal]

    @property
    def rerun_records(self) -> List[SlashRecord]:
        """Records that still need a run: failed ones and ones never finished."""
        return [o.record for o in self.outcomes if o.state is not OperatorState.DONE]

    @property
    def total_paid(self) -> int:
        return sum(o.transferred for o in self.outcomes)

    @property
    def complete(self) -> bool:
        return not self.halted and all(o.state is OperatorState.DONE for o in self.outcomes)
