# remediation/engine/entitlements.py
"""
Pro-rata entitlement arithmetic.

Every nominator receives ``floor(shares * pool / issued_shares)`` where the pool
is the operator's total stake plus its storage fund share. Integer only: the
same inputs always give the same payout, to the shannon.
"""

from __future__ import annotations

from typing import List, Sequence

from remediation.errors import InconsistentState
from remediation.models import Entitlement, Nominator, OperatorSnapshot


def compute_entitlements(
    snapshot: OperatorSnapshot,
    nominators: Sequence[Nominator],
) -> List[Entitlement]:
    """
    Entitlement of each nominator, in the order given. Zero-share nominators
    are kept with a zero amount so the output lines up with the input.
    """
    issued = snapshot.total_shares
    held = 0
    for n in nominators:
        if n.operator_id != snapshot.operator_id:
            raise InconsistentState(
                snapshot.operator_id,
                f"nominator {n.account_id} belongs to operator {n.operator_id}",
            )
        if n.staked_shares < 0 or n.unpooled < 0:
            raise InconsistentState(snapshot.operator_id, f"negative position for {n.account_id}")
        held += n.staked_shares

    if held > issued:
        raise InconsistentState(
            snapshot.operator_id,
            f"nominators hold {held} shares but only {issued} are issued",
        )

    pool = snapshot.total_pool
    out: List[Entitlement] = []
    for n in nominators:
        amount = n.staked_shares * pool // issued if issued else 0
        out.append(Entitlement(account_id=n.account_id, amount=amount, unpooled=n.unpooled))
    return out


def residual(snapshot: OperatorSnapshot, entitlements: Sequence[Entitlement]) -> int:
    """
    Pool units left over after floor rounding. They stay in the treasury.

    Bounded by ``len(entitlements) - 1`` when the nominators hold every issued
    share; larger when some shares are not held by anyone in the set.
    """
    return snapshot.total_pool - sum(e.amount for e in entitlements)
