# remediation/chain/staking.py
# --------------------------------------------------------------------------- #
# Pure staking arithmetic for the domains pallet. Nothing here touches the
# network: values decoded from chain storage go in, integer positions come out.
# --------------------------------------------------------------------------- #

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

PERBILL: int = 1_000_000_000


def _field(obj: Any, name: str, idx: int, default: Any = None) -> Any:
    """Fetch a struct member from the dict or tuple shape the decoder hands us."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    if isinstance(obj, (list, tuple)):
        return obj[idx] if idx < len(obj) else default
    return getattr(obj, name, default)


def _int(obj: Any, name: str, idx: int) -> int:
    return int(_field(obj, name, idx, 0) or 0)


def _epoch(raw: Any) -> Tuple[int, int]:
    if isinstance(raw, Mapping):
        vals = list(raw.values())
        return int(vals[0]), int(vals[1])
    domain_id, epoch = raw
    return int(domain_id), int(epoch)


# --------------------------------------------------------------------------- #
# Prices
# --------------------------------------------------------------------------- #


@dataclass(slots=True, frozen=True)
class SharePrice:
    """
    Epoch share price as stored on chain: parts per billion of shares issued
    per unit of stake.
    """

    perbill: int

    def __post_init__(self) -> None:
        if not 0 < self.perbill <= PERBILL:
            raise ValueError(f"share price out of range: {self.perbill}")

    @property
    def is_one(self) -> bool:
        return self.perbill == PERBILL

    def stake_to_shares(self, stake: int) -> int:
        if self.is_one:
            return stake
        return self.perbill * stake // PERBILL

    def shares_to_stake(self, shares: int) -> int:
        if self.is_one:
            return shares
        return shares * PERBILL // self.perbill


@dataclass(slots=True, frozen=True)
class StorageFundRedeemPrice:
    """Ratio between what the operator's storage fund holds and what was deposited into it."""

    total_balance: int
    total_deposit: int

    def redeem(self, deposit: int) -> int:
        if self.total_balance == self.total_deposit:
            return deposit
        if self.total_deposit == 0:
            return 0
        return deposit * self.total_balance // self.total_deposit


# --------------------------------------------------------------------------- #
# Decoded storage values
# --------------------------------------------------------------------------- #


@dataclass(slots=True, frozen=True)
class PendingDeposit:
    domain_epoch: Tuple[int, int]
    amount: int
    storage_fee_deposit: int


@dataclass(slots=True, frozen=True)
class Deposit:
    shares: int = 0
    storage_fee_deposit: int = 0
    pending: Optional[PendingDeposit] = None

    @classmethod
    def from_chain(cls, value: Any) -> "Deposit":
        known = _field(value, "known", 0)
        pending_raw = _field(value, "pending", 1)
        pending = None
        if pending_raw is not None:
            pending = PendingDeposit(
                domain_epoch=_epoch(_field(pending_raw, "effective_domain_epoch", 0)),
                amount=_int(pending_raw, "amount", 1),
                storage_fee_deposit=_int(pending_raw, "storage_fee_deposit", 2),
            )
        return cls(
            shares=_int(known, "shares", 0),
            storage_fee_deposit=_int(known, "storage_fee_deposit", 1),
            pending=pending,
        )


@dataclass(slots=True, frozen=True)
class WithdrawalInShares:
    domain_epoch: Tuple[int, int]
    shares: int
    storage_fee_refund: int


@dataclass(slots=True, frozen=True)
class Withdrawal:
    total_withdrawal_amount: int = 0
    storage_fee_refunds: int = 0
    in_shares: Optional[WithdrawalInShares] = None

    @classmethod
    def from_chain(cls, value: Any) -> "Withdrawal":
        unlocking = _field(value, "withdrawals", 1) or []
        in_shares_raw = _field(value, "withdrawal_in_shares", 2)
        in_shares = None
        if in_shares_raw is not None:
            in_shares = WithdrawalInShares(
                domain_epoch=_epoch(_field(in_shares_raw, "domain_epoch", 0)),
                shares=_int(in_shares_raw, "shares", 2),
                storage_fee_refund=_int(in_shares_raw, "storage_fee_refund", 3),
            )
        return cls(
            total_withdrawal_amount=_int(value, "total_withdrawal_amount", 0),
            storage_fee_refunds=sum(_int(w, "storage_fee_refund", 3) for w in unlocking),
            in_shares=in_shares,
        )


# --------------------------------------------------------------------------- #
# Folding a nominator's storage into a position
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class NominatorPosition:
    """
    Attributes:
        shares: Shares still in the operator's pool.
        unpooled_stake: Balance owed outside the pool.
        pending_storage_fee: Storage fee deposit of a pending deposit whose epoch
            has not closed; it sits in the fund but is not backed by shares.
    """

    shares: int = 0
    unpooled_stake: int = 0
    pending_storage_fee: int = 0
    notes: List[str] = field(default_factory=list)


def fold_position(
    deposit: Deposit,
    withdrawal: Optional[Withdrawal] = None,
    *,
    deposit_price: Optional[SharePrice] = None,
    withdrawal_price: Optional[SharePrice] = None,
) -> NominatorPosition:
    """
    Bring a nominator's deposit and withdrawal storage up to the reference
    block, the way the pallet would at the next epoch transition.

    ``deposit_price`` / ``withdrawal_price`` are the share prices of the epochs
    the pending items belong to, or ``None`` when that epoch has not closed.
    """
    pos = NominatorPosition(shares=deposit.shares)

    pending = deposit.pending
    if pending is not None:
        if deposit_price is not None:
            pos.shares += deposit_price.stake_to_shares(pending.amount)
        else:
            pos.unpooled_stake += pending.amount
            pos.pending_storage_fee += pending.storage_fee_deposit
            pos.notes.append("pending deposit refunded at face value")

    if withdrawal is not None:
        pos.unpooled_stake += withdrawal.total_withdrawal_amount + withdrawal.storage_fee_refunds
        in_shares = withdrawal.in_shares
        if in_shares is not None:
            if withdrawal_price is not None:
                pos.unpooled_stake += withdrawal_price.shares_to_stake(in_shares.shares)
                pos.unpooled_stake += in_shares.storage_fee_refund
            else:
                pos.shares += in_shares.shares

    return pos
