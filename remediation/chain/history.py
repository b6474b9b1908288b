# remediation/chain/history.py
# --------------------------------------------------------------------------- #
# Point-in-time reads against an archive node. Every read for one operator is
# pinned to a single block hash so the snapshot and the nominator set agree.
# --------------------------------------------------------------------------- #

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from async_substrate_interface.errors import SubstrateRequestException
from loguru import logger
from websockets.exceptions import ConnectionClosed

from remediation.errors import InconsistentState, StateUnavailable
from remediation.models import Nominator, OperatorSnapshot, SlashRecord

from .staking import (
    Deposit,
    NominatorPosition,
    SharePrice,
    StorageFundRedeemPrice,
    Withdrawal,
    fold_position,
)
from .substrate import account_sort_key, mask, to_ss58, value_of

DOMAINS = "Domains"
_READ_ERRORS = (SubstrateRequestException, ConnectionClosed)
_DECODE_ERRORS = (AttributeError, KeyError, IndexError, TypeError, ValueError)


@contextmanager
def _decoding(operator_id: int, what: str):
    """Chain values that do not decode are an inconsistency of that operator."""
    try:
        yield
    except _DECODE_ERRORS as exc:
        raise InconsistentState(operator_id, f"cannot decode {what}: {exc!r}") from exc


@dataclass(slots=True, frozen=True)
class StorageQuery:
    module: str
    storage_function: str
    params: Sequence[Any] = ()


class HistoricalStateReader:
    """
    Reads chain storage as it stood right after a given block.

    Pruned state and unknown blocks surface as ``StateUnavailable``; callers
    decide what that means for the operator being processed.
    """

    def __init__(self, substrate):
        self.substrate = substrate
        self._hashes: Dict[int, str] = {}

    # ------------------------------------------------------------------ #
    # Primitives
    # ------------------------------------------------------------------ #

    async def block_hash(self, block_height: int) -> str:
        if block_height in self._hashes:
            return self._hashes[block_height]
        try:
            block_hash = await self.substrate.get_block_hash(block_height)
        except _READ_ERRORS as exc:
            raise StateUnavailable(block_height, str(exc)) from exc
        if not block_hash:
            raise StateUnavailable(block_height, "block not found")
        self._hashes[block_height] = block_hash
        return block_hash

    async def read_state_at(self, block_height: int, query: StorageQuery) -> Any:
        """Return the decoded storage value after ``block_height``, or None if unset."""
        block_hash = await self.block_hash(block_height)
        return await self._query(block_height, block_hash, query)

    async def _query(self, block_height: Optional[int], block_hash: Optional[str], query: StorageQuery) -> Any:
        try:
            result = await self.substrate.query(
                query.module,
                query.storage_function,
                list(query.params),
                block_hash=block_hash,
            )
        except _READ_ERRORS as exc:
            raise StateUnavailable(block_height, str(exc)) from exc
        return value_of(result)

    async def _query_map(
        self, block_height: int, block_hash: str, storage_function: str, operator_id: int
    ) -> List[Tuple[str, Any]]:
        try:
            result = await self.substrate.query_map(
                DOMAINS,
                storage_function,
                [operator_id],
                block_hash=block_hash,
            )
            return [(to_ss58(key), value_of(value)) async for key, value in result]
        except _READ_ERRORS as exc:
            raise StateUnavailable(block_height, str(exc)) from exc

    async def _share_price(
        self, block_height: int, block_hash: str, operator_id: int, domain_epoch: Tuple[int, int]
    ) -> Optional[SharePrice]:
        raw = await self._query(
            block_height,
            block_hash,
            StorageQuery(DOMAINS, "OperatorEpochSharePrice", (operator_id, list(domain_epoch))),
        )
        if raw is None:
            return None
        return SharePrice(int(raw))

    # ------------------------------------------------------------------ #
    # Accounts
    # ------------------------------------------------------------------ #

    async def free_balance(self, account_id: str, block_height: Optional[int] = None) -> int:
        """Free balance of ``account_id``; live state when ``block_height`` is None."""
        query = StorageQuery("System", "Account", (account_id,))
        if block_height is None:
            info = await self._query(None, None, query)
        else:
            info = await self.read_state_at(block_height, query)
        if not info:
            return 0
        return int(info["data"]["free"])

    async def treasury_account(self) -> str:
        try:
            raw = await self.substrate.get_constant(DOMAINS, "TreasuryAccount")
        except _READ_ERRORS as exc:
            raise StateUnavailable(None, f"treasury account constant: {exc}") from exc
        return to_ss58(raw)

    # ------------------------------------------------------------------ #
    # Operator state
    # ------------------------------------------------------------------ #

    async def nominator_positions(
        self, operator_id: int, block_height: int
    ) -> Dict[str, NominatorPosition]:
        block_hash = await self.block_hash(block_height)
        with _decoding(operator_id, "nominator accounts"):
            deposits = await self._query_map(block_height, block_hash, "Deposits", operator_id)
            withdrawals = dict(await self._query_map(block_height, block_hash, "Withdrawals", operator_id))

        deposit_accounts = {acc for acc, _ in deposits}
        orphans = [acc for acc in withdrawals if acc not in deposit_accounts]
        if orphans:
            raise InconsistentState(
                operator_id,
                f"withdrawal without deposit for {', '.join(mask(a) for a in orphans)}",
            )

        positions: Dict[str, NominatorPosition] = {}
        for account_id, raw_deposit in deposits:
            with _decoding(operator_id, f"position of {mask(account_id)}"):
                deposit = Deposit.from_chain(raw_deposit)
                raw_withdrawal = withdrawals.get(account_id)
                withdrawal = Withdrawal.from_chain(raw_withdrawal) if raw_withdrawal is not None else None

                deposit_price = None
                if deposit.pending is not None:
                    deposit_price = await self._share_price(
                        block_height, block_hash, operator_id, deposit.pending.domain_epoch
                    )
                withdrawal_price = None
                if withdrawal is not None and withdrawal.in_shares is not None:
                    withdrawal_price = await self._share_price(
                        block_height, block_hash, operator_id, withdrawal.in_shares.domain_epoch
                    )

                pos = fold_position(
                    deposit,
                    withdrawal,
                    deposit_price=deposit_price,
                    withdrawal_price=withdrawal_price,
                )
            for note in pos.notes:
                logger.debug(f"[history] operator {operator_id} nominator {mask(account_id)}: {note}")
            positions[account_id] = pos

        return positions

    async def storage_fund_balance(self, operator_id: int, block_height: int) -> int:
        block_hash = await self.block_hash(block_height)
        try:
            result = await self.substrate.runtime_call(
                "DomainsApi",
                "storage_fund_account_balance",
                [operator_id],
                block_hash,
            )
        except _READ_ERRORS as exc:
            raise StateUnavailable(block_height, str(exc)) from exc
        return int(value_of(result) or 0)

    async def operator_snapshot(
        self,
        operator_id: int,
        block_height: int,
        positions: Dict[str, NominatorPosition],
    ) -> Tuple[OperatorSnapshot, StorageFundRedeemPrice]:
        operator = await self.read_state_at(
            block_height, StorageQuery(DOMAINS, "Operators", (operator_id,))
        )
        if operator is None:
            raise StateUnavailable(block_height, f"operator {operator_id} not found")

        fund_balance = await self.storage_fund_balance(operator_id, block_height)
        with _decoding(operator_id, "operator record"):
            total_deposit = int(operator["total_storage_fee_deposit"])
            redeem_price = StorageFundRedeemPrice(fund_balance, total_deposit)

            # pending deposits are in the fund but not yet backed by shares
            pending_fee = sum(p.pending_storage_fee for p in positions.values())
            pooled_deposit = max(0, total_deposit - pending_fee)

            snapshot = OperatorSnapshot(
                operator_id=operator_id,
                block_height=block_height,
                total_stake=int(operator["current_total_stake"]) + int(operator.get("current_epoch_rewards") or 0),
                total_storage_fee_deposit=redeem_price.redeem(pooled_deposit),
                total_shares=int(operator["current_total_shares"]),
            )
        return snapshot, redeem_price

    async def nominators(self, operator_id: int, block_height: int) -> List[Nominator]:
        positions = await self.nominator_positions(operator_id, block_height)
        _, redeem_price = await self.operator_snapshot(operator_id, block_height, positions)
        return self._to_nominators(operator_id, positions, redeem_price)

    def _to_nominators(
        self,
        operator_id: int,
        positions: Dict[str, NominatorPosition],
        redeem_price: StorageFundRedeemPrice,
    ) -> List[Nominator]:
        nominators = [
            Nominator(
                account_id=account_id,
                operator_id=operator_id,
                staked_shares=pos.shares,
                unpooled=pos.unpooled_stake + redeem_price.redeem(pos.pending_storage_fee),
            )
            for account_id, pos in positions.items()
        ]
        nominators.sort(key=lambda n: account_sort_key(n.account_id))
        return nominators

    async def read_operator(self, record: SlashRecord) -> Tuple[OperatorSnapshot, List[Nominator]]:
        """Snapshot and nominator set of ``record``'s operator at the pre-slash block."""
        height = record.reference_height
        operator_id = record.operator_id
        positions = await self.nominator_positions(operator_id, height)
        snapshot, redeem_price = await self.operator_snapshot(operator_id, height, positions)
        nominators = self._to_nominators(operator_id, positions, redeem_price)
        if not nominators:
            logger.warning(f"[history] operator {operator_id} has no nominators at block {height}")
        else:
            logger.info(
                f"[history] operator {operator_id} @ {height}: {len(nominators)} nominators, "
                f"stake={snapshot.total_stake} storage_fund={snapshot.total_storage_fee_deposit} "
                f"shares={snapshot.total_shares}"
            )
        return snapshot, nominators
