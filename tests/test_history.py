# ------------------------------------------------------------------------
# tests/test_history.py
# ------------------------------------------------------------------------
# Unit-tests for remediation.chain.history.HistoricalStateReader against the
# in-memory chain.
#
# Scenarios
#   ① every read is pinned to slash_block_height − 1
#   ② nominators come back in public-key order
#   ③ pending deposits: converted at the epoch price, or refunded at face value
#   ④ withdrawals are paid as unpooled balance
#   ⑤ pruned / unknown blocks and missing operators ⇒ StateUnavailable
#   ⑥ withdrawal without a deposit or undecodable values ⇒ InconsistentState
#   ⑦ empty nominator set is a warning, not an error
# ------------------------------------------------------------------------

import pytest
from loguru import logger

from chain_fakes import ALICE, BOB, DAVE, EVE, FERDIE, block_hash_for
from remediation.chain import substrate
from remediation.chain.history import HistoricalStateReader, StorageQuery
from remediation.errors import InconsistentState, StateUnavailable
from remediation.models import SlashRecord

OP = 7
SLASH = 101
REF = SLASH - 1


@pytest.fixture
def warnings():
    messages = []
    sink = logger.add(lambda m: messages.append(m.record["message"]), level="WARNING")
    yield messages
    logger.remove(sink)


def _withdrawal(total: int, refund: int = 0):
    return {
        "total_withdrawal_amount": total,
        "withdrawals": [
            {
                "domain_id": 0,
                "unlock_at_confirmed_domain_block_number": 900,
                "amount_to_unlock": total,
                "storage_fee_refund": refund,
            }
        ],
        "withdrawal_in_shares": None,
    }


# ───── ① / ② ────────────────────────────────────────────────────────── #


@pytest.mark.asyncio
async def test_reads_pre_slash_block(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4, storage_fee_deposit=100)
    chain.add_deposit(REF, OP, ALICE, 1, 25)
    chain.add_deposit(REF, OP, BOB, 3, 75)
    # the slash block itself already has the stake removed
    chain.set_operator(SLASH, OP, total_stake=0, total_shares=0)

    reader = HistoricalStateReader(chain)
    snapshot, nominators = await reader.read_operator(SlashRecord(OP, SLASH))

    assert snapshot.block_height == REF
    assert snapshot.total_stake == 1000
    assert snapshot.total_storage_fee_deposit == 100
    assert snapshot.total_shares == 4
    assert [(n.account_id, n.staked_shares) for n in nominators] == [(BOB, 3), (ALICE, 1)]
    assert set(chain.read_hashes) == {block_hash_for(REF)}


@pytest.mark.asyncio
async def test_nominators_sorted_by_public_key(chain):
    chain.set_operator(REF, OP, total_stake=400, total_shares=4)
    for account in (ALICE, EVE, FERDIE, DAVE):
        chain.add_deposit(REF, OP, account, 1)

    _, nominators = await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert [n.account_id for n in nominators] == [FERDIE, DAVE, ALICE, EVE]


@pytest.mark.asyncio
async def test_nominators_at_explicit_height(chain):
    chain.set_operator(REF, OP, total_stake=400, total_shares=4)
    chain.add_deposit(REF, OP, BOB, 4)
    chain.add_withdrawal(REF, OP, BOB, _withdrawal(10))

    nominators = await HistoricalStateReader(chain).nominators(OP, REF)
    assert [(n.account_id, n.operator_id, n.staked_shares, n.unpooled) for n in nominators] == [
        (BOB, OP, 4, 10)
    ]


@pytest.mark.asyncio
async def test_epoch_rewards_count_towards_stake(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4, epoch_rewards=37)
    chain.add_deposit(REF, OP, ALICE, 4)

    snapshot, _ = await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert snapshot.total_stake == 1037


# ───── ③ / ④ ────────────────────────────────────────────────────────── #


@pytest.mark.asyncio
async def test_pending_deposit_with_closed_epoch(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=120, storage_fee_deposit=108)
    pending = {"effective_domain_epoch": (0, 12), "amount": 40, "storage_fee_deposit": 8}
    chain.add_deposit(REF, OP, ALICE, 100, 100, pending=pending)
    chain.set_share_price(REF, OP, (0, 12), 500_000_000)

    snapshot, nominators = await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert nominators[0].staked_shares == 120
    assert nominators[0].unpooled == 0
    assert snapshot.total_storage_fee_deposit == 108


@pytest.mark.asyncio
async def test_pending_deposit_in_open_epoch_is_refunded(chain):
    # fund doubled in value: every deposited unit redeems for two
    chain.set_operator(
        REF, OP, total_stake=1000, total_shares=100, storage_fee_deposit=108, fund_balance=216
    )
    pending = {"effective_domain_epoch": (0, 13), "amount": 40, "storage_fee_deposit": 8}
    chain.add_deposit(REF, OP, ALICE, 100, 100, pending=pending)

    snapshot, nominators = await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    alice = nominators[0]
    assert alice.staked_shares == 100
    assert alice.unpooled == 40 + 16
    # the pending fee is refunded directly, so the pool only holds the rest
    assert snapshot.total_storage_fee_deposit == 200


@pytest.mark.asyncio
async def test_withdrawal_is_unpooled(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4)
    chain.add_deposit(REF, OP, ALICE, 4)
    chain.add_withdrawal(REF, OP, ALICE, _withdrawal(300, refund=12))

    _, nominators = await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert nominators[0].unpooled == 312


# ───── ⑤ / ⑥ / ⑦ ────────────────────────────────────────────────────── #


@pytest.mark.asyncio
async def test_pruned_state(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4)
    chain.pruned.add(block_hash_for(REF))

    with pytest.raises(StateUnavailable) as info:
        await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert info.value.block_height == REF


@pytest.mark.asyncio
async def test_unknown_block(chain):
    with pytest.raises(StateUnavailable) as info:
        await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert info.value.block_height == REF
    assert "block not found" in str(info.value)


@pytest.mark.asyncio
async def test_missing_operator(chain):
    chain.add_block(REF)
    with pytest.raises(StateUnavailable, match="operator 7 not found"):
        await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))


@pytest.mark.asyncio
async def test_withdrawal_without_deposit(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4)
    chain.add_deposit(REF, OP, ALICE, 4)
    chain.add_withdrawal(REF, OP, BOB, _withdrawal(10))

    with pytest.raises(InconsistentState) as info:
        await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert info.value.operator_id == OP


@pytest.mark.asyncio
async def test_empty_nominator_set_warns(chain, warnings):
    chain.set_operator(REF, OP, total_stake=0, total_shares=0)

    snapshot, nominators = await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert nominators == []
    assert snapshot.total_shares == 0
    assert any("no nominators" in m for m in warnings)


# ───── accounts ─────────────────────────────────────────────────────── #


@pytest.mark.asyncio
async def test_treasury_and_live_balance(chain):
    chain.balances[EVE] = 5_000
    reader = HistoricalStateReader(chain)

    assert await reader.treasury_account() == EVE
    assert await reader.free_balance(EVE) == 5_000
    assert chain.read_hashes[-1] is None
    assert await reader.free_balance(BOB) == 0


@pytest.mark.asyncio
async def test_read_state_at(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4)
    reader = HistoricalStateReader(chain)

    op = await reader.read_state_at(REF, StorageQuery("Domains", "Operators", (OP,)))
    assert op["current_total_stake"] == 1000
    assert await reader.read_state_at(REF, StorageQuery("Domains", "Operators", (OP + 1,))) is None


# ───── undecodable state ────────────────────────────────────────────── #


@pytest.mark.asyncio
async def test_operator_record_missing_field(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4)
    chain.add_deposit(REF, OP, ALICE, 4)
    del chain.storage[(block_hash_for(REF), "Operators", (OP,))]["current_total_shares"]

    with pytest.raises(InconsistentState, match="operator record"):
        await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))


@pytest.mark.asyncio
async def test_share_price_out_of_range(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4)
    pending = {"effective_domain_epoch": (0, 5), "amount": 10, "storage_fee_deposit": 0}
    chain.add_deposit(REF, OP, ALICE, 4, pending=pending)
    chain.set_share_price(REF, OP, (0, 5), 0)

    with pytest.raises(InconsistentState) as info:
        await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))
    assert info.value.operator_id == OP


@pytest.mark.asyncio
async def test_undecodable_account_key(chain):
    chain.set_operator(REF, OP, total_stake=1000, total_shares=4)
    chain.add_deposit(REF, OP, 12345, 4)

    with pytest.raises(InconsistentState, match="nominator accounts"):
        await HistoricalStateReader(chain).read_operator(SlashRecord(OP, SLASH))


def test_mask_follows_config(monkeypatch):
    monkeypatch.setattr(substrate, "MASK_SS58", False)
    assert substrate.mask(ALICE) == ALICE
    monkeypatch.setattr(substrate, "MASK_SS58", True)
    assert substrate.mask(ALICE) == f"{ALICE[:5]}…{ALICE[-4:]}"
