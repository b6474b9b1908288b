# remediation/engine/dispatch.py
from __future__ import annotations

import asyncio
from typing import Any, List

from async_substrate_interface.errors import SubstrateRequestException
from loguru import logger
from websockets.exceptions import WebSocketException

from remediation.chain.substrate import find_events, mask, sudo_error
from remediation.config import WAIT_FOR_FINALIZATION
from remediation.errors import DispatchFailure
from remediation.models import BatchPlan, DispatchOutcome


class BatchDispatcher:
    """
    Pays one operator's nominators in a single extrinsic:

        Sudo.sudo(Utility.batch_all([Domains.transfer_treasury_funds, ...]))

    ``batch_all`` reverts every transfer if any of them fails, so an operator
    is either fully paid or not paid at all. Failures are reported through
    ``DispatchOutcome``; nothing is retried.
    """

    def __init__(self, substrate, keypair, *, wait_for_finalization: bool = WAIT_FOR_FINALIZATION):
        self.substrate = substrate
        self.keypair = keypair
        self.wait_for_finalization = wait_for_finalization

    async def compose_batch(self, plan: BatchPlan) -> Any:
        transfers: List[Any] = []
        for entry in plan.entries:
            transfers.append(
                await self.substrate.compose_call(
                    call_module="Domains",
                    call_function="transfer_treasury_funds",
                    call_params={"account_id": entry.account_id, "balance": entry.payout},
                )
            )
        batch = await self.substrate.compose_call(
            call_module="Utility",
            call_function="batch_all",
            call_params={"calls": transfers},
        )
        return await self.substrate.compose_call(
            call_module="Sudo",
            call_function="sudo",
            call_params={"call": batch},
        )

    async def _submit(self, plan: BatchPlan) -> str:
        call = await self.compose_batch(plan)
        extrinsic = await self.substrate.create_signed_extrinsic(call=call, keypair=self.keypair)
        receipt = await self.substrate.submit_extrinsic(
            extrinsic,
            wait_for_inclusion=True,
            wait_for_finalization=self.wait_for_finalization,
        )
        if not await receipt.is_success:
            raise DispatchFailure(plan.operator_id, str(await receipt.error_message))

        events = await receipt.triggered_events
        err = sudo_error(events)
        if err is not None:
            raise DispatchFailure(plan.operator_id, f"sudo call failed: {err}")
        if not find_events(events, "Utility", "BatchCompleted"):
            logger.warning(
                f"[dispatch] operator {plan.operator_id}: no BatchCompleted event in {receipt.block_hash}"
            )
        return receipt.block_hash

    async def dispatch(self, plan: BatchPlan) -> DispatchOutcome:
        if not plan.entries:
            raise ValueError(f"refusing to submit an empty batch for operator {plan.operator_id}")

        logger.debug(
            f"[dispatch] sending batch for operator {plan.operator_id} with "
            f"{len(plan)} transfers totaling {plan.total} from {mask(self.keypair.ss58_address)}"
        )
        try:
            block_hash = await self._submit(plan)
        except DispatchFailure as exc:
            logger.error(f"[dispatch] {exc}")
            return DispatchOutcome.failure(exc.reason)
        except SubstrateRequestException as exc:
            logger.error(f"[dispatch] failed to submit batch for operator {plan.operator_id}: {exc}")
            return DispatchOutcome.failure(str(exc))
        except (WebSocketException, asyncio.TimeoutError, OSError) as exc:
            # the extrinsic may still land; check the treasury transfers before rerunning
            logger.error(
                f"[dispatch] lost track of batch for operator {plan.operator_id}: {exc!r}"
            )
            return DispatchOutcome.failure(f"inclusion unknown: {exc!r}")

        logger.success(f"[dispatch] batch for operator {plan.operator_id} included in block {block_hash}")
        return DispatchOutcome.ok(block_hash)
