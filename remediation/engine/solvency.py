# remediation/engine/solvency.py
from __future__ import annotations

from typing import Optional

from loguru import logger

from remediation.errors import InsufficientFunds


class TreasurySolvencyChecker:
    """
    Gate in front of every dispatch. The treasury balance is read live on each
    call because earlier batches in the same run have already drawn on it.
    """

    def __init__(self, reader, treasury_account: Optional[str] = None):
        self.reader = reader
        self._treasury_account = treasury_account

    async def treasury_account(self) -> str:
        if self._treasury_account is None:
            self._treasury_account = await self.reader.treasury_account()
        return self._treasury_account

    async def available(self) -> int:
        account = await self.treasury_account()
        return await self.reader.free_balance(account)

    async def check(self, required_total: int) -> int:
        """Return the live treasury balance, or raise ``InsufficientFunds``."""
        available = await self.available()
        logger.info(f"[solvency] treasury={available} required={required_total}")
        if available < required_total:
            raise InsufficientFunds(required=required_total, available=available)
        return available
