# remediation/errors.py
"""
Error taxonomy for a remediation run.

Only ``InsufficientFunds`` stops the whole run. The other errors are local to
one operator: the orchestrator marks that operator failed and moves on.
"""

from __future__ import annotations

from typing import Optional


class RemediationError(Exception):
    """Base class for every error raised by the remediation engine."""


class StateUnavailable(RemediationError):
    """Historical state at a block could not be read (pruned or unknown block)."""

    def __init__(self, block_height: Optional[int], detail: str = ""):
        self.block_height = block_height
        self.detail = detail
        where = "live state" if block_height is None else f"block {block_height}"
        msg = f"state unavailable at {where}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class InconsistentState(RemediationError):
    """Chain state read for an operator does not add up."""

    def __init__(self, operator_id: int, detail: str):
        self.operator_id = operator_id
        self.detail = detail
        super().__init__(f"operator {operator_id}: {detail}")


class InsufficientFunds(RemediationError):
    """Treasury free balance cannot cover the outstanding payouts."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"treasury holds {available} but {required} is required"
        )


class DispatchFailure(RemediationError):
    """A batch was rejected or never made it into a block."""

    def __init__(self, operator_id: int, reason: str):
        self.operator_id = operator_id
        self.reason = reason
        super().__init__(f"batch for operator {operator_id} failed: {reason}")
