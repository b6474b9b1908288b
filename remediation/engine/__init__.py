# Remediation pipeline: entitlements → solvency → dispatch

from .dispatch import BatchDispatcher
from .entitlements import compute_entitlements, residual
from .orchestrator import RemediationRun
from .solvency import TreasurySolvencyChecker

__all__ = [
    "BatchDispatcher",
    "RemediationRun",
    "TreasurySolvencyChecker",
    "compute_entitlements",
    "residual",
]
