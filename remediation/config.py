"""
remediation/config.py: global constants
(env-driven; values are read once at import time)
"""

from __future__ import annotations
import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


# ╭─────────────────────────── CHAIN ─────────────────────────────────╮
REMEDIATION_RPC_URL: str = os.getenv(
    "REMEDIATION_RPC_URL", "wss://rpc-0.gemini-3h.subspace.network/ws"
)
SS58_FORMAT: int = int(os.getenv("SS58_FORMAT", "2254"))

# Monetary base unit (shannon)
SHANNON: int = 10**18
TOKEN_SYMBOL: str = os.getenv("TOKEN_SYMBOL", "tSSC")
# ╰────────────────────────────────────────────────────────────────────╯


# ╭─────────────────────────── DISPATCH ──────────────────────────────╮
WAIT_FOR_FINALIZATION: bool = _env_flag("WAIT_FOR_FINALIZATION", default=False)
# DRY-RUN: compute and gate everything, submit nothing
DRY_RUN: bool = _env_flag("REMEDIATION_DRY_RUN", default=False)
# ╰────────────────────────────────────────────────────────────────────╯


# ╭──────────────────────────── LOGGING (pretty) ──────────────────────╮
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
PRETTY_LOGS: bool = _env_flag("PRETTY_LOGS", default=True)
LOG_TOP_N: int = int(os.getenv("LOG_TOP_N", "50"))
MASK_SS58: bool = _env_flag("MASK_SS58", default=False)
# ╰────────────────────────────────────────────────────────────────────╯
