# Chain I/O for the remediation engine

from .history import HistoricalStateReader, StorageQuery
from .staking import (
    Deposit,
    NominatorPosition,
    SharePrice,
    StorageFundRedeemPrice,
    Withdrawal,
    fold_position,
)
from .substrate import load_keypair, open_substrate

__all__ = [
    "Deposit",
    "HistoricalStateReader",
    "NominatorPosition",
    "SharePrice",
    "StorageFundRedeemPrice",
    "StorageQuery",
    "Withdrawal",
    "fold_position",
    "load_keypair",
    "open_substrate",
]
