# remediation/chain/substrate.py
# --------------------------------------------------------------------------- #
# Connection lifecycle, signing key and decoding helpers for the Subspace node.
# Everything that depends on the exact shape async-substrate-interface hands
# back lives here so the reader and dispatcher stay readable.
# --------------------------------------------------------------------------- #

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional, Sequence, Tuple

from async_substrate_interface.async_substrate import AsyncSubstrateInterface
from loguru import logger
from substrateinterface import Keypair, KeypairType
from substrateinterface.utils.ss58 import ss58_decode, ss58_encode

from remediation.config import MASK_SS58, SS58_FORMAT


@asynccontextmanager
async def open_substrate(url: str, *, ss58_format: int = SS58_FORMAT) -> AsyncIterator[AsyncSubstrateInterface]:
    """Async context manager that yields an initialised AsyncSubstrateInterface."""
    substrate = AsyncSubstrateInterface(url, ss58_format=ss58_format)
    await substrate.initialize()
    try:
        yield substrate
    finally:
        await substrate.close()


def load_keypair(suri: str, *, ss58_format: int = SS58_FORMAT) -> Keypair:
    """
    Derive the sudo keypair from a secret URI such as ``//Alice`` or a
    mnemonic with derivation path. The URI itself is never logged.
    """
    keypair = Keypair.create_from_uri(suri, ss58_format=ss58_format, crypto_type=KeypairType.SR25519)
    logger.debug(f"Sudo public key: {keypair.ss58_address}")
    return keypair


# ── decoding helpers ────────────────────────────────────────────────────


def value_of(obj: Any) -> Any:
    """Unwrap a ScaleObj / ScaleType result to its python value."""
    if obj is None:
        return None
    if hasattr(obj, "value"):
        return obj.value
    return obj


def to_ss58(raw: Any, ss58_format: int = SS58_FORMAT) -> str:
    """
    Normalise an AccountId in any of the shapes the decoder produces
    (ss58 string, 0x-hex, raw bytes, list of ints, single-element wrapper)
    into an ss58 address.
    """
    raw = value_of(raw)
    if isinstance(raw, (list, tuple)):
        if len(raw) == 32 and all(isinstance(x, int) for x in raw):
            return ss58_encode(bytes(raw), ss58_format)
        if len(raw) == 1:
            return to_ss58(raw[0], ss58_format)
        # double-map keys come back as (first_key, second_key)
        return to_ss58(raw[-1], ss58_format)
    if isinstance(raw, (bytes, bytearray)):
        return ss58_encode(bytes(raw), ss58_format)
    if isinstance(raw, str):
        s = raw.strip()
        if s.startswith("0x"):
            return ss58_encode(s, ss58_format)
        return s
    raise ValueError(f"cannot decode account id from {type(raw).__name__}")


def account_sort_key(address: str) -> str:
    """Raw public key hex: ordering matches the chain's BTreeMap<AccountId, _>."""
    return ss58_decode(address)


def mask(ss58: Optional[str]) -> str:
    """Shorten an address for display when MASK_SS58 is on."""
    if not MASK_SS58 or not ss58 or len(ss58) < 10:
        return str(ss58)
    return f"{ss58[:5]}…{ss58[-4:]}"


# ── event accessors ─────────────────────────────────────────────────────


def _event_body(ev: Any) -> Any:
    ev = value_of(ev)
    if isinstance(ev, dict):
        return ev.get("event", ev)
    return getattr(ev, "event", ev)


def event_name(ev: Any) -> Tuple[str, str]:
    """Return ``(module, event)`` for a triggered event record."""
    body = _event_body(ev)
    if isinstance(body, dict):
        module = body.get("module_id") or body.get("module") or ""
        name = body.get("event_id") or body.get("name") or ""
        return str(module), str(name)
    module = getattr(body, "module_id", None) or getattr(body, "module", "")
    name = getattr(body, "event_id", None) or getattr(body, "method", "")
    return str(module), str(name)


def event_attributes(ev: Any) -> Any:
    body = _event_body(ev)
    if isinstance(body, dict):
        return body.get("attributes") or body.get("params") or ()
    return getattr(body, "attributes", ()) or ()


def _dispatch_error(result: Any) -> Optional[str]:
    """Extract the error from a ``DispatchResult`` in any decoded shape."""
    result = value_of(result)
    if isinstance(result, dict):
        if "Err" in result:
            return str(result["Err"])
        if "sudo_result" in result:
            return _dispatch_error(result["sudo_result"])
        return None
    if isinstance(result, (list, tuple)):
        if len(result) == 2 and result[0] == "Err":
            return str(result[1])
        for item in result:
            err = _dispatch_error(item)
            if err is not None:
                return err
    return None


def sudo_error(events: Iterable[Any]) -> Optional[str]:
    """
    The sudo extrinsic succeeds even when the call it wraps fails; the inner
    result only shows up in the ``Sudo.Sudid`` event.
    """
    for ev in events:
        if event_name(ev) == ("Sudo", "Sudid"):
            return _dispatch_error(event_attributes(ev))
    return None


def find_events(events: Sequence[Any], module: str, name: str) -> list:
    return [ev for ev in events if event_name(ev) == (module, name)]
