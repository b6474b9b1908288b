# remediation/slashes.py
# --------------------------------------------------------------------------- #
# The list of (operator, slash block) pairs a run works through. The built-in
# list covers the Gemini-3h invalid-bundle slashes; a file can replace it and
# an indexer export can be turned into one.
# --------------------------------------------------------------------------- #

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import yaml
from loguru import logger

from remediation.models import SlashRecord

INVALID_BUNDLE = "InvalidBundle"

# Gemini-3h operators slashed for InvalidBundle, with the block of the slash.
GEMINI_3H_SLASHES: List[SlashRecord] = [
    SlashRecord(operator_id, height)
    for operator_id, height in [
        (65, 2364057),
        (41, 2364307),
        (64, 2364389),
        (61, 2364389),
        (30, 2364389),
        (66, 2364761),
        (62, 2364761),
        (78, 2368057),
        (63, 2368101),
        (37, 2368542),
        (77, 2368906),
        (40, 2369910),
        (80, 2374768),
        (81, 2375003),
        (21, 2375130),
        (48, 2375244),
        (71, 2380396),
        (56, 2381733),
        (51, 2383817),
        (6, 2384081),
        (73, 2384081),
        (76, 2384081),
        (10, 2384081),
        (24, 2384516),
        (52, 2386856),
        (79, 2386991),
        (45, 2387166),
        (102, 2388238),
    ]
]


def _record(item: Any) -> SlashRecord:
    if isinstance(item, Mapping):
        return SlashRecord(int(item["operator_id"]), int(item["slash_block_height"]))
    if isinstance(item, (list, tuple)) and len(item) == 2:
        return SlashRecord(int(item[0]), int(item[1]))
    raise ValueError(f"unrecognised slash record: {item!r}")


def parse_records(raw: Any) -> List[SlashRecord]:
    """
    Accept either a list of ``{operator_id, slash_block_height}`` mappings,
    a list of ``[operator_id, height]`` pairs, or either of those under a
    top-level ``slashes`` key.
    """
    if isinstance(raw, Mapping):
        raw = raw.get("slashes")
    if not isinstance(raw, list):
        raise ValueError("slash list must be a list of records")
    return [_record(item) for item in raw]


def load_records(path: Path | str) -> List[SlashRecord]:
    """Load a slash list from YAML (``.yml``/``.yaml``) or JSON."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yml", ".yaml"):
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    records = parse_records(raw)
    logger.info(f"slash list loaded from {p} • records={len(records)}")
    return records


def records_from_indexer(payload: Mapping[str, Any]) -> List[SlashRecord]:
    """
    Build records from an indexer export shaped like::

        {"events": [{"args": {"operatorId": 41, "reason": {"__kind": "InvalidBundle"}},
                     "block": {"height": 2364307}}]}

    (optionally wrapped in ``data``). Only ``InvalidBundle`` slashes are kept;
    an operator slashed more than once keeps its earliest slash.
    """
    body = payload.get("data", payload) if isinstance(payload, Mapping) else {}
    events = body.get("events") or []

    earliest: Dict[int, int] = {}
    skipped = 0
    for ev in events:
        args = ev.get("args") or {}
        kind = (args.get("reason") or {}).get("__kind")
        if kind != INVALID_BUNDLE:
            skipped += 1
            continue
        operator_id = int(args["operatorId"])
        height = int(ev["block"]["height"])
        if operator_id not in earliest or height < earliest[operator_id]:
            earliest[operator_id] = height

    if skipped:
        logger.info(f"indexer export: skipped {skipped} non-{INVALID_BUNDLE} slash events")
    records = [SlashRecord(op, h) for op, h in earliest.items()]
    records.sort(key=lambda r: (r.slash_block_height, r.operator_id))
    return records


def load_indexer_export(path: Path | str) -> List[SlashRecord]:
    p = Path(path)
    records = records_from_indexer(json.loads(p.read_text(encoding="utf-8")))
    logger.info(f"indexer export loaded from {p} • records={len(records)}")
    return records


def select_operators(records: Sequence[SlashRecord], operator_ids: Iterable[int]) -> List[SlashRecord]:
    """Narrow ``records`` to ``operator_ids``, keeping input order."""
    wanted = set(int(x) for x in operator_ids)
    known = {r.operator_id for r in records}
    missing = wanted - known
    if missing:
        raise ValueError(f"operators not in the slash list: {sorted(missing)}")
    return [r for r in records if r.operator_id in wanted]


def dump_records(records: Sequence[SlashRecord]) -> str:
    """YAML slash list that ``load_records`` reads back, for narrowing a rerun."""
    return yaml.safe_dump({"slashes": [r.to_dict() for r in records]}, sort_keys=False)
