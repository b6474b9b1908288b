import json

import pytest

from remediation.models import SlashRecord
from remediation.slashes import (
    GEMINI_3H_SLASHES,
    dump_records,
    load_indexer_export,
    load_records,
    parse_records,
    records_from_indexer,
    select_operators,
)


def _event(operator_id: int, height: int, kind: str = "InvalidBundle"):
    return {"args": {"operatorId": operator_id, "reason": {"__kind": kind}}, "block": {"height": height}}


def test_builtin_list_is_unique():
    ids = [r.operator_id for r in GEMINI_3H_SLASHES]
    assert len(ids) == len(set(ids)) == 28
    assert SlashRecord(41, 2364307) in GEMINI_3H_SLASHES


def test_parse_shapes():
    expected = [SlashRecord(3, 10), SlashRecord(4, 20)]
    assert parse_records([[3, 10], [4, 20]]) == expected
    assert parse_records([{"operator_id": 3, "slash_block_height": 10}, (4, 20)]) == expected
    assert parse_records({"slashes": [[3, 10], [4, 20]]}) == expected


@pytest.mark.parametrize("raw", [{"other": []}, [[1, 2, 3]], [{"operator_id": 1}], [[1, 0]], "nope"])
def test_parse_rejects_garbage(raw):
    with pytest.raises((ValueError, KeyError)):
        parse_records(raw)


def test_yaml_and_json_files(tmp_path):
    yml = tmp_path / "slashes.yaml"
    yml.write_text("slashes:\n  - operator_id: 5\n    slash_block_height: 77\n", encoding="utf-8")
    js = tmp_path / "slashes.json"
    js.write_text(json.dumps([[5, 77]]), encoding="utf-8")

    assert load_records(yml) == load_records(js) == [SlashRecord(5, 77)]


def test_dump_reads_back(tmp_path):
    records = [SlashRecord(2, 300), SlashRecord(1, 100)]
    path = tmp_path / "rerun.yml"
    path.write_text(dump_records(records), encoding="utf-8")
    assert load_records(path) == records


def test_indexer_keeps_invalid_bundle_and_earliest():
    payload = {
        "data": {
            "events": [
                _event(9, 500),
                _event(4, 700),
                _event(9, 450),
                _event(11, 300, kind="InvalidExecutionReceipt"),
                _event(2, 500),
            ]
        }
    }
    assert records_from_indexer(payload) == [SlashRecord(9, 450), SlashRecord(2, 500), SlashRecord(4, 700)]


def test_indexer_file(tmp_path):
    path = tmp_path / "events.json"
    path.write_text(json.dumps({"events": [_event(1, 10)]}), encoding="utf-8")
    assert load_indexer_export(path) == [SlashRecord(1, 10)]


def test_select_operators():
    records = [SlashRecord(1, 10), SlashRecord(2, 20), SlashRecord(3, 30)]
    assert select_operators(records, [3, 1]) == [SlashRecord(1, 10), SlashRecord(3, 30)]
    with pytest.raises(ValueError, match=r"\[9\]"):
        select_operators(records, [1, 9])
