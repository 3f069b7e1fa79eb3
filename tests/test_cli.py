from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import SIGNER_ADDRESS

from movecall import cli
from movecall import signer as signer_mod
from movecall.descriptor import TypeCategory


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _write_function(path: Path, **overrides) -> Path:
    obj = {
        "package_id": "0xabc",
        "module": "pool",
        "name": "quote",
        "parameters": [
            {"name": "amount", "type": "u64"},
            {"name": "ctx", "type": "&mut 0x2::tx_context::TxContext"},
        ],
        "return_types": ["u64"],
    }
    obj.update(overrides)
    path.write_text(json.dumps(obj), encoding="utf-8")
    return path


def test_validate_ok(capsys: pytest.CaptureFixture[str]):
    cli.main(["validate", "--type", "u8", "--value", "255"])
    out = capsys.readouterr().out
    assert "yes" in out
    assert "255" in out


def test_validate_out_of_range_exits_1(capsys: pytest.CaptureFixture[str]):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["validate", "--type", "u8", "--value", "256", "--name", "fee"])
    assert exc_info.value.code == 1
    assert "255" in capsys.readouterr().out


def test_encode_prints_ptb_args(capsys: pytest.CaptureFixture[str]):
    cli.main(["encode", "--type", "u64", "--value", "10", "--type", "vector<u8>", "--value", 'b"Hi"'])
    assert json.loads(capsys.readouterr().out) == [{"u64": "10"}, {"vector_u8": [72, 105]}]


def test_encode_mismatched_pairs_exits_2():
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["encode", "--type", "u64"])
    assert exc_info.value.code == 2


def test_decode(capsys: pytest.CaptureFixture[str]):
    cli.main(["decode", "--type", "u64", "--bytes", "[42,0,0,0,0,0,0,0]"])
    assert json.loads(capsys.readouterr().out) == 42


def test_load_function_interface_shape(tmp_path: Path):
    path = tmp_path / "fn.json"
    path.write_text(
        json.dumps(
            {
                "package_id": "0x2",
                "module": "clock",
                "name": "timestamp_ms",
                "params": [
                    {
                        "kind": "ref",
                        "mutable": False,
                        "to": {"kind": "datatype", "address": "0x2", "module": "clock", "name": "Clock"},
                    }
                ],
                "returns": [{"kind": "u64"}],
            }
        ),
        encoding="utf-8",
    )
    fn = cli.load_function(path)
    assert fn.target == "0x2::clock::timestamp_ms"
    assert [p.name for p in fn.user_parameters] == ["param0"]
    assert fn.user_parameters[0].descriptor.category is TypeCategory.OBJECT_REFERENCE


def test_load_function_requires_identity(tmp_path: Path):
    path = _write_function(tmp_path / "fn.json", module="")
    with pytest.raises(ValueError, match="required"):
        cli.load_function(path)


def test_view_without_helper_exits_2(workdir: Path):
    fn = _write_function(workdir / "fn.json")
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["view", "--function-json", str(fn), "--arg", "amount=1"])
    assert exc_info.value.code == 2


def test_view_runs_through_helper(workdir: Path, monkeypatch: pytest.MonkeyPatch, capsys):
    fn = _write_function(workdir / "fn.json")
    cmds = []

    def fake_helper(cmd, *, timeout_s, context="helper"):
        cmds.append(cmd)
        return {"results": [{"returnValues": [[[42, 0, 0, 0, 0, 0, 0, 0], "u64"]]}]}

    monkeypatch.setattr(signer_mod, "run_json_helper", fake_helper)
    cli.main(
        [
            "view",
            "--function-json",
            str(fn),
            "--arg",
            "amount=1000",
            "--helper-bin",
            "tx-helper",
            "--history-dir",
            str(workdir / "history"),
        ]
    )

    assert "42" in capsys.readouterr().out
    assert cmds[0][cmds[0].index("--sender") + 1] == "0x" + "0" * 63 + "6"
    rows = list((workdir / "history").glob("*/history.jsonl"))
    assert len(rows) == 1
    assert json.loads(rows[0].read_text().splitlines()[0])["result"] == [42]


def test_view_with_invalid_input_exits_1(workdir: Path, capsys):
    fn = _write_function(workdir / "fn.json")
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["view", "--function-json", str(fn), "--arg", "amount=-5", "--helper-bin", "tx-helper"])
    assert exc_info.value.code == 1
    assert "amount" in capsys.readouterr().out


def test_call_reports_submission_failure(workdir: Path, monkeypatch: pytest.MonkeyPatch, capsys):
    fn = _write_function(workdir / "fn.json", name="deposit", is_mutating=True, return_types=[])

    def fake_helper(cmd, *, timeout_s, context="helper"):
        return {"error": "insufficient funds for gas"}

    monkeypatch.setattr(signer_mod, "run_json_helper", fake_helper)
    with pytest.raises(SystemExit) as exc_info:
        cli.main(
            [
                "call",
                "--function-json",
                str(fn),
                "--arg",
                "amount=5",
                "--helper-bin",
                "tx-helper",
                "--sender",
                SIGNER_ADDRESS,
            ]
        )
    assert exc_info.value.code == 1
    assert "Insufficient funds" in capsys.readouterr().out
