from __future__ import annotations

import logging
from pathlib import Path

import pytest

from movecall.config import CallConfig, load_dotenv
from movecall.constants import Network, fallback_sender, fullnode_url


def test_defaults():
    cfg = CallConfig.from_env(env={})
    assert cfg.network is Network.TESTNET
    assert cfg.resolved_rpc_url == "https://fullnode.testnet.sui.io:443"
    assert cfg.simulation_max_retries == 2
    assert cfg.simulation_retry_delay_s == 0.5
    assert cfg.lookup_debounce_s == 0.3
    assert cfg.helper_bin is None
    assert cfg.history_dir is None


def test_network_and_overrides():
    cfg = CallConfig.from_env(
        env={
            "MOVECALL_NETWORK": " MainNet ",
            "MOVECALL_SENDER": "0xabc",
            "MOVECALL_HELPER_BIN": "/usr/local/bin/tx-helper",
            "MOVECALL_LOOKUP_DEBOUNCE_MS": "150",
            "MOVECALL_HISTORY_DIR": "runs",
        }
    )
    assert cfg.network is Network.MAINNET
    assert cfg.resolved_rpc_url == "https://fullnode.mainnet.sui.io:443"
    assert cfg.sender == "0xabc"
    assert cfg.helper_bin == Path("/usr/local/bin/tx-helper")
    assert cfg.lookup_debounce_s == 0.15
    assert cfg.history_dir == Path("runs")


def test_explicit_rpc_url_wins():
    cfg = CallConfig.from_env(env={"MOVECALL_NETWORK": "devnet", "MOVECALL_RPC_URL": "http://localhost:9000"})
    assert cfg.resolved_rpc_url == "http://localhost:9000"


def test_unknown_network_falls_back_with_warning(caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.WARNING, logger="movecall.config"):
        cfg = CallConfig.from_env(env={"MOVECALL_NETWORK": "moonnet"})
    assert cfg.network is Network.TESTNET
    assert "moonnet" in caplog.text


def test_numeric_settings_are_clamped():
    cfg = CallConfig.from_env(
        env={
            "MOVECALL_SIM_MAX_RETRIES": "50",
            "MOVECALL_SIM_RETRY_DELAY": "-1",
            "MOVECALL_HELPER_TIMEOUT": "not-a-number",
        }
    )
    assert cfg.simulation_max_retries == 2
    assert cfg.simulation_retry_delay_s == 0.0
    assert cfg.helper_timeout_s == 60.0


def test_dotenv_is_read_and_environment_wins(tmp_path: Path):
    dotenv = tmp_path / ".env"
    dotenv.write_text(
        "# local settings\n"
        "export MOVECALL_NETWORK=devnet\n"
        "MOVECALL_SENDER='0xfeed'\n"
        "\n"
        "NOT_A_PAIR\n",
        encoding="utf-8",
    )
    assert load_dotenv(dotenv) == {"MOVECALL_NETWORK": "devnet", "MOVECALL_SENDER": "0xfeed"}

    cfg = CallConfig.from_env(env={"MOVECALL_SENDER": "0xbeef"}, dotenv_path=dotenv)
    assert cfg.network is Network.DEVNET
    assert cfg.sender == "0xbeef"


def test_missing_dotenv_is_ignored(tmp_path: Path):
    assert load_dotenv(tmp_path / "nope.env") == {}
    assert CallConfig.from_env(env={}, dotenv_path=tmp_path / "nope.env").network is Network.TESTNET


def test_fullnode_url_override(monkeypatch: pytest.MonkeyPatch):
    assert fullnode_url("localnet") == "http://127.0.0.1:9000"
    monkeypatch.setenv("MOVECALL_RPC_URL", "http://proxy:1")
    assert fullnode_url(Network.MAINNET) == "http://proxy:1"


def test_fallback_sender_requires_known_network():
    assert fallback_sender(Network.DEVNET) == "0x" + "0" * 63 + "6"
    with pytest.raises(ValueError):
        fallback_sender("moonnet")
