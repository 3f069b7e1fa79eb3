from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from movecall.constants import (
    DEFAULT_FALLBACK_SENDER,
    HELPER_TIMEOUT_SECONDS,
    LOOKUP_DEBOUNCE_SECONDS,
    SIMULATION_MAX_RETRIES,
    SIMULATION_RETRY_DELAY_SECONDS,
    Network,
    fullnode_url,
)
from movecall.utils import env_float, env_int

logger = logging.getLogger(__name__)


def load_dotenv(path: Path) -> dict[str, str]:
    """
    Minimal .env loader:
    - supports KEY=VALUE and `export KEY=VALUE`
    - strips surrounding quotes
    - ignores blank lines and `#` comments
    - does not expand variables
    """
    out: dict[str, str] = {}
    if not path.exists():
        return out

    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :]
        k, v = line.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            continue
        if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
            v = v[1:-1]
        out[k] = v
    return out


@dataclass(frozen=True)
class CallConfig:
    """Runtime settings for one calling layer. Passed explicitly, never read ambiently."""

    network: Network = Network.TESTNET
    rpc_url: str | None = None
    sender: str | None = None
    fallback_sender: str = DEFAULT_FALLBACK_SENDER
    helper_bin: Path | None = None
    helper_timeout_s: float = HELPER_TIMEOUT_SECONDS
    lookup_debounce_s: float = LOOKUP_DEBOUNCE_SECONDS
    simulation_max_retries: int = SIMULATION_MAX_RETRIES
    simulation_retry_delay_s: float = SIMULATION_RETRY_DELAY_SECONDS
    history_dir: Path | None = None

    @property
    def resolved_rpc_url(self) -> str:
        return self.rpc_url or fullnode_url(self.network)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, dotenv_path: Path | None = None) -> CallConfig:
        """
        Build a config from MOVECALL_* variables.

        Values from the process environment (or `env`) win over the `.env` file.
        """
        merged: dict[str, str] = {}
        if dotenv_path is not None:
            merged.update(load_dotenv(dotenv_path))
        merged.update(os.environ if env is None else env)

        network_raw = merged.get("MOVECALL_NETWORK", Network.TESTNET.value).strip().lower()
        try:
            network = Network(network_raw)
        except ValueError:
            logger.warning(f"Unknown MOVECALL_NETWORK={network_raw!r}, using {Network.TESTNET.value}")
            network = Network.TESTNET

        helper = merged.get("MOVECALL_HELPER_BIN")
        history = merged.get("MOVECALL_HISTORY_DIR")
        debounce_ms = env_int(
            merged.get("MOVECALL_LOOKUP_DEBOUNCE_MS"),
            int(LOOKUP_DEBOUNCE_SECONDS * 1000),
            lo=0,
            hi=10_000,
            name="MOVECALL_LOOKUP_DEBOUNCE_MS",
        )
        return cls(
            network=network,
            rpc_url=merged.get("MOVECALL_RPC_URL") or None,
            sender=merged.get("MOVECALL_SENDER") or None,
            fallback_sender=merged.get("MOVECALL_FALLBACK_SENDER") or DEFAULT_FALLBACK_SENDER,
            helper_bin=Path(helper) if helper else None,
            helper_timeout_s=env_float(
                merged.get("MOVECALL_HELPER_TIMEOUT"),
                HELPER_TIMEOUT_SECONDS,
                lo=1.0,
                name="MOVECALL_HELPER_TIMEOUT",
            ),
            lookup_debounce_s=debounce_ms / 1000,
            simulation_max_retries=env_int(
                merged.get("MOVECALL_SIM_MAX_RETRIES"),
                SIMULATION_MAX_RETRIES,
                lo=0,
                hi=SIMULATION_MAX_RETRIES,
                name="MOVECALL_SIM_MAX_RETRIES",
            ),
            simulation_retry_delay_s=env_float(
                merged.get("MOVECALL_SIM_RETRY_DELAY"),
                SIMULATION_RETRY_DELAY_SECONDS,
                lo=0.0,
                hi=30.0,
                name="MOVECALL_SIM_RETRY_DELAY",
            ),
            history_dir=Path(history) if history else None,
        )
