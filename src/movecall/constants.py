"""
Centralized constants for movecall.

Single source of truth for integer widths, precision thresholds, network
endpoints and retry settings shared by the validators, encoders and the
execution layer.

Environment variable overrides:
- MOVECALL_RPC_URL: Override the fullnode endpoint for every network
- MOVECALL_FALLBACK_SENDER: Sender used on the final view-simulation retry
"""

from __future__ import annotations

import os
from enum import Enum

# =============================================================================
# Integer widths and precision
# =============================================================================

UNSIGNED_WIDTHS = (8, 16, 32, 64, 128, 256)

# Widths at or below this are carried as native ints; wider ones as decimal strings.
NATIVE_INT_MAX_WIDTH = 32

# Largest integer a double can carry without loss (2^53 - 1).
MAX_SAFE_INTEGER = 2**53 - 1

# u64 values above this are most likely token amounts in smallest units.
LARGE_U64_WARNING_THRESHOLD = 10**12


def max_unsigned(width: int) -> int:
    return (1 << width) - 1


# =============================================================================
# Addresses
# =============================================================================

ADDRESS_HEX_LENGTH = 64

ZERO_ADDRESS = "0x" + "0" * ADDRESS_HEX_LENGTH

# Clock object address; accepted as sender by devInspect for read-only calls.
DEFAULT_FALLBACK_SENDER = os.environ.get(
    "MOVECALL_FALLBACK_SENDER",
    "0x" + "0" * 63 + "6",
)

# Context parameter injected by the runtime, never supplied by the user.
TX_CONTEXT_MARKER = "txcontext"

# =============================================================================
# Networks
# =============================================================================


class Network(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEVNET = "devnet"
    LOCALNET = "localnet"


FULLNODE_URLS = {
    Network.MAINNET: "https://fullnode.mainnet.sui.io:443",
    Network.TESTNET: "https://fullnode.testnet.sui.io:443",
    Network.DEVNET: "https://fullnode.devnet.sui.io:443",
    Network.LOCALNET: "http://127.0.0.1:9000",
}

def fullnode_url(network: Network | str) -> str:
    """Resolve the JSON-RPC endpoint for a network, honoring MOVECALL_RPC_URL."""
    override = os.environ.get("MOVECALL_RPC_URL")
    if override:
        return override
    return FULLNODE_URLS[Network(network)]


def fallback_sender(network: Network | str) -> str:
    # Same system address on every network today; kept per-network so callers
    # never read it from ambient state.
    Network(network)
    return DEFAULT_FALLBACK_SENDER


# =============================================================================
# Timeouts and retries
# =============================================================================

RPC_REQUEST_TIMEOUT_SECONDS = 30.0

# Object Directory lookups
LOOKUP_DEBOUNCE_SECONDS = 0.3
LOOKUP_RETRY_MAX_ATTEMPTS = 3
LOOKUP_RETRY_BASE_DELAY = 0.5

# View simulation: at most this many additional attempts after the first.
SIMULATION_MAX_RETRIES = 2
SIMULATION_RETRY_DELAY_SECONDS = 0.5

# Substrings that mark a simulator failure as transient.
TRANSIENT_SIMULATION_MARKERS = ("Deserialization error", "invalid value")

# Helper subprocess timeout (seconds)
HELPER_TIMEOUT_SECONDS = 60.0
