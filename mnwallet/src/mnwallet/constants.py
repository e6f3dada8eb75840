"""
Shared constants for the Midnight tDUST wallet adapter.
"""

from __future__ import annotations

import re

# Shield addresses are bech32m strings whose human readable part starts with this
SHIELD_ADDRESS_PREFIX = "mn_shield-addr_"
TESTNET_ADDRESS_HRP = "mn_shield-addr_test"

# Strict form accepted by the CLI (testnet only)
TESTNET_SHIELD_ADDRESS_RE = re.compile(r"^mn_shield-addr_test1[0-9a-z]+$")

# Native test token type id
TDUST_TOKEN_TYPE = "0100010000000000000000000000000000000000000000000000000000000000000000"

# Spellings of the native token seen in balance payloads across wallet builds
NATIVE_TOKEN_TAGS: tuple[str, ...] = ("tDUST", "TDUST", "Tdust", "TDust")

# Injected provider keys, most preferred first
PREFERRED_PROVIDER_NAMES: tuple[str, ...] = (
    "mnLace",
    "lace",
    "lace_preview",
    "laceMidnight",
    "laceMidnightPreview",
    "lace-midnight",
    "lace-midnight-preview",
)

PROVIDER_ENTRY_POINT_GROUP = "mnwallet.providers"

# Public Testnet-02 endpoints and a local proof server
DEFAULT_INDEXER_HTTP = "https://indexer.testnet-02.midnight.network/api/v1/graphql"
DEFAULT_INDEXER_WS = "wss://indexer.testnet-02.midnight.network/api/v1/graphql/ws"
DEFAULT_RPC_HTTP = "https://rpc.testnet-02.midnight.network"
DEFAULT_PROVER_HTTP = "http://localhost:6300"
DEFAULT_WALLET_DAEMON_URL = "http://127.0.0.1:8788"

# Demo seed (all zeros). Replace with a real 32-byte hex seed for persistent keys.
DEMO_SEED_HEX = "0" * 64
SEED_HEX_LENGTH = 64
# BIP-39 phrase length whose entropy is a 32-byte seed
MNEMONIC_WORD_COUNT = 24

DEFAULT_SYNC_WAIT_SECONDS = 90.0
DEFAULT_SYNC_POLL_INTERVAL = 1.5
DEFAULT_REQUEST_TIMEOUT = 30.0
# How long a state() stream may take to emit its first snapshot
DEFAULT_STATE_STREAM_TIMEOUT = 30.0

# Coin values are serialized as unsigned 128-bit integers
MAX_COIN_VALUE = 2**128 - 1
