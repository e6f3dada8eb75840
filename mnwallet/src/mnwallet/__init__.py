"""
mnwallet - Capability-probing wallet adapter for Midnight tDUST

Discovers a wallet provider, probes what its API build can do, mines
address / balance / coins out of opaque state and sends tDUST through
whichever transfer strategy the provider supports.
"""

__version__ = "0.1.0"

from mnwallet.adapter import WalletAdapter, build_wallet_adapter
from mnwallet.assembler import CoinSelection, Strategy, TransactionAssembler
from mnwallet.capabilities import Capability, CapabilitySet, ProviderAdapter, probe_capabilities
from mnwallet.discovery import discover_provider, load_injected_providers
from mnwallet.errors import (
    CapabilityUnavailableError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidRecipientError,
    NoSpendableCoinsError,
    ProviderNotFoundError,
    SubmissionExhaustedError,
    UpstreamUnavailableError,
    WalletAdapterError,
)
from mnwallet.miner import StateMiner
from mnwallet.models import BalanceReport, Coin, NetworkId, SendResult, Transfer
from mnwallet.pipeline import SubmissionPipeline, select_strategy
from mnwallet.session import WalletSessionCache, wait_for_initial_sync

__all__ = [
    "BalanceReport",
    "Capability",
    "CapabilitySet",
    "CapabilityUnavailableError",
    "Coin",
    "CoinSelection",
    "InsufficientFundsError",
    "InvalidAmountError",
    "InvalidRecipientError",
    "NetworkId",
    "NoSpendableCoinsError",
    "ProviderAdapter",
    "ProviderNotFoundError",
    "SendResult",
    "StateMiner",
    "Strategy",
    "SubmissionExhaustedError",
    "SubmissionPipeline",
    "TransactionAssembler",
    "Transfer",
    "UpstreamUnavailableError",
    "WalletAdapter",
    "WalletAdapterError",
    "WalletSessionCache",
    "build_wallet_adapter",
    "discover_provider",
    "load_injected_providers",
    "probe_capabilities",
    "select_strategy",
    "wait_for_initial_sync",
]
