"""
Wallet and indexer backends.

Available backends:
- DaemonWallet: Self-hosted wallet session over JSON-RPC
- IndexerClient: Indexer GraphQL API (balance lookups)
"""

from mnwallet.backends.daemon import DaemonWallet
from mnwallet.backends.indexer import IndexerClient

__all__ = [
    "DaemonWallet",
    "IndexerClient",
]
