"""
WalletAdapter: one interface over every wallet build.

Reads (address, balance, coins, raw state) go through the state miner and the
provider's best matching capability; sends go through the submission pipeline.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from mnwallet.assembler import CoinSelection, TransactionAssembler
from mnwallet.backends.daemon import DaemonWallet
from mnwallet.backends.indexer import IndexerClient
from mnwallet.capabilities import Capability, CapabilitySet, ProviderAdapter, maybe_await
from mnwallet.config import Settings
from mnwallet.discovery import discover_provider, load_injected_providers
from mnwallet.errors import CapabilityUnavailableError
from mnwallet.ledger import SecretKeys
from mnwallet.miner import (
    StateMiner,
    dump_state,
    fields_of,
    jsonable,
    parse_serialized_state,
    unwrap_state,
)
from mnwallet.models import BalanceReport, Coin, NetworkId, SendResult
from mnwallet.pipeline import SubmissionPipeline, enumerate_coins, select_strategy
from mnwallet.session import wait_for_initial_sync


class WalletAdapter:
    """
    Facade over a connected provider.

    Args:
        provider: Connected provider adapter
        sender_keys: Keys owning the wallet's coins (manual transfers, change)
        network_id: Network transactions are scoped to
        indexer: Optional indexer client for the balance fallback
        coin_selection: Coin selection mode for manual transfers
        manual_fee: Amount withheld from change on manual transfers
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        sender_keys: SecretKeys,
        network_id: NetworkId = NetworkId.TESTNET,
        indexer: IndexerClient | None = None,
        coin_selection: CoinSelection = CoinSelection.FIRST_FIT,
        manual_fee: int = 0,
        miner: StateMiner | None = None,
    ):
        self.provider = provider
        self.sender_keys = sender_keys
        self.network_id = network_id
        self.indexer = indexer
        self.miner = miner or StateMiner()
        self.assembler = TransactionAssembler(
            sender_keys=sender_keys,
            network_id=network_id,
            coin_selection=coin_selection,
            manual_fee=manual_fee,
        )
        self.pipeline = SubmissionPipeline(provider, self.assembler, self.miner)

    @classmethod
    async def connect(cls, handle: Any, name: str = "provider", **kwargs: Any) -> WalletAdapter:
        provider = await ProviderAdapter.connect(handle, name)
        return cls(provider, **kwargs)

    @classmethod
    async def from_namespace(cls, namespace: Any, **kwargs: Any) -> WalletAdapter:
        name, handle = discover_provider(namespace)
        return await cls.connect(handle, name, **kwargs)

    @property
    def capabilities(self) -> CapabilitySet:
        return self.provider.capabilities

    async def snapshot(self) -> Any:
        """Current wallet state with any ``{"state": ...}`` wrapper removed."""
        return unwrap_state(await self.provider.state())

    async def serialized_state(self) -> tuple[Any, str]:
        """Serialized state as (parsed tree, text). The tree is None if the text is not JSON."""
        raw = await self.provider.serialize_state()
        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw).decode("utf-8", errors="replace")
        if isinstance(raw, str):
            return parse_serialized_state(raw), raw
        return raw, dump_state(raw)

    async def _state_views(self) -> list[tuple[str, Any, str | None]]:
        """Every state view the provider can give, as (source, tree, text)."""
        views: list[tuple[str, Any, str | None]] = []
        if self.provider.supports(Capability.STATE):
            try:
                views.append(("state", await self.snapshot(), None))
            except Exception as e:
                logger.debug(f"state() failed: {e}")
        if self.provider.supports(Capability.STATE_SERIALIZATION):
            try:
                tree, text = await self.serialized_state()
                views.append(("serializeState", unwrap_state(tree), text))
            except Exception as e:
                logger.debug(f"serializeState() failed: {e}")
        return views

    async def find_address(self) -> tuple[str | None, str]:
        """
        Locate the wallet's shield address.

        Returns:
            (address, via) where via names the getter or state view that produced it
        """
        for name, getter in self.provider.address_getters():
            try:
                value = await maybe_await(getter())
            except Exception as e:
                logger.debug(f"Address getter {name}() failed: {e}")
                continue
            if value is None:
                continue
            found = self.miner.mine_address(value)
            if found:
                return found, name

        for source, tree, text in await self._state_views():
            found = self.miner.mine_address(tree, text)
            if found:
                return found, source

        return None, ""

    async def get_address(self) -> str | None:
        address, _ = await self.find_address()
        return address

    async def get_balance(self) -> BalanceReport:
        """
        Best-effort tDUST balance.

        Wallet state is mined first; the indexer is asked only when state has
        no answer and an address is known.
        """
        report = BalanceReport(address=await self.get_address() or "")

        for source, tree, text in await self._state_views():
            fields = fields_of(tree)
            balances = fields.get("balances") if fields is not None else None
            if isinstance(balances, (list, tuple)) and not report.balances:
                report.balances = jsonable(balances)
            found = self.miner.mine_balance(tree, text)
            if found is not None:
                report.tdust = found
                report.via = source
                return report

        if self.indexer is not None and report.address:
            rows = await self.indexer.balances(report.address)
            report.balances = rows
            found = self.miner.mine_balance({"balances": rows})
            if found is not None:
                report.tdust = found
                report.via = "indexer"

        return report

    async def list_coins(self) -> list[Coin]:
        return await enumerate_coins(self.provider, self.miner)

    async def send(self, recipient: str, amount: Any) -> SendResult:
        return await self.pipeline.send(recipient, amount)

    def describe(self) -> dict[str, Any]:
        info = self.provider.describe()
        try:
            info["strategy"] = select_strategy(self.provider.capabilities).value
        except CapabilityUnavailableError:
            info["strategy"] = None
        info["network"] = self.network_id.value
        return info

    async def close(self) -> None:
        try:
            await self.provider.close()
        finally:
            if self.indexer is not None:
                await self.indexer.close()


async def build_wallet_adapter(settings: Settings) -> WalletAdapter:
    """
    Build the process-wide wallet adapter from settings.

    Uses a self-hosted daemon session, or the installed provider entry points
    when ``provider`` is ``injected``.
    """
    if settings.uses_demo_seed:
        logger.warning("Using the demo seed; set SEED_HEX or MNEMONIC for persistent keys")

    kwargs: dict[str, Any] = {
        "sender_keys": SecretKeys.from_seed(settings.seed),
        "network_id": settings.network,
        "indexer": IndexerClient(settings.indexer_http, timeout=settings.request_timeout),
        "coin_selection": settings.coin_selection,
        "manual_fee": settings.manual_fee,
    }

    try:
        if settings.provider == "injected":
            adapter = await WalletAdapter.from_namespace(load_injected_providers(), **kwargs)
        else:
            daemon = await DaemonWallet.build(
                settings.wallet_daemon_url,
                indexer_http=settings.indexer_http,
                indexer_ws=settings.indexer_ws,
                prover_http=settings.prover_http,
                rpc_http=settings.rpc_http,
                seed_hex=settings.seed_hex,
                network_id=settings.network,
                timeout=settings.request_timeout,
            )
            adapter = await WalletAdapter.connect(daemon, "wallet-daemon", **kwargs)
    except BaseException:
        await kwargs["indexer"].close()
        raise

    if settings.sync_on_start:
        await wait_for_initial_sync(adapter.provider, max_wait=settings.sync_wait_seconds)
    return adapter
