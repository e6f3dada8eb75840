"""
Command-line interface for the Midnight tDUST wallet adapter.
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger
from pydantic import ValidationError

from mnwallet.adapter import WalletAdapter, build_wallet_adapter
from mnwallet.config import Settings, mnemonic_to_seed_hex, normalize_seed_hex
from mnwallet.constants import TESTNET_SHIELD_ADDRESS_RE
from mnwallet.errors import InvalidAmountError
from mnwallet.models import BalanceReport, SendResult, parse_amount

app = typer.Typer(
    name="mnwallet",
    help="Midnight tDUST wallet adapter",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_settings(**overrides: Any) -> Settings:
    """Settings from env / .env, with CLI options taking precedence."""
    try:
        return Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            logger.error(f"Invalid setting {location}: {error['msg']}")
        raise typer.Exit(1)


NetworkOption = Annotated[
    str | None, typer.Option("--network", "-n", help="Network id (default: testnet)")
]
DaemonUrlOption = Annotated[
    str | None,
    typer.Option("--daemon-url", envvar="WALLET_DAEMON_URL", help="Wallet daemon JSON-RPC URL"),
]
ProviderOption = Annotated[
    str | None, typer.Option("--provider", help="Wallet provider: daemon | injected")
]
LogLevelOption = Annotated[str, typer.Option("--log-level", "-l", help="Log level")]


def load_mnemonic(mnemonic: str | None, mnemonic_file: Path | None) -> str | None:
    """
    Load a mnemonic from the option or a file.

    Priority:
    1. --mnemonic option (or MNEMONIC environment variable)
    2. --mnemonic-file option
    3. MNEMONIC_FILE environment variable (path to mnemonic file)

    Raises:
        ValueError: If the mnemonic file does not exist
    """
    if mnemonic:
        return mnemonic

    actual_mnemonic_file = mnemonic_file
    if not actual_mnemonic_file:
        env_mnemonic_file = os.environ.get("MNEMONIC_FILE")
        if env_mnemonic_file:
            actual_mnemonic_file = Path(env_mnemonic_file)

    if actual_mnemonic_file:
        if not actual_mnemonic_file.exists():
            raise ValueError(f"Mnemonic file not found: {actual_mnemonic_file}")
        return actual_mnemonic_file.read_text().strip()

    return None


def _resolve_seed(
    positional: list[str], mnemonic: str | None, mnemonic_file: Path | None
) -> tuple[str, str, str]:
    """
    Split ``[SEED_HEX] RECEIVER AMOUNT`` into (seed hex, receiver, amount).

    SEED_HEX is left out when the seed comes from a mnemonic.
    """
    phrase = load_mnemonic(mnemonic, mnemonic_file)
    if phrase is not None:
        if len(positional) != 2:
            raise ValueError("with a mnemonic, pass only RECEIVER AMOUNT")
        receiver, amount = positional
        return mnemonic_to_seed_hex(phrase), receiver, amount

    if len(positional) != 3:
        raise ValueError(
            "expected SEED_HEX RECEIVER AMOUNT (or --mnemonic with RECEIVER AMOUNT)"
        )
    seed_hex, receiver, amount = positional
    return normalize_seed_hex(seed_hex), receiver, amount


@app.command()
def send(
    arguments: Annotated[
        list[str],
        typer.Argument(
            metavar="[SEED_HEX] RECEIVER AMOUNT",
            help=(
                "32-byte wallet seed as 64 hex chars (left out with --mnemonic), "
                "recipient testnet shield address, amount of tDUST in smallest units"
            ),
        ),
    ],
    mnemonic: Annotated[
        str | None,
        typer.Option("--mnemonic", envvar="MNEMONIC", help="24-word BIP-39 mnemonic"),
    ] = None,
    mnemonic_file: Annotated[
        Path | None, typer.Option("--mnemonic-file", "-f", help="Path to mnemonic file")
    ] = None,
    network: NetworkOption = None,
    provider: ProviderOption = None,
    daemon_url: DaemonUrlOption = None,
    sync_wait: Annotated[
        float | None, typer.Option("--sync-wait", help="Max seconds to wait for wallet sync")
    ] = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Send tDUST to a shield address."""
    setup_logging(log_level)

    try:
        seed, receiver, amount = _resolve_seed(arguments, mnemonic, mnemonic_file)
    except ValueError as e:
        logger.error(f"Invalid seed: {e}")
        raise typer.Exit(1)

    receiver = receiver.strip()
    if not TESTNET_SHIELD_ADDRESS_RE.match(receiver):
        logger.error("Receiver must be a testnet shield address (mn_shield-addr_test1...)")
        raise typer.Exit(1)

    try:
        value = parse_amount(amount)
    except InvalidAmountError as e:
        logger.error(f"Invalid amount: {e}")
        raise typer.Exit(1)

    settings = _load_settings(
        seed_hex=seed,
        network=network,
        provider=provider,
        wallet_daemon_url=daemon_url,
        sync_wait_seconds=sync_wait,
    )

    try:
        result = asyncio.run(_send(settings, receiver, value))
    except Exception as e:
        logger.error(f"Transfer failed: {e}")
        raise typer.Exit(2)

    print(f"\nSubmitted transaction: {result.tx_id}")
    print(f"Strategy: {result.strategy}")
    if result.change_value is not None:
        print(f"Change returned: {result.change_value}")


async def _send(settings: Settings, receiver: str, amount: int) -> SendResult:
    """Send implementation."""
    adapter = await build_wallet_adapter(settings)
    try:
        return await adapter.send(receiver, amount)
    finally:
        await adapter.close()


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="HTTP bind host")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="HTTP port")] = None,
    network: NetworkOption = None,
    provider: ProviderOption = None,
    daemon_url: DaemonUrlOption = None,
    log_level: Annotated[
        str | None, typer.Option("--log-level", "-l", help="Log level")
    ] = None,
) -> None:
    """Run the wallet HTTP API."""
    from mnwallet.main import run_server

    settings = _load_settings(
        host=host,
        port=port,
        network=network,
        provider=provider,
        wallet_daemon_url=daemon_url,
        log_level=log_level,
    )
    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


@app.command()
def info(
    network: NetworkOption = None,
    provider: ProviderOption = None,
    daemon_url: DaemonUrlOption = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Show the wallet address, tDUST balance and provider capabilities."""
    setup_logging(log_level)
    settings = _load_settings(network=network, provider=provider, wallet_daemon_url=daemon_url)

    try:
        description, report = asyncio.run(_show_info(settings))
    except Exception as e:
        logger.error(f"Failed to read wallet: {e}")
        raise typer.Exit(2)

    print(f"\nProvider: {description['provider']}")
    wallet = description.get("wallet") or {}
    if "walletName" in wallet or "apiVersion" in wallet:
        print(f"Wallet: {wallet.get('walletName', '?')} (API {wallet.get('apiVersion', '?')})")
    for service, uri in wallet.get("serviceUris", {}).items():
        print(f"  {service}: {uri}")
    print(f"Network: {description['network']}")
    print(f"Address: {report.address or '(unknown)'}")
    print(f"tDUST: {report.tdust or '(unknown)'}" + (f" (via {report.via})" if report.via else ""))
    print(f"Strategy: {description['strategy'] or 'none available'}")
    print("\nCapabilities:")
    for capability, supported in description["capabilities"].items():
        print(f"  {capability:<22} {'yes' if supported else 'no'}")


async def _show_info(settings: Settings) -> tuple[dict[str, Any], BalanceReport]:
    """Info implementation."""
    adapter: WalletAdapter = await build_wallet_adapter(settings)
    try:
        return adapter.describe(), await adapter.get_balance()
    finally:
        await adapter.close()


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
