"""
Strategy selection and transfer submission.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from loguru import logger

from mnwallet.address import RecipientKeys, decode_shield_address
from mnwallet.assembler import Strategy, TransactionAssembler, result_candidates
from mnwallet.capabilities import Capability, CapabilitySet, ProviderAdapter
from mnwallet.errors import CapabilityUnavailableError, SubmissionExhaustedError
from mnwallet.miner import StateMiner, fields_of, parse_serialized_state, unwrap_state, walk
from mnwallet.models import Coin, SendResult, parse_amount, validate_recipient

_TX_ID_FIELDS = ("txId", "tx_id", "txHash", "tx_hash", "transactionId", "transaction_id", "hash", "id")
_COIN_KEY_FIELDS = ("coinPublicKey", "coin_public_key", "coinPublicKeyString", "cpk")
_ENCRYPTION_KEY_FIELDS = (
    "encryptionPublicKey",
    "encryption_public_key",
    "encryptionPublicKeyString",
    "epk",
)


@dataclass(frozen=True)
class SerializedTransaction:
    """Minimal transaction object for submitters that insist on ``serialize()``."""

    data: bytes

    def serialize(self) -> bytes:
        return self.data


def select_strategy(capabilities: CapabilitySet) -> Strategy:
    """
    Pick how a transfer is built.

    Raises:
        CapabilityUnavailableError: If neither strategy is possible
    """
    if capabilities.has_high_level_transfer and Capability.SUBMIT in capabilities:
        return Strategy.WALLET_MANAGED
    if capabilities.can_enumerate_coins and capabilities.can_submit:
        return Strategy.MANUAL_OFFER
    raise CapabilityUnavailableError(
        "Wallet API lacks both balanceAndProveTransaction/transferTransaction + submit "
        "and coin enumeration + submit. Upgrade the wallet or use a self-hosted session."
    )


async def enumerate_coins(provider: ProviderAdapter, miner: StateMiner) -> list[Coin]:
    """Coins from the listing capability, else mined from serialized state, else from state."""
    if provider.supports(Capability.COIN_ENUMERATION):
        return miner.mine_coins(await provider.list_coins())

    if provider.supports(Capability.STATE_SERIALIZATION):
        try:
            tree = parse_serialized_state(await provider.serialize_state())
        except Exception as e:
            logger.debug(f"serializeState failed while enumerating coins: {e}")
            tree = None
        if tree is not None:
            coins = miner.mine_coins(tree)
            if coins:
                return coins

    if provider.supports(Capability.STATE):
        try:
            return miner.mine_coins(unwrap_state(await provider.state()))
        except Exception as e:
            logger.debug(f"state() failed while enumerating coins: {e}")

    return []


def _key_text(value: Any) -> str | None:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, str) and value:
        return value
    return None


def _first_key(fields: Mapping[str, Any], names: tuple[str, ...]) -> str | None:
    for name in names:
        text = _key_text(fields.get(name))
        if text:
            return text
    return None


def keys_from_parsed(parsed: Any) -> RecipientKeys | None:
    """Find a coin / encryption public key pair inside a codec result."""
    for node in walk(parsed):
        fields = fields_of(node)
        if fields is None:
            continue
        cpk = _first_key(fields, _COIN_KEY_FIELDS)
        epk = _first_key(fields, _ENCRYPTION_KEY_FIELDS)
        if cpk and epk:
            return RecipientKeys(coin_public_key=cpk, encryption_public_key=epk)
    return None


async def resolve_recipient_keys(provider: ProviderAdapter, recipient: str) -> RecipientKeys:
    """Recipient key pair from the provider's codec, else from the address itself."""
    if provider.supports(Capability.ADDRESS_CODEC):
        keys = keys_from_parsed(await provider.parse_address(recipient))
        if keys is not None:
            return keys
    return decode_shield_address(recipient).keys


def extract_tx_id(result: Any) -> str:
    """Transaction id from whatever a submit call returned; empty when there is none."""
    if result is None or result is False:
        return ""
    if isinstance(result, str):
        return result.strip()
    if isinstance(result, (bytes, bytearray)):
        return bytes(result).hex()
    if isinstance(result, (list, tuple)):
        return next((tx_id for tx_id in map(extract_tx_id, result) if tx_id), "")
    fields = result if isinstance(result, Mapping) else fields_of(result)
    if fields is not None:
        for name in _TX_ID_FIELDS:
            tx_id = extract_tx_id(fields.get(name))
            if tx_id:
                return tx_id
        return ""
    return str(result)


class SubmissionPipeline:
    """
    Runs a transfer through the strategy the provider's capabilities allow.

    No strategy falls back to the other once chosen.
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        assembler: TransactionAssembler,
        miner: StateMiner | None = None,
    ):
        self.provider = provider
        self.assembler = assembler
        self.miner = miner or StateMiner()

    @property
    def strategy(self) -> Strategy:
        return select_strategy(self.provider.capabilities)

    async def send(self, recipient: str, amount: Any) -> SendResult:
        """
        Build and submit a tDUST transfer.

        Raises:
            InvalidRecipientError / InvalidAmountError: On bad input
            CapabilityUnavailableError: Before any network call, if no strategy applies
            NoSpendableCoinsError: If a manual transfer cannot be funded
            SubmissionExhaustedError: If every submission attempt failed
        """
        recipient = validate_recipient(recipient)
        amount = parse_amount(amount)
        strategy = self.strategy

        logger.info(f"Sending {amount} tDUST to {recipient[:28]}... via {strategy.value}")
        if strategy == Strategy.WALLET_MANAGED:
            result = await self._send_wallet_managed(recipient, amount)
        else:
            result = await self._send_manual(recipient, amount)
        logger.info(f"Submitted transaction {result.tx_id}")
        return result

    async def _recipient_forms(self, recipient: str) -> list[Any]:
        forms: list[Any] = []
        if self.provider.supports(Capability.ADDRESS_CODEC):
            parsed = await self.provider.parse_address(recipient)
            if parsed is not None and parsed != recipient:
                forms.append(parsed)
        forms.append(recipient)
        return forms

    async def _build_and_prove(self, transfers: list[dict[str, Any]]) -> Any:
        if self.provider.supports(Capability.BALANCE_AND_PROVE):
            return await self.provider.balance_and_prove(transfers)
        recipe = await self.provider.transfer_transaction(transfers)
        return await self.provider.prove_transaction(recipe)

    async def _send_wallet_managed(self, recipient: str, amount: int) -> SendResult:
        attempts: list[str] = []
        last_error: Exception | None = None

        for form in await self._recipient_forms(recipient):
            try:
                proven = await self._build_and_prove(self.assembler.build_transfers(form, amount))
            except Exception as e:
                logger.debug(f"Wallet-managed build failed: {e}")
                attempts.append(f"build: {e}")
                last_error = e
                continue

            for candidate in result_candidates(proven):
                try:
                    tx_id = extract_tx_id(await self.provider.submit(candidate))
                except Exception as e:
                    logger.debug(f"Submit of {type(candidate).__name__} candidate failed: {e}")
                    attempts.append(f"submit: {e}")
                    last_error = e
                    continue
                if tx_id:
                    return SendResult(tx_id=tx_id, strategy=Strategy.WALLET_MANAGED.value)
                attempts.append("submit: no transaction id")

        raise SubmissionExhaustedError(
            "Wallet-managed transfer failed", attempts
        ) from last_error

    async def _send_manual(self, recipient: str, amount: int) -> SendResult:
        coins = await enumerate_coins(self.provider, self.miner)
        keys = await resolve_recipient_keys(self.provider, recipient)
        built = self.assembler.build_manual(coins, keys, amount)

        if self.provider.supports(Capability.SIGN_AND_SUBMIT):
            submissions = [("signAndSubmitTx", self.provider.sign_and_submit, built.serialized)]
        else:
            submissions = [
                ("submitTransaction(bytes)", self.provider.submit, built.serialized),
                (
                    "submitTransaction(serialized)",
                    self.provider.submit,
                    SerializedTransaction(built.serialized),
                ),
            ]

        attempts: list[str] = []
        last_error: Exception | None = None
        for label, submit, payload in submissions:
            try:
                tx_id = extract_tx_id(await submit(payload))
            except Exception as e:
                logger.debug(f"{label} failed: {e}")
                attempts.append(f"{label}: {e}")
                last_error = e
                continue
            if tx_id:
                return SendResult(
                    tx_id=tx_id,
                    strategy=Strategy.MANUAL_OFFER.value,
                    change_value=built.change_value,
                    inputs=built.inputs,
                )
            attempts.append(f"{label}: no transaction id")
            break

        raise SubmissionExhaustedError("Manual transfer submission failed", attempts) from last_error
