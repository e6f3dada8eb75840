"""
Error kinds raised by the wallet adapter.
"""

from __future__ import annotations


class WalletAdapterError(Exception):
    """Base class for all adapter failures."""


class ProviderNotFoundError(WalletAdapterError):
    """No wallet provider could be located in the injected namespace."""


class CapabilityUnavailableError(WalletAdapterError):
    """The connected provider lacks the operations a request needs."""


class NoSpendableCoinsError(WalletAdapterError):
    """No coin is available to fund a manual transfer."""


class InsufficientFundsError(NoSpendableCoinsError):
    """The selected coins do not cover the requested amount."""


class InvalidRecipientError(WalletAdapterError, ValueError):
    """Recipient is not a shield address (or cannot be decoded)."""


class InvalidAmountError(WalletAdapterError, ValueError):
    """Amount is not a positive integer."""


class SubmissionExhaustedError(WalletAdapterError):
    """Every submission candidate failed or returned no transaction id."""

    def __init__(self, message: str, attempts: list[str] | None = None):
        self.attempts = attempts or []
        if self.attempts:
            message = f"{message} ({'; '.join(self.attempts)})"
        super().__init__(message)


class UpstreamUnavailableError(WalletAdapterError):
    """The indexer, wallet daemon or provider could not be reached."""
