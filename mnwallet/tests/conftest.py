"""
Test fixtures and configuration.
"""

import pytest
from fakes import address_for

from mnwallet.ledger import SecretKeys


@pytest.fixture
def sender_keys() -> SecretKeys:
    return SecretKeys.from_seed(bytes(32))


@pytest.fixture
def recipient_keys() -> SecretKeys:
    return SecretKeys.from_seed(bytes([7]) * 32)


@pytest.fixture
def recipient_address(recipient_keys: SecretKeys) -> str:
    return address_for(recipient_keys)
