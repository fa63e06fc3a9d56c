"""Shared fixtures: a fresh ledger, a registry and a handful of identities."""
from __future__ import annotations

import pytest
from eth_utils import to_wei

from deposit_sweeper.addresses import salt_from_label
from deposit_sweeper.ledger import NATIVE_ASSET, ERC20Token, Ledger
from deposit_sweeper.registry import WalletRegistry
from deposit_sweeper.wallet import SweepWallet

from tests.identities import RECIPIENT, SWEEPER, TOKEN_ADDRESS, USER


@pytest.fixture()
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture()
def registry(ledger: Ledger) -> WalletRegistry:
    return WalletRegistry(ledger, SWEEPER)


@pytest.fixture()
def token(ledger: Ledger) -> ERC20Token:
    token = ERC20Token(ledger, TOKEN_ADDRESS, symbol="MTK")
    ledger.register_token(token)
    ledger.deposit(TOKEN_ADDRESS, USER, to_wei(1_000_000, "ether"))
    return token


@pytest.fixture()
def funded_user(ledger: Ledger) -> str:
    ledger.deposit(NATIVE_ASSET, USER, to_wei(1_000, "ether"))
    return USER


@pytest.fixture()
def test_salt() -> bytes:
    return salt_from_label("test-wallet")


@pytest.fixture()
def wallet(registry: WalletRegistry, test_salt: bytes) -> SweepWallet:
    """A wallet activated through the registry with nothing to sweep."""

    registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
    return registry.wallet(test_salt)
