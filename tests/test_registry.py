"""Tests for the wallet registry: prediction, activation and atomic sweeping."""
from __future__ import annotations

import threading

import pytest
from eth_utils import to_wei

from deposit_sweeper.addresses import contract_address, salt_from_label, salt_hex, template_address_for
from deposit_sweeper.config import RegistrySettings
from deposit_sweeper.errors import AlreadyActivatedError, AuthorizationError, TransferFailure
from deposit_sweeper.ledger import NATIVE_ASSET, Ledger
from deposit_sweeper.registry import WALLET_CREATED, WalletRegistry

from tests.identities import RECIPIENT, SWEEPER, TOKEN_ADDRESS, UNAUTHORIZED, USER


def test_registry_exposes_sweeper_and_template(ledger, registry) -> None:
    assert registry.sweeper == SWEEPER
    assert registry.address == contract_address(SWEEPER, 0)
    assert registry.template == template_address_for(registry.address)
    assert ledger.has_state(registry.template)


def test_registry_rejects_zero_sweeper(ledger) -> None:
    with pytest.raises(ValueError):
        WalletRegistry(ledger, "0x0000000000000000000000000000000000000000")


def test_second_registry_at_same_address_is_rejected(ledger, registry) -> None:
    with pytest.raises(AlreadyActivatedError):
        WalletRegistry(ledger, UNAUTHORIZED, address=registry.address)


def test_from_settings_uses_configured_address(ledger) -> None:
    settings = RegistrySettings(sweeper=SWEEPER, registry_address="0x" + "88" * 20)
    registry = WalletRegistry.from_settings(ledger, settings)
    assert registry.address == "0x" + "88" * 20
    assert registry.sweeper == SWEEPER


def test_get_address_is_consistent(registry, test_salt) -> None:
    assert registry.get_address(test_salt) == registry.get_address(test_salt)
    assert registry.get_address(test_salt) == registry.get_address(salt_hex(test_salt))


def test_get_address_differs_between_salts(registry) -> None:
    assert registry.get_address(salt_from_label("salt1")) != registry.get_address(salt_from_label("salt2"))


def test_no_state_before_activation_and_state_after(ledger, registry, test_salt) -> None:
    predicted = registry.get_address(test_salt)
    assert not ledger.has_state(predicted)
    assert not registry.is_activated(test_salt)

    assert registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER) == predicted

    assert ledger.has_state(predicted)
    assert registry.is_activated(test_salt)


@pytest.mark.parametrize("asset", [NATIVE_ASSET, TOKEN_ADDRESS, "garbage"])
def test_only_sweeper_can_activate(ledger, registry, test_salt, asset) -> None:
    with pytest.raises(AuthorizationError, match="Not sweeper"):
        registry.activate_and_sweep(test_salt, asset, RECIPIENT, caller=UNAUTHORIZED)
    assert not registry.is_activated(test_salt)
    assert ledger.events_named(WALLET_CREATED) == []


def test_activation_emits_wallet_created(ledger, registry, test_salt) -> None:
    predicted = registry.get_address(test_salt)
    registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)

    (event,) = ledger.events_named(WALLET_CREATED)
    assert event.address == registry.address
    assert event.args == {"wallet": predicted, "salt": salt_hex(test_salt)}


def test_activation_makes_sweeper_the_owner(registry, test_salt) -> None:
    registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
    wallet = registry.wallet(test_salt)
    assert wallet.owner == SWEEPER
    assert wallet.registry == registry.address


def test_activation_sweeps_prefunded_native_balance(ledger, registry, test_salt, funded_user) -> None:
    predicted = registry.get_address(test_salt)
    ledger.send_native(funded_user, predicted, to_wei(1, "ether"))
    before = ledger.balance_of(NATIVE_ASSET, RECIPIENT)

    registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)

    assert ledger.balance_of(NATIVE_ASSET, RECIPIENT) - before == to_wei(1, "ether")
    assert ledger.balance_of(NATIVE_ASSET, predicted) == 0


def test_activation_sweeps_prefunded_tokens(registry, test_salt, token) -> None:
    predicted = registry.get_address(test_salt)
    token.transfer(USER, predicted, to_wei(25, "ether"))

    registry.activate_and_sweep(test_salt, TOKEN_ADDRESS, RECIPIENT, caller=SWEEPER)

    assert token.balance_of(RECIPIENT) == to_wei(25, "ether")
    assert token.balance_of(predicted) == 0


def test_activation_with_zero_balance_succeeds(ledger, registry, test_salt) -> None:
    registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
    assert ledger.balance_of(NATIVE_ASSET, RECIPIENT) == 0


def test_second_activation_of_same_salt_fails(ledger, registry, test_salt, funded_user) -> None:
    predicted = registry.get_address(test_salt)
    ledger.send_native(funded_user, predicted, 10)
    registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)

    ledger.send_native(funded_user, predicted, 4)
    with pytest.raises(AlreadyActivatedError, match="already in use"):
        registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)

    assert ledger.balance_of(NATIVE_ASSET, RECIPIENT) == 10
    assert ledger.balance_of(NATIVE_ASSET, predicted) == 4
    assert len(ledger.events_named(WALLET_CREATED)) == 1
    assert registry.wallet(test_salt).owner == SWEEPER


def test_failed_sweep_rolls_back_activation(ledger, registry, test_salt, funded_user) -> None:
    predicted = registry.get_address(test_salt)
    ledger.send_native(funded_user, predicted, 10)
    ledger.refuse_native(RECIPIENT)
    events_before = ledger.events

    with pytest.raises(TransferFailure):
        registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)

    assert not ledger.has_state(predicted)
    assert ledger.balance_of(NATIVE_ASSET, predicted) == 10
    assert ledger.events == events_before

    registry.activate_and_sweep(test_salt, NATIVE_ASSET, USER, caller=SWEEPER)
    assert ledger.balance_of(NATIVE_ASSET, predicted) == 0


def test_prediction_is_independent_of_activation_order() -> None:
    salts = [salt_from_label(f"user{index}") for index in range(4)]
    first, second = WalletRegistry(Ledger(), SWEEPER), WalletRegistry(Ledger(), SWEEPER)

    for salt in salts:
        first.activate_and_sweep(salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
    for salt in reversed(salts):
        second.activate_and_sweep(salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)

    assert [first.get_address(salt) for salt in salts] == [second.get_address(salt) for salt in salts]
    assert len({first.get_address(salt) for salt in salts}) == len(salts)


def test_multiple_wallets_with_different_salts(ledger, registry) -> None:
    salt1, salt2 = salt_from_label("user1"), salt_from_label("user2")
    registry.activate_and_sweep(salt1, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
    registry.activate_and_sweep(salt2, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
    assert ledger.has_state(registry.get_address(salt1))
    assert ledger.has_state(registry.get_address(salt2))


def test_concurrent_activations_of_one_salt_have_a_single_winner(ledger, registry, test_salt) -> None:
    outcomes: list[str] = []
    lock = threading.Lock()

    def activate() -> None:
        try:
            registry.activate_and_sweep(test_salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
            result = "ok"
        except AlreadyActivatedError:
            result = "collision"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=activate) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["collision"] * 7 + ["ok"]
    assert len(ledger.events_named(WALLET_CREATED)) == 1


def test_example_deposit_flow(ledger, registry, funded_user) -> None:
    salt = salt_from_label("user-42")
    address = registry.get_address(salt)
    assert not ledger.has_state(address)

    ledger.send_native(funded_user, address, to_wei(1, "ether"))
    registry.activate_and_sweep(salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)

    wallet = registry.wallet(salt)
    assert wallet.exists and wallet.owner == SWEEPER
    assert wallet.balance() == 0
    assert ledger.balance_of(NATIVE_ASSET, RECIPIENT) == to_wei(1, "ether")
    assert ledger.events_named(WALLET_CREATED)[-1].args["wallet"] == address
    with pytest.raises(AlreadyActivatedError):
        registry.activate_and_sweep(salt, NATIVE_ASSET, RECIPIENT, caller=SWEEPER)


def test_activation_cost_does_not_grow_with_wallet_count(monkeypatch: pytest.MonkeyPatch) -> None:
    recorded = []
    original_record = Ledger._record

    def counting_record(self, undo) -> None:
        recorded.append(undo)
        original_record(self, undo)

    monkeypatch.setattr(Ledger, "_record", counting_record)

    def undo_entries_for_next_activation(existing: int) -> int:
        registry = WalletRegistry(Ledger(), SWEEPER)
        for index in range(existing):
            registry.activate_and_sweep(salt_from_label(f"filler{index}"), NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
        recorded.clear()
        registry.activate_and_sweep(salt_from_label("measured"), NATIVE_ASSET, RECIPIENT, caller=SWEEPER)
        assert not registry.ledger.in_transaction
        return len(recorded)

    assert undo_entries_for_next_activation(2) == undo_entries_for_next_activation(50)
