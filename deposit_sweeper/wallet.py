"""Per-salt deposit wallets.

A :class:`SweepWallet` is a handle on the wallet state stored at one ledger
address. Sweeps may be triggered by the wallet owner or by the registry that
initialized it; the registry keeps that right for the wallet's whole life,
even after the owner changes or renounces ownership.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from .addresses import AddressLike, checksum_address, is_zero_address
from .errors import AlreadyActivatedError, AuthorizationError, InvalidOwnerError, TransferFailure, WalletNotFoundError
from .ledger import NATIVE_ASSET, Ledger, WalletState, is_native

_LOGGER = logging.getLogger(__name__)


def same_identity(caller: Optional[AddressLike], expected: Optional[str]) -> bool:
    """Return ``True`` when ``caller`` and ``expected`` denote the same address."""

    if caller is None or expected is None:
        return False
    try:
        return checksum_address(caller) == expected
    except ValueError:
        return False


def is_authorized(caller: Optional[AddressLike], owner: Optional[str], registry: Optional[str]) -> bool:
    """Sweep permission: the current owner or the registry that created the wallet."""

    return same_identity(caller, owner) or same_identity(caller, registry)


def _valid_owner(new_owner: AddressLike) -> str:
    try:
        owner = checksum_address(new_owner, label="owner")
    except ValueError as exc:
        raise InvalidOwnerError(str(exc)) from exc
    if is_zero_address(owner):
        raise InvalidOwnerError("The zero address cannot own a wallet")
    return owner


class SweepWallet:
    """Deposit wallet living at ``address`` in ``ledger``."""

    def __init__(self, ledger: Ledger, address: AddressLike) -> None:
        self.ledger = ledger
        self.address = checksum_address(address, label="wallet")

    def __repr__(self) -> str:
        return f"SweepWallet({self.address})"

    def _state(self) -> WalletState:
        state = self.ledger.state_of(self.address)
        if state is None:
            raise WalletNotFoundError(f"No wallet deployed at {self.address}")
        return state

    @property
    def exists(self) -> bool:
        return self.ledger.has_state(self.address)

    @property
    def owner(self) -> Optional[str]:
        return self._state().owner

    @property
    def registry(self) -> Optional[str]:
        return self._state().registry

    @property
    def initialized(self) -> bool:
        return self._state().initialized

    def balance(self, asset: AddressLike = NATIVE_ASSET) -> int:
        return self.ledger.balance_of(asset, self.address)

    def is_authorized(self, caller: Optional[AddressLike]) -> bool:
        state = self._state()
        return is_authorized(caller, state.owner, state.registry)

    def _require_authorized(self, caller: Optional[AddressLike]) -> None:
        if not self.is_authorized(caller):
            _LOGGER.warning("Rejected sweep on %s by %s", self.address, caller)
            raise AuthorizationError(f"SweepWallet: Not authorized ({caller})")

    def _require_owner(self, caller: Optional[AddressLike]) -> WalletState:
        state = self._state()
        if not same_identity(caller, state.owner):
            _LOGGER.warning("Rejected ownership change on %s by %s", self.address, caller)
            raise AuthorizationError(f"{caller} is not the owner of {self.address}")
        return state

    def initialize(self, new_owner: AddressLike, *, caller: AddressLike) -> None:
        """Bind ``new_owner`` and record ``caller`` as the wallet's registry. Allowed once."""

        registry = checksum_address(caller, label="caller")
        with self.ledger.transaction():
            state = self._state()
            if state.initializers_disabled or state.initialized:
                raise AlreadyActivatedError(f"{self.address} is already initialized")
            owner = _valid_owner(new_owner)
            self.ledger.put_state(self.address, replace(state, owner=owner, registry=registry, initialized=True))
            self.ledger.emit("Initialized", self.address, version=1)
            self.ledger.emit("OwnershipTransferred", self.address, previous_owner=None, new_owner=owner)
        _LOGGER.info("Initialized %s: owner %s, registry %s", self.address, owner, registry)

    def sweep(self, asset: AddressLike, destination: AddressLike, *, caller: AddressLike) -> int:
        """Move the full ``asset`` balance to ``destination`` and return the amount moved.

        The zero address selects native currency. An empty balance is a no-op.
        """

        with self.ledger.transaction():
            self._require_authorized(caller)
            if is_native(asset):
                return self.sweep_native(destination, caller=caller)
            target = checksum_address(destination, label="destination")
            token = self.ledger.token(asset)
            amount = token.balance_of(self.address)
            if amount == 0:
                _LOGGER.debug("Nothing to sweep from %s in %s", self.address, token.address)
                return 0
            if not token.transfer(self.address, target, amount):
                raise TransferFailure(f"Token {token.address} refused transfer of {amount} to {target}")
        _LOGGER.info("Swept %d of %s from %s to %s", amount, token.address, self.address, target)
        return amount

    def sweep_native(self, destination: AddressLike, *, caller: AddressLike) -> int:
        with self.ledger.transaction():
            self._require_authorized(caller)
            target = checksum_address(destination, label="destination")
            amount = self.ledger.balance_of(NATIVE_ASSET, self.address)
            if amount == 0:
                _LOGGER.debug("No native balance to sweep from %s", self.address)
                return 0
            self.ledger.send_native(self.address, target, amount)
        _LOGGER.info("Swept %d native from %s to %s", amount, self.address, target)
        return amount

    def transfer_ownership(self, new_owner: AddressLike, *, caller: AddressLike) -> None:
        with self.ledger.transaction():
            state = self._require_owner(caller)
            owner = _valid_owner(new_owner)
            previous = state.owner
            self.ledger.put_state(self.address, replace(state, owner=owner))
            self.ledger.emit("OwnershipTransferred", self.address, previous_owner=previous, new_owner=owner)
        _LOGGER.info("Ownership of %s moved from %s to %s", self.address, previous, owner)

    def renounce_ownership(self, *, caller: AddressLike) -> None:
        """Drop the owner. The registry can still sweep afterwards."""

        with self.ledger.transaction():
            state = self._require_owner(caller)
            previous = state.owner
            self.ledger.put_state(self.address, replace(state, owner=None))
            self.ledger.emit("OwnershipTransferred", self.address, previous_owner=previous, new_owner=None)
        _LOGGER.info("Ownership of %s renounced by %s", self.address, previous)


__all__ = ["SweepWallet", "is_authorized", "same_identity"]
