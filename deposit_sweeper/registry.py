"""Registry that predicts, activates and drains deposit wallets."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .addresses import AddressLike, AddressSpace, SaltLike, checksum_address, contract_address, is_zero_address, salt_hex
from .errors import AuthorizationError
from .ledger import Ledger, WalletState
from .wallet import SweepWallet, same_identity

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .config import RegistrySettings

_LOGGER = logging.getLogger(__name__)

WALLET_CREATED = "WalletCreated"


class WalletRegistry:
    """Single entry point coupling address derivation, wallet creation and sweeping.

    Parameters
    ----------
    ledger:
        Ledger holding wallet state and balances.
    sweeper:
        The only identity allowed to call :meth:`activate_and_sweep`. It also
        becomes the owner of every wallet the registry creates.
    address:
        The registry's own address, used as the CREATE2 deployer. Defaults to
        the address of the first contract created by ``sweeper``.
    """

    def __init__(self, ledger: Ledger, sweeper: AddressLike, *, address: Optional[AddressLike] = None) -> None:
        self.ledger = ledger
        self._sweeper = checksum_address(sweeper, label="sweeper")
        if is_zero_address(self._sweeper):
            raise ValueError("The zero address cannot act as sweeper")
        if address is None:
            self._address = contract_address(self._sweeper, 0)
        else:
            self._address = checksum_address(address, label="registry")
        self._space = AddressSpace.for_registry(self._address)
        ledger.insert_if_absent(self._space.template, WalletState(initializers_disabled=True))
        _LOGGER.info(
            "Registry %s ready (template %s, sweeper %s)", self._address, self._space.template, self._sweeper
        )

    @classmethod
    def from_settings(cls, ledger: Ledger, settings: "RegistrySettings") -> "WalletRegistry":
        return cls(ledger, settings.sweeper, address=settings.registry_address)

    def __repr__(self) -> str:
        return f"WalletRegistry({self._address})"

    @property
    def address(self) -> str:
        return self._address

    @property
    def sweeper(self) -> str:
        return self._sweeper

    @property
    def template(self) -> str:
        return self._space.template

    @property
    def address_space(self) -> AddressSpace:
        return self._space

    def get_address(self, salt: SaltLike) -> str:
        """Deposit address for ``salt``; identical before and after activation."""

        return self._space.derive(salt)

    def is_activated(self, salt: SaltLike) -> bool:
        return self.ledger.has_state(self.get_address(salt))

    def wallet(self, salt: SaltLike) -> SweepWallet:
        return SweepWallet(self.ledger, self.get_address(salt))

    def activate_and_sweep(
        self,
        salt: SaltLike,
        asset: AddressLike,
        destination: AddressLike,
        *,
        caller: AddressLike,
    ) -> str:
        """Create the wallet for ``salt``, hand it to the sweeper and drain ``asset`` into ``destination``.

        Runs as one ledger transaction: if any step fails nothing is kept, not
        even the wallet state. Returns the wallet address.

        Raises
        ------
        AuthorizationError
            ``caller`` is not the sweeper.
        AlreadyActivatedError
            A wallet already exists for ``salt``.
        TransferFailure
            The sweep could not be delivered to ``destination``.
        """

        if not same_identity(caller, self._sweeper):
            _LOGGER.warning("Rejected activation by %s on registry %s", caller, self._address)
            raise AuthorizationError(f"Factory: Not sweeper ({caller})")

        with self.ledger.transaction():
            address = self.get_address(salt)
            self.ledger.insert_if_absent(address, WalletState())
            wallet = SweepWallet(self.ledger, address)
            wallet.initialize(self._sweeper, caller=self._address)
            swept = wallet.sweep(asset, destination, caller=self._address)
            self.ledger.emit(WALLET_CREATED, self._address, wallet=address, salt=salt_hex(salt))

        _LOGGER.info("Activated %s for salt %s, swept %d to %s", address, salt_hex(salt), swept, destination)
        return address


__all__ = ["WALLET_CREATED", "WalletRegistry"]
