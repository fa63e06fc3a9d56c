"""In-process ordered ledger backing wallets and the registry.

The ledger plays the part of the chain: it stores wallet state keyed by
address, holds native and token balances, keeps an event log and runs every
state-changing call inside :meth:`Ledger.transaction`. Each write records how
to undo itself in a journal; when the enclosed block raises, the journal is
replayed backwards so only the entries touched by the failed call are restored.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterator, List, Mapping, MutableMapping, Optional, Protocol, Set, Tuple

from .addresses import ZERO_ADDRESS, AddressLike, checksum_address
from .errors import AlreadyActivatedError, TransferFailure, UnknownAssetError

_LOGGER = logging.getLogger(__name__)

NATIVE_ASSET = ZERO_ADDRESS

_MISSING = object()


def is_native(asset: AddressLike) -> bool:
    return checksum_address(asset, label="asset") == NATIVE_ASSET


@dataclass(frozen=True)
class WalletState:
    """Storage of one wallet. Its presence in the ledger means the address is in use.

    Instances are immutable; changes go through :meth:`Ledger.put_state` so they
    can be rolled back.
    """

    owner: Optional[str] = None
    registry: Optional[str] = None
    initialized: bool = False
    initializers_disabled: bool = False


@dataclass(frozen=True)
class Event:
    """Record emitted by a wallet or registry."""

    name: str
    address: str
    args: Mapping[str, Any] = field(default_factory=dict)


class FungibleToken(Protocol):
    """Interface the ledger expects from a token contract.

    Implementations should keep balances in the ledger (see
    :meth:`Ledger.stored_balance`) so that a failed transaction rolls them back.
    """

    address: str

    def balance_of(self, holder: str) -> int: ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...

    def mint(self, holder: str, amount: int) -> None: ...


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError(f"Amount must be a non-negative integer, got {amount!r}")
    return amount


class Ledger:
    """Totally ordered store of wallet state, balances and events.

    Readers and writers share one re-entrant lock, so a reader never observes
    a transaction that is still running or half rolled back.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._journal: Optional[List[Callable[[], None]]] = None
        self._accounts: Dict[str, WalletState] = {}
        self._balances: Dict[Tuple[str, str], int] = {}
        self._tokens: Dict[str, FungibleToken] = {}
        self._refusing: Set[str] = set()
        self._blocked: Set[Tuple[str, str]] = set()
        self._events: List[Event] = []

    # -- transactions -----------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["Ledger"]:
        """Run a block atomically: on any exception every change made inside it is undone.

        Transactions nest. Only the outermost one owns the journal; an inner
        block that fails unwinds its own writes and re-raises into the outer one.
        """

        with self._lock:
            outermost = self._journal is None
            if outermost:
                self._journal = []
            mark = len(self._journal)
            try:
                yield self
            except BaseException:
                self._unwind(mark)
                _LOGGER.debug("Rolled back ledger transaction")
                raise
            finally:
                if outermost:
                    self._journal = None

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    def _record(self, undo: Callable[[], None]) -> None:
        if self._journal is not None:
            self._journal.append(undo)

    def _unwind(self, mark: int) -> None:
        journal = self._journal
        while len(journal) > mark:
            journal.pop()()

    def _set_item(self, mapping: MutableMapping, key: Hashable, value: Any) -> None:
        prior = mapping.get(key, _MISSING)

        def undo() -> None:
            if prior is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = prior

        self._record(undo)
        mapping[key] = value

    def _pop_item(self, mapping: MutableMapping, key: Hashable) -> None:
        if key not in mapping:
            return
        prior = mapping.pop(key)
        self._record(lambda: mapping.__setitem__(key, prior))

    def _add_member(self, members: Set, item: Hashable) -> None:
        if item in members:
            return
        members.add(item)
        self._record(lambda: members.discard(item))

    # -- wallet state -----------------------------------------------------

    def has_state(self, address: AddressLike) -> bool:
        key = checksum_address(address)
        with self._lock:
            return key in self._accounts

    def state_of(self, address: AddressLike) -> Optional[WalletState]:
        key = checksum_address(address)
        with self._lock:
            return self._accounts.get(key)

    def insert_if_absent(self, address: AddressLike, state: WalletState) -> WalletState:
        """Install ``state`` at ``address`` unless something already lives there."""

        key = checksum_address(address)
        with self.transaction():
            if key in self._accounts:
                raise AlreadyActivatedError(f"Address already in use: {key}")
            self._set_item(self._accounts, key, state)
        return state

    def put_state(self, address: AddressLike, state: WalletState) -> WalletState:
        """Replace the state of an existing wallet."""

        key = checksum_address(address)
        with self.transaction():
            if key not in self._accounts:
                raise KeyError(f"No state stored at {key}")
            self._set_item(self._accounts, key, state)
        return state

    # -- assets -----------------------------------------------------------

    def register_token(self, token: FungibleToken) -> FungibleToken:
        key = checksum_address(token.address, label="token")
        if key == NATIVE_ASSET:
            raise ValueError("The zero address is reserved for the native asset")
        with self.transaction():
            if key in self._tokens:
                raise ValueError(f"Token already registered at {key}")
            self._set_item(self._tokens, key, token)
        return token

    def token(self, asset: AddressLike) -> FungibleToken:
        key = checksum_address(asset, label="asset")
        with self._lock:
            try:
                return self._tokens[key]
            except KeyError as exc:
                raise UnknownAssetError(f"No token registered at {key}") from exc

    def stored_balance(self, asset: AddressLike, holder: AddressLike) -> int:
        key = (checksum_address(asset, label="asset"), checksum_address(holder, label="holder"))
        with self._lock:
            return self._balances.get(key, 0)

    def store_balance(self, asset: AddressLike, holder: AddressLike, amount: int) -> None:
        key = (checksum_address(asset, label="asset"), checksum_address(holder, label="holder"))
        with self.transaction():
            if _check_amount(amount):
                self._set_item(self._balances, key, amount)
            else:
                self._pop_item(self._balances, key)

    def balance_of(self, asset: AddressLike, holder: AddressLike) -> int:
        """Balance of ``holder`` in ``asset`` (native when ``asset`` is the zero address)."""

        if is_native(asset):
            return self.stored_balance(NATIVE_ASSET, holder)
        with self._lock:
            return self.token(asset).balance_of(checksum_address(holder, label="holder"))

    def deposit(self, asset: AddressLike, holder: AddressLike, amount: int) -> None:
        """Credit ``holder`` with funds arriving from outside the ledger."""

        _check_amount(amount)
        with self.transaction():
            if is_native(asset):
                self.store_balance(NATIVE_ASSET, holder, self.stored_balance(NATIVE_ASSET, holder) + amount)
            else:
                self.token(asset).mint(checksum_address(holder, label="holder"), amount)

    def refuse_native(self, address: AddressLike) -> None:
        """Mark ``address`` as unable to receive native currency (e.g. a contract without a receive hook)."""

        key = checksum_address(address)
        with self.transaction():
            self._add_member(self._refusing, key)

    def block(self, asset: AddressLike, address: AddressLike) -> None:
        """Make ``asset`` report failure for transfers touching ``address``."""

        key = (checksum_address(asset, label="asset"), checksum_address(address))
        with self.transaction():
            self._add_member(self._blocked, key)

    def is_blocked(self, asset: AddressLike, address: AddressLike) -> bool:
        key = (checksum_address(asset, label="asset"), checksum_address(address))
        with self._lock:
            return key in self._blocked

    def send_native(self, sender: AddressLike, recipient: AddressLike, amount: int) -> None:
        """Move ``amount`` of native currency from ``sender`` to ``recipient``."""

        source = checksum_address(sender, label="sender")
        target = checksum_address(recipient, label="recipient")
        _check_amount(amount)
        with self.transaction():
            if target in self._refusing:
                raise TransferFailure(f"{target} rejected native transfer")
            available = self.stored_balance(NATIVE_ASSET, source)
            if available < amount:
                raise TransferFailure(f"Insufficient native balance in {source}: {available} < {amount}")
            self.store_balance(NATIVE_ASSET, source, available - amount)
            self.store_balance(NATIVE_ASSET, target, self.stored_balance(NATIVE_ASSET, target) + amount)

    # -- events -----------------------------------------------------------

    def emit(self, name: str, address: AddressLike, **args: Any) -> Event:
        event = Event(name=name, address=checksum_address(address), args=dict(args))
        with self.transaction():
            self._events.append(event)
            self._record(self._events.pop)
        return event

    @property
    def events(self) -> Tuple[Event, ...]:
        with self._lock:
            return tuple(self._events)

    def events_named(self, name: str) -> List[Event]:
        with self._lock:
            return [event for event in self._events if event.name == name]


class ERC20Token:
    """Minimal fungible token whose balances live in a :class:`Ledger`.

    Transfers to the zero address or beyond the sender's balance raise
    :class:`TransferFailure`. Transfers touching a blocked address return
    ``False`` instead, like tokens that report failure without reverting.
    """

    def __init__(self, ledger: Ledger, address: AddressLike, symbol: str = "", decimals: int = 18) -> None:
        self.ledger = ledger
        self.address = checksum_address(address, label="token")
        self.symbol = symbol
        self.decimals = decimals

    def __repr__(self) -> str:
        return f"ERC20Token({self.symbol or '?'} @ {self.address})"

    def block(self, address: AddressLike) -> None:
        self.ledger.block(self.address, address)

    def balance_of(self, holder: str) -> int:
        return self.ledger.stored_balance(self.address, holder)

    def mint(self, holder: str, amount: int) -> None:
        target = checksum_address(holder, label="holder")
        if target == ZERO_ADDRESS:
            raise TransferFailure(f"{self!r}: cannot mint to the zero address")
        with self.ledger.transaction():
            self.ledger.store_balance(self.address, target, self.balance_of(target) + _check_amount(amount))

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        source = checksum_address(sender, label="sender")
        target = checksum_address(recipient, label="recipient")
        _check_amount(amount)
        if target == ZERO_ADDRESS:
            raise TransferFailure(f"{self!r}: invalid receiver {target}")
        with self.ledger.transaction():
            if self.ledger.is_blocked(self.address, source) or self.ledger.is_blocked(self.address, target):
                return False
            available = self.balance_of(source)
            if available < amount:
                raise TransferFailure(f"{self!r}: insufficient balance in {source}: {available} < {amount}")
            self.ledger.store_balance(self.address, source, available - amount)
            self.ledger.store_balance(self.address, target, self.balance_of(target) + amount)
        return True


__all__ = [
    "ERC20Token",
    "Event",
    "FungibleToken",
    "Ledger",
    "NATIVE_ASSET",
    "WalletState",
    "is_native",
]
