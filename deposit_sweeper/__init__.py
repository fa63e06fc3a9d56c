"""Deterministic deposit wallets that are activated and swept in one step."""
from __future__ import annotations

from .addresses import AddressSpace, ZERO_ADDRESS, normalize_salt, salt_from_label
from .config import RegistrySettings, load_settings
from .errors import (
    AlreadyActivatedError,
    AuthorizationError,
    InvalidOwnerError,
    SweepError,
    TransferFailure,
    UnknownAssetError,
    WalletNotFoundError,
)
from .ledger import NATIVE_ASSET, ERC20Token, Event, Ledger, WalletState
from .registry import WalletRegistry
from .wallet import SweepWallet

__all__ = [
    "AddressSpace",
    "AlreadyActivatedError",
    "AuthorizationError",
    "ERC20Token",
    "Event",
    "InvalidOwnerError",
    "Ledger",
    "NATIVE_ASSET",
    "RegistrySettings",
    "SweepError",
    "SweepWallet",
    "TransferFailure",
    "UnknownAssetError",
    "WalletNotFoundError",
    "WalletRegistry",
    "WalletState",
    "ZERO_ADDRESS",
    "load_settings",
    "normalize_salt",
    "salt_from_label",
]
