"""Exceptions raised by the deposit sweeper."""
from __future__ import annotations


class SweepError(RuntimeError):
    """Base class for failures raised by wallets, the registry and the ledger."""


class AuthorizationError(SweepError):
    """Raised when the caller is not allowed to perform an operation."""


class AlreadyActivatedError(SweepError):
    """Raised when state already exists at an address, or a wallet was already initialized."""


class TransferFailure(SweepError):
    """Raised when an asset transfer is rejected by the asset or the recipient."""


class WalletNotFoundError(SweepError):
    """Raised when a wallet operation targets an address without wallet state."""


class InvalidOwnerError(SweepError, ValueError):
    """Raised when the zero address (or garbage) is proposed as a wallet owner."""


class UnknownAssetError(SweepError, LookupError):
    """Raised when an asset address has no token registered in the ledger."""


__all__ = [
    "AlreadyActivatedError",
    "AuthorizationError",
    "InvalidOwnerError",
    "SweepError",
    "TransferFailure",
    "UnknownAssetError",
    "WalletNotFoundError",
]
