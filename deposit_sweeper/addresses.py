"""Deterministic address derivation for deposit wallets.

Wallet addresses follow the EVM rules exactly, so a deposit address printed by
this module is the one an on-chain ``Clones.cloneDeterministic`` deployment of
the same template from the same registry would produce:

* the registry's template lives at ``CREATE(registry, nonce=1)``;
* each wallet lives at ``CREATE2(registry, salt, clone_init_code(template))``,
  i.e. ``keccak256(0xff ++ registry ++ salt ++ keccak256(init_code))[12:]``.

Everything here is pure: no ledger access, no logging side effects beyond
``debug`` records.
"""
from __future__ import annotations

import binascii
import logging
from dataclasses import dataclass
from typing import Union

import rlp
from eth_utils import decode_hex, encode_hex, is_address, keccak, to_canonical_address, to_checksum_address

_LOGGER = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# EIP-1167 minimal proxy creation code, split around the 20-byte implementation address.
_CLONE_PREFIX = bytes.fromhex("3d602d80600a3d3981f3363d3d373d3d3d363d73")
_CLONE_SUFFIX = bytes.fromhex("5af43d82803e903d91602b57fd5bf3")

# Contract accounts start at nonce 1 (EIP-161), so a registry's first creation uses it.
TEMPLATE_CREATION_NONCE = 1

SaltLike = Union[bytes, bytearray, str, int]
AddressLike = Union[str, bytes, bytearray]


def canonical_address(value: AddressLike, *, label: str = "address") -> bytes:
    """Return the 20-byte form of ``value`` or raise :class:`ValueError`."""

    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise ValueError(f"Invalid {label}: expected 20 bytes, got {len(value)}")
        return bytes(value)
    if not isinstance(value, str) or not is_address(value.strip()):
        raise ValueError(f"Invalid {label}: {value!r}")
    return to_canonical_address(value.strip())


def checksum_address(value: AddressLike, *, label: str = "address") -> str:
    """Return the EIP-55 checksummed form of ``value``."""

    return to_checksum_address(canonical_address(value, label=label))


def is_zero_address(value: AddressLike) -> bool:
    return canonical_address(value) == bytes(20)


def normalize_salt(salt: SaltLike) -> bytes:
    """Coerce ``salt`` into the 32-byte form used by CREATE2.

    Accepts raw bytes (up to 32, left padded), ``0x`` hex strings and
    non-negative integers below ``2**256``.
    """

    if isinstance(salt, bool):
        raise ValueError("Salt must be bytes, a hex string or an integer, not a bool")
    if isinstance(salt, int):
        if salt < 0 or salt >= 2**256:
            raise ValueError(f"Integer salt out of range: {salt}")
        return salt.to_bytes(32, "big")
    if isinstance(salt, (bytes, bytearray)):
        raw = bytes(salt)
    elif isinstance(salt, str):
        try:
            raw = decode_hex(salt.strip())
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Salt is not valid hex: {salt!r}") from exc
    else:
        raise ValueError(f"Unsupported salt type: {type(salt).__name__}")

    if not raw:
        raise ValueError("Salt must not be empty")
    if len(raw) > 32:
        raise ValueError(f"Salt must be at most 32 bytes, got {len(raw)}")
    return raw.rjust(32, b"\x00")


def salt_hex(salt: SaltLike) -> str:
    return encode_hex(normalize_salt(salt))


def salt_from_label(label: str) -> bytes:
    """Return ``keccak256(utf8(label))`` for human-readable deposit identifiers."""

    return keccak(text=label)


def clone_init_code(template: AddressLike) -> bytes:
    """Return the EIP-1167 creation code of a minimal proxy pointing at ``template``."""

    return _CLONE_PREFIX + canonical_address(template, label="template") + _CLONE_SUFFIX


def create2_address(deployer: AddressLike, salt: SaltLike, init_code: bytes) -> str:
    """Compute the CREATE2 address for ``init_code`` deployed by ``deployer`` with ``salt``."""

    preimage = b"\xff" + canonical_address(deployer, label="deployer") + normalize_salt(salt) + keccak(init_code)
    return to_checksum_address(keccak(preimage)[12:])


def contract_address(deployer: AddressLike, nonce: int) -> str:
    """Compute the CREATE address of the ``nonce``-th contract created by ``deployer``."""

    if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0:
        raise ValueError(f"Nonce must be a non-negative integer, got {nonce!r}")
    encoded = rlp.encode([canonical_address(deployer, label="deployer"), nonce])
    return to_checksum_address(keccak(encoded)[12:])


def template_address_for(registry: AddressLike) -> str:
    """Address of the blueprint wallet a registry creates when it is set up."""

    return contract_address(registry, TEMPLATE_CREATION_NONCE)


@dataclass(frozen=True)
class AddressSpace:
    """Maps salts to wallet addresses for one (template, registry) pair."""

    template: str
    namespace: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "template", checksum_address(self.template, label="template"))
        object.__setattr__(self, "namespace", checksum_address(self.namespace, label="namespace"))

    @classmethod
    def for_registry(cls, registry: AddressLike) -> "AddressSpace":
        return cls(template=template_address_for(registry), namespace=checksum_address(registry))

    @property
    def init_code(self) -> bytes:
        return clone_init_code(self.template)

    def derive(self, salt: SaltLike) -> str:
        """Return the deterministic wallet address for ``salt``."""

        address = create2_address(self.namespace, salt, self.init_code)
        _LOGGER.debug("Derived %s for salt %s under %s", address, salt_hex(salt), self.namespace)
        return address


__all__ = [
    "AddressSpace",
    "TEMPLATE_CREATION_NONCE",
    "ZERO_ADDRESS",
    "canonical_address",
    "checksum_address",
    "clone_init_code",
    "contract_address",
    "create2_address",
    "is_zero_address",
    "normalize_salt",
    "salt_from_label",
    "salt_hex",
    "template_address_for",
]
