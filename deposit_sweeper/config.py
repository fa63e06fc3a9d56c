"""Environment-driven settings for a wallet registry."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv
from eth_account import Account

from .addresses import checksum_address


@dataclass(frozen=True)
class RegistrySettings:
    """Immutable registry configuration, resolved once at start-up."""

    sweeper: str
    registry_address: Optional[str] = None
    destination: Optional[str] = None
    log_level: str = "INFO"


def _get_env() -> Mapping[str, str]:
    """Expose ``os.environ`` (after reading ``.env``) separately to simplify testing."""

    load_dotenv()
    return os.environ


def _optional_address(env: Mapping[str, str], key: str) -> Optional[str]:
    value = (env.get(key) or "").strip()
    if not value:
        return None
    return checksum_address(value, label=key)


def load_sweeper_address(env: Mapping[str, str]) -> str:
    """Resolve the sweeper from ``SWEEPER_ADDRESS`` or, failing that, ``SWEEPER_PRIVATE_KEY``.

    Raises
    ------
    RuntimeError
        If neither variable is set.
    """

    address = (env.get("SWEEPER_ADDRESS") or "").strip()
    if address:
        return checksum_address(address, label="SWEEPER_ADDRESS")

    secret_key = (env.get("SWEEPER_PRIVATE_KEY") or "").strip()
    if not secret_key:
        raise RuntimeError("Set SWEEPER_ADDRESS (or SWEEPER_PRIVATE_KEY) before creating a registry.")
    return Account.from_key(secret_key).address


def load_settings(env: Mapping[str, str] | None = None) -> RegistrySettings:
    """Build :class:`RegistrySettings` from ``env`` (defaults to the process environment)."""

    if env is None:
        env = _get_env()

    return RegistrySettings(
        sweeper=load_sweeper_address(env),
        registry_address=_optional_address(env, "REGISTRY_ADDRESS"),
        destination=_optional_address(env, "SWEEP_DESTINATION"),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )


__all__ = ["RegistrySettings", "load_settings", "load_sweeper_address"]
