#!/usr/bin/env python3
"""Print the deterministic deposit addresses a wallet registry will activate."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Sequence

from dotenv import load_dotenv

from deposit_sweeper.addresses import (
    AddressSpace,
    checksum_address,
    contract_address,
    salt_from_label,
    salt_hex,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--registry",
        default=os.getenv("REGISTRY_ADDRESS"),
        help="Registry address used as the CREATE2 deployer. Defaults to $REGISTRY_ADDRESS.",
    )
    parser.add_argument(
        "--sweeper",
        default=os.getenv("SWEEPER_ADDRESS"),
        help="Sweeper address; the registry defaults to its first contract creation when --registry is unset.",
    )
    parser.add_argument("--salt", action="append", default=[], help="32-byte salt (hex). Repeatable.")
    parser.add_argument(
        "--label",
        action="append",
        default=[],
        help="Human-readable deposit label hashed with keccak256 into a salt. Repeatable.",
    )
    parser.add_argument("--json", action="store_true", help="Emit JSON for downstream scripting.")
    parser.add_argument("--log-level", default="WARNING", help="Logging verbosity (DEBUG, INFO, WARNING)")
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def predict_addresses(args: argparse.Namespace) -> Dict[str, Any]:
    if args.registry:
        registry = checksum_address(args.registry, label="registry")
    elif args.sweeper:
        registry = contract_address(args.sweeper, 0)
    else:
        raise ValueError("Provide --registry or --sweeper (or set REGISTRY_ADDRESS / SWEEPER_ADDRESS).")
    if not args.salt and not args.label:
        raise ValueError("Provide at least one --salt or --label.")

    space = AddressSpace.for_registry(registry)
    wallets: List[Dict[str, Any]] = []
    for salt in args.salt:
        wallets.append({"label": None, "salt": salt_hex(salt), "address": space.derive(salt)})
    for label in args.label:
        salt = salt_from_label(label)
        wallets.append({"label": label, "salt": salt_hex(salt), "address": space.derive(salt)})

    return {"registry": space.namespace, "template": space.template, "wallets": wallets}


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        report = predict_addresses(args)
    except ValueError as exc:
        print(f"[❌] {exc}")
        return 1

    if args.json:
        json.dump(report, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0

    print(f"Registry: {report['registry']}")
    print(f"Template: {report['template']}")
    for wallet in report["wallets"]:
        name = wallet["label"] if wallet["label"] is not None else wallet["salt"]
        print(f"{name} -> {wallet['address']}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
