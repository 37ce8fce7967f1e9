"""
Configuration Loader (``credit_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into the typed
``credit_config.schema`` dataclasses.  Runtime callers go through
``credit_config.get_active_config()``; this module is the parsing layer
behind it.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError`` from the schema dataclasses.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from credit_config.schema import (
    InvoicingSettings,
    KernelConfig,
    LedgerSettings,
    TransactionSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from YAML.  Floats are accepted only via their repr."""
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{field_name}: cannot parse decimal from {value!r}") from exc


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay ``override`` on ``base`` (override wins)."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_kernel_config(data: dict[str, Any]) -> KernelConfig:
    """
    Parse a ``KernelConfig`` from a dict.

    Preconditions:
        - ``data`` contains a ``ledger.database_url`` entry.
    Raises:
        KeyError: if required keys are missing.
        ValueError: if values are out of range.
    """
    ledger_data = data["ledger"]
    tx_data = data.get("transactions", {}) or {}
    inv_data = data.get("invoicing", {}) or {}
    log_data = data.get("logging", {}) or {}

    deadline = tx_data.get("default_deadline_seconds")

    return KernelConfig(
        ledger=LedgerSettings(
            database_url=str(ledger_data["database_url"]),
            echo_sql=bool(ledger_data.get("echo_sql", False)),
        ),
        transactions=TransactionSettings(
            max_attempts=int(tx_data.get("max_attempts", 5)),
            retry_backoff_seconds=float(tx_data.get("retry_backoff_seconds", 0.05)),
            default_deadline_seconds=float(deadline) if deadline is not None else None,
        ),
        invoicing=InvoicingSettings(
            amount_epsilon=parse_decimal(
                inv_data.get("amount_epsilon", "0.01"), "invoicing.amount_epsilon"
            ),
        ),
        log_level=str(log_data.get("level", "INFO")).upper(),
    )


def load_config(
    path: Path | None = None,
    database_url: str | None = None,
) -> KernelConfig:
    """
    Load the packaged defaults, overlay ``path`` (if given), then apply an
    explicit ``database_url`` override.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge_dicts(data, load_yaml_file(path))
    if database_url:
        data = merge_dicts(data, {"ledger": {"database_url": database_url}})
    return parse_kernel_config(data)


def compute_checksum(config: KernelConfig) -> str:
    """
    Compute SHA-256 checksum of the canonical JSON form of ``config``.

    Identical configurations always produce identical checksums.
    """
    canonical = json.dumps(asdict(config), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
