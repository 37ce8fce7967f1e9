"""
credit_config -- single public entrypoint for kernel configuration.

Responsibility:
    Provides the ONLY way to obtain runtime configuration through
    ``get_active_config()``.  Services receive the resolved
    ``KernelConfig`` by injection and never read files or environment
    variables themselves.

Resolution order:
    1. ``credit_config/defaults.yaml`` (shipped with the package)
    2. the file named by ``CREDIT_KERNEL_CONFIG`` (if set)
    3. ``DATABASE_URL`` (if set) replaces ``ledger.database_url``

Audit relevance:
    Every resolution emits a ``credit_config_loaded`` log entry with the
    configuration checksum.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from credit_config.loader import compute_checksum, load_config
from credit_config.schema import (
    InvoicingSettings,
    KernelConfig,
    LedgerSettings,
    TransactionSettings,
)
from credit_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_PATH_ENV = "CREDIT_KERNEL_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"

_active: KernelConfig | None = None
_lock = threading.Lock()


def get_active_config() -> KernelConfig:
    """Resolve (once) and return the active configuration."""
    global _active
    with _lock:
        if _active is None:
            override = os.environ.get(CONFIG_PATH_ENV)
            _active = load_config(
                Path(override) if override else None,
                database_url=os.environ.get(DATABASE_URL_ENV),
            )
            _logger.info(
                "credit_config_loaded",
                extra={
                    "config_path": override,
                    "checksum": compute_checksum(_active),
                    "max_attempts": _active.transactions.max_attempts,
                },
            )
        return _active


def reset_active_config() -> None:
    """Forget the cached configuration. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "InvoicingSettings",
    "KernelConfig",
    "LedgerSettings",
    "TransactionSettings",
    "compute_checksum",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
