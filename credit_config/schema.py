"""
Kernel configuration schema.

Frozen dataclasses describing the runtime settings of the credit kernel.
YAML files are parsed into these types by ``credit_config.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class LedgerSettings:
    """Where the Ledger Store lives."""

    database_url: str
    echo_sql: bool = False


@dataclass(frozen=True)
class TransactionSettings:
    """Retry and deadline policy for every state-mutating operation."""

    max_attempts: int = 5
    retry_backoff_seconds: float = 0.05
    default_deadline_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be >= 0")
        if self.default_deadline_seconds is not None and self.default_deadline_seconds <= 0:
            raise ValueError("default_deadline_seconds must be positive when set")


@dataclass(frozen=True)
class InvoicingSettings:
    """Invoice arithmetic tolerances."""

    amount_epsilon: Decimal = Decimal("0.01")

    def __post_init__(self) -> None:
        if self.amount_epsilon < 0:
            raise ValueError("amount_epsilon must be >= 0")


@dataclass(frozen=True)
class KernelConfig:
    """Complete runtime configuration for the credit kernel."""

    ledger: LedgerSettings
    transactions: TransactionSettings
    invoicing: InvoicingSettings
    log_level: str = "INFO"
