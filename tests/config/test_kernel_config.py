"""
Tests for credit_config loading.

Verifies:
- Packaged defaults parse into KernelConfig
- Override files merge over defaults; DATABASE_URL wins over both
- Out-of-range values are rejected
- Checksums are stable and sensitive to content
- get_active_config honours the environment and caches
"""

from decimal import Decimal

import pytest

import credit_config
from credit_config.loader import (
    compute_checksum,
    load_config,
    merge_dicts,
    parse_kernel_config,
)


class TestDefaults:

    def test_defaults_load(self):
        config = load_config()
        assert config.ledger.database_url == "sqlite:///credit_kernel.db"
        assert config.transactions.max_attempts == 5
        assert config.transactions.default_deadline_seconds is None
        assert config.invoicing.amount_epsilon == Decimal("0.01")
        assert config.log_level == "INFO"

    def test_epsilon_is_decimal(self):
        assert isinstance(load_config().invoicing.amount_epsilon, Decimal)


class TestOverrides:

    def test_override_file_merges(self, tmp_path):
        override = tmp_path / "override.yaml"
        override.write_text(
            "transactions:\n  max_attempts: 9\n  default_deadline_seconds: 2.5\n"
        )
        config = load_config(override)
        assert config.transactions.max_attempts == 9
        assert config.transactions.default_deadline_seconds == 2.5
        # untouched keys keep their defaults
        assert config.transactions.retry_backoff_seconds == 0.05
        assert config.ledger.database_url == "sqlite:///credit_kernel.db"

    def test_database_url_override_wins(self, tmp_path):
        override = tmp_path / "override.yaml"
        override.write_text("ledger:\n  database_url: sqlite:///from_file.db\n")
        config = load_config(override, database_url="postgresql://x/y")
        assert config.ledger.database_url == "postgresql://x/y"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_merge_dicts_is_recursive(self):
        merged = merge_dicts({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}})
        assert merged == {"a": {"b": 1, "c": 3}}


class TestValidation:

    def test_missing_ledger_section(self):
        with pytest.raises(KeyError):
            parse_kernel_config({"transactions": {}})

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            parse_kernel_config(
                {"ledger": {"database_url": "sqlite://"}, "transactions": {"max_attempts": 0}}
            )

    def test_negative_epsilon_rejected(self):
        with pytest.raises(ValueError):
            parse_kernel_config(
                {"ledger": {"database_url": "sqlite://"}, "invoicing": {"amount_epsilon": "-1"}}
            )

    def test_bad_decimal_rejected(self):
        with pytest.raises(ValueError):
            parse_kernel_config(
                {"ledger": {"database_url": "sqlite://"}, "invoicing": {"amount_epsilon": "abc"}}
            )


class TestChecksum:

    def test_identical_configs_match(self):
        assert compute_checksum(load_config()) == compute_checksum(load_config())

    def test_different_configs_differ(self):
        assert compute_checksum(load_config()) != compute_checksum(
            load_config(database_url="sqlite:///other.db")
        )


class TestActiveConfig:

    @pytest.fixture(autouse=True)
    def _reset(self):
        credit_config.reset_active_config()
        yield
        credit_config.reset_active_config()

    def test_environment_overrides(self, tmp_path, monkeypatch):
        override = tmp_path / "env.yaml"
        override.write_text("transactions:\n  max_attempts: 3\n")
        monkeypatch.setenv(credit_config.CONFIG_PATH_ENV, str(override))
        monkeypatch.setenv(credit_config.DATABASE_URL_ENV, "sqlite:///env.db")

        config = credit_config.get_active_config()

        assert config.transactions.max_attempts == 3
        assert config.ledger.database_url == "sqlite:///env.db"

    def test_cached_until_reset(self, monkeypatch):
        monkeypatch.delenv(credit_config.CONFIG_PATH_ENV, raising=False)
        monkeypatch.delenv(credit_config.DATABASE_URL_ENV, raising=False)
        first = credit_config.get_active_config()
        assert credit_config.get_active_config() is first
        credit_config.reset_active_config()
        assert credit_config.get_active_config() is not first
