"""
Tests for the database engine helpers.

Verifies:
- Accessors refuse to run before initialization
- Accessors share the initialized engine; SQLite enforces foreign keys
- Timestamps read back timezone-aware; naive ones are refused
"""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import StatementError

from credit_kernel.db import engine as db_engine_module
from credit_kernel.db.engine import (
    get_engine,
    get_session_factory,
    reset_engine,
)
from credit_kernel.models.client_account import ClientAccount


def _account(clock, name="Acme"):
    now = clock.now()
    return ClientAccount(
        provider_id="provider-1",
        name=name,
        credit_limit=Decimal("100"),
        status="active",
        revision=1,
        created_at=now,
        updated_at=now,
    )


class TestUninitialized:

    @pytest.fixture
    def no_engine(self, monkeypatch):
        monkeypatch.setattr(db_engine_module, "_engine", None)
        monkeypatch.setattr(db_engine_module, "_SessionFactory", None)

    def test_accessors_raise(self, no_engine):
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_reset_is_safe(self, no_engine):
        reset_engine()


class TestInitialized:

    def test_factory_bound_to_engine(self, db_engine):
        assert get_engine() is db_engine
        with get_session_factory()() as s:
            assert s.get_bind() is db_engine

    def test_sqlite_foreign_keys_enforced(self, db_engine):
        if db_engine.dialect.name != "sqlite":
            pytest.skip("SQLite connection hook")
        with db_engine.connect() as conn:
            assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1


class TestTimestamps:

    def test_aware_round_trip(self, session_factory, deterministic_clock):
        with session_factory() as s:
            account = _account(deterministic_clock)
            s.add(account)
            s.commit()
            account_id = account.id

        with session_factory() as s:
            loaded = s.get(ClientAccount, account_id)
            assert loaded.created_at.tzinfo is not None
            assert loaded.created_at == deterministic_clock.now()

    def test_naive_refused(self, session_factory, deterministic_clock):
        account = _account(deterministic_clock)
        account.created_at = datetime(2024, 1, 1, 12, 0)
        with session_factory() as s:
            s.add(account)
            with pytest.raises(StatementError):
                s.flush()
