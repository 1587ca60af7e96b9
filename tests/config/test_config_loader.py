"""
Tests for configuration loading.

Verifies:
- The shipped default set loads and matches the built-in role grants
- Database URL override from the environment
- Deterministic checksums
- Validation errors for bad values, unknown roles and permissions
- DormLedger.from_config wiring
"""

from pathlib import Path
from uuid import uuid4

import pytest
import yaml

from dorm_config import DATABASE_URL_ENV, get_active_config
from dorm_config.loader import compute_checksum, parse_ledger_config
from dorm_ledger.db.engine import create_tables, reset_engine
from dorm_ledger.domain.permissions import DEFAULT_ROLE_GRANTS, Permission, Role
from dorm_ledger.services.ledger_api import DormLedger, grants_from_config

MINIMAL = {
    "config_id": "test",
    "database": {"url": "sqlite:///ledger.db"},
}


def _write_set(directory: Path, name: str, data: dict) -> Path:
    path = directory / f"{name}.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def _with(**overrides) -> dict:
    return {**MINIMAL, **overrides}


class TestDefaultSet:

    def test_loads(self):
        config = get_active_config(environ={})
        assert config.config_id == "dorm-ledger-default"
        assert config.currency == "IQD"
        assert config.audit_sink == "database"
        assert config.database.url.startswith("postgresql://")
        assert config.retry.max_attempts >= 1

    def test_grants_match_built_in_defaults(self):
        config = get_active_config(environ={})
        assert grants_from_config(config.role_grants) == dict(DEFAULT_ROLE_GRANTS)

    def test_database_url_override(self):
        config = get_active_config(environ={DATABASE_URL_ENV: "sqlite:///other.db"})
        assert config.database.url == "sqlite:///other.db"

    def test_load_is_logged(self, captured_logs):
        config = get_active_config(environ={})
        loaded = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert loaded[-1]["checksum"] == config.checksum
        assert loaded[-1]["database_url_overridden"] is False

    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config("nope", config_dir=tmp_path)


class TestParsing:

    def test_defaults_fill_in(self):
        config = parse_ledger_config(MINIMAL)
        assert config.version == 1
        assert config.retry.max_attempts == 5
        assert config.locking.lock_timeout_seconds == 5.0
        assert config.notifications.enabled is True
        assert config.role_grants == {}

    def test_checksum_is_deterministic(self):
        reordered = {"database": MINIMAL["database"], "config_id": "test"}
        assert compute_checksum(MINIMAL) == compute_checksum(reordered)
        assert compute_checksum(MINIMAL) != compute_checksum(_with(version=2))

    def test_currency_upper_cased(self):
        assert parse_ledger_config(_with(currency="usd")).currency == "USD"

    def test_missing_config_id(self):
        with pytest.raises(KeyError):
            parse_ledger_config({"database": {"url": "sqlite://"}})

    def test_missing_database_url(self):
        with pytest.raises(KeyError):
            parse_ledger_config({"config_id": "x", "database": {}})

    @pytest.mark.parametrize("overrides", [
        {"currency": "DINAR"},
        {"audit": {"sink": "kafka"}},
        {"database": {"url": "  "}},
        {"database": {"url": "sqlite://", "pool_size": 0}},
        {"retry": {"max_attempts": 0}},
        {"retry": {"max_attempts": True}},
        {"retry": {"max_attempts": 2.5}},
        {"retry": {"base_backoff_seconds": 1.0, "max_backoff_seconds": 0.5}},
        {"locking": {"lock_timeout_seconds": -1}},
        {"notifications": {"max_workers": "four"}},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            parse_ledger_config(_with(**overrides))

    def test_unknown_role(self):
        with pytest.raises(ValueError, match="Unknown role"):
            parse_ledger_config(_with(roles={"JANITOR": ["payments:read"]}))

    def test_unknown_permission(self):
        with pytest.raises(ValueError, match="Unknown permissions"):
            parse_ledger_config(_with(roles={"STUDENT": ["payments:delete"]}))

    def test_wildcard_grants_everything(self):
        config = parse_ledger_config(_with(roles={"ADMIN": "*"}))
        grants = grants_from_config(config.role_grants)
        assert grants[Role.ADMIN] == frozenset(Permission)

    def test_top_level_must_be_mapping(self, tmp_path):
        (tmp_path / "list.yaml").write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            get_active_config("list", config_dir=tmp_path, environ={})


class TestFromConfig:

    def test_builds_ledger(self, tmp_path, captured_logs):
        _write_set(tmp_path, "local", _with(
            database={"url": f"sqlite:///{tmp_path / 'ledger.db'}", "pool_size": 2},
            currency="usd",
            audit={"sink": "log"},
            notifications={"async_delivery": False},
            roles={"STUDENT": ["payments:read", "payments:create"]},
        ))
        config = get_active_config("local", config_dir=tmp_path, environ={})

        ledger = DormLedger.from_config(config)
        try:
            create_tables()
            assert ledger.currency == "USD"
            assert ledger.available_balance() == 0
            actor = ledger.actor(uuid4(), ["STUDENT"])
            assert actor.has(Permission.PAYMENTS_CREATE)
            assert not ledger.actor(uuid4(), ["ADMIN"]).permissions
        finally:
            ledger.close()
            reset_engine()

        started = [r for r in captured_logs() if r["message"] == "ledger_started"]
        assert started[0]["audit_sink"] == "log"
        assert started[0]["async_notifications"] is False
