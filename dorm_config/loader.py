"""
Configuration Loader (``dorm_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses
of ``dorm_config.schema``.  The single public entry point for runtime
config is ``dorm_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` (bad values) or ``KeyError`` (missing
  required keys) with descriptive messages.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  canonical document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from dorm_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LockingConfig,
    NotificationConfig,
    RetryPolicy,
)
from dorm_ledger.domain.permissions import Permission, Role

AUDIT_SINKS = frozenset({"database", "log"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _positive(value: Any, name: str, kind: type = int) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if kind is int and not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return kind(value)


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    url = data["url"]
    if not isinstance(url, str) or not url.strip():
        raise ValueError("database.url must be a non-empty string")
    return DatabaseConfig(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=_positive(data.get("pool_size", 20), "database.pool_size"),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=_positive(data.get("pool_timeout", 30), "database.pool_timeout"),
        pool_recycle=int(data.get("pool_recycle", 1800)),
    )


def parse_retry(data: dict[str, Any]) -> RetryPolicy:
    base = _positive(data.get("base_backoff_seconds", 0.02), "retry.base_backoff_seconds", float)
    cap = _positive(data.get("max_backoff_seconds", 0.5), "retry.max_backoff_seconds", float)
    if cap < base:
        raise ValueError(
            f"retry.max_backoff_seconds ({cap}) must be >= base_backoff_seconds ({base})"
        )
    return RetryPolicy(
        max_attempts=_positive(data.get("max_attempts", 5), "retry.max_attempts"),
        base_backoff_seconds=base,
        max_backoff_seconds=cap,
    )


def parse_locking(data: dict[str, Any]) -> LockingConfig:
    return LockingConfig(
        lock_timeout_seconds=_positive(
            data.get("lock_timeout_seconds", 5.0), "locking.lock_timeout_seconds", float
        ),
    )


def parse_notifications(data: dict[str, Any]) -> NotificationConfig:
    return NotificationConfig(
        enabled=bool(data.get("enabled", True)),
        async_delivery=bool(data.get("async_delivery", True)),
        max_workers=_positive(data.get("max_workers", 4), "notifications.max_workers"),
    )


def parse_role_grants(data: dict[str, Any]) -> dict[str, tuple[str, ...]]:
    """
    Parse ``roles:`` into role name -> permission strings.

    Raises:
        ValueError: unknown role or permission.
    """
    known_roles = {r.value for r in Role}
    known_permissions = {p.value for p in Permission}
    grants: dict[str, tuple[str, ...]] = {}
    for role, permissions in data.items():
        if role not in known_roles:
            raise ValueError(f"Unknown role {role!r} in roles")
        if permissions == "*":
            grants[role] = tuple(sorted(known_permissions))
            continue
        unknown = set(permissions or ()) - known_permissions
        if unknown:
            raise ValueError(f"Unknown permissions for role {role}: {sorted(unknown)}")
        grants[role] = tuple(sorted(set(permissions or ())))
    return grants


def parse_ledger_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a full configuration document.

    Raises:
        KeyError: if ``config_id`` or ``database.url`` is missing.
        ValueError: if a value is out of range.
    """
    audit_sink = data.get("audit", {}).get("sink", "database")
    if audit_sink not in AUDIT_SINKS:
        raise ValueError(f"audit.sink must be one of {sorted(AUDIT_SINKS)}, got {audit_sink!r}")
    currency = data.get("currency", "IQD")
    if not isinstance(currency, str) or len(currency) != 3:
        raise ValueError(f"currency must be a 3-letter code, got {currency!r}")
    return LedgerConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        currency=currency.upper(),
        database=parse_database(data["database"]),
        retry=parse_retry(data.get("retry", {})),
        locking=parse_locking(data.get("locking", {})),
        notifications=parse_notifications(data.get("notifications", {})),
        audit_sink=audit_sink,
        role_grants=parse_role_grants(data.get("roles", {})),
        checksum=compute_checksum(data),
    )
