"""
LedgerConfig schema.

Typed, frozen view of one YAML configuration set.  The loader parses
``dorm_config/sets/<name>.yaml`` into these types; nothing else in the
system reads the YAML directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for transactions that hit lock contention."""

    max_attempts: int = 5
    base_backoff_seconds: float = 0.02
    max_backoff_seconds: float = 0.5


@dataclass(frozen=True)
class LockingConfig:
    lock_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class NotificationConfig:
    """Post-commit payment confirmations."""

    enabled: bool = True
    async_delivery: bool = True
    max_workers: int = 4


@dataclass(frozen=True)
class LedgerConfig:
    """One complete configuration set.

    ``role_grants`` maps a role name to the permission strings it grants.
    ``checksum`` is the SHA-256 of the canonical source document.
    """

    config_id: str
    version: int
    currency: str
    database: DatabaseConfig
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    locking: LockingConfig = field(default_factory=LockingConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    audit_sink: str = "database"
    role_grants: dict[str, tuple[str, ...]] = field(default_factory=dict)
    checksum: str = ""
