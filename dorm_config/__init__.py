"""
dorm_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits beside ``dorm_ledger``; the kernel never imports
    from ``dorm_config``.  The ``DormLedger.from_config`` factory is the
    bridge that turns a ``LedgerConfig`` into wired services.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic checksum: the same YAML document always produces the
      same ``LedgerConfig.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ValueError`` -- out-of-range or unknown values.
    - ``KeyError`` -- missing required keys.

Audit relevance:
    Every successful call emits a ``config_loaded`` log entry with the
    config id, version and checksum.
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path

from dorm_config.loader import load_yaml_file, parse_ledger_config
from dorm_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LockingConfig,
    NotificationConfig,
    RetryPolicy,
)
from dorm_ledger.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

DATABASE_URL_ENV = "DORM_LEDGER_DATABASE_URL"


def get_active_config(
    name: str = "default",
    config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        name: Configuration set name; ``<config_dir>/<name>.yaml`` is read.
        config_dir: Override path to the sets directory.
            Defaults to dorm_config/sets/.
        environ: Environment to read overrides from.  Defaults to
            ``os.environ``.  ``DORM_LEDGER_DATABASE_URL`` replaces
            ``database.url``.

    Raises:
        FileNotFoundError: If the set does not exist.
        ValueError: If validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    config = parse_ledger_config(load_yaml_file(path))

    env = os.environ if environ is None else environ
    url_override = env.get(DATABASE_URL_ENV)
    if url_override:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=url_override)
        )

    _logger.info(
        "config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "database_url_overridden": bool(url_override),
            "role_count": len(config.role_grants),
        },
    )
    return config


__all__ = [
    "DATABASE_URL_ENV",
    "DatabaseConfig",
    "LedgerConfig",
    "LockingConfig",
    "NotificationConfig",
    "RetryPolicy",
    "get_active_config",
]
