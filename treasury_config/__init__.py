"""
treasury_config -- single public entrypoint for treasury configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration.  This package sits above ``treasury_kernel`` and below
    ``treasury_services``.  The kernel MUST NEVER import from
    ``treasury_config``; the orchestrator passes config values into kernel
    services as plain constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- the named configuration file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``treasury_config_loaded`` log entry with the config_id, source path
    and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from treasury_config.loader import compute_checksum, load_yaml_file
from treasury_config.schema import (
    ALL_TREASURY_ACTIONS,
    DEFAULT_ROLE_PERMISSIONS,
    TreasuryConfig,
)

_logger = logging.getLogger("treasury_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_DEFAULT_CONFIG_FILE = _DEFAULT_CONFIG_DIR / "default.yaml"

CONFIG_ENV_VAR = "TREASURY_CONFIG"


def get_active_config(config_path: Path | str | None = None) -> TreasuryConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: ``config_path``, then the ``TREASURY_CONFIG``
    environment variable, then ``treasury_config/sets/default.yaml``.

    Returns:
        TreasuryConfig -- validated, frozen.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_FILE)

    data = load_yaml_file(path)
    checksum = compute_checksum(data)
    values = dict(data)
    config_id = str(values.pop("config_id", path.stem))

    config = TreasuryConfig.from_dict(values, config_id=config_id, checksum=checksum)

    _logger.info(
        "treasury_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_path": str(path),
            "checksum": checksum,
            "roles": sorted(config.role_permissions),
        },
    )
    return config


__all__ = [
    "ALL_TREASURY_ACTIONS",
    "CONFIG_ENV_VAR",
    "DEFAULT_ROLE_PERMISSIONS",
    "TreasuryConfig",
    "get_active_config",
]
