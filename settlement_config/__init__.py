"""
settlement_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_settings()`` is the only way services obtain payroll constants,
    commission policy and the statutory bracket tables.  YAML loading is an
    implementation detail of this package.

Architecture position:
    Configuration -- sits above ``settlement_kernel`` and below
    ``settlement_modules``.  The kernel never imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- malformed values or missing keys.

Audit relevance:
    Every load emits a ``settlement_config_loaded`` log entry with the
    config_id, version and checksum, tying each calculation to the exact
    configuration document that governed it.
"""

from __future__ import annotations

import os
from pathlib import Path

from settlement_config.loader import load_yaml_file, parse_settings
from settlement_config.schema import (
    CommissionSettings,
    EngineSettings,
    PayrollSettings,
    TaxBracketDef,
    TaxTableDef,
)
from settlement_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

# Environment variable overriding the configured database URL
DATABASE_URL_ENV = "DATABASE_URL"


def get_settings(config_path: Path | None = None) -> EngineSettings:
    """Load and validate the engine settings.

    Args:
        config_path: YAML document to load; defaults to the shipped
            ``sets/default.yaml``.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)
    settings = parse_settings(data, database_url=os.environ.get(DATABASE_URL_ENV))

    logger.info(
        "settlement_config_loaded",
        extra={
            "config_id": settings.config_id,
            "version": settings.version,
            "checksum": settings.checksum,
            "source": str(path),
            "tax_table_count": len(settings.tax_tables),
        },
    )
    return settings


__all__ = [
    "CommissionSettings",
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "PayrollSettings",
    "TaxBracketDef",
    "TaxTableDef",
    "get_settings",
]
