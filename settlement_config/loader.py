"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the frozen
``settlement_config.schema`` dataclasses.  Runtime callers go through
``settlement_config.get_settings()``; this module is its implementation.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required bracket fields.
* Decimal values never pass through ``float`` (quoted YAML scalars are
  parsed directly; unquoted floats are converted via ``repr``).
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid date format  -> ``ValueError`` from ``date.fromisoformat``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    CommissionSettings,
    EngineSettings,
    PayrollSettings,
    TaxBracketDef,
    TaxTableDef,
)
from settlement_kernel.domain.money import to_decimal


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_payroll(data: dict[str, Any]) -> PayrollSettings:
    """Parse payroll constants; omitted keys keep their defaults."""
    defaults = PayrollSettings()
    return PayrollSettings(
        monthly_workload_hours=to_decimal(
            data.get("monthly_workload_hours", defaults.monthly_workload_hours)
        ),
        days_per_month=to_decimal(data.get("days_per_month", defaults.days_per_month)),
        overtime_multiplier=to_decimal(
            data.get("overtime_multiplier", defaults.overtime_multiplier)
        ),
        dependent_deduction=to_decimal(
            data.get("dependent_deduction", defaults.dependent_deduction)
        ),
        employer_social_rate=to_decimal(
            data.get("employer_social_rate", defaults.employer_social_rate)
        ),
        fgts_rate=to_decimal(data.get("fgts_rate", defaults.fgts_rate)),
        slip_directory=str(data.get("slip_directory", defaults.slip_directory)),
    )


def parse_commission(data: dict[str, Any]) -> CommissionSettings:
    """Parse commission policy."""
    return CommissionSettings(
        non_positive_profit=data.get("non_positive_profit", "floor_and_flag"),
    )


def parse_tax_table(data: dict[str, Any]) -> TaxTableDef:
    """
    Parse one bracket window.

    Raises:
        KeyError: if tax_type, effective_from or a bracket field is missing.
    """
    brackets = tuple(
        TaxBracketDef(
            range_start=to_decimal(b["range_start"]),
            range_end=to_decimal(b["range_end"]) if b.get("range_end") is not None else None,
            rate=to_decimal(b["rate"]),
            deduction=to_decimal(b.get("deduction", "0")),
            sort_order=int(b.get("sort_order", index + 1)),
        )
        for index, b in enumerate(data["brackets"])
    )
    return TaxTableDef(
        tax_type=data["tax_type"],
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        brackets=brackets,
    )


def parse_settings(data: dict[str, Any], database_url: str | None = None) -> EngineSettings:
    """Assemble ``EngineSettings`` from a parsed document."""
    return EngineSettings(
        config_id=data.get("config_id", "settlement"),
        version=int(data.get("version", 1)),
        database_url=database_url or data.get("database", {}).get("url", "sqlite://"),
        payroll=parse_payroll(data.get("payroll", {})),
        commission=parse_commission(data.get("commission", {})),
        tax_tables=tuple(parse_tax_table(t) for t in data.get("tax_tables", [])),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
