"""
Runtime settings (``ledger_kernel.config``).

Responsibility
--------------
Loads ``LedgerSettings`` from an optional YAML file and environment
overrides.  Every field has a default, so an empty file (or no file) yields a
working configuration for local runs.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or a non-mapping document  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_PURPOSE_CODES: dict[str, tuple[str, str]] = {
    "AR": ("CARI_AR_CONTROL", "CARI_AR_OFFSET"),
    "AP": ("CARI_AP_CONTROL", "CARI_AP_OFFSET"),
}


@dataclass(frozen=True)
class LedgerSettings:
    """Immutable kernel settings."""

    database_url: str = "sqlite:///ledger.db"
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    lock_timeout_ms: int = 5000
    log_level: str = "INFO"

    draft_namespace: str = "DRAFT"
    fx_rate_type: str = "SPOT"
    amount_scale: int = 6
    rate_scale: int = 10
    balance_epsilon: Decimal = Decimal("0.000001")
    rate_epsilon: Decimal = Decimal("0.0000001")
    journal_no_max_length: int = 40
    purpose_codes: Mapping[str, tuple[str, str]] = field(
        default_factory=lambda: dict(DEFAULT_PURPOSE_CODES)
    )

    def purposes_for(self, direction: str) -> tuple[str, str]:
        """Return ``(control_purpose, offset_purpose)`` for a direction."""
        return self.purpose_codes[str(direction)]


_ENV_OVERRIDES = {
    "DATABASE_URL": ("database_url", str),
    "LEDGER_LOG_LEVEL": ("log_level", str),
    "LEDGER_LOCK_TIMEOUT_MS": ("lock_timeout_ms", int),
}

_DECIMAL_FIELDS = {"balance_epsilon", "rate_epsilon"}


def _coerce(data: dict[str, Any]) -> dict[str, Any]:
    known = {f.name for f in fields(LedgerSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(unknown)}")

    out = dict(data)
    for name in _DECIMAL_FIELDS & out.keys():
        out[name] = Decimal(str(out[name]))
    if "purpose_codes" in out:
        out["purpose_codes"] = {
            str(direction): (str(pair[0]), str(pair[1]))
            for direction, pair in out["purpose_codes"].items()
        }
    return out


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build settings from YAML and the environment.

    ``path`` falls back to ``$LEDGER_CONFIG``; environment variables in
    ``_ENV_OVERRIDES`` win over file values.
    """
    env = os.environ if env is None else env
    path = path or env.get("LEDGER_CONFIG")

    data: dict[str, Any] = {}
    if path:
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        data.update(loaded)

    settings = LedgerSettings(**_coerce(data))

    overrides: dict[str, Any] = {}
    for var, (name, cast) in _ENV_OVERRIDES.items():
        if env.get(var):
            overrides[name] = cast(env[var])
    if overrides:
        settings = replace(settings, **overrides)
    return settings
