"""
Configuration Loader (``bizbooks_config.loader``).

Responsibility
--------------
Loads a YAML document and parses it into ``bizbooks_config.schema``
dataclasses, validating references on the way.  Callers use
``bizbooks_config.get_active_config()``; this module is its machinery.

Invariants enforced
-------------------
* Every parse or reference error raises ``ConfigurationError`` naming the
  offending key and the source file.
* Account codes are unique; every ``parent`` names an account defined in
  the same document with the same type.
* Every required posting role and every control account resolves to a
  defined account.
* ``compute_checksum`` is a deterministic SHA-256 over the parsed data.

Failure modes
-------------
* Missing file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` chained from ``yaml.YAMLError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from bizbooks_config.schema import (
    REQUIRED_POSTING_ROLES,
    AccountDef,
    BizbooksConfiguration,
    SeriesDef,
    TaxProfileDef,
)
from bizbooks_kernel.exceptions import ConfigurationError

_ACCOUNT_TYPES = frozenset({"ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE"})
_BUCKETS = frozenset({"global", "daily"})
_SCHEMES = frozenset({"GST", "VAT", "NONE"})
_COUNTERPARTY_KINDS = frozenset({"CUSTOMER", "SUPPLIER", "CASH_BANK"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: missing file, invalid YAML, or a top level
            that is not a mapping.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}", str(path)) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML: {exc}", str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("Top level of the configuration must be a mapping", str(path))
    return data


def _require(data: dict[str, Any], key: str, where: str, source: str | None) -> Any:
    if key not in data or data[key] in (None, ""):
        raise ConfigurationError(f"{where}: missing required key '{key}'", source)
    return data[key]


def parse_account(data: dict[str, Any], source: str | None = None) -> AccountDef:
    if not isinstance(data, dict):
        raise ConfigurationError(f"chart_of_accounts entry must be a mapping: {data!r}", source)
    code = str(_require(data, "code", "chart_of_accounts entry", source))
    account_type = str(_require(data, "type", f"account {code}", source)).upper()
    if account_type not in _ACCOUNT_TYPES:
        raise ConfigurationError(f"account {code}: unknown type '{account_type}'", source)
    parent = data.get("parent")
    return AccountDef(
        code=code,
        name=str(_require(data, "name", f"account {code}", source)),
        account_type=account_type,
        sub_type=data.get("sub_type"),
        parent_code=str(parent) if parent is not None else None,
        is_system=bool(data.get("system", False)),
    )


def parse_series(key: str, data: dict[str, Any], source: str | None = None) -> SeriesDef:
    if not isinstance(data, dict):
        raise ConfigurationError(f"series {key} must be a mapping", source)
    bucket = str(data.get("bucket", "global")).lower()
    if bucket not in _BUCKETS:
        raise ConfigurationError(f"series {key}: bucket must be global or daily, got '{bucket}'", source)
    return SeriesDef(
        key=str(key),
        prefix=str(_require(data, "prefix", f"series {key}", source)),
        bucket=bucket,
    )


def parse_tax_profile(name: str, data: dict[str, Any], source: str | None = None) -> TaxProfileDef:
    if not isinstance(data, dict):
        raise ConfigurationError(f"tax profile {name} must be a mapping", source)
    scheme = str(data.get("scheme", "NONE")).upper()
    if scheme not in _SCHEMES:
        raise ConfigurationError(f"tax profile {name}: unknown scheme '{scheme}'", source)
    region = data.get("region")
    enabled = bool(data.get("enabled", False))
    if enabled and scheme != "NONE" and region is None:
        raise ConfigurationError(f"tax profile {name}: enabled {scheme} needs a region", source)
    return TaxProfileDef(
        name=str(name),
        scheme=scheme,
        enabled=enabled,
        region=str(region) if region is not None else None,
        registration_id=data.get("registration_id"),
    )


def _validate_chart(accounts: list[AccountDef], source: str | None) -> dict[str, AccountDef]:
    by_code: dict[str, AccountDef] = {}
    for account in accounts:
        if account.code in by_code:
            raise ConfigurationError(f"Duplicate account code {account.code}", source)
        by_code[account.code] = account
    for account in accounts:
        if account.parent_code is None:
            continue
        parent = by_code.get(account.parent_code)
        if parent is None:
            raise ConfigurationError(
                f"account {account.code}: parent {account.parent_code} is not defined", source
            )
        if parent.account_type != account.account_type:
            raise ConfigurationError(
                f"account {account.code} ({account.account_type}) cannot sit under "
                f"{parent.code} ({parent.account_type})",
                source,
            )
    return by_code


def parse_configuration(data: dict[str, Any], source: str | None = None) -> BizbooksConfiguration:
    """Parse and cross-validate a whole configuration document."""
    raw_accounts = data.get("chart_of_accounts") or []
    if not isinstance(raw_accounts, list):
        raise ConfigurationError("chart_of_accounts must be a list", source)
    accounts = [parse_account(a, source) for a in raw_accounts]
    by_code = _validate_chart(accounts, source)

    raw_series = data.get("series") or {}
    if not isinstance(raw_series, dict):
        raise ConfigurationError("series must be a mapping", source)
    series = [parse_series(k, v, source) for k, v in raw_series.items()]

    posting = data.get("posting_accounts") or {}
    if not isinstance(posting, dict):
        raise ConfigurationError("posting_accounts must be a mapping", source)
    posting = {str(k): str(v) for k, v in posting.items()}
    for role in REQUIRED_POSTING_ROLES:
        if role not in posting:
            raise ConfigurationError(f"posting_accounts: missing role '{role}'", source)
    for role, code in posting.items():
        if code not in by_code:
            raise ConfigurationError(f"posting_accounts.{role}: account {code} is not defined", source)

    control = data.get("control_accounts") or {}
    if not isinstance(control, dict):
        raise ConfigurationError("control_accounts must be a mapping", source)
    control = {str(k).upper(): str(v) for k, v in control.items()}
    for kind, code in control.items():
        if kind not in _COUNTERPARTY_KINDS:
            raise ConfigurationError(f"control_accounts: unknown counterparty kind '{kind}'", source)
        if code not in by_code:
            raise ConfigurationError(f"control_accounts.{kind}: account {code} is not defined", source)

    raw_profiles = data.get("tax_profiles") or {}
    if not isinstance(raw_profiles, dict):
        raise ConfigurationError("tax_profiles must be a mapping", source)
    profiles = [parse_tax_profile(k, v, source) for k, v in raw_profiles.items()]

    return BizbooksConfiguration(
        chart_of_accounts=tuple(accounts),
        series=tuple(series),
        posting_accounts=tuple(sorted(posting.items())),
        control_accounts=tuple(sorted(control.items())),
        tax_profiles=tuple(profiles),
        source=source,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the document in canonical JSON form."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_configuration(path: Path) -> BizbooksConfiguration:
    return parse_configuration(load_yaml_file(path), source=str(path))
