"""
Configuration schema.

Frozen dataclasses the loader parses YAML into.  Values are plain strings
here; ``bizbooks_config.bridges`` turns them into kernel and engine types.
"""

from __future__ import annotations

from dataclasses import dataclass

from bizbooks_kernel.exceptions import ConfigurationError

# Posting roles document posting needs an account code for.
REQUIRED_POSTING_ROLES: tuple[str, ...] = (
    "cash",
    "receivable",
    "inventory",
    "payable",
    "sales",
    "cogs",
    "cgst_output",
    "sgst_output",
    "igst_output",
    "vat_output",
)


@dataclass(frozen=True)
class AccountDef:
    """One chart-of-accounts entry."""

    code: str
    name: str
    account_type: str
    sub_type: str | None = None
    parent_code: str | None = None
    is_system: bool = False


@dataclass(frozen=True)
class SeriesDef:
    key: str
    prefix: str
    bucket: str = "global"


@dataclass(frozen=True)
class TaxProfileDef:
    name: str
    scheme: str = "NONE"
    enabled: bool = False
    region: str | None = None
    registration_id: str | None = None


@dataclass(frozen=True)
class BizbooksConfiguration:
    """
    A complete, validated configuration document.

    Mappings are stored as tuples of pairs so the object stays hashable
    and immutable.
    """

    chart_of_accounts: tuple[AccountDef, ...]
    series: tuple[SeriesDef, ...]
    posting_accounts: tuple[tuple[str, str], ...]
    control_accounts: tuple[tuple[str, str], ...]
    tax_profiles: tuple[TaxProfileDef, ...] = ()
    source: str | None = None
    checksum: str = ""

    def account(self, code: str) -> AccountDef:
        for account in self.chart_of_accounts:
            if account.code == code:
                return account
        raise ConfigurationError(f"Account {code} is not in the chart of accounts", self.source)

    def posting_account(self, role: str) -> str:
        """Account code bound to a posting role."""
        for name, code in self.posting_accounts:
            if name == role:
                return code
        raise ConfigurationError(f"No posting account configured for role '{role}'", self.source)

    def control_account_for(self, counterparty_kind: str) -> str:
        kind = str(getattr(counterparty_kind, "value", counterparty_kind))
        for name, code in self.control_accounts:
            if name == kind:
                return code
        raise ConfigurationError(f"No control account configured for {kind}", self.source)

    def series_def(self, key: str) -> SeriesDef:
        for series in self.series:
            if series.key == key:
                return series
        raise ConfigurationError(f"No document series configured for {key}", self.source)

    def tax_profile(self, name: str) -> TaxProfileDef:
        for profile in self.tax_profiles:
            if profile.name == name:
                return profile
        raise ConfigurationError(f"Unknown tax profile '{name}'", self.source)
