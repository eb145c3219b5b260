"""
Config -> Kernel/Engine Bridges.

Convert configuration definitions into the types the kernel and engines
take.  They live here (the producer) because the kernel never imports
bizbooks_config.

Usage:
    from bizbooks_config import get_active_config
    from bizbooks_config.bridges import account_seeds, document_series

    config = get_active_config()
    AccountService(session).seed_chart_of_accounts(org_id, actor_id, account_seeds(config))
"""

from __future__ import annotations

from bizbooks_config.schema import BizbooksConfiguration, TaxProfileDef
from bizbooks_engines.tax import TaxProfile, TaxScheme
from bizbooks_kernel.domain.numbering import DocumentSeries, SeriesBucket
from bizbooks_kernel.exceptions import ConfigurationError
from bizbooks_kernel.models.account import AccountType
from bizbooks_kernel.services.account_service import AccountSeed


def account_seeds(config: BizbooksConfiguration) -> list[AccountSeed]:
    return [
        AccountSeed(
            code=a.code,
            name=a.name,
            account_type=AccountType(a.account_type),
            sub_type=a.sub_type,
            parent_code=a.parent_code,
            is_system=a.is_system,
        )
        for a in config.chart_of_accounts
    ]


def document_series(config: BizbooksConfiguration) -> dict[str, DocumentSeries]:
    """Series keyed by document kind (INVOICE, JOURNAL, ...)."""
    result: dict[str, DocumentSeries] = {}
    for s in config.series:
        try:
            result[s.key] = DocumentSeries(s.key, s.prefix, SeriesBucket(s.bucket))
        except ValueError as exc:
            raise ConfigurationError(f"series {s.key}: {exc}", config.source) from exc
    return result


def to_tax_profile(definition: TaxProfileDef) -> TaxProfile:
    return TaxProfile(
        scheme=TaxScheme(definition.scheme),
        enabled=definition.enabled,
        region=definition.region,
        registration_id=definition.registration_id,
    )
