"""
New-organization bootstrap: seed the chart of accounts from configuration.

Idempotent.  Accounts that already exist (by code) are left alone, so
running it against a live organization only adds what the configuration
gained since.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from bizbooks_config import BizbooksConfiguration, get_active_config
from bizbooks_config.bridges import account_seeds
from bizbooks_kernel.domain.clock import Clock
from bizbooks_kernel.logging_config import LogContext, get_logger
from bizbooks_kernel.models.account import Account
from bizbooks_kernel.services.account_service import AccountService

logger = get_logger("services.organization_setup")


def bootstrap_organization(
    session: Session,
    organization_id: UUID,
    actor_id: UUID,
    config: BizbooksConfiguration | None = None,
    clock: Clock | None = None,
) -> list[Account]:
    """Seed the configured chart of accounts.  Returns the accounts created."""
    config = config or get_active_config()
    with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
        created = AccountService(session, clock).seed_chart_of_accounts(
            organization_id, actor_id, account_seeds(config)
        )
        logger.info(
            "organization_bootstrapped",
            extra={
                "accounts_created": len(created),
                "config_source": config.source,
                "config_checksum": config.checksum,
            },
        )
    return created
