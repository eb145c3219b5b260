"""
bizbooks_services.reconciliation_service -- Subledger vs. GL control
account checks.

Responsibility:
    Read the GL balance of a control account (e.g. 1300 Accounts
    Receivable), compare it with the subledger total, and report the
    difference.  Breaks are reported, never auto-corrected.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    LedgerSelector supplies the GL side, SubledgerService the subledger
    side, bizbooks_engines.reconciliation the comparison.

Invariants enforced:
    - The GL side is expressed in the account's natural sign (credit-normal
      payables come out positive) so it is comparable with counterparty
      balances.
    - reconcile_all() is a read path: a failing control account is recorded
      in the report and the others are still checked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from bizbooks_config import BizbooksConfiguration, get_active_config
from bizbooks_engines.reconciliation import ReconciliationResult, reconcile_control_account
from bizbooks_kernel.domain.clock import Clock
from bizbooks_kernel.exceptions import AccountNotFoundError, BizbooksError
from bizbooks_kernel.logging_config import get_logger
from bizbooks_kernel.models.account import Account
from bizbooks_kernel.models.counterparty import CounterpartyKind
from bizbooks_kernel.selectors.ledger_selector import LedgerSelector
from bizbooks_kernel.services.base import BaseService
from bizbooks_services.subledger_service import SubledgerService

logger = get_logger("services.reconciliation")

@dataclass(frozen=True)
class ReconciliationReport:
    """Results per counterparty kind plus the kinds that could not be checked."""

    results: dict[str, ReconciliationResult] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def is_reconciled(self) -> bool:
        return not self.failures and all(r.is_reconciled for r in self.results.values())

    @property
    def breaks(self) -> list[ReconciliationResult]:
        return [r for r in self.results.values() if r.is_break]


class ReconciliationService(BaseService[Account]):
    """
    Control-account reconciliation for one organization at a time.

    Counterparty kinds map to GL accounts through ``control_accounts`` in
    the configuration; the active configuration is loaded when none is
    given.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BizbooksConfiguration | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or get_active_config()
        self._control_accounts = dict(self.config.control_accounts)
        self._ledger = LedgerSelector(session)
        self._subledger = SubledgerService(session, clock)

    def ledger_balance(self, organization_id: UUID, control_account_code: str) -> Decimal:
        """GL balance of the account in its natural sign."""
        balance = self._ledger.balance_by_code(organization_id, control_account_code)
        account = self.session.get(Account, balance.account_id)
        return balance.balance if account.is_debit_normal else -balance.balance

    def reconcile(
        self,
        organization_id: UUID,
        control_account_code: str,
        subledger_total,
    ) -> ReconciliationResult:
        """Compare ``subledger_total`` with the control account balance."""
        ledger = self.ledger_balance(organization_id, control_account_code)
        return reconcile_control_account(control_account_code, ledger, subledger_total)

    def control_account_for(self, kind: CounterpartyKind | str) -> str:
        kind = CounterpartyKind(kind)
        code = self._control_accounts.get(kind.value)
        if code is None:
            raise AccountNotFoundError(f"control account for {kind.value}")
        return code

    def reconcile_kind(
        self,
        organization_id: UUID,
        kind: CounterpartyKind | str,
    ) -> ReconciliationResult:
        """Reconcile all counterparties of ``kind`` against their control account."""
        code = self.control_account_for(kind)
        total = self._subledger.subledger_total(organization_id, kind)
        return self.reconcile(organization_id, code, total)

    def reconcile_all(self, organization_id: UUID) -> ReconciliationReport:
        """
        Reconcile every configured counterparty kind.

        A kind that cannot be checked (missing account, bad mapping) is
        reported under ``failures`` and does not stop the others.
        """
        report = ReconciliationReport()
        for kind in sorted(self._control_accounts):
            try:
                report.results[kind] = self.reconcile_kind(organization_id, kind)
            except (BizbooksError, ValueError) as exc:
                logger.warning(
                    "reconciliation_check_failed",
                    extra={"counterparty_kind": kind, "error": str(exc)},
                )
                report.failures[kind] = str(exc)
        logger.info(
            "reconciliation_completed",
            extra={
                "checked": len(report.results),
                "breaks": len(report.breaks),
                "failures": len(report.failures),
            },
        )
        return report
