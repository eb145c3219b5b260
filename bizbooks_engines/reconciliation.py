"""
Control-account reconciliation check.

Compares the GL balance of a control account (natural sign: a receivable
or a payable reported as a positive number) with the total of the
subledger balances that should make it up.  A difference beyond 0.01 is
a break.  Breaks are reported, never corrected here.

Usage:
    result = reconcile_control_account("1300", Decimal("1180"), Decimal("1180"))
    result.is_reconciled        # True
    result.raise_for_break()    # no-op when reconciled
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from bizbooks_kernel.domain.money import MONEY_TOLERANCE, to_decimal
from bizbooks_kernel.exceptions import ReconciliationBreakError
from bizbooks_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")


@dataclass(frozen=True)
class ReconciliationResult:
    control_account_code: str
    ledger_balance: Decimal
    subledger_total: Decimal
    tolerance: Decimal = MONEY_TOLERANCE

    @property
    def difference(self) -> Decimal:
        return self.ledger_balance - self.subledger_total

    @property
    def is_reconciled(self) -> bool:
        return abs(self.difference) <= self.tolerance

    @property
    def is_break(self) -> bool:
        return not self.is_reconciled

    def raise_for_break(self) -> None:
        """Raise ReconciliationBreakError if the balances disagree."""
        if self.is_break:
            raise ReconciliationBreakError(
                self.control_account_code,
                str(self.ledger_balance),
                str(self.subledger_total),
                str(self.difference),
            )


def reconcile_control_account(
    control_account_code: str,
    ledger_balance,
    subledger_total,
    tolerance: Decimal = MONEY_TOLERANCE,
) -> ReconciliationResult:
    result = ReconciliationResult(
        control_account_code=control_account_code,
        ledger_balance=to_decimal(ledger_balance, "ledger_balance"),
        subledger_total=to_decimal(subledger_total, "subledger_total"),
        tolerance=tolerance,
    )
    if result.is_break:
        logger.warning("reconciliation_break_detected", extra={
            "control_account_code": control_account_code,
            "ledger_balance": str(result.ledger_balance),
            "subledger_total": str(result.subledger_total),
            "difference": str(result.difference),
        })
    else:
        logger.info("reconciliation_passed", extra={
            "control_account_code": control_account_code,
            "difference": str(result.difference),
        })
    return result
