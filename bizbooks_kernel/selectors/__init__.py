"""Read-only selectors over the ledger."""

from bizbooks_kernel.selectors.ledger_selector import (
    AccountBalance,
    LedgerLine,
    LedgerSelector,
    TrialBalance,
    TrialBalanceRow,
)

__all__ = [
    "AccountBalance",
    "LedgerLine",
    "LedgerSelector",
    "TrialBalance",
    "TrialBalanceRow",
]
