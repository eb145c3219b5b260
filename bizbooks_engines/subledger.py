"""
bizbooks_engines.subledger -- Counterparty transaction signs and the
running-balance fold.

Responsibility:
    Map a transaction type and a magnitude to the signed effect on the
    counterparty balance, and fold an ordered transaction history into
    per-transaction running balances plus the final balance.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    SubledgerService loads the rows, calls fold_running_balances(), and
    writes the results back.

Invariants enforced:
    - Ordering is (transaction_date, sequence); sequence is the per-org
      insertion order, so same-day transactions keep their recorded order.
    - The fold depends only on the history: folding the same input twice
      yields identical output.
    - Final balance == running balance of the last transaction (or 0 for
      an empty history).

Sign convention (positive = counterparty owes us / we owe the supplier):

    INVOICE, PURCHASE_INVOICE, DEPOSIT, TRANSFER_IN          +
    PAYMENT, CREDIT_NOTE, DEBIT_NOTE, INVOICE_VOID,
    WITHDRAWAL, TRANSFER_OUT                                 -
    OPENING_BALANCE, ADJUSTMENT                              as given
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from bizbooks_kernel.domain.money import ZERO, round_money, to_decimal
from bizbooks_kernel.exceptions import ValidationError
from bizbooks_kernel.logging_config import get_logger

logger = get_logger("engines.subledger")

_INCREASING = frozenset({"INVOICE", "PURCHASE_INVOICE", "DEPOSIT", "TRANSFER_IN"})
_DECREASING = frozenset({
    "PAYMENT",
    "CREDIT_NOTE",
    "DEBIT_NOTE",
    "INVOICE_VOID",
    "WITHDRAWAL",
    "TRANSFER_OUT",
})
_AS_GIVEN = frozenset({"OPENING_BALANCE", "ADJUSTMENT"})


def _type_name(transaction_type) -> str:
    return str(getattr(transaction_type, "value", transaction_type))


def signed_amount(transaction_type, amount) -> Decimal:
    """
    Signed balance effect of a transaction.

    Directional types take a non-negative magnitude; OPENING_BALANCE and
    ADJUSTMENT take the signed amount as-is.

    Raises:
        ValidationError: unknown type, or a negative magnitude for a
            directional type.
    """
    name = _type_name(transaction_type)
    try:
        value = round_money(to_decimal(amount, "amount"))
    except ValueError as exc:
        raise ValidationError(str(exc), field="amount") from exc

    if name in _AS_GIVEN:
        return value
    if name not in _INCREASING and name not in _DECREASING:
        raise ValidationError(f"Unknown transaction type: {name}", field="transaction_type")
    if value < ZERO:
        raise ValidationError(
            f"{name} amount must not be negative, got {value}", field="amount"
        )
    return value if name in _INCREASING else -value


@dataclass(frozen=True, slots=True)
class SubledgerItem:
    """A stored transaction as the fold sees it (amount already signed)."""

    transaction_id: UUID
    transaction_date: date
    sequence: int
    amount: Decimal


@dataclass(frozen=True)
class RunningBalanceFold:
    running_balances: tuple[tuple[UUID, Decimal], ...]
    balance: Decimal

    def as_dict(self) -> dict[UUID, Decimal]:
        return dict(self.running_balances)


def fold_running_balances(items: Iterable[SubledgerItem]) -> RunningBalanceFold:
    """Prefix-sum ``items`` in (date, sequence) order."""
    ordered = sorted(items, key=lambda i: (i.transaction_date, i.sequence))
    running = ZERO
    out: list[tuple[UUID, Decimal]] = []
    for item in ordered:
        running += item.amount
        out.append((item.transaction_id, running))
    return RunningBalanceFold(running_balances=tuple(out), balance=running)
