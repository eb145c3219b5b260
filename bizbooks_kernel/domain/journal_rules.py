"""
Journal line rules.

Pure checks shared by every path that writes journal lines:

    validate_lines()   exactly one nonzero side per line, nothing negative
    check_balance()    debit total vs credit total within 0.01
    mirror_lines()     debit <-> credit swap used by void reversals

Nothing here touches the database; JournalService calls these before any
row is added to the session, so a rejected entry leaves no trace.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from bizbooks_kernel.domain.money import MONEY_TOLERANCE, ZERO, round_money, to_decimal
from bizbooks_kernel.exceptions import InvalidJournalLineError, ValidationError

MIN_LINES = 2


@dataclass(frozen=True)
class LineSpec:
    """
    One requested journal line.

    Either ``account_id`` or ``account_code`` identifies the account; the
    code form is resolved per organization by JournalService.
    """

    debit: Decimal = ZERO
    credit: Decimal = ZERO
    account_id: UUID | None = None
    account_code: str | None = None
    description: str | None = None

    @classmethod
    def dr(cls, account: UUID | str, amount, description: str | None = None) -> "LineSpec":
        return cls._make(account, to_decimal(amount, "debit"), ZERO, description)

    @classmethod
    def cr(cls, account: UUID | str, amount, description: str | None = None) -> "LineSpec":
        return cls._make(account, ZERO, to_decimal(amount, "credit"), description)

    @classmethod
    def _make(cls, account, debit, credit, description) -> "LineSpec":
        if isinstance(account, UUID):
            return cls(debit=debit, credit=credit, account_id=account, description=description)
        return cls(debit=debit, credit=credit, account_code=str(account), description=description)


@dataclass(frozen=True)
class BalanceCheck:
    """Totals of a set of lines and whether they agree within tolerance."""

    total_debits: Decimal
    total_credits: Decimal

    @property
    def difference(self) -> Decimal:
        return self.total_debits - self.total_credits

    @property
    def is_balanced(self) -> bool:
        return abs(self.difference) < MONEY_TOLERANCE


def validate_lines(lines: Sequence[LineSpec]) -> list[LineSpec]:
    """
    Validate and normalize requested lines.

    Amounts are rounded to 2 places half-up.  Returns new LineSpec objects;
    the input is not modified.

    Raises:
        ValidationError: fewer than two lines.
        InvalidJournalLineError: a line without an account, with a negative
            side, with both sides nonzero, or with both sides zero.
    """
    if len(lines) < MIN_LINES:
        raise ValidationError(
            f"A journal entry needs at least {MIN_LINES} lines, got {len(lines)}",
            field="lines",
        )

    normalized: list[LineSpec] = []
    for index, line in enumerate(lines):
        if line.account_id is None and not line.account_code:
            raise InvalidJournalLineError(index, "no account given")
        try:
            debit = round_money(to_decimal(line.debit, "debit"))
            credit = round_money(to_decimal(line.credit, "credit"))
        except ValueError as exc:
            raise InvalidJournalLineError(index, str(exc)) from exc
        if debit < ZERO or credit < ZERO:
            raise InvalidJournalLineError(index, "debit and credit must not be negative")
        if debit > ZERO and credit > ZERO:
            raise InvalidJournalLineError(index, "a line cannot carry both a debit and a credit")
        if debit == ZERO and credit == ZERO:
            raise InvalidJournalLineError(index, "a line must carry a nonzero debit or credit")
        normalized.append(replace(line, debit=debit, credit=credit))
    return normalized


def check_balance(lines: Iterable) -> BalanceCheck:
    """Sum ``debit`` and ``credit`` over LineSpec or JournalLine objects."""
    total_debits = ZERO
    total_credits = ZERO
    for line in lines:
        total_debits += line.debit
        total_credits += line.credit
    return BalanceCheck(total_debits=total_debits, total_credits=total_credits)


def mirror_lines(lines: Iterable) -> list[LineSpec]:
    """Swap debit and credit on every line, preserving order and accounts."""
    return [
        LineSpec(
            debit=line.credit,
            credit=line.debit,
            account_id=line.account_id,
            description=line.description,
        )
        for line in lines
    ]
