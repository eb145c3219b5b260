"""
Module: bizbooks_kernel.selectors.ledger_selector
Responsibility: Account balances, trial balance and account statements,
    all derived at query time from journal lines.  No balance is stored
    anywhere, so none can drift from the ledger.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Balance = sum(debit) - sum(credit) over lines of ledger-effective
      entries.  DRAFT lines never count.
    - Ledger-effective means POSTED or VOID.  A VOID entry and its POSTED
      reversal are both counted and cancel exactly; counting POSTED alone
      would leave the reversal's mirror image as a phantom balance.
    - as_of filters on entry_date (inclusive).
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from bizbooks_kernel.domain.money import MONEY_TOLERANCE, ZERO
from bizbooks_kernel.exceptions import AccountNotFoundError
from bizbooks_kernel.models.account import Account, NormalBalance, normal_balance_for
from bizbooks_kernel.models.journal import (
    LEDGER_EFFECTIVE_STATUSES,
    JournalEntry,
    JournalLine,
)
from bizbooks_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountBalance:
    """Balance for a single account."""

    account_id: UUID
    account_code: str
    debit_total: Decimal
    credit_total: Decimal
    line_count: int

    @property
    def balance(self) -> Decimal:
        """Net balance (debits - credits)."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single row in a trial balance report."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        return self.debit_total - self.credit_total

    @property
    def natural_balance(self) -> Decimal:
        """Balance signed by the account's normal side."""
        if normal_balance_for(self.account_type) == NormalBalance.DEBIT:
            return self.balance
        return -self.balance


@dataclass(frozen=True)
class TrialBalance:
    """Trial balance as of a date."""

    as_of: date | None
    rows: tuple[TrialBalanceRow, ...] = field(default_factory=tuple)

    @property
    def total_debits(self) -> Decimal:
        return sum((r.debit_total for r in self.rows), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((r.credit_total for r in self.rows), ZERO)

    @property
    def is_balanced(self) -> bool:
        return abs(self.total_debits - self.total_credits) < MONEY_TOLERANCE


@dataclass(frozen=True)
class LedgerLine:
    """One line of an account statement with the running balance after it."""

    journal_entry_id: UUID
    entry_number: str
    entry_date: date
    description: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


class LedgerSelector(BaseSelector[JournalLine]):
    """
    Authoritative balance computation.

    Guarantees:
        - All amounts are Decimal.
        - Accounts without effective lines report zero.
    """

    def _effective(self, stmt, organization_id: UUID, as_of: date | None):
        stmt = stmt.where(
            JournalEntry.organization_id == organization_id,
            JournalEntry.status.in_(LEDGER_EFFECTIVE_STATUSES),
        )
        if as_of is not None:
            stmt = stmt.where(JournalEntry.entry_date <= as_of)
        return stmt

    def _account(self, organization_id: UUID, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None or account.organization_id != organization_id:
            raise AccountNotFoundError(str(account_id))
        return account

    def account_balance(
        self,
        organization_id: UUID,
        account_id: UUID,
        as_of: date | None = None,
    ) -> AccountBalance:
        account = self._account(organization_id, account_id)
        stmt = self._effective(
            select(
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
                func.count(JournalLine.id),
            )
            .select_from(JournalLine)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(JournalLine.account_id == account_id),
            organization_id,
            as_of,
        )
        debit_total, credit_total, line_count = self.session.execute(stmt).one()
        return AccountBalance(
            account_id=account.id,
            account_code=account.code,
            debit_total=Decimal(str(debit_total)),
            credit_total=Decimal(str(credit_total)),
            line_count=line_count,
        )

    def balance_by_code(
        self,
        organization_id: UUID,
        code: str,
        as_of: date | None = None,
    ) -> AccountBalance:
        account_id = self.session.execute(
            select(Account.id).where(
                Account.organization_id == organization_id,
                Account.code == code,
            )
        ).scalar_one_or_none()
        if account_id is None:
            raise AccountNotFoundError(code)
        return self.account_balance(organization_id, account_id, as_of)

    def trial_balance(self, organization_id: UUID, as_of: date | None = None) -> TrialBalance:
        """One row per account that has ledger-effective lines, by code."""
        stmt = self._effective(
            select(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
            )
            .select_from(JournalLine)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .join(Account, JournalLine.account_id == Account.id)
            .group_by(Account.id, Account.code, Account.name, Account.account_type)
            .order_by(Account.code),
            organization_id,
            as_of,
        )
        rows = tuple(
            TrialBalanceRow(
                account_id=account_id,
                account_code=code,
                account_name=name,
                account_type=account_type,
                debit_total=Decimal(str(debits)),
                credit_total=Decimal(str(credits)),
            )
            for account_id, code, name, account_type, debits, credits in self.session.execute(stmt)
        )
        return TrialBalance(as_of=as_of, rows=rows)

    def account_statement(
        self,
        organization_id: UUID,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[LedgerLine]:
        """
        Lines for one account in date order with a running balance.

        The running balance starts from the balance brought forward at
        ``date_from``.
        """
        self._account(organization_id, account_id)
        opening = ZERO
        if date_from is not None:
            opening = self.account_balance(
                organization_id, account_id, date.fromordinal(date_from.toordinal() - 1)
            ).balance

        stmt = self._effective(
            select(JournalLine, JournalEntry)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(JournalLine.account_id == account_id),
            organization_id,
            date_to,
        )
        if date_from is not None:
            stmt = stmt.where(JournalEntry.entry_date >= date_from)
        stmt = stmt.order_by(
            JournalEntry.entry_date, JournalEntry.created_at, JournalEntry.entry_number, JournalLine.line_number
        )

        running = opening
        result: list[LedgerLine] = []
        for line, entry in self.session.execute(stmt):
            running += line.debit - line.credit
            result.append(
                LedgerLine(
                    journal_entry_id=entry.id,
                    entry_number=entry.entry_number,
                    entry_date=entry.entry_date,
                    description=line.description or entry.description,
                    debit=line.debit,
                    credit=line.credit,
                    running_balance=running,
                )
            )
        return result
