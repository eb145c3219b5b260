"""
Module: bizbooks_kernel.models.account
Responsibility: ORM persistence for the per-organization chart of accounts.
    Every journal line targets exactly one Account.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced (by AccountService, not this model):
    - code is unique within an organization and is the display sort key.
    - A child's account_type equals its parent's account_type.
    - The parent chain is acyclic.
    - System accounts are never deleted or deactivated, and their
      account_type and parent never change.
    - Hard delete only when no child accounts and no journal lines exist.

Audit relevance:
    Retyping an account after lines reference it would silently change the
    meaning of historical entries, so structural edits are guarded.
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bizbooks_kernel.db.base import OrgScopedBase, UUIDString

if TYPE_CHECKING:
    from bizbooks_kernel.models.journal import JournalLine


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


_NORMAL_BALANCE = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    """Debit-normal for assets and expenses, credit-normal otherwise."""
    return _NORMAL_BALANCE[AccountType(account_type)]


class Account(OrgScopedBase):
    """
    Chart of accounts entry -- one node in the organization's account tree.

    Contract:
        The tree is an arena of rows linked by ``parent_id``; traversal is
        always an explicit walk, never ORM recursion.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_account_org_code"),
        Index("idx_account_org_type", "organization_id", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    sub_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        return normal_balance_for(self.account_type)

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT
