"""
Module: bizbooks_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    single source of financial truth.  Account balances are always derived
    from these rows, never stored.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - entry_number is unique per organization (allocated by SequenceService).
    - A line carries exactly one nonzero side; neither side is negative
      (validated by domain/journal_rules.py before any row is written,
      mirrored by CHECK constraints).
    - POSTED and VOID entries are append-only: the ORM listeners in
      db/immutability.py reject UPDATE/DELETE except POSTED -> VOID.
    - A reversal carries reversal_of_id pointing at the entry it cancels.

Audit relevance:
    A voided entry keeps all of its lines.  Its reversal is a separate POSTED
    entry with mirrored lines, so every historical balance stays
    reproducible.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bizbooks_kernel.db.base import OrgScopedBase, TrackedBase, UUIDString

if TYPE_CHECKING:
    from bizbooks_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Journal entry lifecycle: DRAFT -> POSTED -> VOID."""

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOID = "VOID"


# Statuses whose lines count toward account balances.  A VOID entry still
# counts because its POSTED reversal offsets it line for line.
LEDGER_EFFECTIVE_STATUSES = (JournalEntryStatus.POSTED, JournalEntryStatus.VOID)


class EntrySourceType(str, Enum):
    """Kinds of business documents that originate journal entries."""

    MANUAL = "MANUAL"
    INVOICE = "INVOICE"
    PURCHASE_INVOICE = "PURCHASE_INVOICE"
    PAYMENT = "PAYMENT"
    SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"
    EXPENSE = "EXPENSE"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    POS_SESSION = "POS_SESSION"
    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
    OPENING_BALANCE = "OPENING_BALANCE"
    REVERSAL = "REVERSAL"


class JournalEntry(OrgScopedBase):
    """
    Journal entry header.

    Contract:
        Owns an ordered collection of JournalLine rows.  Source references
        are an enum tag plus an opaque id; the ledger never resolves them.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("organization_id", "entry_number", name="uq_journal_org_number"),
        Index("idx_journal_org_status", "organization_id", "status"),
        Index("idx_journal_org_date", "organization_id", "entry_date"),
        Index("idx_journal_source", "source_type", "source_id"),
    )

    entry_number: Mapped[str] = mapped_column(String(50), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(10),
        nullable=False,
        default=JournalEntryStatus.DRAFT,
    )

    source_type: Mapped[EntrySourceType] = mapped_column(
        String(30),
        nullable=False,
        default=EntrySourceType.MANUAL,
    )

    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_number",
    )

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} {self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_void(self) -> bool:
        return self.status == JournalEntryStatus.VOID

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))


class JournalLine(TrackedBase):
    """
    One debit or credit against one account.

    Contract:
        Exactly one of ``debit`` / ``credit`` is nonzero; both are >= 0.
        ``line_number`` preserves the caller's ordering.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
        CheckConstraint("debit >= 0 AND credit >= 0", name="ck_line_non_negative"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(back_populates="journal_lines")

    def __repr__(self) -> str:
        return f"<JournalLine {self.line_number} Dr {self.debit} Cr {self.credit}>"

    @property
    def net(self) -> Decimal:
        """Debit minus credit."""
        return self.debit - self.credit
