"""
Module: bizbooks_kernel.models.counterparty
Responsibility: ORM persistence for customers, suppliers and cash/bank
    accounts and their transaction streams (the subledgers).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced (by SubledgerService):
    - Each transaction's running_balance is the prefix sum of signed amounts
      over the counterparty's transactions ordered by
      (transaction_date, sequence).
    - Counterparty.balance equals the running_balance of its last
      transaction (zero with no transactions).

Audit relevance:
    Counterparty.balance is denormalized for display only.  The general
    ledger control account is authoritative; reconciliation reports drift
    and never rewrites history.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bizbooks_kernel.db.base import OrgScopedBase, UUIDString


class CounterpartyKind(str, Enum):
    """Which subledger a counterparty belongs to."""

    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"
    CASH_BANK = "CASH_BANK"


class CounterpartyTransactionType(str, Enum):
    """Transaction kinds posted to a counterparty stream."""

    OPENING_BALANCE = "OPENING_BALANCE"
    INVOICE = "INVOICE"
    PURCHASE_INVOICE = "PURCHASE_INVOICE"
    PAYMENT = "PAYMENT"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    INVOICE_VOID = "INVOICE_VOID"
    ADJUSTMENT = "ADJUSTMENT"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"


class Counterparty(OrgScopedBase):
    """Customer, supplier, or cash/bank account with a running balance."""

    __tablename__ = "counterparties"

    __table_args__ = (
        Index("idx_counterparty_org_kind", "organization_id", "kind"),
    )

    kind: Mapped[CounterpartyKind] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Tax registration id (GSTIN / VAT number) and home region code
    registration_id: Mapped[str | None] = mapped_column(String(20), nullable=True)

    region_code: Mapped[str | None] = mapped_column(String(10), nullable=True)

    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    transactions: Mapped[list["CounterpartyTransaction"]] = relationship(
        back_populates="counterparty",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Counterparty {self.kind} {self.name} balance={self.balance}>"


class CounterpartyTransaction(OrgScopedBase):
    """
    One signed movement in a counterparty's stream.

    ``amount`` is stored already signed: positive raises what the
    counterparty owes (or holds), negative lowers it.
    """

    __tablename__ = "counterparty_transactions"

    __table_args__ = (
        Index(
            "idx_cp_txn_order",
            "counterparty_id",
            "transaction_date",
            "sequence",
        ),
        Index("idx_cp_txn_source", "source_type", "source_id"),
    )

    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("counterparties.id"),
        nullable=False,
    )

    transaction_type: Mapped[CounterpartyTransactionType] = mapped_column(
        String(30), nullable=False
    )

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Insertion order tie-break within a date
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    running_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    source_type: Mapped[str | None] = mapped_column(String(30), nullable=True)

    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    counterparty: Mapped["Counterparty"] = relationship(back_populates="transactions")
