"""
Module: bizbooks_kernel.models.pos_session
Responsibility: ORM persistence for point-of-sale register sessions.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced (by PosSessionService, under row locks):
    - At most one OPEN session per (organization, register) and per
      (organization, user).
    - session_number follows the daily POS series (POS-YYYYMMDD-NNN).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bizbooks_kernel.db.base import OrgScopedBase, UUIDString


class PosSessionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class PosSession(OrgScopedBase):
    """One cashier shift on one register."""

    __tablename__ = "pos_sessions"

    __table_args__ = (
        UniqueConstraint("organization_id", "session_number", name="uq_pos_session_number"),
        Index("idx_pos_session_register", "organization_id", "register_id", "status"),
        Index("idx_pos_session_user", "organization_id", "user_id", "status"),
    )

    session_number: Mapped[str] = mapped_column(String(50), nullable=False)

    register_id: Mapped[str] = mapped_column(String(100), nullable=False)

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    status: Mapped[PosSessionStatus] = mapped_column(
        String(10), nullable=False, default=PosSessionStatus.OPEN
    )

    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    opening_cash: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    closing_cash: Mapped[Decimal | None] = mapped_column(nullable=True)

    expected_cash: Mapped[Decimal | None] = mapped_column(nullable=True)

    cash_difference: Mapped[Decimal | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<PosSession {self.session_number} {self.status}>"
