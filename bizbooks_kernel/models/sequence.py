"""
Module: bizbooks_kernel.models.sequence
Responsibility: Locked counter rows behind document numbering and internal
    ordering sequences.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (organization_id, name).  ``name`` already encodes the
      series prefix and, for daily series, the date bucket.
    - current_value only increases; it is read and written under
      SELECT ... FOR UPDATE inside the caller's transaction.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bizbooks_kernel.db.base import Base, UUIDString


class SequenceCounter(Base):
    """Last value issued for one named sequence in one organization."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_sequence_org_name"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(150), nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
