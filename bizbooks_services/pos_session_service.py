"""
POS session lifecycle: open a shift on a register, close it with a cash count.

A register and a user can each have at most one OPEN session.  Opening
first locks one counter row per register and one per user (created on
first use, taken in name order), so two concurrent opens that share a
register or a user queue on the same row whatever date they are opened
for.  The daily session number is allocated next, and the OPEN-session
check and the insert follow in the same transaction.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from bizbooks_kernel.domain.money import ZERO, round_money, to_decimal
from bizbooks_kernel.domain.clock import Clock
from bizbooks_kernel.domain.numbering import POS_SESSION_SERIES, DocumentSeries
from bizbooks_kernel.exceptions import (
    PosSessionAlreadyOpenError,
    PosSessionNotOpenError,
    ValidationError,
)
from bizbooks_kernel.logging_config import get_logger
from bizbooks_kernel.models.pos_session import PosSession, PosSessionStatus
from bizbooks_kernel.services.base import BaseService
from bizbooks_kernel.services.sequence_service import SequenceService

logger = get_logger("services.pos_session")

REGISTER_SCOPE = "pos_register"
USER_SCOPE = "pos_user"


def _money(value, field: str) -> Decimal:
    try:
        amount = round_money(to_decimal(value, field))
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from exc
    if amount < ZERO:
        raise ValidationError(f"{field} cannot be negative, got {amount}", field=field)
    return amount


class PosSessionService(BaseService[PosSession]):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
        series: DocumentSeries = POS_SESSION_SERIES,
    ):
        super().__init__(session, clock)
        self._sequences = sequence_service or SequenceService(session)
        self._series = series

    def _highest_number(self, organization_id: UUID, stem: str) -> str | None:
        return self.session.execute(
            select(PosSession.session_number)
            .where(
                PosSession.organization_id == organization_id,
                PosSession.session_number.startswith(stem),
            )
            .order_by(func.length(PosSession.session_number).desc(), PosSession.session_number.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _lock_scopes(self, organization_id: UUID, register_id: str, user_id: UUID) -> None:
        for name in sorted({f"{REGISTER_SCOPE}:{register_id}", f"{USER_SCOPE}:{user_id}"}):
            self._sequences.next_value(organization_id, name)

    def find_open_session(
        self,
        organization_id: UUID,
        register_id: str | None = None,
        user_id: UUID | None = None,
        lock: bool = False,
    ) -> PosSession | None:
        """The OPEN session on ``register_id`` or held by ``user_id``, if any."""
        conditions = []
        if register_id is not None:
            conditions.append(PosSession.register_id == register_id)
        if user_id is not None:
            conditions.append(PosSession.user_id == user_id)
        if not conditions:
            return None
        stmt = select(PosSession).where(
            PosSession.organization_id == organization_id,
            PosSession.status == PosSessionStatus.OPEN,
            or_(*conditions),
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt.limit(1)).scalar_one_or_none()

    def open_session(
        self,
        organization_id: UUID,
        actor_id: UUID,
        register_id: str,
        user_id: UUID,
        opening_cash=ZERO,
        on_date: date | None = None,
    ) -> PosSession:
        """
        Open a session numbered ``POS-YYYYMMDD-NNN``.

        Raises:
            PosSessionAlreadyOpenError: register or user already has an
                OPEN session.
        """
        if not register_id:
            raise ValidationError("register_id is required", field="register_id")
        if len(register_id) > 100:
            raise ValidationError("register_id is longer than 100 characters", field="register_id")
        cash = _money(opening_cash, "opening_cash")
        now = self.clock.now()
        self._lock_scopes(organization_id, register_id, user_id)
        number = self._sequences.next_document_number(
            organization_id, self._series, on_date or now.date(), self._highest_number
        )

        existing = self.find_open_session(organization_id, register_id, user_id, lock=True)
        if existing is not None:
            logger.warning(
                "pos_session_open_rejected",
                extra={
                    "register_id": register_id,
                    "user_id": str(user_id),
                    "existing_session": existing.session_number,
                },
            )
            raise PosSessionAlreadyOpenError(
                existing.session_number, existing.register_id, str(existing.user_id)
            )

        pos_session = PosSession(
            organization_id=organization_id,
            session_number=number,
            register_id=register_id,
            user_id=user_id,
            status=PosSessionStatus.OPEN,
            opened_at=now,
            opening_cash=cash,
            created_by_id=actor_id,
        )
        self.session.add(pos_session)
        self.session.flush()
        logger.info(
            "pos_session_opened",
            extra={
                "session_number": number,
                "register_id": register_id,
                "opening_cash": str(cash),
            },
        )
        return pos_session

    def close_session(
        self,
        organization_id: UUID,
        actor_id: UUID,
        pos_session_id: UUID,
        closing_cash,
        expected_cash=None,
    ) -> PosSession:
        """
        Close an OPEN session.

        ``expected_cash`` defaults to the opening float when the caller has
        no cash sales to add; the difference is closing minus expected.
        """
        pos_session = self.session.execute(
            select(PosSession)
            .where(
                PosSession.id == pos_session_id,
                PosSession.organization_id == organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if pos_session is None:
            raise PosSessionNotOpenError(str(pos_session_id), "MISSING")
        if PosSessionStatus(pos_session.status) != PosSessionStatus.OPEN:
            raise PosSessionNotOpenError(
                str(pos_session.id), PosSessionStatus(pos_session.status).value
            )

        closing = _money(closing_cash, "closing_cash")
        expected = (
            _money(expected_cash, "expected_cash")
            if expected_cash is not None
            else pos_session.opening_cash
        )
        pos_session.status = PosSessionStatus.CLOSED
        pos_session.closed_at = self.clock.now()
        pos_session.closing_cash = closing
        pos_session.expected_cash = expected
        pos_session.cash_difference = closing - expected
        pos_session.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "pos_session_closed",
            extra={
                "session_number": pos_session.session_number,
                "closing_cash": str(closing),
                "expected_cash": str(expected),
                "cash_difference": str(pos_session.cash_difference),
            },
        )
        return pos_session
