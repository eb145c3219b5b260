"""
bizbooks_services.subledger_service -- Counterparty balances and their
transaction streams.

Responsibility:
    Create customers, suppliers and cash/bank counterparties, append signed
    transactions to their streams, and rebuild running balances from the
    stream when asked (repair/audit).

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Signs and the prefix-sum fold are pure functions in
    bizbooks_engines.subledger; this service loads and writes the rows.

Invariants enforced:
    - Counterparty.balance equals the running_balance of its latest
      transaction in (transaction_date, sequence) order.
    - running_balance of each transaction is the prefix sum up to and
      including itself.
    - Recompute is a pure function of the stream: running it twice leaves
      the same balance and the same running balances.
    - The counterparty row is locked (SELECT ... FOR UPDATE) before its
      balance is read and rewritten.

Failure modes:
    - CounterpartyNotFoundError.
    - ValidationError from signed_amount (negative magnitude, unknown type).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bizbooks_engines.subledger import SubledgerItem, fold_running_balances, signed_amount
from bizbooks_kernel.domain.money import ZERO
from bizbooks_kernel.domain.clock import Clock
from bizbooks_kernel.exceptions import CounterpartyNotFoundError, ValidationError
from bizbooks_kernel.logging_config import get_logger
from bizbooks_kernel.models.counterparty import (
    Counterparty,
    CounterpartyKind,
    CounterpartyTransaction,
    CounterpartyTransactionType,
)
from bizbooks_kernel.services.base import BaseService
from bizbooks_kernel.services.sequence_service import SequenceService

logger = get_logger("services.subledger")

TRANSACTION_SEQUENCE = "counterparty_transaction"


@dataclass(frozen=True)
class RecomputeResult:
    """Balance and per-transaction running balances after a recompute."""

    counterparty_id: UUID
    balance: Decimal
    previous_balance: Decimal
    running_balances: tuple[tuple[UUID, Decimal], ...]
    corrected_transactions: int

    @property
    def balance_changed(self) -> bool:
        return self.balance != self.previous_balance


class SubledgerService(BaseService[Counterparty]):
    """
    Counterparty subledger maintenance.

    Contract:
        Every method takes the organization id explicitly.  Flushes, never
        commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session, clock)
        self._sequences = sequence_service or SequenceService(session)

    # ------------------------------------------------------------------
    # Counterparties
    # ------------------------------------------------------------------

    def create_counterparty(
        self,
        organization_id: UUID,
        actor_id: UUID,
        kind: CounterpartyKind | str,
        name: str,
        *,
        registration_id: str | None = None,
        region_code: str | None = None,
        opening_balance=None,
        opening_date: date | None = None,
    ) -> Counterparty:
        """
        Create a counterparty, optionally with an OPENING_BALANCE transaction.
        """
        if not (name or "").strip():
            raise ValidationError("Counterparty name is required", field="name")
        try:
            kind = CounterpartyKind(kind)
        except ValueError as exc:
            raise ValidationError(f"Unknown counterparty kind: {kind}", field="kind") from exc

        counterparty = Counterparty(
            organization_id=organization_id,
            kind=kind,
            name=name.strip(),
            registration_id=registration_id,
            region_code=region_code,
            balance=ZERO,
            created_by_id=actor_id,
        )
        self.session.add(counterparty)
        self.session.flush()
        logger.info(
            "counterparty_created",
            extra={"counterparty_id": str(counterparty.id), "kind": kind.value},
        )

        if opening_balance is not None and signed_amount(
            CounterpartyTransactionType.OPENING_BALANCE, opening_balance
        ) != ZERO:
            self.record_transaction(
                organization_id,
                actor_id,
                counterparty.id,
                CounterpartyTransactionType.OPENING_BALANCE,
                opening_balance,
                transaction_date=opening_date,
                description="Opening balance",
            )
        return counterparty

    def get_counterparty(self, organization_id: UUID, counterparty_id: UUID) -> Counterparty:
        counterparty = self.session.get(Counterparty, counterparty_id)
        if counterparty is None or counterparty.organization_id != organization_id:
            raise CounterpartyNotFoundError(str(counterparty_id))
        return counterparty

    def _lock_counterparty(self, organization_id: UUID, counterparty_id: UUID) -> Counterparty:
        counterparty = self.session.execute(
            select(Counterparty)
            .where(
                Counterparty.id == counterparty_id,
                Counterparty.organization_id == organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if counterparty is None:
            raise CounterpartyNotFoundError(str(counterparty_id))
        return counterparty

    def list_counterparties(
        self, organization_id: UUID, kind: CounterpartyKind | None = None
    ) -> list[Counterparty]:
        stmt = select(Counterparty).where(Counterparty.organization_id == organization_id)
        if kind is not None:
            stmt = stmt.where(Counterparty.kind == CounterpartyKind(kind))
        return list(self.session.execute(stmt.order_by(Counterparty.name)).scalars())

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def transactions(self, organization_id: UUID, counterparty_id: UUID) -> list[CounterpartyTransaction]:
        """The stream in (transaction_date, sequence) order."""
        return list(
            self.session.execute(
                select(CounterpartyTransaction)
                .where(
                    CounterpartyTransaction.organization_id == organization_id,
                    CounterpartyTransaction.counterparty_id == counterparty_id,
                )
                .order_by(
                    CounterpartyTransaction.transaction_date,
                    CounterpartyTransaction.sequence,
                )
            ).scalars()
        )

    def _latest_date(self, counterparty_id: UUID) -> date | None:
        return self.session.execute(
            select(func.max(CounterpartyTransaction.transaction_date)).where(
                CounterpartyTransaction.counterparty_id == counterparty_id
            )
        ).scalar_one_or_none()

    def record_transaction(
        self,
        organization_id: UUID,
        actor_id: UUID,
        counterparty_id: UUID,
        transaction_type: CounterpartyTransactionType | str,
        amount,
        *,
        transaction_date: date | None = None,
        description: str | None = None,
        source_type: str | None = None,
        source_id: str | None = None,
    ) -> CounterpartyTransaction:
        """
        Append a transaction and move the counterparty balance.

        ``amount`` is a magnitude for directional types and a signed value
        for OPENING_BALANCE / ADJUSTMENT.  A transaction dated before the
        latest one lands mid-stream, so the whole stream is refolded.
        """
        try:
            transaction_type = CounterpartyTransactionType(transaction_type)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown transaction type: {transaction_type}", field="transaction_type"
            ) from exc
        signed = signed_amount(transaction_type, amount)
        counterparty = self._lock_counterparty(organization_id, counterparty_id)
        transaction_date = transaction_date or self.clock.today()
        latest = self._latest_date(counterparty.id)
        appended = latest is None or transaction_date >= latest

        txn = CounterpartyTransaction(
            organization_id=organization_id,
            counterparty_id=counterparty.id,
            transaction_type=transaction_type,
            transaction_date=transaction_date,
            sequence=self._sequences.next_value(organization_id, TRANSACTION_SEQUENCE),
            amount=signed,
            running_balance=counterparty.balance + signed,
            description=description,
            source_type=str(getattr(source_type, "value", source_type)) if source_type else None,
            source_id=str(source_id) if source_id is not None else None,
            created_by_id=actor_id,
        )
        self.session.add(txn)
        if appended:
            counterparty.balance = txn.running_balance
            counterparty.updated_by_id = actor_id
            self.session.flush()
        else:
            self.session.flush()
            self._refold(organization_id, actor_id, counterparty)

        logger.info(
            "counterparty_transaction_recorded",
            extra={
                "counterparty_id": str(counterparty.id),
                "transaction_type": transaction_type.value,
                "amount": str(signed),
                "balance": str(counterparty.balance),
                "backdated": not appended,
            },
        )
        return txn

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def _refold(
        self, organization_id: UUID, actor_id: UUID, counterparty: Counterparty
    ) -> RecomputeResult:
        stream = self.transactions(organization_id, counterparty.id)
        fold = fold_running_balances(
            SubledgerItem(
                transaction_id=t.id,
                transaction_date=t.transaction_date,
                sequence=t.sequence,
                amount=t.amount,
            )
            for t in stream
        )
        running = fold.as_dict()
        corrected = 0
        for txn in stream:
            if txn.running_balance != running[txn.id]:
                txn.running_balance = running[txn.id]
                txn.updated_by_id = actor_id
                corrected += 1

        previous = counterparty.balance
        if previous != fold.balance:
            counterparty.balance = fold.balance
            counterparty.updated_by_id = actor_id
        self.session.flush()
        return RecomputeResult(
            counterparty_id=counterparty.id,
            balance=fold.balance,
            previous_balance=previous,
            running_balances=fold.running_balances,
            corrected_transactions=corrected,
        )

    def recompute_counterparty_balance(
        self,
        organization_id: UUID,
        actor_id: UUID,
        counterparty_id: UUID,
    ) -> RecomputeResult:
        """
        Rebuild every running balance and the counterparty balance from the
        stream.  Idempotent.
        """
        counterparty = self._lock_counterparty(organization_id, counterparty_id)
        result = self._refold(organization_id, actor_id, counterparty)
        log = logger.warning if result.balance_changed or result.corrected_transactions else logger.info
        log(
            "counterparty_balance_recomputed",
            extra={
                "counterparty_id": str(counterparty_id),
                "previous_balance": str(result.previous_balance),
                "balance": str(result.balance),
                "corrected_transactions": result.corrected_transactions,
            },
        )
        return result

    def recompute_all(
        self,
        organization_id: UUID,
        actor_id: UUID,
        kind: CounterpartyKind | None = None,
    ) -> list[RecomputeResult]:
        return [
            self.recompute_counterparty_balance(organization_id, actor_id, c.id)
            for c in self.list_counterparties(organization_id, kind)
        ]

    def subledger_total(self, organization_id: UUID, kind: CounterpartyKind | str) -> Decimal:
        """Sum of stored balances of all counterparties of ``kind``."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Counterparty.balance), 0)).where(
                Counterparty.organization_id == organization_id,
                Counterparty.kind == CounterpartyKind(kind),
            )
        ).scalar_one()
        return Decimal(str(total))
