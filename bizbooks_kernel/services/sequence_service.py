"""
SequenceService -- document numbers and ordering sequences via locked
counter rows.

Responsibility:
    Issues strictly increasing values per (organization, sequence name) and
    formats them into document numbers (``INV-001``, ``POS-20240101-003``).

Architecture position:
    Kernel > Services.  Called by JournalService, the inventory and
    subledger services, POS sessions and document posting -- always inside
    the caller's transaction.

Invariants enforced:
    - The counter row is read with SELECT ... FOR UPDATE and written in the
      caller's transaction, so two concurrent callers can never both
      receive the same number, and a rollback returns the number unused.
    - When a counter row does not exist yet (first use, or data migrated
      from elsewhere), it is seeded from the highest number already issued
      under the series stem.  An unreadable suffix seeds from 0.

Failure modes:
    - IntegrityError on concurrent first use: handled with a savepoint
      rollback and a locked re-read.
"""

from collections.abc import Callable
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bizbooks_kernel.domain.numbering import DocumentSeries, parse_sequence_suffix
from bizbooks_kernel.logging_config import get_logger
from bizbooks_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")

# Returns the highest document number already issued that starts with the
# given stem, or None.
ExistingNumberLookup = Callable[[UUID, str], str | None]


class SequenceService:
    """
    Allocates monotonic values from locked counter rows.

    Contract:
        ``next_value`` and ``next_document_number`` must be called inside
        the transaction that persists the record receiving the value.

    Non-goals:
        Does not commit.  The caller's unit of work owns the transaction.
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, organization_id: UUID, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.organization_id == organization_id,
                SequenceCounter.name == name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(
        self,
        organization_id: UUID,
        name: str,
        seed: Callable[[], int] | None = None,
    ) -> int:
        """
        Get the next value for a named sequence.

        Args:
            organization_id: Owning organization.
            name: Sequence name, unique per organization.
            seed: Called once when the counter row does not exist yet;
                returns the last value already in use (default 0).

        Returns:
            A value strictly greater than every value previously returned
            for (organization_id, name).
        """
        counter = self._lock_counter(organization_id, name)

        if counter is None:
            first_value = (seed() if seed is not None else 0) + 1
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    organization_id=organization_id,
                    name=name,
                    current_value=first_value,
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": name, "value": first_value, "seeded": True},
                )
                return first_value
            except IntegrityError:
                logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
                savepoint.rollback()
                counter = self._lock_counter(organization_id, name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def next_document_number(
        self,
        organization_id: UUID,
        series: DocumentSeries,
        on_date: date,
        existing_lookup: ExistingNumberLookup | None = None,
    ) -> str:
        """
        Allocate the next formatted number of ``series``.

        Daily series get one counter per calendar day of ``on_date``;
        global series ignore the date.

        Args:
            existing_lookup: Finds the highest number already stored under
                the series stem; used only to seed a missing counter.
        """
        stem = series.stem(on_date)

        def _seed() -> int:
            if existing_lookup is None:
                return 0
            return parse_sequence_suffix(existing_lookup(organization_id, stem), stem)

        value = self.next_value(organization_id, series.counter_name(on_date), seed=_seed)
        number = series.format(on_date, value)
        logger.info(
            "document_number_issued",
            extra={"series": series.key, "document_number": number},
        )
        return number

    def current_value(self, organization_id: UUID, name: str) -> int | None:
        """Read the last issued value without locking; None if never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.organization_id == organization_id,
                SequenceCounter.name == name,
            )
        ).scalar_one_or_none()
