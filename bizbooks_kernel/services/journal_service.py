"""
JournalService -- the journal entry lifecycle.

Responsibility:
    Creates, edits, posts and voids journal entries:

        create  -> DRAFT or POSTED   (lines validated, number allocated)
        edit    -> DRAFT only        (lines replaced wholesale)
        delete  -> DRAFT only
        post    -> DRAFT -> POSTED   (balance re-validated at posting time)
        void    -> POSTED -> VOID    (+ new POSTED mirrored reversal)

Architecture position:
    Kernel > Services.  Uses SequenceService for numbers and
    domain/journal_rules.py for line validation.  Called by document
    posting in bizbooks_services and by manual-journal callers.

Invariants enforced:
    - Every line has exactly one nonzero, non-negative side.
    - A POSTED entry balances: |debits - credits| < 0.01.
    - POSTED and VOID entries are never edited or deleted; correction is
      void + reversal only (backed by db/immutability.py listeners).
    - The reversal mirrors every original line (debit <-> credit) and
      carries reversal_of_id, so the net effect on each account is zero.
    - The status read that gates post/void happens under
      SELECT ... FOR UPDATE in the caller's transaction.

Failure modes:
    - ValidationError / InvalidJournalLineError: malformed lines.
    - AccountNotFoundError / InactiveAccountError: bad account reference.
    - UnbalancedEntryError: posting an unbalanced entry.
    - EntryNotDraftError, EntryNotPostedError, EntryAlreadyVoidError:
      illegal transitions, current status surfaced on the exception.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bizbooks_kernel.domain.clock import Clock
from bizbooks_kernel.domain.journal_rules import (
    LineSpec,
    check_balance,
    mirror_lines,
    validate_lines,
)
from bizbooks_kernel.domain.numbering import JOURNAL_SERIES, DocumentSeries
from bizbooks_kernel.exceptions import (
    AccountNotFoundError,
    EntryAlreadyVoidError,
    EntryNotDraftError,
    EntryNotPostedError,
    InactiveAccountError,
    JournalEntryNotFoundError,
    UnbalancedEntryError,
    ValidationError,
)
from bizbooks_kernel.logging_config import LogContext, get_logger
from bizbooks_kernel.models.account import Account
from bizbooks_kernel.models.journal import (
    EntrySourceType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from bizbooks_kernel.services.base import BaseService
from bizbooks_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal")


@dataclass(frozen=True)
class VoidResult:
    """Outcome of voiding a posted entry."""

    voided_entry: JournalEntry
    reversal_entry: JournalEntry

    @property
    def original_entry_id(self) -> UUID:
        return self.voided_entry.id

    @property
    def reversal_entry_id(self) -> UUID:
        return self.reversal_entry.id


class JournalService(BaseService[JournalEntry]):
    """
    Journal entry lifecycle within one organization at a time.

    Contract:
        Every public method takes the organization id explicitly and only
        touches rows of that organization.  Nothing is committed here.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
        series: DocumentSeries = JOURNAL_SERIES,
    ):
        super().__init__(session, clock)
        self._sequences = sequence_service or SequenceService(session)
        self._series = series

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def get_entry(self, organization_id: UUID, entry_id: UUID) -> JournalEntry:
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None or entry.organization_id != organization_id:
            raise JournalEntryNotFoundError(str(entry_id))
        return entry

    def _lock_entry(self, organization_id: UUID, entry_id: UUID) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.id == entry_id,
                JournalEntry.organization_id == organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(str(entry_id))
        return entry

    def entries_for_source(
        self,
        organization_id: UUID,
        source_type: EntrySourceType,
        source_id: str,
    ) -> list[JournalEntry]:
        """All entries raised by one business document, oldest first."""
        return list(
            self.session.execute(
                select(JournalEntry)
                .where(
                    JournalEntry.organization_id == organization_id,
                    JournalEntry.source_type == source_type,
                    JournalEntry.source_id == str(source_id),
                )
                .order_by(JournalEntry.entry_date, JournalEntry.entry_number)
            ).scalars()
        )

    def find_reversal(self, organization_id: UUID, entry_id: UUID) -> JournalEntry | None:
        return self.session.execute(
            select(JournalEntry).where(
                JournalEntry.organization_id == organization_id,
                JournalEntry.reversal_of_id == entry_id,
            )
        ).scalar_one_or_none()

    def _highest_number(self, organization_id: UUID, stem: str) -> str | None:
        return self.session.execute(
            select(JournalEntry.entry_number)
            .where(
                JournalEntry.organization_id == organization_id,
                JournalEntry.entry_number.startswith(stem),
            )
            .order_by(
                func.length(JournalEntry.entry_number).desc(),
                JournalEntry.entry_number.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Line handling
    # ------------------------------------------------------------------

    def _resolve_accounts(
        self, organization_id: UUID, lines: Sequence[LineSpec]
    ) -> list[Account]:
        accounts: list[Account] = []
        for line in lines:
            if line.account_id is not None:
                account = self.session.get(Account, line.account_id)
                if account is None or account.organization_id != organization_id:
                    raise AccountNotFoundError(str(line.account_id))
            else:
                account = self.session.execute(
                    select(Account).where(
                        Account.organization_id == organization_id,
                        Account.code == line.account_code,
                    )
                ).scalar_one_or_none()
                if account is None:
                    raise AccountNotFoundError(line.account_code)
            if not account.is_active:
                raise InactiveAccountError(account.code)
            accounts.append(account)
        return accounts

    def _build_lines(
        self,
        actor_id: UUID,
        lines: Sequence[LineSpec],
        accounts: Sequence[Account],
    ) -> list[JournalLine]:
        return [
            JournalLine(
                account_id=account.id,
                line_number=index + 1,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
                created_by_id=actor_id,
            )
            for index, (line, account) in enumerate(zip(lines, accounts))
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_entry(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lines: Sequence[LineSpec],
        *,
        entry_date: date | None = None,
        description: str = "",
        status: JournalEntryStatus = JournalEntryStatus.DRAFT,
        source_type: EntrySourceType = EntrySourceType.MANUAL,
        source_id: str | None = None,
    ) -> JournalEntry:
        """
        Create an entry as DRAFT or directly as POSTED.

        Raises:
            ValidationError: status other than DRAFT/POSTED, bad lines.
            UnbalancedEntryError: POSTED entry whose lines do not balance.
        """
        status = JournalEntryStatus(status)
        if status == JournalEntryStatus.VOID:
            raise ValidationError("Entries cannot be created as VOID", field="status")

        normalized = validate_lines(lines)
        if status == JournalEntryStatus.POSTED:
            balance = check_balance(normalized)
            if not balance.is_balanced:
                raise UnbalancedEntryError(
                    str(balance.total_debits), str(balance.total_credits)
                )
        accounts = self._resolve_accounts(organization_id, normalized)

        entry_date = entry_date or self.clock.today()
        number = self._sequences.next_document_number(
            organization_id, self._series, entry_date, self._highest_number
        )

        entry = JournalEntry(
            organization_id=organization_id,
            entry_number=number,
            entry_date=entry_date,
            description=description,
            status=status,
            source_type=EntrySourceType(source_type),
            source_id=str(source_id) if source_id is not None else None,
            posted_at=self.clock.now() if status == JournalEntryStatus.POSTED else None,
            created_by_id=actor_id,
        )
        entry.lines = self._build_lines(actor_id, normalized, accounts)
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "journal_entry_created",
            extra={
                "entry_id": str(entry.id),
                "entry_number": number,
                "status": status.value,
                "source_type": entry.source_type,
                "line_count": len(normalized),
            },
        )
        return entry

    def update_draft_entry(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_id: UUID,
        *,
        lines: Sequence[LineSpec] | None = None,
        description: str | None = None,
        entry_date: date | None = None,
    ) -> JournalEntry:
        """Edit a DRAFT entry.  ``lines`` replaces the whole line set."""
        entry = self._lock_entry(organization_id, entry_id)
        if not entry.is_draft:
            raise EntryNotDraftError(str(entry.id), JournalEntryStatus(entry.status).value, attempted="edit")

        if lines is not None:
            normalized = validate_lines(lines)
            accounts = self._resolve_accounts(organization_id, normalized)
            entry.lines.clear()
            self.session.flush()
            entry.lines.extend(self._build_lines(actor_id, normalized, accounts))
        if description is not None:
            entry.description = description
        if entry_date is not None:
            entry.entry_date = entry_date
        entry.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_entry_updated",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "lines_replaced": lines is not None,
            },
        )
        return entry

    def delete_draft_entry(self, organization_id: UUID, entry_id: UUID) -> None:
        entry = self._lock_entry(organization_id, entry_id)
        if not entry.is_draft:
            raise EntryNotDraftError(str(entry.id), JournalEntryStatus(entry.status).value, attempted="delete")
        number = entry.entry_number
        self.session.delete(entry)
        self.session.flush()
        logger.info(
            "journal_entry_deleted",
            extra={"entry_id": str(entry_id), "entry_number": number},
        )

    def post_entry(self, organization_id: UUID, actor_id: UUID, entry_id: UUID) -> JournalEntry:
        """
        DRAFT -> POSTED.

        The balance is re-checked against the lines as they are now; a draft
        may have been edited since creation.
        """
        with LogContext.bind(entry_id=entry_id):
            entry = self._lock_entry(organization_id, entry_id)
            if not entry.is_draft:
                raise EntryNotDraftError(str(entry.id), JournalEntryStatus(entry.status).value, attempted="post")

            balance = check_balance(entry.lines)
            if len(entry.lines) < 2 or not balance.is_balanced:
                logger.warning(
                    "journal_entry_post_rejected",
                    extra={
                        "entry_number": entry.entry_number,
                        "total_debits": balance.total_debits,
                        "total_credits": balance.total_credits,
                    },
                )
                raise UnbalancedEntryError(
                    str(balance.total_debits),
                    str(balance.total_credits),
                    entry.entry_number,
                )

            entry.status = JournalEntryStatus.POSTED
            entry.posted_at = self.clock.now()
            entry.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "journal_entry_posted",
                extra={
                    "entry_number": entry.entry_number,
                    "total_debits": balance.total_debits,
                },
            )
            return entry

    def void_entry(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_id: UUID,
    ) -> VoidResult:
        """
        POSTED -> VOID, creating the mirrored POSTED reversal.

        The reversal is dated at void time, numbered from the journal series,
        keeps the original's source reference and points back through
        reversal_of_id.  The original's lines are left untouched.
        """
        with LogContext.bind(entry_id=entry_id):
            original = self._lock_entry(organization_id, entry_id)
            if original.is_void:
                reversal = self.find_reversal(organization_id, original.id)
                raise EntryAlreadyVoidError(
                    str(original.id), str(reversal.id) if reversal else None
                )
            if not original.is_posted:
                raise EntryNotPostedError(str(original.id), JournalEntryStatus(original.status).value)

            now = self.clock.now()
            void_date = now.date()
            number = self._sequences.next_document_number(
                organization_id, self._series, void_date, self._highest_number
            )

            reversal = JournalEntry(
                organization_id=organization_id,
                entry_number=number,
                entry_date=void_date,
                description=f"Reversal of {original.entry_number}: {original.description}",
                status=JournalEntryStatus.POSTED,
                source_type=original.source_type,
                source_id=original.source_id,
                reversal_of_id=original.id,
                posted_at=now,
                created_by_id=actor_id,
            )
            reversal.lines = [
                JournalLine(
                    account_id=spec.account_id,
                    line_number=index + 1,
                    debit=spec.debit,
                    credit=spec.credit,
                    description=f"Reversal: {spec.description or ''}",
                    created_by_id=actor_id,
                )
                for index, spec in enumerate(mirror_lines(original.lines))
            ]
            self.session.add(reversal)

            original.status = JournalEntryStatus.VOID
            original.voided_at = now
            original.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "journal_entry_voided",
                extra={
                    "entry_number": original.entry_number,
                    "reversal_entry_id": str(reversal.id),
                    "reversal_number": number,
                    "line_count": len(reversal.lines),
                },
            )
            return VoidResult(voided_entry=original, reversal_entry=reversal)
