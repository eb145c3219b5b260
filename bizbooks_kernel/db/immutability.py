"""
ORM-level append-only enforcement for ledger records.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent:

    session.flush()
         |
         v
    [before_update] --> _check_journal_entry_update() --> ImmutabilityViolationError
    [before_delete] --> _check_journal_entry_delete()  --------^
         |
         v
    SQL sent to database (only if checks pass)

A raised ImmutabilityViolationError aborts the flush, and the enclosing
``session_scope()`` rolls the whole unit of work back.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | When immutable                 | Allowed change
--------------|--------------------------------|-----------------------------------
JournalEntry  | status POSTED or VOID          | POSTED -> VOID (+ voided_at)
JournalLine   | parent entry POSTED or VOID    | none
Account       | referenced by journal lines    | not deletable

updated_at / updated_by_id are audit metadata and may always change.

The listeners are global to the mapped classes.  init_engine_from_url()
registers them, so any code that goes through session_scope() is guarded.
Unregister only in tests that deliberately bypass them.
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from bizbooks_kernel.exceptions import AccountReferencedError, ImmutabilityViolationError
from bizbooks_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_VOID_TRANSITION_FIELDS = _AUDIT_FIELDS | {"status", "voided_at"}
_FROZEN_STATUSES = frozenset({"POSTED", "VOID"})


def _status_value(status) -> str:
    return getattr(status, "value", status)


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_journal_entry_update(mapper, connection, target):
    """
    Block edits of POSTED/VOID entries, except the POSTED -> VOID flip.

    History tells us the status as it was loaded:
        - status changing: old value is history.deleted[0]
        - status unchanged: old value is the current value
    """
    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = _status_value(status_history.deleted[0])
    else:
        old_status = _status_value(target.status)

    if old_status not in _FROZEN_STATUSES:
        return

    new_status = _status_value(target.status)
    voiding = old_status == "POSTED" and new_status == "VOID"
    allowed = _VOID_TRANSITION_FIELDS if voiding else _AUDIT_FIELDS

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in allowed:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "JournalEntry",
                target.id,
                "UPDATE",
                f"field '{attr.key}' is frozen once an entry is {old_status}; "
                "use void and reversal instead",
                field=attr.key,
            )


def _check_journal_entry_delete(mapper, connection, target):
    if _status_value(target.status) in _FROZEN_STATUSES:
        raise _blocked(
            "JournalEntry",
            target.id,
            "DELETE",
            f"{_status_value(target.status)} journal entries cannot be deleted",
        )


def _parent_is_frozen(target) -> bool:
    entry = target.entry
    if entry is None:
        return False
    status_history = get_history(entry, "status")
    if status_history.deleted:
        return _status_value(status_history.deleted[0]) in _FROZEN_STATUSES
    return _status_value(entry.status) in _FROZEN_STATUSES


def _check_journal_line_update(mapper, connection, target):
    if _parent_is_frozen(target):
        raise _blocked(
            "JournalLine",
            target.id,
            "UPDATE",
            "journal lines cannot be modified after the entry is posted",
        )


def _check_journal_line_delete(mapper, connection, target):
    if _parent_is_frozen(target):
        raise _blocked(
            "JournalLine",
            target.id,
            "DELETE",
            "journal lines cannot be deleted after the entry is posted",
        )


def _check_account_deletion_before_flush(session, flush_context, instances):
    """
    Refuse to delete accounts that journal lines reference.

    Runs in before_flush so the check happens before the unit of work plans
    any dependent DELETEs.
    """
    from bizbooks_kernel.models.account import Account
    from bizbooks_kernel.models.journal import JournalLine

    for obj in session.deleted:
        if not isinstance(obj, Account):
            continue
        line_count = session.connection().execute(
            select(func.count())
            .select_from(JournalLine.__table__)
            .where(JournalLine.__table__.c.account_id == str(obj.id))
        ).scalar_one()
        if line_count:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Account",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "line_count": line_count,
                },
            )
            raise AccountReferencedError(
                obj.code, f"{line_count} journal lines reference it"
            )


def _listeners():
    from bizbooks_kernel.models.journal import JournalEntry, JournalLine

    return (
        (Session, "before_flush", _check_account_deletion_before_flush),
        (JournalEntry, "before_update", _check_journal_entry_update),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_update),
        (JournalLine, "before_delete", _check_journal_line_delete),
    )


def immutability_listeners_registered() -> bool:
    return all(event.contains(*listener) for listener in _listeners())


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    init_engine_from_url() calls this, so every engine the application
    builds is guarded.  Registering again is a no-op.
    """
    added = 0
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
            added += 1
    if added:
        logger.debug("immutability_listeners_registered", extra={"listener_count": added})


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the enforcement listeners.

    WARNING: Only for tests that need to violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
