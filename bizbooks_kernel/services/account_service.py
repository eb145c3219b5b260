"""
AccountService -- the per-organization chart of accounts.

Responsibility:
    Creates, seeds, edits, deactivates and deletes accounts while keeping
    the account tree consistent.

Architecture position:
    Kernel > Services.  Used by document posting (lookups by code), by
    organization bootstrap (seeding) and by the CRUD callers.

Invariants enforced:
    - code is unique per organization.
    - A child's account_type equals its parent's.
    - Re-parenting never creates a cycle.  The check is an explicit walk up
      the parent chain with a visited set, bounded by the tree size.
    - System accounts cannot be deleted or deactivated, and their type and
      parent never change.
    - Hard delete only when the account has no children and no lines.

Failure modes:
    - AccountNotFoundError, DuplicateAccountCodeError,
      AccountTypeMismatchError, AccountCycleError, SystemAccountError,
      AccountReferencedError.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select

from bizbooks_kernel.exceptions import (
    AccountCycleError,
    AccountNotFoundError,
    AccountReferencedError,
    AccountTypeMismatchError,
    DuplicateAccountCodeError,
    SystemAccountError,
    ValidationError,
)
from bizbooks_kernel.logging_config import get_logger
from bizbooks_kernel.models.account import Account, AccountType
from bizbooks_kernel.models.journal import JournalLine
from bizbooks_kernel.services.base import BaseService

logger = get_logger("services.account")

_UNSET = object()


def _account_type(value) -> AccountType:
    try:
        return AccountType(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown account type: {value}", field="account_type") from exc


@dataclass(frozen=True)
class AccountSeed:
    """One account of a chart-of-accounts template."""

    code: str
    name: str
    account_type: AccountType
    sub_type: str | None = None
    parent_code: str | None = None
    is_system: bool = False


class AccountService(BaseService[Account]):
    """
    Chart-of-accounts maintenance, scoped by an explicit organization id.

    Non-goals:
        Balances.  Those are derived by LedgerSelector from journal lines.
    """

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, organization_id: UUID, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None or account.organization_id != organization_id:
            raise AccountNotFoundError(str(account_id))
        return account

    def find_by_code(self, organization_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.organization_id == organization_id,
                Account.code == code,
            )
        ).scalar_one_or_none()

    def get_by_code(self, organization_id: UUID, code: str) -> Account:
        account = self.find_by_code(organization_id, code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def list_accounts(self, organization_id: UUID, include_inactive: bool = True) -> list[Account]:
        """All accounts ordered by code."""
        stmt = select(Account).where(Account.organization_id == organization_id)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        return list(self.session.execute(stmt.order_by(Account.code)).scalars())

    def children(self, organization_id: UUID, account_id: UUID) -> list[Account]:
        return list(
            self.session.execute(
                select(Account)
                .where(
                    Account.organization_id == organization_id,
                    Account.parent_id == account_id,
                )
                .order_by(Account.code)
            ).scalars()
        )

    def _has_lines(self, account_id: UUID) -> int:
        return self.session.execute(
            select(func.count(JournalLine.id)).where(JournalLine.account_id == account_id)
        ).scalar_one()

    # ------------------------------------------------------------------
    # Tree rules
    # ------------------------------------------------------------------

    def _check_parent(self, account_code: str, account_type: AccountType, parent: Account) -> None:
        if AccountType(parent.account_type) != AccountType(account_type):
            raise AccountTypeMismatchError(
                account_code,
                AccountType(account_type).value,
                parent.code,
                AccountType(parent.account_type).value,
            )

    def _check_no_cycle(self, account: Account, new_parent: Account) -> None:
        """Walk up from ``new_parent``; meeting ``account`` means a cycle."""
        visited: set[UUID] = set()
        node: Account | None = new_parent
        while node is not None:
            if node.id == account.id:
                raise AccountCycleError(account.code, new_parent.code)
            if node.id in visited:
                # Pre-existing loop above us; refuse to extend it.
                raise AccountCycleError(account.code, new_parent.code)
            visited.add(node.id)
            node = self.session.get(Account, node.parent_id) if node.parent_id else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_account(
        self,
        organization_id: UUID,
        actor_id: UUID,
        code: str,
        name: str,
        account_type: AccountType | str,
        *,
        parent_code: str | None = None,
        sub_type: str | None = None,
        description: str | None = None,
        is_system: bool = False,
    ) -> Account:
        """
        Create one account.

        Raises:
            ValidationError: blank code or name, unknown account type.
            DuplicateAccountCodeError: code already used in organization.
            AccountNotFoundError: parent_code unknown.
            AccountTypeMismatchError: type differs from the parent's.
        """
        code = (code or "").strip()
        if not code or not (name or "").strip():
            raise ValidationError("Account code and name are required", field="code")
        account_type = _account_type(account_type)

        if self.find_by_code(organization_id, code) is not None:
            raise DuplicateAccountCodeError(code)

        parent_id = None
        if parent_code:
            parent = self.get_by_code(organization_id, parent_code)
            self._check_parent(code, account_type, parent)
            parent_id = parent.id

        account = Account(
            organization_id=organization_id,
            code=code,
            name=name.strip(),
            account_type=account_type,
            sub_type=sub_type,
            description=description,
            parent_id=parent_id,
            is_system=is_system,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()
        logger.info(
            "account_created",
            extra={
                "account_code": code,
                "account_type": account_type.value,
                "parent_code": parent_code,
                "is_system": is_system,
            },
        )
        return account

    def update_account(
        self,
        organization_id: UUID,
        actor_id: UUID,
        account_id: UUID,
        *,
        name: str | None = None,
        description: str | None = None,
        sub_type: str | None = None,
        account_type: AccountType | str | None = None,
        parent_code=_UNSET,
    ) -> Account:
        """
        Edit an account.

        ``parent_code=None`` moves the account to the top level; leaving it
        unset keeps the current parent.

        Raises:
            ValidationError: unknown account type.
            SystemAccountError: retyping or re-parenting a system account.
            AccountTypeMismatchError: new type or parent breaks type equality.
            AccountCycleError: new parent is the account or a descendant.
        """
        account = self.get(organization_id, account_id)

        new_type = _account_type(account_type) if account_type is not None else AccountType(account.account_type)
        type_changes = new_type != AccountType(account.account_type)
        parent_changes = False
        new_parent: Account | None = None
        if parent_code is not _UNSET:
            new_parent = self.get_by_code(organization_id, parent_code) if parent_code else None
            parent_changes = (new_parent.id if new_parent else None) != account.parent_id

        if account.is_system and type_changes:
            raise SystemAccountError(account.code, "change the type of")
        if account.is_system and parent_changes:
            raise SystemAccountError(account.code, "re-parent")

        if type_changes:
            if self._has_lines(account.id):
                raise ValidationError(
                    f"Cannot change type of account {account.code}: journal lines reference it",
                    field="account_type",
                )
            children = self.children(organization_id, account.id)
            if children:
                child = children[0]
                raise AccountTypeMismatchError(
                    child.code, AccountType(child.account_type).value, account.code, new_type.value
                )

        if parent_changes and new_parent is not None:
            self._check_no_cycle(account, new_parent)

        effective_parent = new_parent if parent_code is not _UNSET else (
            self.session.get(Account, account.parent_id) if account.parent_id else None
        )
        if effective_parent is not None and (type_changes or parent_changes):
            self._check_parent(account.code, new_type, effective_parent)

        if name is not None:
            if not name.strip():
                raise ValidationError("Account name is required", field="name")
            account.name = name.strip()
        if description is not None:
            account.description = description
        if sub_type is not None:
            account.sub_type = sub_type
        if type_changes:
            account.account_type = new_type
        if parent_changes:
            account.parent_id = new_parent.id if new_parent else None
        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_updated",
            extra={
                "account_code": account.code,
                "type_changed": type_changes,
                "parent_changed": parent_changes,
            },
        )
        return account

    def set_active(
        self,
        organization_id: UUID,
        actor_id: UUID,
        account_id: UUID,
        active: bool,
    ) -> Account:
        """Soft-enable or soft-disable an account."""
        account = self.get(organization_id, account_id)
        if not active and account.is_system:
            raise SystemAccountError(account.code, "deactivate")
        account.is_active = active
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "account_activation_changed",
            extra={"account_code": account.code, "is_active": active},
        )
        return account

    def delete_account(self, organization_id: UUID, account_id: UUID) -> None:
        """
        Hard-delete an account.

        Raises:
            SystemAccountError: system account.
            AccountReferencedError: has child accounts or journal lines.
        """
        account = self.get(organization_id, account_id)
        if account.is_system:
            raise SystemAccountError(account.code, "delete")
        children = self.children(organization_id, account.id)
        if children:
            raise AccountReferencedError(account.code, f"{len(children)} child accounts")
        line_count = self._has_lines(account.id)
        if line_count:
            raise AccountReferencedError(account.code, f"{line_count} journal lines reference it")

        self.session.delete(account)
        self.session.flush()
        logger.info("account_deleted", extra={"account_code": account.code})

    def seed_chart_of_accounts(
        self,
        organization_id: UUID,
        actor_id: UUID,
        seeds: Sequence[AccountSeed],
    ) -> list[Account]:
        """
        Create the template accounts that do not exist yet.

        Two passes: every account is created first, then parents are linked,
        so template order does not matter.  Existing codes are left alone,
        which makes re-seeding idempotent.

        Returns:
            The accounts created by this call.
        """
        existing = {a.code: a for a in self.list_accounts(organization_id)}
        created: list[Account] = []

        for seed in seeds:
            if seed.code in existing:
                continue
            account = Account(
                organization_id=organization_id,
                code=seed.code,
                name=seed.name,
                account_type=AccountType(seed.account_type),
                sub_type=seed.sub_type,
                is_system=seed.is_system,
                is_active=True,
                created_by_id=actor_id,
            )
            self.session.add(account)
            existing[seed.code] = account
            created.append(account)
        self.session.flush()

        created_codes = {a.code for a in created}
        for seed in seeds:
            if seed.code not in created_codes or not seed.parent_code:
                continue
            parent = existing.get(seed.parent_code)
            if parent is None:
                raise AccountNotFoundError(seed.parent_code)
            account = existing[seed.code]
            self._check_parent(account.code, AccountType(account.account_type), parent)
            account.parent_id = parent.id
        self.session.flush()

        logger.info(
            "chart_of_accounts_seeded",
            extra={"created_count": len(created), "template_size": len(seeds)},
        )
        return created
