"""
Balances derived from journal lines.

POSTED and VOID entries count; a voided entry and its reversal net to zero.
DRAFT entries never count.
"""

from datetime import date
from decimal import Decimal

import pytest

from bizbooks_kernel.domain.journal_rules import LineSpec
from bizbooks_kernel.exceptions import AccountNotFoundError
from bizbooks_kernel.models.journal import JournalEntryStatus


@pytest.fixture
def post(journal_service, chart, org_id, test_actor_id):
    def _post(debit_code, credit_code, amount, entry_date=None, status=JournalEntryStatus.POSTED):
        return journal_service.create_entry(
            org_id,
            test_actor_id,
            [LineSpec.dr(debit_code, amount), LineSpec.cr(credit_code, amount)],
            entry_date=entry_date,
            status=status,
        )

    return _post


class TestAccountBalance:
    def test_balance_from_posted_lines(self, ledger_selector, post, org_id):
        post("1100", "3100", "1000.00")
        post("5210", "1100", "250.00")

        cash = ledger_selector.balance_by_code(org_id, "1100")
        assert cash.debit_total == Decimal("1000.00")
        assert cash.credit_total == Decimal("250.00")
        assert cash.balance == Decimal("750.00")
        assert cash.line_count == 2

    def test_drafts_do_not_count(self, ledger_selector, post, org_id):
        post("1100", "3100", "1000.00", status=JournalEntryStatus.DRAFT)
        assert ledger_selector.balance_by_code(org_id, "1100").balance == Decimal("0")

    def test_void_and_reversal_net_to_zero(
        self, ledger_selector, journal_service, post, org_id, test_actor_id
    ):
        entry = post("5210", "1100", "250.00")
        journal_service.void_entry(org_id, test_actor_id, entry.id)
        rent = ledger_selector.balance_by_code(org_id, "5210")
        assert rent.balance == Decimal("0")
        assert rent.line_count == 2

    def test_as_of_excludes_later_entries(
        self, ledger_selector, journal_service, post, org_id, test_actor_id
    ):
        entry = post("5210", "1100", "250.00", entry_date=date(2023, 12, 10))
        # Voided on the clock date (2024-01-01); the reversal is dated then.
        journal_service.void_entry(org_id, test_actor_id, entry.id)

        before = ledger_selector.balance_by_code(org_id, "5210", as_of=date(2023, 12, 31))
        after = ledger_selector.balance_by_code(org_id, "5210", as_of=date(2024, 1, 1))
        assert before.balance == Decimal("250.00")
        assert after.balance == Decimal("0")

    def test_unknown_code(self, ledger_selector, chart, org_id):
        with pytest.raises(AccountNotFoundError):
            ledger_selector.balance_by_code(org_id, "0000")

    def test_organizations_are_isolated(self, ledger_selector, post, chart):
        from uuid import uuid4

        post("1100", "3100", "1000.00")
        with pytest.raises(AccountNotFoundError):
            ledger_selector.balance_by_code(uuid4(), "1100")


class TestTrialBalance:
    def test_trial_balance_balances(self, ledger_selector, journal_service, post, org_id, test_actor_id):
        post("1100", "3100", "5000.00")
        post("5210", "1100", "1200.00")
        voided = post("5220", "1100", "80.00")
        journal_service.void_entry(org_id, test_actor_id, voided.id)

        tb = ledger_selector.trial_balance(org_id)
        assert tb.is_balanced
        assert tb.total_debits == tb.total_credits
        codes = [row.account_code for row in tb.rows]
        assert codes == sorted(codes)
        rows = {row.account_code: row for row in tb.rows}
        assert rows["3100"].natural_balance == Decimal("5000.00")
        assert rows["5220"].balance == Decimal("0")


class TestAccountStatement:
    def test_running_balance_with_brought_forward(self, ledger_selector, post, chart, org_id):
        post("1100", "3100", "1000.00", entry_date=date(2023, 11, 1))
        post("5210", "1100", "200.00", entry_date=date(2023, 12, 1))
        post("5220", "1100", "50.00", entry_date=date(2023, 12, 20))

        lines = ledger_selector.account_statement(
            org_id, chart["1100"].id, date_from=date(2023, 12, 1)
        )
        assert [l.running_balance for l in lines] == [Decimal("800.00"), Decimal("750.00")]
        assert [l.credit for l in lines] == [Decimal("200.00"), Decimal("50.00")]
