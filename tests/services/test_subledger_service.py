"""
SubledgerService tests: counterparty balances and running-balance upkeep.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bizbooks_kernel.exceptions import CounterpartyNotFoundError, ValidationError
from bizbooks_kernel.models.counterparty import (
    CounterpartyKind,
    CounterpartyTransaction,
    CounterpartyTransactionType as T,
)


class TestCounterparties:
    def test_create_with_opening_balance(self, subledger_service, make_counterparty, org_id):
        customer = make_counterparty(opening_balance=Decimal("250.00"), opening_date=date(2023, 12, 31))

        assert customer.balance == Decimal("250.00")
        (txn,) = subledger_service.transactions(org_id, customer.id)
        assert txn.transaction_type == T.OPENING_BALANCE
        assert txn.running_balance == Decimal("250.00")

    def test_zero_opening_balance_records_nothing(self, subledger_service, make_counterparty, org_id):
        supplier = make_counterparty(kind=CounterpartyKind.SUPPLIER, opening_balance="0")
        assert subledger_service.transactions(org_id, supplier.id) == []

    def test_name_required(self, make_counterparty):
        with pytest.raises(ValidationError):
            make_counterparty(name="  ")

    def test_unknown_kind(self, make_counterparty):
        with pytest.raises(ValidationError):
            make_counterparty(kind="EMPLOYEE")

    def test_other_organization_cannot_see(self, subledger_service, make_counterparty):
        customer = make_counterparty()
        with pytest.raises(CounterpartyNotFoundError):
            subledger_service.get_counterparty(uuid4(), customer.id)


class TestRecordTransaction:
    def test_running_balance_follows_stream(self, subledger_service, make_counterparty, org_id, test_actor_id):
        customer = make_counterparty()
        subledger_service.record_transaction(org_id, test_actor_id, customer.id, T.INVOICE, "1180.00")
        payment = subledger_service.record_transaction(
            org_id, test_actor_id, customer.id, T.PAYMENT, "500.00"
        )

        assert payment.amount == Decimal("-500.00")
        assert payment.running_balance == Decimal("680.00")
        assert customer.balance == Decimal("680.00")

    def test_backdated_transaction_refolds_stream(self, subledger_service, make_counterparty, org_id, test_actor_id):
        customer = make_counterparty()
        jan10 = subledger_service.record_transaction(
            org_id, test_actor_id, customer.id, T.INVOICE, "100", transaction_date=date(2024, 1, 10)
        )
        jan20 = subledger_service.record_transaction(
            org_id, test_actor_id, customer.id, T.INVOICE, "50", transaction_date=date(2024, 1, 20)
        )

        subledger_service.record_transaction(
            org_id, test_actor_id, customer.id, T.PAYMENT, "30", transaction_date=date(2024, 1, 5)
        )

        stream = subledger_service.transactions(org_id, customer.id)
        assert [t.running_balance for t in stream] == [
            Decimal("-30"), Decimal("70"), Decimal("120"),
        ]
        assert stream[1].id == jan10.id and stream[2].id == jan20.id
        assert customer.balance == Decimal("120")

    def test_signed_adjustment(self, subledger_service, make_counterparty, org_id, test_actor_id):
        customer = make_counterparty(opening_balance="100")
        subledger_service.record_transaction(org_id, test_actor_id, customer.id, T.ADJUSTMENT, "-15.25")
        assert customer.balance == Decimal("84.75")

    def test_negative_magnitude_rejected(self, subledger_service, make_counterparty, org_id, test_actor_id):
        customer = make_counterparty()
        with pytest.raises(ValidationError):
            subledger_service.record_transaction(org_id, test_actor_id, customer.id, T.PAYMENT, "-5")
        assert subledger_service.transactions(org_id, customer.id) == []

    def test_subledger_total_by_kind(self, subledger_service, make_counterparty, org_id):
        make_counterparty(name="A", opening_balance="100")
        make_counterparty(name="B", opening_balance="40.50")
        make_counterparty(kind=CounterpartyKind.SUPPLIER, name="C", opening_balance="999")
        assert subledger_service.subledger_total(org_id, CounterpartyKind.CUSTOMER) == Decimal("140.50")
        assert subledger_service.subledger_total(uuid4(), "CUSTOMER") == Decimal("0")


class TestRecompute:
    def test_recompute_is_idempotent(self, subledger_service, make_counterparty, org_id, test_actor_id):
        customer = make_counterparty(opening_balance="10")
        subledger_service.record_transaction(org_id, test_actor_id, customer.id, T.INVOICE, "90")

        first = subledger_service.recompute_counterparty_balance(org_id, test_actor_id, customer.id)
        second = subledger_service.recompute_counterparty_balance(org_id, test_actor_id, customer.id)

        assert first.balance == second.balance == Decimal("100")
        assert not second.balance_changed
        assert second.corrected_transactions == 0

    def test_recompute_repairs_drift(self, subledger_service, make_counterparty, org_id, test_actor_id, session, captured_logs):
        customer = make_counterparty(opening_balance="10")
        txn = subledger_service.record_transaction(org_id, test_actor_id, customer.id, T.INVOICE, "90")
        txn.running_balance = Decimal("1")
        customer.balance = Decimal("5")
        session.flush()

        result = subledger_service.recompute_counterparty_balance(org_id, test_actor_id, customer.id)

        assert result.previous_balance == Decimal("5")
        assert result.balance == Decimal("100")
        assert result.corrected_transactions == 1
        assert session.get(CounterpartyTransaction, txn.id).running_balance == Decimal("100")
        record = next(r for r in captured_logs() if r["message"] == "counterparty_balance_recomputed")
        assert record["level"] == "WARNING"

    def test_recompute_all(self, subledger_service, make_counterparty, org_id, test_actor_id):
        make_counterparty(name="A", opening_balance="1")
        make_counterparty(name="B", opening_balance="2")
        results = subledger_service.recompute_all(org_id, test_actor_id, CounterpartyKind.CUSTOMER)
        assert [r.balance for r in results] == [Decimal("1"), Decimal("2")]
