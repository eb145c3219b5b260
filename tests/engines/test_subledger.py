"""
Tests for subledger signs and the running-balance fold.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bizbooks_engines.subledger import SubledgerItem, fold_running_balances, signed_amount
from bizbooks_kernel.exceptions import ValidationError
from bizbooks_kernel.models.counterparty import CounterpartyTransactionType as T


class TestSignedAmount:
    @pytest.mark.parametrize("txn_type", [T.INVOICE, T.PURCHASE_INVOICE, T.DEPOSIT, T.TRANSFER_IN])
    def test_increasing_types(self, txn_type):
        assert signed_amount(txn_type, Decimal("100")) == Decimal("100.00")

    @pytest.mark.parametrize(
        "txn_type",
        [T.PAYMENT, T.CREDIT_NOTE, T.DEBIT_NOTE, T.INVOICE_VOID, T.WITHDRAWAL, T.TRANSFER_OUT],
    )
    def test_decreasing_types(self, txn_type):
        assert signed_amount(txn_type, Decimal("100")) == Decimal("-100.00")

    @pytest.mark.parametrize("txn_type", [T.OPENING_BALANCE, T.ADJUSTMENT])
    def test_signed_types_taken_as_given(self, txn_type):
        assert signed_amount(txn_type, Decimal("-25.50")) == Decimal("-25.50")
        assert signed_amount(txn_type, "25.50") == Decimal("25.50")

    def test_string_type_accepted(self):
        assert signed_amount("PAYMENT", "10") == Decimal("-10.00")

    def test_negative_magnitude_rejected(self):
        with pytest.raises(ValidationError):
            signed_amount(T.INVOICE, Decimal("-1"))

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            signed_amount("REFUND", Decimal("1"))


class TestRunningBalanceFold:
    def test_prefix_sums_in_date_then_sequence_order(self):
        a, b, c = uuid4(), uuid4(), uuid4()
        fold = fold_running_balances(
            [
                SubledgerItem(c, date(2024, 1, 3), 1, Decimal("-40")),
                SubledgerItem(b, date(2024, 1, 1), 5, Decimal("10")),
                SubledgerItem(a, date(2024, 1, 1), 2, Decimal("100")),
            ]
        )
        assert fold.running_balances == (
            (a, Decimal("100")),
            (b, Decimal("110")),
            (c, Decimal("70")),
        )
        assert fold.balance == Decimal("70")
        assert fold.as_dict()[b] == Decimal("110")

    def test_empty_stream(self):
        fold = fold_running_balances([])
        assert fold.balance == Decimal("0")
        assert fold.running_balances == ()
