"""
Property-based tests for the pure engines.

Properties checked:
- GST: intra-state halves are equal; grand total = taxable + tax
- VAT: tax is never charged outside category S
- FIFO: takes sum to the request, oldest lots drain first, no lot overdrawn
- Subledger fold: final balance is the sum of amounts, whatever the input order
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from bizbooks_engines.fifo import LotSnapshot, plan_fifo_consumption
from bizbooks_engines.subledger import SubledgerItem, fold_running_balances
from bizbooks_engines.tax import GstCalculator, TaxLineInput, TaxProfile, TaxScheme
from bizbooks_engines.vat import VatCalculator, VatLineInput
from bizbooks_kernel.exceptions import InsufficientStockError

SETTINGS = settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])

amounts = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("9999999.99"), places=2,
    allow_nan=False, allow_infinity=False,
)
rates = st.sampled_from([Decimal(r) for r in ("0", "0.25", "3", "5", "12", "18", "28")])
quantities = st.decimals(
    min_value=Decimal("0.001"), max_value=Decimal("1000"), places=3,
    allow_nan=False, allow_infinity=False,
)
costs = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("10000"), places=2,
    allow_nan=False, allow_infinity=False,
)

MAHARASHTRA = TaxProfile(scheme=TaxScheme.GST, enabled=True, region="27")


@st.composite
def lot_lists(draw):
    count = draw(st.integers(min_value=1, max_value=8))
    start = date(2024, 1, 1)
    return [
        LotSnapshot(
            lot_id=uuid4(),
            lot_date=start + timedelta(days=draw(st.integers(0, 30))),
            receipt_seq=seq,
            unit_cost=draw(costs),
            remaining_quantity=draw(quantities),
        )
        for seq in range(1, count + 1)
    ]


class TestGstProperties:
    @given(lines=st.lists(st.tuples(amounts, rates), min_size=1, max_size=10))
    @SETTINGS
    def test_intrastate_halves_equal_and_totals_add_up(self, lines):
        result = GstCalculator().calculate(
            MAHARASHTRA, [TaxLineInput(taxable_amount=a, rate=r) for a, r in lines], counterparty_region="27"
        )
        for line in result.lines:
            assert line.cgst_amount == line.sgst_amount
            assert line.igst_amount == Decimal("0")
        assert result.grand_total == result.total_taxable + result.total_tax
        assert result.total_cgst == result.total_sgst

    @given(amount=amounts, rate=rates)
    @SETTINGS
    def test_interstate_is_all_igst(self, amount, rate):
        result = GstCalculator().calculate(
            MAHARASHTRA, [TaxLineInput(taxable_amount=amount, rate=rate)], counterparty_region="29"
        )
        assert result.total_cgst == result.total_sgst == Decimal("0")
        assert result.total_tax == result.total_igst


class TestVatProperties:
    @given(amount=amounts, category=st.sampled_from(["Z", "E", "O"]))
    @SETTINGS
    def test_non_standard_categories_carry_no_tax(self, amount, category):
        result = VatCalculator().calculate(
            [VatLineInput(taxable_amount=amount, rate=Decimal("15"), category=category)]
        )
        assert result.total_tax == Decimal("0")
        assert result.grand_total == result.total_taxable


class TestFifoProperties:
    @given(lots=lot_lists(), data=st.data())
    @SETTINGS
    def test_takes_cover_request_in_order(self, lots, data):
        available = sum(l.remaining_quantity for l in lots)
        requested = data.draw(
            st.decimals(min_value=Decimal("0.001"), max_value=available, places=3,
                        allow_nan=False, allow_infinity=False)
        )

        plan = plan_fifo_consumption(uuid4(), lots, requested)

        assert plan.total_quantity == requested
        by_id = {l.lot_id: l for l in lots}
        for take in plan.takes:
            assert Decimal("0") < take.quantity <= by_id[take.lot_id].remaining_quantity
        # every lot before the last one touched is drained
        for take in plan.takes[:-1]:
            assert take.quantity == by_id[take.lot_id].remaining_quantity
        keys = [by_id[t.lot_id].sort_key for t in plan.takes]
        assert keys == sorted(keys)

    @given(lots=lot_lists())
    @SETTINGS
    def test_more_than_available_always_fails(self, lots):
        available = sum(l.remaining_quantity for l in lots)
        with pytest.raises(InsufficientStockError):
            plan_fifo_consumption(uuid4(), lots, available + Decimal("0.001"))


class TestSubledgerFoldProperties:
    @given(
        entries=st.lists(
            st.tuples(
                st.integers(min_value=0, max_value=60),
                st.decimals(min_value=Decimal("-5000"), max_value=Decimal("5000"), places=2,
                            allow_nan=False, allow_infinity=False),
            ),
            max_size=20,
        ),
        data=st.data(),
    )
    @SETTINGS
    def test_balance_independent_of_input_order(self, entries, data):
        items = [
            SubledgerItem(uuid4(), date(2024, 1, 1) + timedelta(days=d), seq, amount)
            for seq, (d, amount) in enumerate(entries, start=1)
        ]
        shuffled = data.draw(st.permutations(items))

        fold = fold_running_balances(items)
        again = fold_running_balances(shuffled)

        assert fold.balance == sum((a for _, a in entries), Decimal("0"))
        assert fold.running_balances == again.running_balances
        if items:
            assert fold.running_balances[-1][1] == fold.balance
