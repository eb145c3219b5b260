"""
ValuationService tests against a real session.

Test classes:
  1. TestReceiveStock       -- lots, receipt order, validation
  2. TestConsumeStock       -- FIFO across persisted lots, atomic failure
  3. TestRestoreStock       -- restore to the original lots, double restore
  4. TestLotsAndSummary     -- delete guards, on-hand summary, as_of
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bizbooks_kernel.exceptions import (
    ConsumptionAlreadyRestoredError,
    InsufficientStockError,
    ProductNotFoundError,
    StockLotInUseError,
    ValidationError,
)
from bizbooks_kernel.models.inventory import ConsumerType, LotSourceType, StockLot


class TestReceiveStock:
    def test_lot_starts_full(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product()
        lot = valuation_service.receive_stock(
            org_id, test_actor_id, product.id, Decimal("5"), Decimal("12.00"),
            source_ref="PINV-001",
        )
        assert lot.remaining_quantity == lot.initial_quantity == Decimal("5")
        assert lot.source_type == LotSourceType.PURCHASE
        assert lot.lot_date == date(2024, 1, 1)

    def test_receipt_sequence_increases(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product()
        first = valuation_service.receive_stock(org_id, test_actor_id, product.id, "1", "1")
        second = valuation_service.receive_stock(org_id, test_actor_id, product.id, "1", "1")
        assert second.receipt_seq > first.receipt_seq

    @pytest.mark.parametrize("quantity,cost", [("0", "1"), ("-2", "1"), ("1", "-0.01")])
    def test_invalid_receipt_rejected(self, valuation_service, make_product, org_id, test_actor_id, quantity, cost):
        product = make_product()
        with pytest.raises(ValidationError):
            valuation_service.receive_stock(org_id, test_actor_id, product.id, quantity, cost)

    def test_untracked_product_has_no_lots(self, valuation_service, make_product, org_id, test_actor_id):
        service_item = make_product(sku="INSTALL", track_inventory=False)
        with pytest.raises(ValidationError):
            valuation_service.receive_stock(org_id, test_actor_id, service_item.id, "1", "1")

    def test_unknown_product(self, valuation_service, org_id, test_actor_id):
        with pytest.raises(ProductNotFoundError):
            valuation_service.receive_stock(org_id, test_actor_id, uuid4(), "1", "1")


class TestConsumeStock:
    def test_consumes_oldest_lot_first(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product(lots=[(3, "10.00"), (5, "12.00")])

        result = valuation_service.consume_stock(
            org_id, test_actor_id, product.id, Decimal("4"), consumer_ref="INV-001:0"
        )

        assert result.total_cost == Decimal("42.00")
        assert [line.quantity for line in result.lines] == [Decimal("3"), Decimal("1")]
        summary = valuation_service.stock_summary(org_id, product.id)
        assert summary.on_hand_quantity == Decimal("4")
        assert summary.open_lot_count == 1
        assert summary.total_value == Decimal("48.00")

    def test_insufficient_stock_changes_nothing(self, valuation_service, make_product, org_id, test_actor_id, session):
        product = make_product(lots=[(3, "10.00")])

        with pytest.raises(InsufficientStockError):
            valuation_service.consume_stock(
                org_id, test_actor_id, product.id, Decimal("4"), consumer_ref="INV-001:0"
            )

        lots = session.query(StockLot).filter_by(product_id=product.id).all()
        assert [lot.remaining_quantity for lot in lots] == [Decimal("3")]
        assert valuation_service.consumptions_for(org_id, "INV-001:0") == []

    def test_untracked_product_bypasses_fifo(self, valuation_service, make_product, org_id, test_actor_id):
        service_item = make_product(sku="INSTALL", track_inventory=False)
        result = valuation_service.consume_stock(
            org_id, test_actor_id, service_item.id, Decimal("2"), consumer_ref="INV-001:1"
        )
        assert not result.tracked
        assert result.lines == ()
        assert result.total_cost == Decimal("0")

    def test_future_dated_lot_not_eligible(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product(lots=[(2, "5.00")])
        valuation_service.receive_stock(
            org_id, test_actor_id, product.id, "10", "6.00", lot_date=date(2024, 2, 1)
        )
        with pytest.raises(InsufficientStockError):
            valuation_service.consume_stock(
                org_id, test_actor_id, product.id, "3", consumer_ref="INV-001:0"
            )

    def test_preview_does_not_change_lots(self, valuation_service, make_product, org_id):
        product = make_product(lots=[(3, "10.00"), (5, "12.00")])
        plan = valuation_service.preview_consumption(org_id, product.id, "4")
        assert plan.total_cost == Decimal("42.00")
        assert valuation_service.stock_summary(org_id, product.id).on_hand_quantity == Decimal("8")

    def test_consumer_ref_required(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product(lots=[(3, "10.00")])
        with pytest.raises(ValidationError):
            valuation_service.consume_stock(org_id, test_actor_id, product.id, "1", consumer_ref="")


class TestRestoreStock:
    def test_restore_returns_quantities_to_original_lots(self, valuation_service, make_product, org_id, test_actor_id, session):
        product = make_product(lots=[(3, "10.00"), (5, "12.00")])
        valuation_service.consume_stock(
            org_id, test_actor_id, product.id, "4", consumer_ref="INV-007:0"
        )

        restored = valuation_service.restore_consumer(org_id, test_actor_id, "INV-007:0")

        assert restored == Decimal("4")
        lots = session.query(StockLot).filter_by(product_id=product.id).order_by(StockLot.receipt_seq).all()
        assert [lot.remaining_quantity for lot in lots] == [Decimal("3"), Decimal("5")]
        records = valuation_service.consumptions_for(org_id, "INV-007:0", include_restored=True)
        assert len(records) == 2
        assert all(r.restored_at is not None for r in records)

    def test_restore_ignores_lots_received_afterwards(
        self, valuation_service, make_product, org_id, test_actor_id, session
    ):
        product = make_product(lots=[(3, "10.00"), (5, "12.00")])
        valuation_service.consume_stock(
            org_id, test_actor_id, product.id, "4", consumer_ref="INV-010:1"
        )
        newer = valuation_service.receive_stock(org_id, test_actor_id, product.id, "6", "15.00")

        valuation_service.restore_consumer(org_id, test_actor_id, "INV-010:1")

        lots = session.query(StockLot).filter_by(product_id=product.id).order_by(StockLot.receipt_seq).all()
        assert [lot.remaining_quantity for lot in lots] == [Decimal("3"), Decimal("5"), Decimal("6")]
        assert newer.remaining_quantity == newer.initial_quantity

        again = valuation_service.consume_stock(
            org_id, test_actor_id, product.id, "4", consumer_ref="INV-011:1"
        )
        assert [line.lot_id for line in again.lines] == [lots[0].id, lots[1].id]
        assert again.total_cost == Decimal("42.00")
        assert newer.remaining_quantity == Decimal("6")

    def test_restore_twice_rejected(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product(lots=[(3, "10.00")])
        valuation_service.consume_stock(org_id, test_actor_id, product.id, "2", consumer_ref="INV-008:0")
        records = valuation_service.consumptions_for(org_id, "INV-008:0")
        valuation_service.restore_stock(org_id, test_actor_id, records)

        with pytest.raises(ConsumptionAlreadyRestoredError):
            valuation_service.restore_stock(org_id, test_actor_id, records)

    def test_restore_consumer_with_nothing_open(self, valuation_service, org_id, test_actor_id):
        assert valuation_service.restore_consumer(org_id, test_actor_id, "INV-404:0") == Decimal("0")

    def test_document_consumptions_span_lines(self, valuation_service, make_product, org_id, test_actor_id):
        bolts = make_product(sku="BOLT", lots=[(10, "1.00")])
        nuts = make_product(sku="NUT", lots=[(10, "0.50")])
        valuation_service.consume_stock(org_id, test_actor_id, bolts.id, "2", consumer_ref="INV-009:0")
        valuation_service.consume_stock(org_id, test_actor_id, nuts.id, "3", consumer_ref="INV-009:1")
        valuation_service.consume_stock(
            org_id, test_actor_id, nuts.id, "1", consumer_ref="ADJ-1", consumer_type=ConsumerType.ADJUSTMENT
        )

        records = valuation_service.consumptions_for_document(org_id, "INV-009")
        assert sorted(r.consumer_ref for r in records) == ["INV-009:0", "INV-009:1"]


class TestLotsAndSummary:
    def test_untouched_lot_can_be_deleted(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product()
        lot = valuation_service.receive_stock(org_id, test_actor_id, product.id, "2", "3.00")
        valuation_service.delete_lot(org_id, lot.id)
        assert valuation_service.stock_summary(org_id, product.id).open_lot_count == 0

    def test_consumed_lot_cannot_be_deleted(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product()
        lot = valuation_service.receive_stock(org_id, test_actor_id, product.id, "2", "3.00")
        valuation_service.consume_stock(org_id, test_actor_id, product.id, "1", consumer_ref="INV-001:0")
        with pytest.raises(StockLotInUseError):
            valuation_service.delete_lot(org_id, lot.id)

    def test_restored_lot_still_referenced(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product()
        lot = valuation_service.receive_stock(org_id, test_actor_id, product.id, "2", "3.00")
        valuation_service.consume_stock(org_id, test_actor_id, product.id, "1", consumer_ref="INV-001:0")
        valuation_service.restore_consumer(org_id, test_actor_id, "INV-001:0")
        with pytest.raises(StockLotInUseError):
            valuation_service.delete_lot(org_id, lot.id)

    def test_summary_as_of(self, valuation_service, make_product, org_id, test_actor_id):
        product = make_product(lots=[(4, "2.50")])
        valuation_service.receive_stock(
            org_id, test_actor_id, product.id, "6", "3.00", lot_date=date(2024, 3, 1)
        )
        early = valuation_service.stock_summary(org_id, product.id, as_of=date(2024, 2, 1))
        full = valuation_service.stock_summary(org_id, product.id)
        assert early.on_hand_quantity == Decimal("4")
        assert early.average_unit_cost == Decimal("2.50")
        assert full.on_hand_quantity == Decimal("10")
        assert full.total_value == Decimal("28.00")

    def test_products_are_organization_scoped(self, valuation_service, make_product):
        product = make_product()
        with pytest.raises(ProductNotFoundError):
            valuation_service.get_product(uuid4(), product.id)
