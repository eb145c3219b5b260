"""
bizbooks_services.valuation_service -- Stock lots and FIFO consumption.

Responsibility:
    Receive stock into lots, consume lots oldest-first for sales and
    adjustments, restore exactly what a consumer took, and report on-hand
    quantity and value per product.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Uses bizbooks_engines.fifo to plan which lots give how much, then applies
    the plan to StockLot rows and records one StockLotConsumption per lot
    touched.  Called by document posting inside the caller's transaction.

Invariants enforced:
    - FIFO order: (lot_date, receipt_seq) ascending; receipt_seq comes from a
      per-organization sequence, so same-day receipts keep arrival order.
    - All-or-nothing: the plan is computed from locked lots before any row
      changes; InsufficientStockError leaves every lot as it was.
    - Exact restore: a restore adds each consumption's quantity back to the
      very lot it came from, never to "the latest lot".
    - remaining_quantity stays within [0, initial_quantity] (also a CHECK).
    - A lot that has been consumed from is never deleted.
    - Products with track_inventory False bypass lots entirely.

Failure modes:
    - ProductNotFoundError, StockLotNotFoundError.
    - InsufficientStockError from consume_stock.
    - ConsumptionAlreadyRestoredError when a consumption is restored twice.
    - StockLotInUseError from delete_lot.

Usage:
    valuation = ValuationService(session, clock)
    product = valuation.create_product(org_id, actor_id, "SKU-1", "Widget")
    valuation.receive_stock(org_id, actor_id, product.id, 3, "10.00")
    result = valuation.consume_stock(
        org_id, actor_id, product.id, 2, consumer_ref="INV-001:1",
    )
    result.total_cost   # Decimal("20.00")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bizbooks_engines.fifo import FifoPlan, LotSnapshot, plan_fifo_consumption
from bizbooks_kernel.domain.money import ZERO, round_money, to_decimal
from bizbooks_kernel.domain.clock import Clock
from bizbooks_kernel.exceptions import (
    ConsumptionAlreadyRestoredError,
    ProductNotFoundError,
    StockLotInUseError,
    StockLotNotFoundError,
    ValidationError,
)
from bizbooks_kernel.logging_config import get_logger
from bizbooks_kernel.models.inventory import (
    ConsumerType,
    LotSourceType,
    Product,
    StockLot,
    StockLotConsumption,
)
from bizbooks_kernel.services.base import BaseService
from bizbooks_kernel.services.sequence_service import SequenceService

logger = get_logger("services.valuation")

RECEIPT_SEQUENCE = "stock_lot_receipt"


@dataclass(frozen=True)
class ConsumptionLine:
    consumption_id: UUID
    lot_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class ConsumptionResult:
    """
    What one consume_stock call took.

    ``lines`` is empty when the product is not inventory-tracked.
    """

    product_id: UUID
    quantity: Decimal
    lines: tuple[ConsumptionLine, ...] = ()
    tracked: bool = True

    @property
    def total_cost(self) -> Decimal:
        return sum((l.total_cost for l in self.lines), ZERO)

    @property
    def consumption_ids(self) -> list[UUID]:
        return [l.consumption_id for l in self.lines]


@dataclass(frozen=True)
class StockSummary:
    product_id: UUID
    on_hand_quantity: Decimal
    total_value: Decimal
    open_lot_count: int

    @property
    def average_unit_cost(self) -> Decimal:
        if self.on_hand_quantity == ZERO:
            return ZERO
        return round_money(self.total_value / self.on_hand_quantity)


def _positive(value, field: str) -> Decimal:
    try:
        amount = to_decimal(value, field)
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from exc
    if amount <= ZERO:
        raise ValidationError(f"{field} must be positive, got {amount}", field=field)
    return amount


class ValuationService(BaseService[StockLot]):
    """
    Lot-based FIFO inventory valuation.

    Contract:
        Receives Session (and optionally Clock and SequenceService) via
        constructor injection.  Flushes, never commits.
    Non-goals:
        Journal entries for inventory and COGS; document posting raises
        those from the returned costs.
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
    # Products
    # ------------------------------------------------------------------

    def create_product(
        self,
        organization_id: UUID,
        actor_id: UUID,
        sku: str,
        name: str,
        *,
        unit: str = "unit",
        track_inventory: bool = True,
        hsn_code: str | None = None,
    ) -> Product:
        if not (sku or "").strip() or not (name or "").strip():
            raise ValidationError("Product sku and name are required", field="sku")
        product = Product(
            organization_id=organization_id,
            sku=sku.strip(),
            name=name.strip(),
            unit=unit,
            track_inventory=track_inventory,
            hsn_code=hsn_code,
            created_by_id=actor_id,
        )
        self.session.add(product)
        self.session.flush()
        logger.info(
            "product_created",
            extra={"sku": product.sku, "track_inventory": track_inventory},
        )
        return product

    def get_product(self, organization_id: UUID, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None or product.organization_id != organization_id:
            raise ProductNotFoundError(str(product_id))
        return product

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def receive_stock(
        self,
        organization_id: UUID,
        actor_id: UUID,
        product_id: UUID,
        quantity,
        unit_cost,
        *,
        lot_date: date | None = None,
        source_type: LotSourceType = LotSourceType.PURCHASE,
        source_ref: str | None = None,
    ) -> StockLot:
        """
        Create a lot with remaining == initial quantity.

        Raises:
            ValidationError: non-positive quantity, negative cost, or an
                untracked product.
        """
        product = self.get_product(organization_id, product_id)
        if not product.track_inventory:
            raise ValidationError(
                f"Product {product.sku} does not track inventory", field="product_id"
            )
        qty = _positive(quantity, "quantity")
        try:
            cost = to_decimal(unit_cost, "unit_cost")
        except ValueError as exc:
            raise ValidationError(str(exc), field="unit_cost") from exc
        if cost < ZERO:
            raise ValidationError(f"unit_cost cannot be negative, got {cost}", field="unit_cost")

        lot = StockLot(
            organization_id=organization_id,
            product_id=product.id,
            source_type=LotSourceType(source_type),
            source_ref=source_ref,
            lot_date=lot_date or self.clock.today(),
            receipt_seq=self._sequences.next_value(organization_id, RECEIPT_SEQUENCE),
            unit_cost=cost,
            initial_quantity=qty,
            remaining_quantity=qty,
            created_by_id=actor_id,
        )
        self.session.add(lot)
        self.session.flush()
        logger.info(
            "stock_received",
            extra={
                "product_id": str(product.id),
                "lot_id": str(lot.id),
                "quantity": str(qty),
                "unit_cost": str(cost),
                "source_type": lot.source_type,
            },
        )
        return lot

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def _open_lots(
        self,
        organization_id: UUID,
        product_id: UUID,
        as_of: date | None,
        lock: bool,
    ) -> list[StockLot]:
        stmt = select(StockLot).where(
            StockLot.organization_id == organization_id,
            StockLot.product_id == product_id,
            StockLot.remaining_quantity > 0,
        )
        if as_of is not None:
            stmt = stmt.where(StockLot.lot_date <= as_of)
        stmt = stmt.order_by(StockLot.lot_date, StockLot.receipt_seq)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars())

    @staticmethod
    def _snapshots(lots: Sequence[StockLot]) -> list[LotSnapshot]:
        return [
            LotSnapshot(
                lot_id=lot.id,
                lot_date=lot.lot_date,
                receipt_seq=lot.receipt_seq,
                unit_cost=lot.unit_cost,
                remaining_quantity=lot.remaining_quantity,
            )
            for lot in lots
        ]

    def preview_consumption(
        self,
        organization_id: UUID,
        product_id: UUID,
        quantity,
        as_of: date | None = None,
    ) -> FifoPlan:
        """The plan consume_stock would apply now; nothing is locked or changed."""
        self.get_product(organization_id, product_id)
        lots = self._open_lots(organization_id, product_id, as_of, lock=False)
        return plan_fifo_consumption(product_id, self._snapshots(lots), quantity)

    def consume_stock(
        self,
        organization_id: UUID,
        actor_id: UUID,
        product_id: UUID,
        quantity,
        *,
        consumer_ref: str,
        consumer_type: ConsumerType = ConsumerType.SALE,
        as_of: date | None = None,
    ) -> ConsumptionResult:
        """
        Take ``quantity`` from the product's lots, oldest first.

        Only lots dated on or before ``as_of`` (default today) are eligible.

        Raises:
            InsufficientStockError: not enough stock; no lot is changed.
        """
        product = self.get_product(organization_id, product_id)
        qty = _positive(quantity, "quantity")
        if not product.track_inventory:
            logger.debug("stock_consumption_bypassed", extra={"product_id": str(product.id)})
            return ConsumptionResult(product_id=product.id, quantity=qty, tracked=False)
        if not consumer_ref:
            raise ValidationError("consumer_ref is required", field="consumer_ref")

        consumed_on = as_of or self.clock.today()
        lots = self._open_lots(organization_id, product.id, consumed_on, lock=True)
        plan = plan_fifo_consumption(product.id, self._snapshots(lots), qty)

        by_id = {lot.id: lot for lot in lots}
        records: list[StockLotConsumption] = []
        for take in plan.takes:
            lot = by_id[take.lot_id]
            lot.remaining_quantity = lot.remaining_quantity - take.quantity
            lot.updated_by_id = actor_id
            records.append(
                StockLotConsumption(
                    organization_id=organization_id,
                    stock_lot_id=lot.id,
                    product_id=product.id,
                    consumer_type=ConsumerType(consumer_type),
                    consumer_ref=consumer_ref,
                    consumed_on=consumed_on,
                    quantity=take.quantity,
                    unit_cost=take.unit_cost,
                    total_cost=take.total_cost,
                    created_by_id=actor_id,
                )
            )
        self.session.add_all(records)
        self.session.flush()

        result = ConsumptionResult(
            product_id=product.id,
            quantity=qty,
            lines=tuple(
                ConsumptionLine(
                    consumption_id=r.id,
                    lot_id=r.stock_lot_id,
                    quantity=r.quantity,
                    unit_cost=r.unit_cost,
                    total_cost=r.total_cost,
                )
                for r in records
            ),
        )
        logger.info(
            "stock_consumed",
            extra={
                "product_id": str(product.id),
                "consumer_ref": consumer_ref,
                "quantity": str(qty),
                "lots_touched": len(records),
                "total_cost": str(result.total_cost),
            },
        )
        return result

    def consumptions_for(
        self,
        organization_id: UUID,
        consumer_ref: str,
        consumer_type: ConsumerType | None = None,
        include_restored: bool = False,
    ) -> list[StockLotConsumption]:
        stmt = select(StockLotConsumption).where(
            StockLotConsumption.organization_id == organization_id,
            StockLotConsumption.consumer_ref == consumer_ref,
        )
        if consumer_type is not None:
            stmt = stmt.where(StockLotConsumption.consumer_type == ConsumerType(consumer_type))
        if not include_restored:
            stmt = stmt.where(StockLotConsumption.restored_at.is_(None))
        return list(self.session.execute(stmt.order_by(StockLotConsumption.created_at)).scalars())

    def consumptions_for_document(
        self,
        organization_id: UUID,
        document_ref: str,
    ) -> list[StockLotConsumption]:
        """Open consumptions of every line of a document (refs ``{document_ref}:{n}``)."""
        return list(
            self.session.execute(
                select(StockLotConsumption)
                .where(
                    StockLotConsumption.organization_id == organization_id,
                    StockLotConsumption.consumer_ref.startswith(f"{document_ref}:"),
                    StockLotConsumption.restored_at.is_(None),
                )
                .order_by(StockLotConsumption.consumer_ref, StockLotConsumption.created_at)
            ).scalars()
        )

    def consumed_unit_cost(
        self,
        organization_id: UUID,
        document_ref: str,
        product_id: UUID,
    ) -> Decimal | None:
        """
        Average cost per unit a document's open consumptions took for one
        product, or None when the document consumed none of it.
        """
        quantity, cost = self.session.execute(
            select(
                func.coalesce(func.sum(StockLotConsumption.quantity), 0),
                func.coalesce(func.sum(StockLotConsumption.total_cost), 0),
            ).where(
                StockLotConsumption.organization_id == organization_id,
                StockLotConsumption.product_id == product_id,
                StockLotConsumption.consumer_ref.startswith(f"{document_ref}:"),
                StockLotConsumption.restored_at.is_(None),
            )
        ).one()
        quantity = Decimal(quantity)
        if quantity <= ZERO:
            return None
        return Decimal(cost) / quantity

    def restore_stock(
        self,
        organization_id: UUID,
        actor_id: UUID,
        consumptions: Sequence[StockLotConsumption],
    ) -> Decimal:
        """
        Put consumed quantities back into the lots they came from.

        Consumption rows are kept and stamped ``restored_at`` for the audit
        trail.

        Returns:
            Total quantity restored.

        Raises:
            ConsumptionAlreadyRestoredError: a record was restored before;
                nothing is changed.
        """
        for record in consumptions:
            if record.organization_id != organization_id:
                raise ValidationError(
                    f"Consumption {record.id} belongs to another organization",
                    field="consumptions",
                )
            if record.is_restored:
                raise ConsumptionAlreadyRestoredError(str(record.id))

        now = self.clock.now()
        restored = ZERO
        for record in consumptions:
            lot = self.session.execute(
                select(StockLot)
                .where(StockLot.id == record.stock_lot_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if lot is None:
                raise StockLotNotFoundError(str(record.stock_lot_id))
            lot.remaining_quantity = lot.remaining_quantity + record.quantity
            lot.updated_by_id = actor_id
            record.restored_at = now
            record.updated_by_id = actor_id
            restored += record.quantity
        self.session.flush()

        logger.info(
            "stock_restored",
            extra={"consumption_count": len(consumptions), "quantity": str(restored)},
        )
        return restored

    def restore_consumer(
        self,
        organization_id: UUID,
        actor_id: UUID,
        consumer_ref: str,
        consumer_type: ConsumerType | None = None,
    ) -> Decimal:
        """Restore every open consumption recorded for ``consumer_ref``."""
        records = self.consumptions_for(organization_id, consumer_ref, consumer_type)
        if not records:
            return ZERO
        return self.restore_stock(organization_id, actor_id, records)

    # ------------------------------------------------------------------
    # Lots and reporting
    # ------------------------------------------------------------------

    def get_lot(self, organization_id: UUID, lot_id: UUID) -> StockLot:
        lot = self.session.get(StockLot, lot_id)
        if lot is None or lot.organization_id != organization_id:
            raise StockLotNotFoundError(str(lot_id))
        return lot

    def delete_lot(self, organization_id: UUID, lot_id: UUID) -> None:
        """
        Delete a lot nothing has been taken from.

        Raises:
            StockLotInUseError: remaining < initial, or consumption records
                (restored or not) point at the lot.
        """
        lot = self.get_lot(organization_id, lot_id)
        referenced = self.session.execute(
            select(StockLotConsumption.id)
            .where(StockLotConsumption.stock_lot_id == lot.id)
            .limit(1)
        ).scalar_one_or_none()
        if not lot.is_untouched or referenced is not None:
            raise StockLotInUseError(
                str(lot.id), str(lot.remaining_quantity), str(lot.initial_quantity)
            )
        self.session.delete(lot)
        self.session.flush()
        logger.info("stock_lot_deleted", extra={"lot_id": str(lot_id)})

    def stock_summary(
        self,
        organization_id: UUID,
        product_id: UUID,
        as_of: date | None = None,
    ) -> StockSummary:
        """On-hand quantity and FIFO value of the open lots."""
        self.get_product(organization_id, product_id)
        lots = self._open_lots(organization_id, product_id, as_of, lock=False)
        quantity = sum((l.remaining_quantity for l in lots), ZERO)
        value = sum((round_money(l.remaining_quantity * l.unit_cost) for l in lots), ZERO)
        return StockSummary(
            product_id=product_id,
            on_hand_quantity=quantity,
            total_value=value,
            open_lot_count=len(lots),
        )
