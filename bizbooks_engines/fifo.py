"""
bizbooks_engines.fifo -- FIFO consumption planning over stock lots.

Responsibility:
    Given the open lots of one product and a quantity, decide which lots
    give how much, oldest first.  The plan is a value; applying it to the
    stored lots is the ValuationService's job.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Order: lots are taken by (lot_date, receipt_seq) ascending; receipt_seq
      is the creation order, so same-day lots go oldest receipt first.
    - All-or-nothing: if the open quantity is short of the request,
      InsufficientStockError is raised and no plan is produced.
    - Cost: each take is priced at its lot's fixed unit cost; the plan total
      is the sum of the takes.

Failure modes:
    - ValidationError for a non-positive quantity.
    - InsufficientStockError when available < requested.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from bizbooks_kernel.domain.money import ZERO, round_money, to_decimal
from bizbooks_kernel.exceptions import InsufficientStockError, ValidationError
from bizbooks_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True, slots=True)
class LotSnapshot:
    """Read-only view of a lot at planning time."""

    lot_id: UUID
    lot_date: date
    receipt_seq: int
    unit_cost: Decimal
    remaining_quantity: Decimal

    @property
    def sort_key(self) -> tuple[date, int]:
        return (self.lot_date, self.receipt_seq)


@dataclass(frozen=True, slots=True)
class LotTake:
    """Quantity taken from one lot."""

    lot_id: UUID
    quantity: Decimal
    unit_cost: Decimal

    @property
    def total_cost(self) -> Decimal:
        return round_money(self.quantity * self.unit_cost)


@dataclass(frozen=True)
class FifoPlan:
    product_id: UUID
    requested_quantity: Decimal
    takes: tuple[LotTake, ...]

    @property
    def total_cost(self) -> Decimal:
        return sum((t.total_cost for t in self.takes), ZERO)

    @property
    def total_quantity(self) -> Decimal:
        return sum((t.quantity for t in self.takes), ZERO)

    @property
    def average_unit_cost(self) -> Decimal:
        if self.total_quantity == ZERO:
            return ZERO
        return round_money(self.total_cost / self.total_quantity)


def available_quantity(lots: Iterable[LotSnapshot]) -> Decimal:
    return sum((l.remaining_quantity for l in lots if l.remaining_quantity > ZERO), ZERO)


def plan_fifo_consumption(
    product_id: UUID,
    lots: Iterable[LotSnapshot],
    quantity,
) -> FifoPlan:
    """
    Plan taking ``quantity`` units from ``lots`` oldest first.

    Lots with nothing remaining are ignored; input order does not matter.

    Raises:
        ValidationError: quantity is not positive.
        InsufficientStockError: the lots cannot cover the quantity.
    """
    try:
        requested = to_decimal(quantity, "quantity")
    except ValueError as exc:
        raise ValidationError(str(exc), field="quantity") from exc
    if requested <= ZERO:
        raise ValidationError(f"Quantity must be positive, got {requested}", field="quantity")

    open_lots = sorted(
        (l for l in lots if l.remaining_quantity > ZERO),
        key=lambda l: l.sort_key,
    )
    available = available_quantity(open_lots)
    if available < requested:
        logger.warning("fifo_insufficient_stock", extra={
            "product_id": str(product_id),
            "requested_quantity": str(requested),
            "available_quantity": str(available),
        })
        raise InsufficientStockError(str(product_id), str(requested), str(available))

    takes: list[LotTake] = []
    outstanding = requested
    for lot in open_lots:
        if outstanding <= ZERO:
            break
        take = min(lot.remaining_quantity, outstanding)
        takes.append(LotTake(lot_id=lot.lot_id, quantity=take, unit_cost=lot.unit_cost))
        outstanding -= take

    plan = FifoPlan(product_id=product_id, requested_quantity=requested, takes=tuple(takes))
    logger.debug("fifo_plan_built", extra={
        "product_id": str(product_id),
        "requested_quantity": str(requested),
        "lots_touched": len(takes),
        "total_cost": str(plan.total_cost),
    })
    return plan
