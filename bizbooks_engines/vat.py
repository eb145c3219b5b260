"""
VAT engine - single-component VAT with Saudi (ZATCA) conventions.

Categories follow the e-invoicing codes:

    S   standard rated (15%)
    Z   zero rated
    E   exempt
    O   out of scope

Only S lines carry tax.  A document is a STANDARD (B2B) invoice when the
buyer has a valid VAT number, otherwise SIMPLIFIED (B2C).
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Sequence

from bizbooks_kernel.domain.money import ZERO, round_money, to_decimal
from bizbooks_kernel.exceptions import ValidationError
from bizbooks_kernel.logging_config import get_logger

logger = get_logger("engines.vat")

STANDARD_VAT_RATE = Decimal("15")

# 15 digits starting with 3
VAT_NUMBER_PATTERN = re.compile(r"^3\d{14}$")


class VatCategory(str, Enum):
    STANDARD = "S"
    ZERO_RATED = "Z"
    EXEMPT = "E"
    OUT_OF_SCOPE = "O"


class VatInvoiceType(str, Enum):
    STANDARD = "STANDARD"
    SIMPLIFIED = "SIMPLIFIED"


def validate_vat_number(vat_number: str | None) -> bool:
    return bool(vat_number) and VAT_NUMBER_PATTERN.match(vat_number) is not None


def determine_invoice_type(buyer_vat_number: str | None) -> VatInvoiceType:
    if validate_vat_number(buyer_vat_number):
        return VatInvoiceType.STANDARD
    return VatInvoiceType.SIMPLIFIED


@dataclass(frozen=True)
class VatLineInput:
    """A line before VAT.  A missing category is Z for rate 0, else S."""

    taxable_amount: Decimal
    rate: Decimal = STANDARD_VAT_RATE
    category: VatCategory | str | None = None

    def __post_init__(self) -> None:
        try:
            taxable = to_decimal(self.taxable_amount, "taxable_amount")
            rate = to_decimal(self.rate, "rate")
        except ValueError as exc:
            raise ValidationError(str(exc), field="taxable_amount") from exc
        if taxable < ZERO:
            raise ValidationError(
                f"Taxable amount cannot be negative: {taxable}", field="taxable_amount"
            )
        if rate < ZERO:
            raise ValidationError(f"VAT rate cannot be negative: {rate}", field="rate")
        if self.category is None:
            category = VatCategory.ZERO_RATED if rate == ZERO else VatCategory.STANDARD
        else:
            try:
                category = VatCategory(self.category)
            except ValueError as exc:
                raise ValidationError(
                    f"Unknown VAT category: {self.category}", field="category"
                ) from exc
        object.__setattr__(self, "taxable_amount", round_money(taxable))
        object.__setattr__(self, "rate", rate)
        object.__setattr__(self, "category", category)


@dataclass(frozen=True)
class VatLineResult:
    taxable_amount: Decimal
    rate: Decimal
    category: VatCategory
    vat_amount: Decimal = ZERO

    @property
    def total_tax(self) -> Decimal:
        return self.vat_amount

    @property
    def line_total(self) -> Decimal:
        return self.taxable_amount + self.vat_amount


@dataclass(frozen=True)
class VatDocumentResult:
    lines: tuple[VatLineResult, ...]
    invoice_type: VatInvoiceType

    @property
    def total_taxable(self) -> Decimal:
        return sum((l.taxable_amount for l in self.lines), ZERO)

    @property
    def total_tax(self) -> Decimal:
        return sum((l.vat_amount for l in self.lines), ZERO)

    @property
    def grand_total(self) -> Decimal:
        return self.total_taxable + self.total_tax

    def tax_by_component(self) -> dict[str, Decimal]:
        total = self.total_tax
        return {"vat": total} if total > ZERO else {}


class VatCalculator:
    """Pure VAT computation; no I/O."""

    def calculate_line(self, line: VatLineInput) -> VatLineResult:
        if line.category != VatCategory.STANDARD or line.rate == ZERO:
            return VatLineResult(
                taxable_amount=line.taxable_amount,
                rate=ZERO,
                category=line.category,
            )
        return VatLineResult(
            taxable_amount=line.taxable_amount,
            rate=line.rate,
            category=line.category,
            vat_amount=round_money(line.taxable_amount * line.rate / Decimal("100")),
        )

    def calculate(
        self,
        lines: Sequence[VatLineInput],
        buyer_vat_number: str | None = None,
    ) -> VatDocumentResult:
        t0 = time.monotonic()
        logger.info("vat_calculation_started", extra={"line_count": len(lines)})

        result = VatDocumentResult(
            lines=tuple(self.calculate_line(l) for l in lines),
            invoice_type=determine_invoice_type(buyer_vat_number),
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("vat_calculation_completed", extra={
            "invoice_type": result.invoice_type.value,
            "total_taxable": str(result.total_taxable),
            "total_vat": str(result.total_tax),
            "duration_ms": duration_ms,
        })
        return result
