"""
Tax Engine - GST computation for sales and purchase documents.

Decides the place of supply once per document, then splits every line
either into two equal half-rate components (CGST + SGST, intra-state) or
one full-rate component (IGST, inter-state).  Pure functions with no I/O:
the organization's tax profile and the counterparty's registration are
passed in.

Usage:
    from decimal import Decimal
    from bizbooks_engines.tax import TaxProfile, TaxScheme, TaxLineInput, compute_tax

    profile = TaxProfile(scheme=TaxScheme.GST, enabled=True, region="27")
    result = compute_tax(
        profile,
        [TaxLineInput(taxable_amount=Decimal("1000"), rate=Decimal("18"))],
        counterparty_region="27",
    )
    print(result.total_cgst, result.total_sgst)  # 90.00 90.00
    print(result.grand_total)                    # 1180.00

Rounding:
    Each component is rounded half-up to 2 places per line.  Document
    totals are sums of the rounded line components, never a re-rounding
    of the aggregate, so printed lines always add up to printed totals.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Sequence

from bizbooks_engines.gst_codes import GSTIN_PATTERN, INDIAN_STATES, is_valid_state_code
from bizbooks_engines.vat import VatCalculator, VatDocumentResult, VatLineInput
from bizbooks_kernel.domain.money import ZERO, round_money, to_decimal
from bizbooks_kernel.exceptions import ValidationError
from bizbooks_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

HUNDRED = Decimal("100")
TWO = Decimal("2")


class TaxScheme(str, Enum):
    """Indirect tax regime an organization is registered under."""

    GST = "GST"
    VAT = "VAT"
    NONE = "NONE"


class SupplyMode(str, Enum):
    """How a document's tax is split."""

    INTRA_STATE = "INTRA_STATE"  # CGST + SGST
    INTER_STATE = "INTER_STATE"  # IGST
    EXEMPT = "EXEMPT"            # tax disabled for the organization


@dataclass(frozen=True)
class TaxProfile:
    """Snapshot of an organization's tax registration."""

    scheme: TaxScheme = TaxScheme.NONE
    enabled: bool = False
    region: str | None = None
    registration_id: str | None = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "scheme", TaxScheme(self.scheme))
        except ValueError as exc:
            raise ValidationError(f"Unknown tax scheme: {self.scheme}", field="scheme") from exc

    @property
    def is_active(self) -> bool:
        return self.enabled and self.scheme != TaxScheme.NONE


@dataclass(frozen=True)
class TaxLineInput:
    """
    One taxable line.

    ``rate`` is a percentage (``Decimal("18")`` for 18%).  ``hsn_code`` is the
    GST classification; ``category`` is the VAT category (S/Z/E/O).
    """

    taxable_amount: Decimal
    rate: Decimal
    hsn_code: str | None = None
    category: str | None = None

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
            raise ValidationError(f"Tax rate cannot be negative: {rate}", field="rate")
        object.__setattr__(self, "taxable_amount", round_money(taxable))
        object.__setattr__(self, "rate", rate)


@dataclass(frozen=True)
class LineTaxResult:
    """Tax split for one line."""

    taxable_amount: Decimal
    rate: Decimal
    hsn_code: str | None
    cgst_rate: Decimal = ZERO
    sgst_rate: Decimal = ZERO
    igst_rate: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_amount: Decimal = ZERO

    @property
    def total_tax(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount

    @property
    def line_total(self) -> Decimal:
        return self.taxable_amount + self.total_tax


@dataclass(frozen=True)
class DocumentTaxResult:
    """
    Tax for a whole document.

    ``place_of_supply`` is None when tax is disabled for the organization.
    """

    lines: tuple[LineTaxResult, ...]
    mode: SupplyMode
    place_of_supply: str | None = None

    @property
    def is_interstate(self) -> bool:
        return self.mode == SupplyMode.INTER_STATE

    @property
    def total_taxable(self) -> Decimal:
        return sum((l.taxable_amount for l in self.lines), ZERO)

    @property
    def total_cgst(self) -> Decimal:
        return sum((l.cgst_amount for l in self.lines), ZERO)

    @property
    def total_sgst(self) -> Decimal:
        return sum((l.sgst_amount for l in self.lines), ZERO)

    @property
    def total_igst(self) -> Decimal:
        return sum((l.igst_amount for l in self.lines), ZERO)

    @property
    def total_tax(self) -> Decimal:
        return self.total_cgst + self.total_sgst + self.total_igst

    @property
    def grand_total(self) -> Decimal:
        return self.total_taxable + self.total_tax

    def tax_by_component(self) -> dict[str, Decimal]:
        """Nonzero totals keyed by component (cgst/sgst/igst)."""
        components = {
            "cgst": self.total_cgst,
            "sgst": self.total_sgst,
            "igst": self.total_igst,
        }
        return {k: v for k, v in components.items() if v > ZERO}


def validate_gstin(gstin: str | None) -> bool:
    """True when ``gstin`` has the 15-character GSTIN shape."""
    return bool(gstin) and GSTIN_PATTERN.match(gstin) is not None


def state_code_from_gstin(gstin: str | None) -> str | None:
    """The leading state code of a GSTIN, or None if it is not a known state."""
    if not gstin or len(gstin) < 2:
        return None
    code = gstin[:2]
    return code if code in INDIAN_STATES else None


def determine_place_of_supply(
    seller_region: str,
    buyer_registration_id: str | None = None,
    buyer_region: str | None = None,
) -> str:
    """
    Place of supply: the buyer GSTIN's state, else the buyer's state, else
    the seller's own state.

    An unreadable GSTIN is not an error; it falls through to the next rule.
    """
    derived = state_code_from_gstin(buyer_registration_id)
    if derived:
        return derived
    if buyer_region:
        return buyer_region
    return seller_region


def is_interstate(seller_region: str | None, place_of_supply: str | None) -> bool:
    if not seller_region or not place_of_supply:
        return False
    return seller_region != place_of_supply


class GstCalculator:
    """
    Calculate GST for documents.

    Pure functions - no I/O, no database access.  The supply mode is decided
    once per document and applied to every line.
    """

    def calculate_line(self, line: TaxLineInput, mode: SupplyMode) -> LineTaxResult:
        if mode == SupplyMode.EXEMPT or line.rate == ZERO or line.taxable_amount == ZERO:
            return LineTaxResult(
                taxable_amount=line.taxable_amount,
                rate=line.rate if mode != SupplyMode.EXEMPT else ZERO,
                hsn_code=line.hsn_code,
            )

        if mode == SupplyMode.INTER_STATE:
            igst = round_money(line.taxable_amount * line.rate / HUNDRED)
            return LineTaxResult(
                taxable_amount=line.taxable_amount,
                rate=line.rate,
                hsn_code=line.hsn_code,
                igst_rate=line.rate,
                igst_amount=igst,
            )

        half_rate = line.rate / TWO
        # Both halves use the same expression, so they are always equal.
        half = round_money(line.taxable_amount * half_rate / HUNDRED)
        return LineTaxResult(
            taxable_amount=line.taxable_amount,
            rate=line.rate,
            hsn_code=line.hsn_code,
            cgst_rate=half_rate,
            sgst_rate=half_rate,
            cgst_amount=half,
            sgst_amount=half,
        )

    def calculate(
        self,
        profile: TaxProfile,
        lines: Sequence[TaxLineInput],
        counterparty_registration_id: str | None = None,
        counterparty_region: str | None = None,
    ) -> DocumentTaxResult:
        """
        Calculate GST for a document.

        Args:
            profile: Seller's tax profile (GST scheme, home state).
            lines: Lines in document order.
            counterparty_registration_id: Buyer GSTIN, may be missing or invalid.
            counterparty_region: Buyer state code, may be missing.

        Returns:
            DocumentTaxResult with one LineTaxResult per input line, in order.
        """
        t0 = time.monotonic()
        logger.info("tax_calculation_started", extra={
            "scheme": profile.scheme.value,
            "enabled": profile.enabled,
            "line_count": len(lines),
        })

        if not profile.enabled or not profile.region:
            result = DocumentTaxResult(
                lines=tuple(self.calculate_line(l, SupplyMode.EXEMPT) for l in lines),
                mode=SupplyMode.EXEMPT,
            )
        else:
            if not is_valid_state_code(profile.region):
                logger.warning("tax_unknown_seller_region", extra={"region": profile.region})
            pos = determine_place_of_supply(
                profile.region, counterparty_registration_id, counterparty_region
            )
            mode = (
                SupplyMode.INTER_STATE
                if is_interstate(profile.region, pos)
                else SupplyMode.INTRA_STATE
            )
            result = DocumentTaxResult(
                lines=tuple(self.calculate_line(l, mode) for l in lines),
                mode=mode,
                place_of_supply=pos,
            )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("tax_calculation_completed", extra={
            "mode": result.mode.value,
            "place_of_supply": result.place_of_supply,
            "total_taxable": str(result.total_taxable),
            "total_tax": str(result.total_tax),
            "duration_ms": duration_ms,
        })
        return result


def compute_tax(
    profile: TaxProfile,
    lines: Sequence[TaxLineInput],
    counterparty_registration_id: str | None = None,
    counterparty_region: str | None = None,
) -> DocumentTaxResult | VatDocumentResult:
    """
    Compute document tax under the organization's scheme.

    GST and disabled profiles return DocumentTaxResult; VAT profiles return
    VatDocumentResult.  Both expose ``lines``, ``total_taxable``,
    ``total_tax``, ``grand_total`` and ``tax_by_component()``.
    """
    if profile.scheme == TaxScheme.VAT and profile.enabled:
        return VatCalculator().calculate(
            [
                VatLineInput(
                    taxable_amount=l.taxable_amount,
                    rate=l.rate,
                    category=l.category,
                )
                for l in lines
            ],
            buyer_vat_number=counterparty_registration_id,
        )
    if profile.scheme == TaxScheme.NONE:
        profile = TaxProfile(scheme=TaxScheme.NONE, enabled=False)
    return GstCalculator().calculate(
        profile, lines, counterparty_registration_id, counterparty_region
    )
