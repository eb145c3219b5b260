"""
Module: bizbooks_engines
Responsibility:
    Pure calculation engines: GST and VAT, FIFO consumption planning, the
    subledger running-balance fold and the control-account check.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import bizbooks_kernel value helpers, exceptions and logging.
    MUST NOT import bizbooks_services or touch a Session.

Invariants enforced:
    - Engines never read the clock; dates arrive as parameters.
    - Decimal-only arithmetic; floats are converted through ``str``.
    - Identical inputs always produce identical outputs.

Usage:
    from bizbooks_engines.tax import compute_tax, TaxProfile, TaxLineInput
    from bizbooks_engines.fifo import plan_fifo_consumption, LotSnapshot
    from bizbooks_engines.subledger import signed_amount, fold_running_balances
    from bizbooks_engines.reconciliation import reconcile_control_account
"""

from bizbooks_engines.fifo import (
    FifoPlan,
    LotSnapshot,
    LotTake,
    available_quantity,
    plan_fifo_consumption,
)
from bizbooks_engines.reconciliation import ReconciliationResult, reconcile_control_account
from bizbooks_engines.subledger import (
    RunningBalanceFold,
    SubledgerItem,
    fold_running_balances,
    signed_amount,
)
from bizbooks_engines.tax import (
    DocumentTaxResult,
    GstCalculator,
    LineTaxResult,
    SupplyMode,
    TaxLineInput,
    TaxProfile,
    TaxScheme,
    compute_tax,
    determine_place_of_supply,
    state_code_from_gstin,
    validate_gstin,
)
from bizbooks_engines.vat import (
    VatCalculator,
    VatCategory,
    VatDocumentResult,
    VatInvoiceType,
    VatLineInput,
    determine_invoice_type,
    validate_vat_number,
)

__all__ = [
    "DocumentTaxResult",
    "FifoPlan",
    "GstCalculator",
    "LineTaxResult",
    "LotSnapshot",
    "LotTake",
    "ReconciliationResult",
    "RunningBalanceFold",
    "SubledgerItem",
    "SupplyMode",
    "TaxLineInput",
    "TaxProfile",
    "TaxScheme",
    "VatCalculator",
    "VatCategory",
    "VatDocumentResult",
    "VatInvoiceType",
    "VatLineInput",
    "available_quantity",
    "compute_tax",
    "determine_invoice_type",
    "determine_place_of_supply",
    "fold_running_balances",
    "plan_fifo_consumption",
    "reconcile_control_account",
    "signed_amount",
    "state_code_from_gstin",
    "validate_gstin",
    "validate_vat_number",
]
