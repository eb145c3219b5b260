"""
Bizbooks Services

Stateful orchestration over the kernel and the pure engines:
- Stock valuation (FIFO lots, consumption, restore)
- Counterparty subledgers and running-balance recompute
- Control-account reconciliation
- POS session lifecycle
- Document posting (invoices, purchases, payments, voids)

Every service takes a Session and flushes; the caller commits.
"""

from bizbooks_services.document_posting import (
    DocumentPostingService,
    InvoiceLineInput,
    PostedInvoice,
    PostedPayment,
    PostedPurchase,
    PurchaseLineInput,
    VoidedInvoice,
)
from bizbooks_services.organization_setup import bootstrap_organization
from bizbooks_services.pos_session_service import PosSessionService
from bizbooks_services.reconciliation_service import (
    ReconciliationReport,
    ReconciliationService,
)
from bizbooks_services.subledger_service import RecomputeResult, SubledgerService
from bizbooks_services.valuation_service import (
    ConsumptionLine,
    ConsumptionResult,
    StockSummary,
    ValuationService,
)

__all__ = [
    "ConsumptionLine",
    "ConsumptionResult",
    "DocumentPostingService",
    "InvoiceLineInput",
    "PosSessionService",
    "PostedInvoice",
    "PostedPayment",
    "PostedPurchase",
    "PurchaseLineInput",
    "RecomputeResult",
    "ReconciliationReport",
    "ReconciliationService",
    "StockSummary",
    "SubledgerService",
    "ValuationService",
    "VoidedInvoice",
    "bootstrap_organization",
]
