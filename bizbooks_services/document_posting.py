"""
bizbooks_services.document_posting -- Business documents into the ledger.

Responsibility:
    Turns a business document (invoice, purchase, payment, return or
    expense) into its accounting effects, all inside the caller's unit of
    work:

        issue_invoice            tax -> FIFO -> revenue entry -> COGS entry -> customer subledger
        record_purchase_invoice  stock lots -> inventory/payable entry -> supplier subledger
        record_customer_payment  cash/receivable entry -> customer subledger
        record_supplier_payment  payable/cash entry -> supplier subledger
        void_invoice             void entries -> restore stock -> INVOICE_VOID subledger row
        record_credit_note       RETURN lots -> sales/tax reversal -> COGS reversal -> customer subledger
        record_debit_note        FIFO return -> payable/inventory entry -> supplier subledger
        record_expense           expense/input-tax entry -> optional cash account WITHDRAWAL
        void_expense             void entry -> DEPOSIT back to the cash account

Architecture position:
    Services -- top of the service layer.  Constructs each kernel and
    service collaborator exactly once, sharing one Session, one Clock and
    one SequenceService, and exposes them as attributes.

Invariants enforced:
    - All-or-nothing: every step only flushes; any exception propagates and
      the enclosing session_scope() rolls the whole document back, so a
      revenue entry without its stock consumption is never committed.
    - The document number is allocated first, under the counter lock, in
      the same transaction as everything it labels.
    - Account codes come from the configuration's posting roles; nothing
      here hard-codes the chart of accounts.

Failure modes:
    - ValidationError for empty documents, wrong counterparty kind or
      non-positive amounts (raised before any write).
    - InsufficientStockError, UnbalancedEntryError, AccountNotFoundError
      from the collaborators.
    - JournalEntryNotFoundError / EntryAlreadyVoidError from the voids and
      from notes raised against a missing or voided document.

Usage:
    posting = DocumentPostingService(session, clock=clock)
    invoice = posting.issue_invoice(
        org_id, actor_id, customer.id,
        [InvoiceLineInput("Widget", 2, "500.00", tax_rate=18, product_id=widget.id)],
        tax_profile=TaxProfile(scheme=TaxScheme.GST, enabled=True, region="27"),
    )
    invoice.total        # Decimal("1180.00")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bizbooks_config import BizbooksConfiguration, get_active_config
from bizbooks_config.bridges import document_series
from bizbooks_engines.tax import (
    DocumentTaxResult,
    TaxLineInput,
    TaxProfile,
    compute_tax,
)
from bizbooks_engines.vat import VatDocumentResult
from bizbooks_kernel.domain.money import ZERO, round_money, to_decimal
from bizbooks_kernel.domain.clock import Clock, SystemClock
from bizbooks_kernel.domain.journal_rules import LineSpec
from bizbooks_kernel.exceptions import (
    EntryAlreadyVoidError,
    JournalEntryNotFoundError,
    ValidationError,
)
from bizbooks_kernel.logging_config import LogContext, get_logger
from bizbooks_kernel.models.account import AccountType
from bizbooks_kernel.models.counterparty import (
    Counterparty,
    CounterpartyKind,
    CounterpartyTransaction,
    CounterpartyTransactionType,
)
from bizbooks_kernel.models.inventory import ConsumerType, LotSourceType, StockLot
from bizbooks_kernel.models.journal import (
    EntrySourceType,
    JournalEntry,
    JournalEntryStatus,
)
from bizbooks_kernel.services.account_service import AccountService
from bizbooks_kernel.services.journal_service import JournalService, VoidResult
from bizbooks_kernel.services.sequence_service import SequenceService
from bizbooks_services.subledger_service import SubledgerService
from bizbooks_services.valuation_service import ConsumptionResult, ValuationService

logger = get_logger("services.document_posting")

_TAX_ROLES = {
    "cgst": "cgst_output",
    "sgst": "sgst_output",
    "igst": "igst_output",
    "vat": "vat_output",
}


# ---------------------------------------------------------------------------
# Inputs and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceLineInput:
    """
    One sales line.  ``tax_rate`` is a percentage; ``product_id`` links the
    line to stock (untracked products and free-text lines skip FIFO).
    """

    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal = ZERO
    product_id: UUID | None = None
    hsn_code: str | None = None
    vat_category: str | None = None

    def __post_init__(self) -> None:
        try:
            quantity = to_decimal(self.quantity, "quantity")
            unit_price = to_decimal(self.unit_price, "unit_price")
            tax_rate = to_decimal(self.tax_rate, "tax_rate")
        except ValueError as exc:
            raise ValidationError(str(exc), field="lines") from exc
        if quantity <= ZERO:
            raise ValidationError(f"Line quantity must be positive, got {quantity}", field="quantity")
        if unit_price < ZERO:
            raise ValidationError(f"Unit price cannot be negative, got {unit_price}", field="unit_price")
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_price", unit_price)
        object.__setattr__(self, "tax_rate", tax_rate)

    @property
    def taxable_amount(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)


@dataclass(frozen=True)
class PurchaseLineInput:
    product_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    description: str | None = None

    def __post_init__(self) -> None:
        try:
            quantity = to_decimal(self.quantity, "quantity")
            unit_cost = to_decimal(self.unit_cost, "unit_cost")
        except ValueError as exc:
            raise ValidationError(str(exc), field="lines") from exc
        if quantity <= ZERO:
            raise ValidationError(f"Line quantity must be positive, got {quantity}", field="quantity")
        if unit_cost < ZERO:
            raise ValidationError(f"Unit cost cannot be negative, got {unit_cost}", field="unit_cost")
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_cost", unit_cost)

    @property
    def line_cost(self) -> Decimal:
        return round_money(self.quantity * self.unit_cost)


@dataclass(frozen=True)
class CreditNoteLineInput(InvoiceLineInput):
    """
    One returned sales line.  Returned stock goes back in at
    ``return_unit_cost``; without it, at what the original invoice
    consumed per unit.
    """

    return_unit_cost: Decimal | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.return_unit_cost is None:
            return
        try:
            cost = to_decimal(self.return_unit_cost, "return_unit_cost")
        except ValueError as exc:
            raise ValidationError(str(exc), field="return_unit_cost") from exc
        if cost < ZERO:
            raise ValidationError(
                f"Return unit cost cannot be negative, got {cost}", field="return_unit_cost"
            )
        object.__setattr__(self, "return_unit_cost", cost)


@dataclass(frozen=True)
class DebitNoteLineInput:
    """
    Stock sent back to a supplier.  ``unit_cost`` is the credit agreed with
    the supplier; without it the note is valued at the FIFO cost taken.
    """

    product_id: UUID
    quantity: Decimal
    unit_cost: Decimal | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        try:
            quantity = to_decimal(self.quantity, "quantity")
            unit_cost = None if self.unit_cost is None else to_decimal(self.unit_cost, "unit_cost")
        except ValueError as exc:
            raise ValidationError(str(exc), field="lines") from exc
        if quantity <= ZERO:
            raise ValidationError(f"Line quantity must be positive, got {quantity}", field="quantity")
        if unit_cost is not None and unit_cost < ZERO:
            raise ValidationError(f"Unit cost cannot be negative, got {unit_cost}", field="unit_cost")
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_cost", unit_cost)


@dataclass(frozen=True)
class ExpenseLineInput:
    """An expense amount charged to one EXPENSE account; ``tax_rate`` is a percentage."""

    account_code: str
    amount: Decimal
    description: str | None = None
    tax_rate: Decimal = ZERO

    def __post_init__(self) -> None:
        try:
            amount = round_money(to_decimal(self.amount, "amount"))
            tax_rate = to_decimal(self.tax_rate, "tax_rate")
        except ValueError as exc:
            raise ValidationError(str(exc), field="lines") from exc
        if amount <= ZERO:
            raise ValidationError(f"Expense amount must be positive, got {amount}", field="amount")
        if tax_rate < ZERO:
            raise ValidationError(f"Tax rate cannot be negative, got {tax_rate}", field="tax_rate")
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "tax_rate", tax_rate)

    @property
    def tax_amount(self) -> Decimal:
        return round_money(self.amount * self.tax_rate / Decimal("100"))


@dataclass(frozen=True)
class PostedInvoice:
    invoice_number: str
    customer_id: UUID
    tax: DocumentTaxResult | VatDocumentResult
    revenue_entry: JournalEntry
    cogs_entry: JournalEntry | None
    consumptions: tuple[ConsumptionResult, ...]
    subledger_transaction: CounterpartyTransaction

    @property
    def total(self) -> Decimal:
        return self.tax.grand_total

    @property
    def cost_of_goods_sold(self) -> Decimal:
        return sum((c.total_cost for c in self.consumptions), ZERO)


@dataclass(frozen=True)
class PostedPurchase:
    purchase_number: str
    supplier_id: UUID
    lots: tuple[StockLot, ...]
    entry: JournalEntry
    subledger_transaction: CounterpartyTransaction

    @property
    def total(self) -> Decimal:
        return self.entry.total_debits


@dataclass(frozen=True)
class PostedPayment:
    payment_number: str
    counterparty_id: UUID
    amount: Decimal
    entry: JournalEntry
    subledger_transaction: CounterpartyTransaction


@dataclass(frozen=True)
class VoidedInvoice:
    invoice_number: str
    void_results: tuple[VoidResult, ...]
    restored_quantity: Decimal
    subledger_transaction: CounterpartyTransaction | None


@dataclass(frozen=True)
class PostedCreditNote:
    credit_note_number: str
    customer_id: UUID
    invoice_number: str | None
    tax: DocumentTaxResult | VatDocumentResult
    entry: JournalEntry
    cogs_entry: JournalEntry | None
    lots: tuple[StockLot, ...]
    subledger_transaction: CounterpartyTransaction

    @property
    def total(self) -> Decimal:
        return self.tax.grand_total

    @property
    def returned_cost(self) -> Decimal:
        return self.cogs_entry.total_debits if self.cogs_entry is not None else ZERO


@dataclass(frozen=True)
class PostedDebitNote:
    debit_note_number: str
    supplier_id: UUID
    purchase_number: str | None
    total: Decimal
    inventory_cost: Decimal
    consumptions: tuple[ConsumptionResult, ...]
    entry: JournalEntry
    subledger_transaction: CounterpartyTransaction


@dataclass(frozen=True)
class PostedExpense:
    expense_number: str
    total: Decimal
    tax_total: Decimal
    entry: JournalEntry
    cash_transaction: CounterpartyTransaction | None


@dataclass(frozen=True)
class VoidedExpense:
    expense_number: str
    void_results: tuple[VoidResult, ...]
    cash_transaction: CounterpartyTransaction | None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class DocumentPostingService:
    """
    Posting pipeline for sales, purchases, payments, returns and expenses.

    Contract:
        Receives a Session and optionally a Clock and a configuration.
        Builds every collaborator once; all share the same Session, Clock
        and SequenceService.

    Non-goals:
        - Does NOT commit or roll back; the caller's session_scope() does.
        - Does NOT store the documents themselves (line items, printing);
          the caller owns those and passes them in.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BizbooksConfiguration | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.config = config or get_active_config()
        self.series = document_series(self.config)

        self.sequences = SequenceService(session)
        self.accounts = AccountService(session, self.clock)
        self.journal = JournalService(
            session,
            self.clock,
            sequence_service=self.sequences,
            series=self.series["JOURNAL"],
        )
        self.valuation = ValuationService(session, self.clock, self.sequences)
        self.subledger = SubledgerService(session, self.clock, self.sequences)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _account(self, role: str) -> str:
        return self.config.posting_account(role)

    def _highest_document_number(self, organization_id: UUID, stem: str) -> str | None:
        """Highest document number stored as a journal source id under ``stem``."""
        return self.session.execute(
            select(JournalEntry.source_id)
            .where(
                JournalEntry.organization_id == organization_id,
                JournalEntry.source_id.startswith(stem),
            )
            .order_by(func.length(JournalEntry.source_id).desc(), JournalEntry.source_id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _next_number(self, organization_id: UUID, series_key: str, on_date: date) -> str:
        return self.sequences.next_document_number(
            organization_id,
            self.series[series_key],
            on_date,
            self._highest_document_number,
        )

    def _counterparty(
        self, organization_id: UUID, counterparty_id: UUID, kind: CounterpartyKind
    ) -> Counterparty:
        counterparty = self.subledger.get_counterparty(organization_id, counterparty_id)
        if CounterpartyKind(counterparty.kind) != kind:
            raise ValidationError(
                f"{counterparty.name} is a {CounterpartyKind(counterparty.kind).value}, "
                f"not a {kind.value}",
                field="counterparty_id",
            )
        return counterparty

    @staticmethod
    def _positive_amount(amount) -> Decimal:
        try:
            value = round_money(to_decimal(amount, "amount"))
        except ValueError as exc:
            raise ValidationError(str(exc), field="amount") from exc
        if value <= ZERO:
            raise ValidationError(f"Amount must be positive, got {value}", field="amount")
        return value

    def _document_tax(
        self,
        organization_id: UUID,
        customer: Counterparty,
        lines: Sequence[InvoiceLineInput],
        tax_profile: TaxProfile,
    ) -> DocumentTaxResult | VatDocumentResult:
        products = {
            line.product_id: self.valuation.get_product(organization_id, line.product_id)
            for line in lines
            if line.product_id is not None
        }
        return compute_tax(
            tax_profile,
            [
                TaxLineInput(
                    taxable_amount=line.taxable_amount,
                    rate=line.tax_rate,
                    hsn_code=line.hsn_code
                    or (products[line.product_id].hsn_code if line.product_id else None),
                    category=line.vat_category,
                )
                for line in lines
            ],
            counterparty_registration_id=customer.registration_id,
            counterparty_region=customer.region_code,
        )

    def _open_document_entries(
        self,
        organization_id: UUID,
        source_type: EntrySourceType,
        document_number: str,
    ) -> list[JournalEntry]:
        """
        POSTED entries a document raised.

        Raises:
            JournalEntryNotFoundError: the document raised no entries.
            EntryAlreadyVoidError: every entry was voided before.
        """
        entries = [
            e
            for e in self.journal.entries_for_source(organization_id, source_type, document_number)
            if not e.is_reversal
        ]
        if not entries:
            raise JournalEntryNotFoundError(document_number)
        posted = [e for e in entries if e.is_posted]
        if not posted:
            reversal = self.journal.find_reversal(organization_id, entries[0].id)
            raise EntryAlreadyVoidError(str(entries[0].id), str(reversal.id) if reversal else None)
        return posted

    def _document_transaction(
        self,
        organization_id: UUID,
        transaction_type: CounterpartyTransactionType,
        document_number: str,
    ) -> CounterpartyTransaction | None:
        return self.session.execute(
            select(CounterpartyTransaction).where(
                CounterpartyTransaction.organization_id == organization_id,
                CounterpartyTransaction.transaction_type == transaction_type,
                CounterpartyTransaction.source_id == document_number,
            )
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def issue_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        customer_id: UUID,
        lines: Sequence[InvoiceLineInput],
        *,
        tax_profile: TaxProfile,
        invoice_date: date | None = None,
    ) -> PostedInvoice:
        """
        Issue a sales invoice.

        Revenue entry: DR receivable (grand total), CR sales (taxable total),
        CR one output-tax account per nonzero tax component.  COGS entry
        (only when stock was consumed): DR cogs, CR inventory.
        """
        if not lines:
            raise ValidationError("An invoice needs at least one line", field="lines")
        customer = self._counterparty(organization_id, customer_id, CounterpartyKind.CUSTOMER)
        invoice_date = invoice_date or self.clock.today()

        tax = self._document_tax(organization_id, customer, lines, tax_profile)
        if tax.total_taxable <= ZERO:
            raise ValidationError("Invoice total must be positive", field="lines")

        number = self._next_number(organization_id, "INVOICE", invoice_date)
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, document_number=number
        ):
            consumptions: list[ConsumptionResult] = []
            for index, line in enumerate(lines, start=1):
                if line.product_id is None:
                    continue
                consumptions.append(
                    self.valuation.consume_stock(
                        organization_id,
                        actor_id,
                        line.product_id,
                        line.quantity,
                        consumer_ref=f"{number}:{index}",
                        consumer_type=ConsumerType.SALE,
                        as_of=invoice_date,
                    )
                )

            revenue_lines = [
                LineSpec.dr(self._account("receivable"), tax.grand_total, f"Invoice {number}"),
                LineSpec.cr(self._account("sales"), tax.total_taxable, f"Sales {number}"),
            ]
            for component, amount in tax.tax_by_component().items():
                revenue_lines.append(
                    LineSpec.cr(
                        self._account(_TAX_ROLES[component]),
                        amount,
                        f"{component.upper()} {number}",
                    )
                )
            revenue_entry = self.journal.create_entry(
                organization_id,
                actor_id,
                revenue_lines,
                entry_date=invoice_date,
                description=f"Invoice {number} to {customer.name}",
                status=JournalEntryStatus.POSTED,
                source_type=EntrySourceType.INVOICE,
                source_id=number,
            )

            cogs = sum((c.total_cost for c in consumptions), ZERO)
            cogs_entry = None
            if cogs > ZERO:
                cogs_entry = self.journal.create_entry(
                    organization_id,
                    actor_id,
                    [
                        LineSpec.dr(self._account("cogs"), cogs, f"COGS {number}"),
                        LineSpec.cr(self._account("inventory"), cogs, f"COGS {number}"),
                    ],
                    entry_date=invoice_date,
                    description=f"Cost of goods sold for invoice {number}",
                    status=JournalEntryStatus.POSTED,
                    source_type=EntrySourceType.INVOICE,
                    source_id=number,
                )

            txn = self.subledger.record_transaction(
                organization_id,
                actor_id,
                customer.id,
                CounterpartyTransactionType.INVOICE,
                tax.grand_total,
                transaction_date=invoice_date,
                description=f"Invoice {number}",
                source_type=EntrySourceType.INVOICE.value,
                source_id=number,
            )

            logger.info(
                "invoice_issued",
                extra={
                    "invoice_number": number,
                    "customer_id": str(customer.id),
                    "total": str(tax.grand_total),
                    "total_tax": str(tax.total_tax),
                    "cogs": str(cogs),
                },
            )
        return PostedInvoice(
            invoice_number=number,
            customer_id=customer.id,
            tax=tax,
            revenue_entry=revenue_entry,
            cogs_entry=cogs_entry,
            consumptions=tuple(consumptions),
            subledger_transaction=txn,
        )

    def void_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_number: str,
    ) -> VoidedInvoice:
        """
        Void an issued invoice.

        Every POSTED entry raised by the invoice is voided (each gets its
        mirrored reversal), its stock consumptions are put back into their
        lots, and an INVOICE_VOID row cancels the customer balance.

        Raises:
            JournalEntryNotFoundError: no entries for this invoice number.
            EntryAlreadyVoidError: the invoice was voided before.
        """
        posted = self._open_document_entries(
            organization_id, EntrySourceType.INVOICE, invoice_number
        )

        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, document_number=invoice_number
        ):
            void_results = tuple(
                self.journal.void_entry(organization_id, actor_id, e.id) for e in posted
            )

            consumptions = self.valuation.consumptions_for_document(organization_id, invoice_number)
            restored = (
                self.valuation.restore_stock(organization_id, actor_id, consumptions)
                if consumptions
                else ZERO
            )

            original = self._document_transaction(
                organization_id, CounterpartyTransactionType.INVOICE, invoice_number
            )
            txn = None
            if original is not None:
                txn = self.subledger.record_transaction(
                    organization_id,
                    actor_id,
                    original.counterparty_id,
                    CounterpartyTransactionType.INVOICE_VOID,
                    original.amount,
                    description=f"Void of invoice {invoice_number}",
                    source_type=EntrySourceType.INVOICE.value,
                    source_id=invoice_number,
                )

            logger.info(
                "invoice_voided",
                extra={
                    "invoice_number": invoice_number,
                    "entries_voided": len(void_results),
                    "restored_quantity": str(restored),
                },
            )
        return VoidedInvoice(
            invoice_number=invoice_number,
            void_results=void_results,
            restored_quantity=restored,
            subledger_transaction=txn,
        )

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    def record_credit_note(
        self,
        organization_id: UUID,
        actor_id: UUID,
        customer_id: UUID,
        lines: Sequence[CreditNoteLineInput],
        *,
        tax_profile: TaxProfile,
        invoice_number: str | None = None,
        credit_note_date: date | None = None,
    ) -> PostedCreditNote:
        """
        Record goods a customer returned.

        Credit entry: DR sales (taxable total), DR one output-tax account
        per nonzero tax component, CR receivable (grand total).  Returned
        stock comes back as RETURN lots and its cost leaves COGS in a
        second entry: DR inventory, CR cogs.

        A tracked line goes back in at its ``return_unit_cost``, or else at
        the average cost ``invoice_number`` consumed for that product.

        Raises:
            ValidationError: empty note, wrong customer for the invoice, or
                no return cost for a tracked line.
            JournalEntryNotFoundError: ``invoice_number`` was never issued.
            EntryAlreadyVoidError: ``invoice_number`` was voided.
        """
        if not lines:
            raise ValidationError("A credit note needs at least one line", field="lines")
        customer = self._counterparty(organization_id, customer_id, CounterpartyKind.CUSTOMER)
        if invoice_number is not None:
            self._open_document_entries(organization_id, EntrySourceType.INVOICE, invoice_number)
            invoiced = self._document_transaction(
                organization_id, CounterpartyTransactionType.INVOICE, invoice_number
            )
            if invoiced is None or invoiced.counterparty_id != customer.id:
                raise ValidationError(
                    f"Invoice {invoice_number} was not issued to {customer.name}",
                    field="invoice_number",
                )
        credit_note_date = credit_note_date or self.clock.today()

        tax = self._document_tax(organization_id, customer, lines, tax_profile)
        if tax.total_taxable <= ZERO:
            raise ValidationError("Credit note total must be positive", field="lines")

        return_costs: dict[int, Decimal] = {}
        for index, line in enumerate(lines, start=1):
            if line.product_id is None:
                continue
            product = self.valuation.get_product(organization_id, line.product_id)
            if not product.track_inventory:
                continue
            unit_cost = line.return_unit_cost
            if unit_cost is None and invoice_number is not None:
                unit_cost = self.valuation.consumed_unit_cost(
                    organization_id, invoice_number, product.id
                )
            if unit_cost is None:
                raise ValidationError(
                    f"No return cost for {product.sku}; pass return_unit_cost",
                    field="return_unit_cost",
                )
            return_costs[index] = unit_cost

        number = self._next_number(organization_id, "CREDIT_NOTE", credit_note_date)
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, document_number=number
        ):
            lots = tuple(
                self.valuation.receive_stock(
                    organization_id,
                    actor_id,
                    lines[index - 1].product_id,
                    lines[index - 1].quantity,
                    unit_cost,
                    lot_date=credit_note_date,
                    source_type=LotSourceType.RETURN,
                    source_ref=f"{number}:{index}",
                )
                for index, unit_cost in return_costs.items()
            )

            credit_lines = [
                LineSpec.dr(self._account("sales"), tax.total_taxable, f"Return {number}"),
            ]
            for component, amount in tax.tax_by_component().items():
                credit_lines.append(
                    LineSpec.dr(
                        self._account(_TAX_ROLES[component]),
                        amount,
                        f"{component.upper()} {number}",
                    )
                )
            credit_lines.append(
                LineSpec.cr(self._account("receivable"), tax.grand_total, f"Credit note {number}")
            )
            entry = self.journal.create_entry(
                organization_id,
                actor_id,
                credit_lines,
                entry_date=credit_note_date,
                description=f"Credit note {number} to {customer.name}",
                status=JournalEntryStatus.POSTED,
                source_type=EntrySourceType.CREDIT_NOTE,
                source_id=number,
            )

            returned_cost = sum(
                (
                    round_money(lines[index - 1].quantity * unit_cost)
                    for index, unit_cost in return_costs.items()
                ),
                ZERO,
            )
            cogs_entry = None
            if returned_cost > ZERO:
                cogs_entry = self.journal.create_entry(
                    organization_id,
                    actor_id,
                    [
                        LineSpec.dr(self._account("inventory"), returned_cost, f"Return {number}"),
                        LineSpec.cr(self._account("cogs"), returned_cost, f"Return {number}"),
                    ],
                    entry_date=credit_note_date,
                    description=f"Cost of goods returned on credit note {number}",
                    status=JournalEntryStatus.POSTED,
                    source_type=EntrySourceType.CREDIT_NOTE,
                    source_id=number,
                )

            txn = self.subledger.record_transaction(
                organization_id,
                actor_id,
                customer.id,
                CounterpartyTransactionType.CREDIT_NOTE,
                tax.grand_total,
                transaction_date=credit_note_date,
                description=f"Credit note {number}",
                source_type=EntrySourceType.CREDIT_NOTE.value,
                source_id=number,
            )
            logger.info(
                "credit_note_recorded",
                extra={
                    "credit_note_number": number,
                    "customer_id": str(customer.id),
                    "invoice_number": invoice_number,
                    "total": str(tax.grand_total),
                    "returned_cost": str(returned_cost),
                },
            )
        return PostedCreditNote(
            credit_note_number=number,
            customer_id=customer.id,
            invoice_number=invoice_number,
            tax=tax,
            entry=entry,
            cogs_entry=cogs_entry,
            lots=lots,
            subledger_transaction=txn,
        )

    def record_debit_note(
        self,
        organization_id: UUID,
        actor_id: UUID,
        supplier_id: UUID,
        lines: Sequence[DebitNoteLineInput],
        *,
        purchase_number: str | None = None,
        debit_note_date: date | None = None,
    ) -> PostedDebitNote:
        """
        Send stock back to a supplier.

        The quantities leave their lots oldest first as PURCHASE_RETURN
        consumptions.  Entry: DR payable (note total), CR inventory (FIFO
        cost taken).  When the agreed credit differs from that cost the
        difference goes to the purchase_variance role.

        Raises:
            ValidationError: empty note, untracked product, wrong supplier
                for the purchase, or a zero total.
            InsufficientStockError: not enough stock to send back.
            JournalEntryNotFoundError: ``purchase_number`` was never recorded.
        """
        if not lines:
            raise ValidationError("A debit note needs at least one line", field="lines")
        supplier = self._counterparty(organization_id, supplier_id, CounterpartyKind.SUPPLIER)
        for line in lines:
            product = self.valuation.get_product(organization_id, line.product_id)
            if not product.track_inventory:
                raise ValidationError(
                    f"Product {product.sku} does not track inventory", field="product_id"
                )
        if purchase_number is not None:
            self._open_document_entries(
                organization_id, EntrySourceType.PURCHASE_INVOICE, purchase_number
            )
            purchased = self._document_transaction(
                organization_id, CounterpartyTransactionType.PURCHASE_INVOICE, purchase_number
            )
            if purchased is None or purchased.counterparty_id != supplier.id:
                raise ValidationError(
                    f"Purchase {purchase_number} was not received from {supplier.name}",
                    field="purchase_number",
                )

        debit_note_date = debit_note_date or self.clock.today()
        number = self._next_number(organization_id, "DEBIT_NOTE", debit_note_date)
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, document_number=number
        ):
            consumptions = tuple(
                self.valuation.consume_stock(
                    organization_id,
                    actor_id,
                    line.product_id,
                    line.quantity,
                    consumer_ref=f"{number}:{index}",
                    consumer_type=ConsumerType.PURCHASE_RETURN,
                    as_of=debit_note_date,
                )
                for index, line in enumerate(lines, start=1)
            )
            inventory_cost = round_money(sum((c.total_cost for c in consumptions), ZERO))
            total = sum(
                (
                    round_money(line.quantity * line.unit_cost)
                    if line.unit_cost is not None
                    else round_money(consumption.total_cost)
                    for line, consumption in zip(lines, consumptions)
                ),
                ZERO,
            )
            if total <= ZERO:
                raise ValidationError("Debit note total must be positive", field="lines")

            entry_lines = [LineSpec.dr(self._account("payable"), total, f"Debit note {number}")]
            if inventory_cost > ZERO:
                entry_lines.append(
                    LineSpec.cr(self._account("inventory"), inventory_cost, f"Return {number}")
                )
            variance = total - inventory_cost
            if variance > ZERO:
                entry_lines.append(
                    LineSpec.cr(self._account("purchase_variance"), variance, f"Variance {number}")
                )
            elif variance < ZERO:
                entry_lines.append(
                    LineSpec.dr(self._account("purchase_variance"), -variance, f"Variance {number}")
                )
            entry = self.journal.create_entry(
                organization_id,
                actor_id,
                entry_lines,
                entry_date=debit_note_date,
                description=f"Debit note {number} to {supplier.name}",
                status=JournalEntryStatus.POSTED,
                source_type=EntrySourceType.DEBIT_NOTE,
                source_id=number,
            )
            txn = self.subledger.record_transaction(
                organization_id,
                actor_id,
                supplier.id,
                CounterpartyTransactionType.DEBIT_NOTE,
                total,
                transaction_date=debit_note_date,
                description=f"Debit note {number}",
                source_type=EntrySourceType.DEBIT_NOTE.value,
                source_id=number,
            )
            logger.info(
                "debit_note_recorded",
                extra={
                    "debit_note_number": number,
                    "supplier_id": str(supplier.id),
                    "purchase_number": purchase_number,
                    "total": str(total),
                    "inventory_cost": str(inventory_cost),
                },
            )
        return PostedDebitNote(
            debit_note_number=number,
            supplier_id=supplier.id,
            purchase_number=purchase_number,
            total=total,
            inventory_cost=inventory_cost,
            consumptions=consumptions,
            entry=entry,
            subledger_transaction=txn,
        )

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def record_purchase_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        supplier_id: UUID,
        lines: Sequence[PurchaseLineInput],
        *,
        purchase_date: date | None = None,
    ) -> PostedPurchase:
        """
        Receive purchased stock on credit.

        One lot per line at the line's unit cost; DR inventory, CR payable
        for the total cost.
        """
        if not lines:
            raise ValidationError("A purchase invoice needs at least one line", field="lines")
        supplier = self._counterparty(organization_id, supplier_id, CounterpartyKind.SUPPLIER)
        for line in lines:
            product = self.valuation.get_product(organization_id, line.product_id)
            if not product.track_inventory:
                raise ValidationError(
                    f"Product {product.sku} does not track inventory", field="product_id"
                )
        total = sum((line.line_cost for line in lines), ZERO)
        if total <= ZERO:
            raise ValidationError("Purchase total must be positive", field="lines")

        purchase_date = purchase_date or self.clock.today()
        number = self._next_number(organization_id, "PURCHASE_INVOICE", purchase_date)
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, document_number=number
        ):
            lots = tuple(
                self.valuation.receive_stock(
                    organization_id,
                    actor_id,
                    line.product_id,
                    line.quantity,
                    line.unit_cost,
                    lot_date=purchase_date,
                    source_type=LotSourceType.PURCHASE,
                    source_ref=number,
                )
                for line in lines
            )
            entry = self.journal.create_entry(
                organization_id,
                actor_id,
                [
                    LineSpec.dr(self._account("inventory"), total, f"Purchase {number}"),
                    LineSpec.cr(self._account("payable"), total, f"Purchase {number}"),
                ],
                entry_date=purchase_date,
                description=f"Purchase invoice {number} from {supplier.name}",
                status=JournalEntryStatus.POSTED,
                source_type=EntrySourceType.PURCHASE_INVOICE,
                source_id=number,
            )
            txn = self.subledger.record_transaction(
                organization_id,
                actor_id,
                supplier.id,
                CounterpartyTransactionType.PURCHASE_INVOICE,
                total,
                transaction_date=purchase_date,
                description=f"Purchase invoice {number}",
                source_type=EntrySourceType.PURCHASE_INVOICE.value,
                source_id=number,
            )
            logger.info(
                "purchase_invoice_recorded",
                extra={
                    "purchase_number": number,
                    "supplier_id": str(supplier.id),
                    "total": str(total),
                    "lot_count": len(lots),
                },
            )
        return PostedPurchase(
            purchase_number=number,
            supplier_id=supplier.id,
            lots=lots,
            entry=entry,
            subledger_transaction=txn,
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def _record_payment(
        self,
        organization_id: UUID,
        actor_id: UUID,
        counterparty: Counterparty,
        amount: Decimal,
        payment_date: date,
        debit_role: str,
        credit_role: str,
        source_type: EntrySourceType,
    ) -> PostedPayment:
        number = self._next_number(organization_id, "PAYMENT", payment_date)
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, document_number=number
        ):
            entry = self.journal.create_entry(
                organization_id,
                actor_id,
                [
                    LineSpec.dr(self._account(debit_role), amount, f"Payment {number}"),
                    LineSpec.cr(self._account(credit_role), amount, f"Payment {number}"),
                ],
                entry_date=payment_date,
                description=f"Payment {number} - {counterparty.name}",
                status=JournalEntryStatus.POSTED,
                source_type=source_type,
                source_id=number,
            )
            txn = self.subledger.record_transaction(
                organization_id,
                actor_id,
                counterparty.id,
                CounterpartyTransactionType.PAYMENT,
                amount,
                transaction_date=payment_date,
                description=f"Payment {number}",
                source_type=source_type.value,
                source_id=number,
            )
            logger.info(
                "payment_recorded",
                extra={
                    "payment_number": number,
                    "counterparty_id": str(counterparty.id),
                    "amount": str(amount),
                    "source_type": source_type.value,
                },
            )
        return PostedPayment(
            payment_number=number,
            counterparty_id=counterparty.id,
            amount=amount,
            entry=entry,
            subledger_transaction=txn,
        )

    def record_customer_payment(
        self,
        organization_id: UUID,
        actor_id: UUID,
        customer_id: UUID,
        amount,
        *,
        payment_date: date | None = None,
    ) -> PostedPayment:
        """Money received: DR cash, CR receivable."""
        value = self._positive_amount(amount)
        customer = self._counterparty(organization_id, customer_id, CounterpartyKind.CUSTOMER)
        return self._record_payment(
            organization_id,
            actor_id,
            customer,
            value,
            payment_date or self.clock.today(),
            debit_role="cash",
            credit_role="receivable",
            source_type=EntrySourceType.PAYMENT,
        )

    def record_supplier_payment(
        self,
        organization_id: UUID,
        actor_id: UUID,
        supplier_id: UUID,
        amount,
        *,
        payment_date: date | None = None,
    ) -> PostedPayment:
        """Money paid out: DR payable, CR cash."""
        value = self._positive_amount(amount)
        supplier = self._counterparty(organization_id, supplier_id, CounterpartyKind.SUPPLIER)
        return self._record_payment(
            organization_id,
            actor_id,
            supplier,
            value,
            payment_date or self.clock.today(),
            debit_role="payable",
            credit_role="cash",
            source_type=EntrySourceType.SUPPLIER_PAYMENT,
        )

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def record_expense(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lines: Sequence[ExpenseLineInput],
        *,
        expense_date: date | None = None,
        payment_account_code: str | None = None,
        cash_account_id: UUID | None = None,
        description: str | None = None,
    ) -> PostedExpense:
        """
        Pay an expense straight from cash or a bank account.

        DR each line's expense account, DR the input_tax role for the tax
        on the lines, CR ``payment_account_code`` (default: the cash role).
        With ``cash_account_id`` the payment is also written to that
        CASH_BANK counterparty as a WITHDRAWAL.

        Raises:
            ValidationError: empty expense or a line on a non-expense account.
            AccountNotFoundError: unknown account code.
        """
        if not lines:
            raise ValidationError("An expense needs at least one line", field="lines")
        for line in lines:
            account = self.accounts.get_by_code(organization_id, line.account_code)
            if AccountType(account.account_type) != AccountType.EXPENSE:
                raise ValidationError(
                    f"Account {account.code} is not an expense account", field="account_code"
                )
        cash_account = None
        if cash_account_id is not None:
            cash_account = self._counterparty(
                organization_id, cash_account_id, CounterpartyKind.CASH_BANK
            )
        payment_code = payment_account_code or self._account("cash")
        tax_total = sum((line.tax_amount for line in lines), ZERO)
        total = sum((line.amount for line in lines), ZERO) + tax_total

        expense_date = expense_date or self.clock.today()
        number = self._next_number(organization_id, "EXPENSE", expense_date)
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, document_number=number
        ):
            entry_lines = [
                LineSpec.dr(line.account_code, line.amount, line.description or f"Expense {number}")
                for line in lines
            ]
            if tax_total > ZERO:
                entry_lines.append(
                    LineSpec.dr(self._account("input_tax"), tax_total, f"Tax {number}")
                )
            entry_lines.append(LineSpec.cr(payment_code, total, f"Expense {number}"))
            entry = self.journal.create_entry(
                organization_id,
                actor_id,
                entry_lines,
                entry_date=expense_date,
                description=description or f"Expense {number}",
                status=JournalEntryStatus.POSTED,
                source_type=EntrySourceType.EXPENSE,
                source_id=number,
            )
            txn = None
            if cash_account is not None:
                txn = self.subledger.record_transaction(
                    organization_id,
                    actor_id,
                    cash_account.id,
                    CounterpartyTransactionType.WITHDRAWAL,
                    total,
                    transaction_date=expense_date,
                    description=f"Expense {number}",
                    source_type=EntrySourceType.EXPENSE.value,
                    source_id=number,
                )
            logger.info(
                "expense_recorded",
                extra={
                    "expense_number": number,
                    "total": str(total),
                    "tax_total": str(tax_total),
                    "line_count": len(lines),
                },
            )
        return PostedExpense(
            expense_number=number,
            total=total,
            tax_total=tax_total,
            entry=entry,
            cash_transaction=txn,
        )

    def void_expense(
        self,
        organization_id: UUID,
        actor_id: UUID,
        expense_number: str,
    ) -> VoidedExpense:
        """
        Void a recorded expense: its entry gets a reversal, and a cash
        withdrawal it wrote is put back with a DEPOSIT.

        Raises:
            JournalEntryNotFoundError: no entries for this expense number.
            EntryAlreadyVoidError: the expense was voided before.
        """
        posted = self._open_document_entries(
            organization_id, EntrySourceType.EXPENSE, expense_number
        )
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, document_number=expense_number
        ):
            void_results = tuple(
                self.journal.void_entry(organization_id, actor_id, e.id) for e in posted
            )
            withdrawal = self._document_transaction(
                organization_id, CounterpartyTransactionType.WITHDRAWAL, expense_number
            )
            txn = None
            if withdrawal is not None:
                txn = self.subledger.record_transaction(
                    organization_id,
                    actor_id,
                    withdrawal.counterparty_id,
                    CounterpartyTransactionType.DEPOSIT,
                    abs(withdrawal.amount),
                    description=f"Void of expense {expense_number}",
                    source_type=EntrySourceType.EXPENSE.value,
                    source_id=expense_number,
                )
            logger.info(
                "expense_voided",
                extra={"expense_number": expense_number, "entries_voided": len(void_results)},
            )
        return VoidedExpense(
            expense_number=expense_number,
            void_results=void_results,
            cash_transaction=txn,
        )
