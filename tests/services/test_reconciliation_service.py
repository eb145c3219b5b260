"""
ReconciliationService tests: control accounts against counterparty totals.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from bizbooks_config import CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH
from bizbooks_config.bridges import to_tax_profile
from bizbooks_kernel.exceptions import AccountNotFoundError, ReconciliationBreakError
from bizbooks_kernel.models.counterparty import CounterpartyKind, CounterpartyTransactionType
from bizbooks_services.document_posting import InvoiceLineInput, PurchaseLineInput
from bizbooks_services.reconciliation_service import ReconciliationService


@pytest.fixture
def gst_profile(config):
    return to_tax_profile(config.tax_profile("india_maharashtra"))


class TestReconcile:
    def test_empty_books_reconcile(self, reconciliation_service, chart, org_id):
        report = reconciliation_service.reconcile_all(org_id)
        assert report.is_reconciled
        assert set(report.results) == {"CUSTOMER", "SUPPLIER"}

    def test_posted_documents_reconcile(
        self, reconciliation_service, posting, make_counterparty, make_product, org_id, test_actor_id, gst_profile
    ):
        customer = make_counterparty()
        supplier = make_counterparty(kind=CounterpartyKind.SUPPLIER, name="Parts Co")
        product = make_product()
        posting.record_purchase_invoice(
            org_id, test_actor_id, supplier.id, [PurchaseLineInput(product.id, Decimal("10"), Decimal("40"))]
        )
        posting.issue_invoice(
            org_id,
            test_actor_id,
            customer.id,
            [InvoiceLineInput("Widget", Decimal("2"), Decimal("500"), Decimal("18"), product_id=product.id)],
            tax_profile=gst_profile,
        )
        posting.record_customer_payment(org_id, test_actor_id, customer.id, "180")

        report = reconciliation_service.reconcile_all(org_id)

        assert report.is_reconciled
        assert report.results["CUSTOMER"].ledger_balance == Decimal("1000.00")
        assert report.results["SUPPLIER"].subledger_total == Decimal("400.00")

    def test_subledger_only_adjustment_breaks(
        self, reconciliation_service, subledger_service, make_counterparty, chart, org_id, test_actor_id
    ):
        customer = make_counterparty()
        subledger_service.record_transaction(
            org_id, test_actor_id, customer.id, CounterpartyTransactionType.ADJUSTMENT, "25.00"
        )

        result = reconciliation_service.reconcile_kind(org_id, CounterpartyKind.CUSTOMER)

        assert result.is_break
        assert result.difference == Decimal("-25.00")
        with pytest.raises(ReconciliationBreakError):
            result.raise_for_break()
        assert reconciliation_service.reconcile_all(org_id).breaks == [result]

    def test_missing_control_account_reported(
        self, session, deterministic_clock, config, chart, org_id, captured_logs
    ):
        rebound = replace(config, control_accounts=(("CUSTOMER", "1300"), ("SUPPLIER", "2999")))
        service = ReconciliationService(session, deterministic_clock, config=rebound)

        report = service.reconcile_all(org_id)

        assert not report.is_reconciled
        assert "SUPPLIER" in report.failures
        assert report.results["CUSTOMER"].is_reconciled
        assert any(r["message"] == "reconciliation_check_failed" for r in captured_logs())

    def test_unmapped_kind(self, reconciliation_service):
        with pytest.raises(AccountNotFoundError):
            reconciliation_service.control_account_for(CounterpartyKind.CASH_BANK)


class TestConfiguredControlAccounts:
    def test_configured_binding_is_used(
        self, session, deterministic_clock, config, subledger_service, make_counterparty, chart, org_id, test_actor_id
    ):
        rebound = replace(config, control_accounts=(("CUSTOMER", "1100"), ("SUPPLIER", "2100")))
        service = ReconciliationService(session, deterministic_clock, config=rebound)

        assert service.control_account_for(CounterpartyKind.CUSTOMER) == "1100"
        assert service.reconcile_kind(org_id, CounterpartyKind.CUSTOMER).control_account_code == "1100"

    def test_active_configuration_is_the_default(self, session, tmp_path, monkeypatch):
        text = DEFAULT_CONFIG_PATH.read_text(encoding="utf-8").replace('CUSTOMER: "1300"', 'CUSTOMER: "1100"')
        path = tmp_path / "bizbooks.yaml"
        path.write_text(text, encoding="utf-8")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        service = ReconciliationService(session)

        assert service.control_account_for(CounterpartyKind.CUSTOMER) == "1100"
        assert service.control_account_for(CounterpartyKind.SUPPLIER) == "2100"
