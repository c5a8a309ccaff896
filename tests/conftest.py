from __future__ import annotations

import copy

import pytest
from lxml import etree

from ubl_cius.config import CAC_NS, CBC_NS, INVOICE_NS

NS = {"inv": INVOICE_NS, "cac": CAC_NS, "cbc": CBC_NS}


def xml_text(el: etree._Element, xpath: str) -> str | None:
    """Extract text from an XML element by namespaced xpath (inv/cac/cbc prefixes)."""
    found = el.find(xpath, namespaces=NS)
    return found.text if found is not None else None


# --- Party fixtures ---


@pytest.fixture
def supplier_dict() -> dict:
    return {
        "oib": "12345678901",
        "registration_name": "Tvrtka d.o.o.",
        "postal_address": {
            "street_name": "Ilica 1",
            "city_name": "Zagreb",
            "postal_zone": "10000",
            "country_code": "HR",
        },
        "party_tax_scheme": {"company_id": "HR12345678901", "tax_scheme_id": "vat"},
        "contact": {
            "name": "Ana Anić",
            "telephone": "+385 1 234 5678",
            "electronic_mail": "racuni@tvrtka.hr",
        },
    }


@pytest.fixture
def customer_dict() -> dict:
    return {
        "oib": "98765432109",
        "registration_name": "Kupac j.d.o.o.",
        "postal_address": {
            "street_name": "Riva 5",
            "city_name": "Split",
            "postal_zone": "21000",
            "country_code": "HR",
        },
        "party_tax_scheme": {"company_id": "HR98765432109", "tax_scheme_id": "vat"},
    }


# --- Invoice fixtures ---


@pytest.fixture
def invoice_dict(supplier_dict: dict, customer_dict: dict) -> dict:
    """Two-line invoice: 2 x 100.00 at 25% and 1.5 h x 40.00 at 13%."""
    return {
        "id": "INV-2025-001",
        "issue_datetime": "2025-05-01T14:30:15",
        "operator_name": "Marko Horvat",
        "currency_code": "EUR",
        "supplier": supplier_dict,
        "customer": customer_dict,
        "tax_total": {
            "tax_amount": "57.80",
            "tax_subtotals": [
                {
                    "taxable_amount": "200.00",
                    "tax_amount": "50.00",
                    "tax_category": {
                        "id": "standard_rate",
                        "percent": "25",
                        "tax_scheme_id": "vat",
                    },
                },
                {
                    "taxable_amount": "60.00",
                    "tax_amount": "7.80",
                    "tax_category": {
                        "id": "reduced_rate",
                        "percent": "13",
                        "tax_scheme_id": "vat",
                    },
                },
            ],
        },
        "legal_monetary_total": {
            "line_extension_amount": "260.00",
            "tax_exclusive_amount": "260.00",
            "tax_inclusive_amount": "317.80",
            "payable_amount": "317.80",
        },
        "invoice_lines": [
            {
                "id": "1",
                "quantity": "2",
                "unit_code": "piece",
                "line_extension_amount": "200.00",
                "item": {
                    "name": "Software license",
                    "classified_tax_category": {
                        "id": "standard_rate",
                        "percent": "25",
                        "tax_scheme_id": "vat",
                    },
                    "commodity_classification": "62.01.11",
                },
                "price": {"price_amount": "100.00"},
            },
            {
                "id": "2",
                "quantity": "1.5",
                "unit_code": "hour",
                "line_extension_amount": "60.00",
                "item": {
                    "name": "Consulting",
                    "classified_tax_category": {
                        "id": "reduced_rate",
                        "percent": "13",
                        "tax_scheme_id": "vat",
                    },
                },
                "price": {"price_amount": "40.00"},
            },
        ],
    }


@pytest.fixture
def full_invoice_dict(invoice_dict: dict) -> dict:
    """Invoice with every optional field populated."""
    d = copy.deepcopy(invoice_dict)
    d.update(
        {
            "operator_oib": "11122233344",
            "business_process": "P2",
            "invoice_type_code": "commercial_invoice",
            "due_date": "2025-05-31",
            "delivery_date": "30.04.2025",
            "order_reference": "PO-77",
            "payment_means": {
                "payment_means_code": "30",
                "payee_financial_account_id": "HR1210010051863000160",
                "instruction_note": "Plaćanje po računu",
                "payment_id": "HR00 2025-001",
            },
            "notes": ["Hvala na povjerenju", "Rok isporuke 5 dana"],
        }
    )
    return d


@pytest.fixture
def exempt_invoice_dict(invoice_dict: dict) -> dict:
    """Single-line invoice taxed in an exempt category."""
    d = copy.deepcopy(invoice_dict)
    d["tax_total"] = {
        "tax_amount": "0.00",
        "tax_subtotals": [
            {
                "taxable_amount": "200.00",
                "tax_amount": "0.00",
                "tax_category": {
                    "id": "exempt",
                    "percent": "0",
                    "tax_scheme_id": "vat",
                    "exemption_reason": "Oslobođeno prema čl. 39 Zakona o PDV-u",
                },
            }
        ],
    }
    d["legal_monetary_total"] = {
        "line_extension_amount": "200.00",
        "tax_exclusive_amount": "200.00",
        "tax_inclusive_amount": "200.00",
        "payable_amount": "200.00",
    }
    line = d["invoice_lines"][0]
    line["item"]["classified_tax_category"] = {
        "id": "exempt",
        "percent": "0",
        "tax_scheme_id": "vat",
    }
    d["invoice_lines"] = [line]
    return d


@pytest.fixture
def credit_note_dict(invoice_dict: dict) -> dict:
    """Credit note referencing its invoice, with an attachment and the HR extension."""
    d = copy.deepcopy(invoice_dict)
    d["invoice_type_code"] = "credit_note"
    d["billing_reference"] = {"id": "INV-2025-000", "issue_date": "2025-04-15"}
    d["attachments"] = [
        {
            "id": "vizualizacija",
            "filename": "racun.pdf",
            "mime_code": "application/pdf",
            "content": "JVBERi0xLjQK",
        }
    ]
    d["vat_cash_accounting"] = True
    d["supplier"]["seller_contact"] = {"id": "11122233344", "name": "Marko Horvat"}
    return d


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Isolated config directory with an empty customers/ subdirectory."""
    monkeypatch.setenv("UBL_CIUS_CONFIG_DIR", str(tmp_path))
    (tmp_path / "customers").mkdir()
    return tmp_path
