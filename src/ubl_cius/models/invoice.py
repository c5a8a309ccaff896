from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal

from ubl_cius.models.enums import BusinessProcess, CurrencyCode, InvoiceTypeCode, UnitCode
from ubl_cius.models.party import Party
from ubl_cius.models.tax import LegalMonetaryTotal, TaxCategory, TaxTotal, check_amount


@dataclass(frozen=True)
class Item:
    name: str
    classified_tax_category: TaxCategory
    commodity_classification: str | None = None  # CPA code, listID "CG"


@dataclass(frozen=True)
class Price:
    price_amount: Decimal

    def __post_init__(self) -> None:
        check_amount("price_amount", self.price_amount)


@dataclass(frozen=True)
class InvoiceLine:
    id: str
    quantity: Decimal
    unit_code: UnitCode
    line_extension_amount: Decimal
    item: Item
    price: Price

    def __post_init__(self) -> None:
        if not isinstance(self.unit_code, UnitCode):
            raise ValueError(f"unit_code must be a UnitCode, got {self.unit_code!r}")
        if not isinstance(self.quantity, Decimal) or self.quantity <= 0:
            raise ValueError(f"quantity must be a positive Decimal, got {self.quantity!r}")
        check_amount("line_extension_amount", self.line_extension_amount)


@dataclass(frozen=True)
class PaymentMeans:
    payment_means_code: str  # UNCL 4461, e.g. "30" credit transfer
    payee_financial_account_id: str | None = None  # IBAN
    instruction_note: str | None = None
    payment_id: str | None = None


@dataclass(frozen=True)
class BillingReference:
    """Preceding invoice reference (BG-3)."""

    id: str
    issue_date: date | None = None


@dataclass(frozen=True)
class Attachment:
    """Document embedded as AdditionalDocumentReference, content base64 encoded."""

    id: str
    filename: str
    mime_code: str
    content: str


@dataclass(frozen=True)
class Invoice:
    """Canonical invoice, built only by the validator and immutable afterwards.

    The mandated operator and issue-time notes are not stored here; they are
    derived from ``operator_name`` and ``issue_datetime`` when the XML is rendered.
    """

    id: str
    issue_datetime: datetime
    operator_name: str
    currency_code: CurrencyCode
    supplier: Party
    customer: Party
    tax_total: TaxTotal
    legal_monetary_total: LegalMonetaryTotal
    invoice_lines: tuple[InvoiceLine, ...]

    operator_oib: str | None = None
    business_process: BusinessProcess = BusinessProcess.P1
    invoice_type_code: InvoiceTypeCode = InvoiceTypeCode.COMMERCIAL_INVOICE
    due_date: date | None = None
    delivery_date: date | None = None
    order_reference: str | None = None
    payment_means: PaymentMeans | None = None
    notes: tuple[str, ...] = ()
    billing_reference: BillingReference | None = None
    attachments: tuple[Attachment, ...] = ()
    vat_cash_accounting: str | None = None  # HRObracunPDVPoNaplati text

    def __post_init__(self) -> None:
        if not isinstance(self.currency_code, CurrencyCode):
            raise ValueError(f"currency_code must be a CurrencyCode, got {self.currency_code!r}")
        if not isinstance(self.business_process, BusinessProcess):
            raise ValueError(
                f"business_process must be a BusinessProcess, got {self.business_process!r}"
            )
        if not isinstance(self.invoice_type_code, InvoiceTypeCode):
            raise ValueError(
                f"invoice_type_code must be an InvoiceTypeCode, got {self.invoice_type_code!r}"
            )
        if not self.invoice_lines:
            raise ValueError("invoice_lines must not be empty")
        if self.invoice_type_code.requires_billing_reference and self.billing_reference is None:
            raise ValueError(f"{self.invoice_type_code.value} requires a billing_reference")
        if self.issue_datetime.tzinfo is not None:
            raise ValueError("issue_datetime must be naive (document local time)")

    @property
    def issue_date(self) -> date:
        return self.issue_datetime.date()

    @property
    def issue_time(self) -> time:
        return self.issue_datetime.time()
