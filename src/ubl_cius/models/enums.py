"""Closed code lists of the CIUS-2025 profile.

Each enum member's value is the id accepted in raw input. The module-level tables
map members to the tokens written in (and read from) the XML document; generation
and parsing both go through them, so the two directions cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class UnrecognizedCode(str):
    """A code token read from a document that is not in the matching code list.

    Kept as the raw string so an explicit validation pass can report it.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return f"UnrecognizedCode({str.__repr__(self)})"


class CurrencyCode(Enum):
    EUR = "EUR"

    @property
    def code(self) -> str:
        return self.value

    @classmethod
    def from_code(cls, code: str) -> CurrencyCode | None:
        return _CURRENCY_BY_CODE.get(code)


class TaxSchemeId(Enum):
    VAT = "vat"

    @property
    def code(self) -> str:
        return TAX_SCHEME_CODES[self]

    @classmethod
    def from_code(cls, code: str) -> TaxSchemeId | None:
        return _TAX_SCHEME_BY_CODE.get(code)


class UnitCode(Enum):
    """UN/ECE Recommendation 20 units accepted on invoice lines."""

    PIECE = "piece"
    UNIT = "unit"
    HOUR = "hour"
    DAY = "day"
    KILOGRAM = "kilogram"
    LITRE = "litre"
    METRE = "metre"
    SQUARE_METRE = "square_metre"

    @property
    def code(self) -> str:
        return UNIT_CODES[self]

    @classmethod
    def from_code(cls, code: str) -> UnitCode | None:
        return _UNIT_BY_CODE.get(code)


class InvoiceTypeCode(Enum):
    """UNTDID 1001 document types."""

    COMMERCIAL_INVOICE = "commercial_invoice"
    CREDIT_NOTE = "credit_note"
    CORRECTED_INVOICE = "corrected_invoice"
    SELF_BILLED_INVOICE = "self_billed_invoice"
    INVOICE_INFORMATION = "invoice_information"

    @property
    def code(self) -> str:
        return INVOICE_TYPE_CODES[self]

    @property
    def requires_billing_reference(self) -> bool:
        """Credit notes and corrected invoices must reference the preceding invoice."""
        return self in (InvoiceTypeCode.CREDIT_NOTE, InvoiceTypeCode.CORRECTED_INVOICE)

    @classmethod
    def from_code(cls, code: str) -> InvoiceTypeCode | None:
        return _INVOICE_TYPE_BY_CODE.get(code)


class BusinessProcess(Enum):
    """Business process (ProfileID) codes defined for Croatian e-invoicing."""

    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"
    P5 = "P5"
    P6 = "P6"
    P7 = "P7"
    P8 = "P8"
    P9 = "P9"
    P10 = "P10"
    P11 = "P11"
    P12 = "P12"
    P99 = "P99"

    @property
    def code(self) -> str:
        return self.value

    @classmethod
    def from_code(cls, code: str) -> BusinessProcess | None:
        return _BUSINESS_PROCESS_BY_CODE.get(code)


class TaxCategoryId(Enum):
    """VAT categories. Croatian reduced rates (13% and 5%) share the UBL code S."""

    STANDARD_RATE = "standard_rate"
    REDUCED_RATE = "reduced_rate"
    LOWER_REDUCED_RATE = "lower_reduced_rate"
    ZERO_RATE = "zero_rate"
    EXEMPT = "exempt"
    REVERSE_CHARGE = "reverse_charge"
    INTRA_COMMUNITY = "intra_community"
    EXPORT = "export"
    OUTSIDE_SCOPE = "outside_scope"

    @property
    def code(self) -> str:
        return TAX_CATEGORIES[self].code

    @property
    def percent(self) -> Decimal:
        return TAX_CATEGORIES[self].percent

    @property
    def tax_name(self) -> str | None:
        return TAX_CATEGORIES[self].tax_name

    @property
    def requires_exemption_reason(self) -> bool:
        return TAX_CATEGORIES[self].requires_exemption_reason

    @classmethod
    def from_code(cls, code: str, percent: Decimal) -> TaxCategoryId | None:
        """Resolve a (UBL code, percent) pair back to its category."""
        return _TAX_CATEGORY_BY_CODE.get((code, percent))


@dataclass(frozen=True)
class TaxCategorySpec:
    code: str
    percent: Decimal
    tax_name: str | None = None
    requires_exemption_reason: bool = False


TAX_CATEGORIES: dict[TaxCategoryId, TaxCategorySpec] = {
    TaxCategoryId.STANDARD_RATE: TaxCategorySpec("S", Decimal("25"), "HR:PDV25"),
    TaxCategoryId.REDUCED_RATE: TaxCategorySpec("S", Decimal("13"), "HR:PDV13"),
    TaxCategoryId.LOWER_REDUCED_RATE: TaxCategorySpec("S", Decimal("5"), "HR:PDV5"),
    TaxCategoryId.ZERO_RATE: TaxCategorySpec("Z", Decimal("0"), "HR:Z"),
    TaxCategoryId.EXEMPT: TaxCategorySpec("E", Decimal("0"), requires_exemption_reason=True),
    TaxCategoryId.REVERSE_CHARGE: TaxCategorySpec(
        "AE", Decimal("0"), requires_exemption_reason=True
    ),
    TaxCategoryId.INTRA_COMMUNITY: TaxCategorySpec(
        "K", Decimal("0"), requires_exemption_reason=True
    ),
    TaxCategoryId.EXPORT: TaxCategorySpec("G", Decimal("0"), requires_exemption_reason=True),
    TaxCategoryId.OUTSIDE_SCOPE: TaxCategorySpec(
        "O", Decimal("0"), requires_exemption_reason=True
    ),
}

TAX_SCHEME_CODES: dict[TaxSchemeId, str] = {
    TaxSchemeId.VAT: "VAT",
}

UNIT_CODES: dict[UnitCode, str] = {
    UnitCode.PIECE: "H87",
    UnitCode.UNIT: "C62",
    UnitCode.HOUR: "HUR",
    UnitCode.DAY: "DAY",
    UnitCode.KILOGRAM: "KGM",
    UnitCode.LITRE: "LTR",
    UnitCode.METRE: "MTR",
    UnitCode.SQUARE_METRE: "MTK",
}

INVOICE_TYPE_CODES: dict[InvoiceTypeCode, str] = {
    InvoiceTypeCode.COMMERCIAL_INVOICE: "380",
    InvoiceTypeCode.CREDIT_NOTE: "381",
    InvoiceTypeCode.CORRECTED_INVOICE: "384",
    InvoiceTypeCode.SELF_BILLED_INVOICE: "389",
    InvoiceTypeCode.INVOICE_INFORMATION: "751",
}

_CURRENCY_BY_CODE = {c.value: c for c in CurrencyCode}
_BUSINESS_PROCESS_BY_CODE = {p.value: p for p in BusinessProcess}
_TAX_SCHEME_BY_CODE = {code: scheme for scheme, code in TAX_SCHEME_CODES.items()}
_UNIT_BY_CODE = {code: unit for unit, code in UNIT_CODES.items()}
_INVOICE_TYPE_BY_CODE = {code: kind for kind, code in INVOICE_TYPE_CODES.items()}
_TAX_CATEGORY_BY_CODE = {
    (spec.code, spec.percent): category for category, spec in TAX_CATEGORIES.items()
}

SUPPORTED_CURRENCIES = [c.code for c in CurrencyCode]
