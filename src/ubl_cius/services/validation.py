"""Validation and normalization of raw invoice input.

Raw input is an untyped tree of mappings, lists and scalars. Every entity is walked
field by field through a ``FieldScope``; violations are recorded in an error tree
that mirrors the input shape and the walk never stops early, so a single call
reports every problem in the document. A model is built only when the whole tree
is clean.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, localcontext
from functools import partial
from typing import Any, TypeVar

from ubl_cius.config import (
    ISSUE_TIME_NOTE_PREFIX,
    OPERATOR_NOTE_PREFIX,
    OPERATOR_OIB_NOTE_PREFIX,
    VAT_CASH_ACCOUNTING_TEXT,
)
from ubl_cius.models.enums import (
    BusinessProcess,
    CurrencyCode,
    InvoiceTypeCode,
    TaxCategoryId,
    TaxSchemeId,
    UnitCode,
)
from ubl_cius.models.invoice import (
    Attachment,
    BillingReference,
    Invoice,
    InvoiceLine,
    Item,
    PaymentMeans,
    Price,
)
from ubl_cius.models.party import Contact, Party, PartyTaxScheme, PostalAddress, SellerContact
from ubl_cius.models.tax import LegalMonetaryTotal, TaxCategory, TaxSubtotal, TaxTotal
from ubl_cius.services.exceptions import (
    INCONSISTENT,
    INVALID_ENUM_VALUE,
    INVALID_FORMAT,
    INVALID_TYPE,
    MISSING,
    ErrorTree,
    FieldError,
    FieldWarning,
    InvoiceValidationError,
)
from ubl_cius.utils.validators import (
    MAX_SIGNIFICANT_DIGITS,
    TWO_PLACES,
    InvalidEnumValueError,
    validate_amount,
    validate_base64,
    validate_country_code,
    validate_date,
    validate_datetime,
    validate_email,
    validate_enum,
    validate_identifier,
    validate_mime_code,
    validate_oib,
    validate_payment_means_code,
    validate_percent,
    validate_quantity,
    validate_text,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# UNCL 4461: credit transfer, SEPA credit transfer
CREDIT_TRANSFER_CODES = frozenset({"30", "58"})

RESERVED_NOTE_PREFIXES = (OPERATOR_NOTE_PREFIX, ISSUE_TIME_NOTE_PREFIX, OPERATOR_OIB_NOTE_PREFIX)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


class FieldScope:
    """Accumulates errors for one mapping of the raw input.

    Child scopes are created for nested mappings and list items; their errors are
    attached to the parent under the field name (or list index) only when non-empty.
    """

    def __init__(self, data: Mapping[str, Any], path: str, warnings: list[FieldWarning]) -> None:
        self.data = data
        self.path = path
        self.errors: ErrorTree = {}
        self._warnings = warnings

    @property
    def ok(self) -> bool:
        return not self.errors

    def child_path(self, key: str | int) -> str:
        if isinstance(key, int):
            return f"{self.path}[{key}]"
        return f"{self.path}.{key}" if self.path else key

    def error(self, key: str | int, reason: str, message: str) -> None:
        self.errors[key] = FieldError(reason, message)

    def subtree(self, key: str | int) -> ErrorTree:
        """Return (creating if needed) the error subtree for an already-built child."""
        return self.errors.setdefault(key, {})  # type: ignore[return-value]

    def warn(self, message: str, key: str | None = None) -> None:
        path = self.child_path(key) if key is not None else self.path
        self._warnings.append(FieldWarning(path, message))
        logger.warning("%s: %s", path or "<invoice>", message)

    def field(
        self,
        key: str,
        check: Callable[[Any], T],
        *,
        required: bool = True,
        default: T | None = None,
    ) -> T | None:
        """Check one scalar field. Returns the normalized value, or *default*/None."""
        value = self.data.get(key)
        if _is_blank(value):
            if required:
                self.error(key, MISSING, "is required")
            return default
        try:
            return check(value)
        except InvalidEnumValueError as exc:
            self.error(key, INVALID_ENUM_VALUE, str(exc))
        except ValueError as exc:
            self.error(key, INVALID_FORMAT, str(exc))
        except TypeError as exc:
            self.error(key, INVALID_TYPE, str(exc))
        return None

    def nested(
        self,
        key: str,
        build: Callable[[FieldScope], T | None],
        *,
        required: bool = True,
    ) -> T | None:
        """Validate a nested mapping with *build* and merge its errors under *key*."""
        value = self.data.get(key)
        if _is_blank(value):
            if required:
                self.error(key, MISSING, "is required")
            return None
        if not isinstance(value, Mapping):
            self.error(key, INVALID_TYPE, "must be a mapping")
            return None
        child = FieldScope(value, self.child_path(key), self._warnings)
        result = build(child)
        if child.errors:
            self.errors[key] = child.errors
            return None
        return result

    def _items(self, key: str, *, required: bool) -> Sequence[Any] | None:
        value = self.data.get(key)
        if _is_blank(value):
            if required:
                self.error(key, MISSING, "is required")
            return None
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
            self.error(key, INVALID_TYPE, "must be a list")
            return None
        return value

    def sequence(
        self,
        key: str,
        build: Callable[[FieldScope], T | None],
        *,
        required: bool = True,
    ) -> tuple[T, ...] | None:
        """Validate a list of mappings; errors are keyed by item index."""
        items = self._items(key, required=required)
        if items is None:
            return None
        results: list[T] = []
        errors: ErrorTree = {}
        for index, item in enumerate(items):
            if not isinstance(item, Mapping):
                errors[index] = FieldError(INVALID_TYPE, "must be a mapping")
                continue
            child = FieldScope(item, self.child_path(key) + f"[{index}]", self._warnings)
            result = build(child)
            if child.errors:
                errors[index] = child.errors
            elif result is not None:
                results.append(result)
        if errors:
            self.errors[key] = errors
            return None
        return tuple(results)

    def scalars(
        self,
        key: str,
        check: Callable[[Any], T],
        *,
        required: bool = True,
    ) -> tuple[T, ...] | None:
        """Validate a list of scalar values; errors are keyed by item index."""
        items = self._items(key, required=required)
        if items is None:
            return None
        results: list[T] = []
        errors: ErrorTree = {}
        for index, item in enumerate(items):
            try:
                results.append(check(item))
            except InvalidEnumValueError as exc:
                errors[index] = FieldError(INVALID_ENUM_VALUE, str(exc))
            except ValueError as exc:
                errors[index] = FieldError(INVALID_FORMAT, str(exc))
            except TypeError as exc:
                errors[index] = FieldError(INVALID_TYPE, str(exc))
        if errors:
            self.errors[key] = errors
            return None
        return tuple(results)


def _rounded_tax(taxable: Decimal, percent: Decimal) -> Decimal:
    return (taxable * percent / Decimal(100)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _rounded_line_amount(quantity: Decimal, price: Decimal) -> Decimal:
    # Exact product of two bounded operands; the default context is too narrow
    with localcontext() as ctx:
        ctx.prec = 2 * MAX_SIGNIFICANT_DIGITS + 4
        return (quantity * price).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _validate_user_note(value: Any) -> str:
    text = validate_text(value)
    if text.startswith(RESERVED_NOTE_PREFIXES):
        raise ValueError("must not start with a reserved operator/issue-time note prefix")
    return text


# --- Parties ---


def _build_postal_address(scope: FieldScope) -> PostalAddress | None:
    street_name = scope.field("street_name", validate_text)
    city_name = scope.field("city_name", validate_text)
    postal_zone = scope.field("postal_zone", validate_identifier)
    country_code = scope.field("country_code", validate_country_code)
    if not scope.ok:
        return None
    return PostalAddress(
        street_name=street_name,
        city_name=city_name,
        postal_zone=postal_zone,
        country_code=country_code,
    )


def _build_party_tax_scheme(scope: FieldScope) -> PartyTaxScheme | None:
    company_id = scope.field("company_id", validate_text)
    tax_scheme_id = scope.field("tax_scheme_id", partial(validate_enum, TaxSchemeId))
    if not scope.ok:
        return None
    return PartyTaxScheme(company_id=company_id, tax_scheme_id=tax_scheme_id)


def _build_contact(scope: FieldScope) -> Contact | None:
    name = scope.field("name", validate_text, required=False)
    telephone = scope.field("telephone", validate_text, required=False)
    electronic_mail = scope.field("electronic_mail", validate_email, required=False)
    if not scope.ok or (name is None and telephone is None and electronic_mail is None):
        return None
    return Contact(name=name, telephone=telephone, electronic_mail=electronic_mail)


def _build_seller_contact(scope: FieldScope) -> SellerContact | None:
    operator_oib = scope.field("id", validate_oib)
    name = scope.field("name", validate_text)
    if not scope.ok:
        return None
    return SellerContact(id=operator_oib, name=name)


def _build_party(scope: FieldScope, *, supplier: bool = False) -> Party | None:
    oib = scope.field("oib", validate_oib)
    registration_name = scope.field("registration_name", validate_text)
    postal_address = scope.nested("postal_address", _build_postal_address)
    party_tax_scheme = scope.nested("party_tax_scheme", _build_party_tax_scheme)
    contact = scope.nested("contact", _build_contact, required=False)
    seller_contact = None
    if supplier:
        seller_contact = scope.nested("seller_contact", _build_seller_contact, required=False)
    elif not _is_blank(scope.data.get("seller_contact")):
        scope.error("seller_contact", INVALID_FORMAT, "is only allowed on the supplier")
    if not scope.ok:
        return None
    return Party(
        oib=oib,
        registration_name=registration_name,
        postal_address=postal_address,
        party_tax_scheme=party_tax_scheme,
        contact=contact,
        seller_contact=seller_contact,
    )


# --- Tax ---


def _build_tax_category(
    scope: FieldScope, *, exemption_reason_required: bool
) -> TaxCategory | None:
    category = scope.field("id", partial(validate_enum, TaxCategoryId))
    percent = scope.field("percent", validate_percent)
    tax_scheme_id = scope.field("tax_scheme_id", partial(validate_enum, TaxSchemeId))
    reason_required = (
        exemption_reason_required and category is not None and category.requires_exemption_reason
    )
    exemption_reason = scope.field("exemption_reason", validate_text, required=reason_required)
    if category is not None and percent is not None and percent != category.percent:
        scope.error(
            "percent",
            INCONSISTENT,
            f"{category.value} requires percent {category.percent}, got {percent}",
        )
    if not scope.ok:
        return None
    return TaxCategory(
        id=category,
        percent=category.percent,
        tax_scheme_id=tax_scheme_id,
        exemption_reason=exemption_reason,
    )


def _build_tax_subtotal(scope: FieldScope) -> TaxSubtotal | None:
    taxable_amount = scope.field("taxable_amount", validate_amount)
    tax_amount = scope.field("tax_amount", validate_amount)
    tax_category = scope.nested(
        "tax_category", partial(_build_tax_category, exemption_reason_required=True)
    )
    if not scope.ok:
        return None
    expected = _rounded_tax(taxable_amount, tax_category.percent)
    if expected != tax_amount:
        scope.warn(
            f"{taxable_amount} at {tax_category.percent}% gives {expected}, not {tax_amount}",
            "tax_amount",
        )
    return TaxSubtotal(
        taxable_amount=taxable_amount,
        tax_amount=tax_amount,
        tax_category=tax_category,
    )


def _build_tax_total(scope: FieldScope) -> TaxTotal | None:
    tax_amount = scope.field("tax_amount", validate_amount)
    tax_subtotals = scope.sequence("tax_subtotals", _build_tax_subtotal)
    if not scope.ok:
        return None
    subtotal_sum = sum((s.tax_amount for s in tax_subtotals), Decimal("0.00"))
    if subtotal_sum != tax_amount:
        scope.warn(f"subtotal tax amounts add up to {subtotal_sum}, not {tax_amount}", "tax_amount")
    return TaxTotal(tax_amount=tax_amount, tax_subtotals=tax_subtotals)


def _build_monetary_total(scope: FieldScope) -> LegalMonetaryTotal | None:
    line_extension_amount = scope.field("line_extension_amount", validate_amount)
    tax_exclusive_amount = scope.field("tax_exclusive_amount", validate_amount)
    tax_inclusive_amount = scope.field("tax_inclusive_amount", validate_amount)
    payable_amount = scope.field("payable_amount", validate_amount)
    if not scope.ok:
        return None
    return LegalMonetaryTotal(
        line_extension_amount=line_extension_amount,
        tax_exclusive_amount=tax_exclusive_amount,
        tax_inclusive_amount=tax_inclusive_amount,
        payable_amount=payable_amount,
    )


# --- Lines ---


def _build_item(scope: FieldScope) -> Item | None:
    name = scope.field("name", validate_text)
    classified_tax_category = scope.nested(
        "classified_tax_category",
        partial(_build_tax_category, exemption_reason_required=False),
    )
    commodity_classification = scope.field(
        "commodity_classification", validate_identifier, required=False
    )
    if not scope.ok:
        return None
    return Item(
        name=name,
        classified_tax_category=classified_tax_category,
        commodity_classification=commodity_classification,
    )


def _build_price(scope: FieldScope) -> Price | None:
    price_amount = scope.field("price_amount", validate_amount)
    if not scope.ok:
        return None
    return Price(price_amount=price_amount)


def _build_invoice_line(scope: FieldScope) -> InvoiceLine | None:
    line_id = scope.field("id", validate_identifier)
    quantity = scope.field("quantity", validate_quantity)
    unit_code = scope.field("unit_code", partial(validate_enum, UnitCode))
    line_extension_amount = scope.field("line_extension_amount", validate_amount)
    item = scope.nested("item", _build_item)
    price = scope.nested("price", _build_price)
    if not scope.ok:
        return None
    expected = _rounded_line_amount(quantity, price.price_amount)
    if expected != line_extension_amount:
        scope.warn(
            f"{quantity} x {price.price_amount} gives {expected}, not {line_extension_amount}",
            "line_extension_amount",
        )
    return InvoiceLine(
        id=line_id,
        quantity=quantity,
        unit_code=unit_code,
        line_extension_amount=line_extension_amount,
        item=item,
        price=price,
    )


def _build_payment_means(scope: FieldScope) -> PaymentMeans | None:
    code = scope.field("payment_means_code", validate_payment_means_code)
    account = scope.field(
        "payee_financial_account_id", validate_text, required=code in CREDIT_TRANSFER_CODES
    )
    instruction_note = scope.field("instruction_note", validate_text, required=False)
    payment_id = scope.field("payment_id", validate_text, required=False)
    if not scope.ok:
        return None
    return PaymentMeans(
        payment_means_code=code,
        payee_financial_account_id=account,
        instruction_note=instruction_note,
        payment_id=payment_id,
    )


def _build_billing_reference(scope: FieldScope) -> BillingReference | None:
    reference_id = scope.field("id", validate_identifier)
    issue_date = scope.field("issue_date", validate_date, required=False)
    if not scope.ok:
        return None
    return BillingReference(id=reference_id, issue_date=issue_date)


def _build_attachment(scope: FieldScope) -> Attachment | None:
    attachment_id = scope.field("id", validate_identifier)
    filename = scope.field("filename", validate_text)
    mime_code = scope.field("mime_code", validate_mime_code)
    content = scope.field("content", validate_base64)
    if not scope.ok:
        return None
    return Attachment(id=attachment_id, filename=filename, mime_code=mime_code, content=content)


def _validate_vat_cash_accounting(value: Any) -> str | None:
    """``True`` selects the standard wording; text is written as given."""
    if value is True:
        return VAT_CASH_ACCOUNTING_TEXT
    if value is False:
        return None
    return validate_text(value)


# --- Invoice ---


def _check_line_ids(scope: FieldScope, lines: tuple[InvoiceLine, ...]) -> None:
    seen: dict[str, int] = {}
    for index, line in enumerate(lines):
        if line.id in seen:
            line_errors = scope.subtree("invoice_lines").setdefault(index, {})
            line_errors["id"] = FieldError(
                INCONSISTENT, f"duplicates the id of invoice_lines[{seen[line.id]}]"
            )
        else:
            seen[line.id] = index


def _check_monetary_total(
    scope: FieldScope, tax_total: TaxTotal | None, total: LegalMonetaryTotal
) -> None:
    if tax_total is not None:
        expected = total.tax_exclusive_amount + tax_total.tax_amount
        if total.tax_inclusive_amount != expected:
            scope.subtree("legal_monetary_total")["tax_inclusive_amount"] = FieldError(
                INCONSISTENT,
                f"must equal tax_exclusive_amount + tax_total.tax_amount ({expected})",
            )
    if total.payable_amount != total.tax_inclusive_amount:
        scope.subtree("legal_monetary_total")["payable_amount"] = FieldError(
            INCONSISTENT,
            f"must equal tax_inclusive_amount ({total.tax_inclusive_amount})",
        )


def _build_invoice(scope: FieldScope) -> Invoice | None:
    invoice_id = scope.field("id", validate_identifier)
    issue_datetime = scope.field("issue_datetime", validate_datetime)
    operator_name = scope.field("operator_name", validate_text)
    currency_code = scope.field("currency_code", partial(validate_enum, CurrencyCode))
    supplier = scope.nested("supplier", partial(_build_party, supplier=True))
    customer = scope.nested("customer", _build_party)
    tax_total = scope.nested("tax_total", _build_tax_total)
    legal_monetary_total = scope.nested("legal_monetary_total", _build_monetary_total)
    invoice_lines = scope.sequence("invoice_lines", _build_invoice_line)

    operator_oib = scope.field("operator_oib", validate_oib, required=False)
    business_process = scope.field(
        "business_process",
        partial(validate_enum, BusinessProcess),
        required=False,
        default=BusinessProcess.P1,
    )
    invoice_type_code = scope.field(
        "invoice_type_code",
        partial(validate_enum, InvoiceTypeCode),
        required=False,
        default=InvoiceTypeCode.COMMERCIAL_INVOICE,
    )
    due_date = scope.field("due_date", validate_date, required=False)
    delivery_date = scope.field("delivery_date", validate_date, required=False)
    order_reference = scope.field("order_reference", validate_identifier, required=False)
    payment_means = scope.nested("payment_means", _build_payment_means, required=False)
    notes = scope.scalars("notes", _validate_user_note, required=False)
    billing_reference = scope.nested(
        "billing_reference",
        _build_billing_reference,
        required=invoice_type_code is not None and invoice_type_code.requires_billing_reference,
    )
    attachments = scope.sequence("attachments", _build_attachment, required=False)
    vat_cash_accounting = scope.field(
        "vat_cash_accounting", _validate_vat_cash_accounting, required=False
    )

    if legal_monetary_total is not None:
        _check_monetary_total(scope, tax_total, legal_monetary_total)
    if invoice_lines is not None:
        _check_line_ids(scope, invoice_lines)
        if legal_monetary_total is not None:
            line_sum = sum((line.line_extension_amount for line in invoice_lines), Decimal("0.00"))
            if line_sum != legal_monetary_total.line_extension_amount:
                scope.warn(
                    f"invoice lines add up to {line_sum}, "
                    f"not {legal_monetary_total.line_extension_amount}",
                    "legal_monetary_total.line_extension_amount",
                )

    if not scope.ok:
        return None
    return Invoice(
        id=invoice_id,
        issue_datetime=issue_datetime,
        operator_name=operator_name,
        currency_code=currency_code,
        supplier=supplier,
        customer=customer,
        tax_total=tax_total,
        legal_monetary_total=legal_monetary_total,
        invoice_lines=invoice_lines,
        operator_oib=operator_oib,
        business_process=business_process,
        invoice_type_code=invoice_type_code,
        due_date=due_date,
        delivery_date=delivery_date,
        order_reference=order_reference,
        payment_means=payment_means,
        notes=notes or (),
        billing_reference=billing_reference,
        attachments=attachments or (),
        vat_cash_accounting=vat_cash_accounting,
    )


@dataclass
class ValidationReport:
    """Outcome of one validation pass: either an invoice or a non-empty error tree."""

    invoice: Invoice | None
    errors: ErrorTree = field(default_factory=dict)
    warnings: list[FieldWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.invoice is not None


def validate_report(raw: Any) -> ValidationReport:
    """Validate raw invoice input without raising.

    Returns a report holding the normalized Invoice, or the complete error tree.
    Soft consistency findings are returned as warnings in both cases.
    """
    warnings: list[FieldWarning] = []
    if not isinstance(raw, Mapping):
        return ValidationReport(
            invoice=None,
            errors={"input": FieldError(INVALID_TYPE, "must be a mapping")},
        )
    scope = FieldScope(raw, "", warnings)
    invoice = _build_invoice(scope)
    if scope.errors:
        logger.debug("Invoice input rejected with %d top-level errors", len(scope.errors))
        return ValidationReport(invoice=None, errors=scope.errors, warnings=warnings)
    logger.debug("Validated invoice %s (%d lines)", invoice.id, len(invoice.invoice_lines))
    return ValidationReport(invoice=invoice, warnings=warnings)


def validate_invoice(raw: Any) -> Invoice:
    """Validate raw invoice input and return the normalized Invoice.

    Raises InvoiceValidationError carrying the full error tree on any violation.
    """
    report = validate_report(raw)
    if report.invoice is None:
        raise InvoiceValidationError(report.errors, report.warnings)
    return report.invoice
