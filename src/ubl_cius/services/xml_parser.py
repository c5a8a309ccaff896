"""Decode UBL 2.1 Invoice documents back into raw invoice data.

Parsing is structural recovery only. Values are converted to their natural Python
types where possible (Decimal, date, enum member) and otherwise kept as text, and
code tokens outside the shared tables are kept as ``UnrecognizedCode``. Whether the
result is a valid invoice is decided by an explicit validation pass
(``ParsedInvoice.to_invoice``).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from lxml import etree

from ubl_cius.config import (
    CAC_NS,
    CBC_NS,
    EXT_NS,
    HREXTAC_NS,
    INVOICE_NS,
    OPERATOR_NOTE_PREFIX,
    get_max_xml_bytes,
)
from ubl_cius.models.enums import (
    BusinessProcess,
    CurrencyCode,
    InvoiceTypeCode,
    TaxCategoryId,
    TaxSchemeId,
    UnitCode,
    UnrecognizedCode,
)
from ubl_cius.models.invoice import Invoice
from ubl_cius.services.exceptions import (
    DocumentTooLargeError,
    MalformedXmlError,
    MissingElementError,
    UnsupportedEncodingError,
    WrongSchemaError,
)
from ubl_cius.services.notes import decompose_notes
from ubl_cius.services.validation import validate_invoice

logger = logging.getLogger(__name__)

# Internal prefixes for lookups; independent of whatever prefixes the document uses
_NS = {
    "inv": INVOICE_NS,
    "cac": CAC_NS,
    "cbc": CBC_NS,
    "ext": EXT_NS,
    "hrext": HREXTAC_NS,
}

_XML_DECL_RE = re.compile(rb"^\s*<\?xml[^>]*?encoding\s*=\s*[\"']([A-Za-z0-9._-]+)[\"']")
_UTF8_NAMES = frozenset({"utf-8", "utf8"})
_BOM = b"\xef\xbb\xbf"


@dataclass
class ParsedInvoice:
    """Result of parsing: invoice data in the raw-input shape.

    ``data`` can be passed straight to validation. ``unrecognized`` lists the data
    paths holding code tokens outside the known code lists.
    """

    data: dict[str, Any]
    notes: tuple[str, ...] = ()
    issue_timestamp_confirmed: bool | None = None
    unrecognized: tuple[str, ...] = field(default_factory=tuple)

    @property
    def operator_name(self) -> str:
        return self.data["operator_name"]

    @property
    def issue_datetime(self) -> datetime | str:
        return self.data["issue_datetime"]

    def to_invoice(self) -> Invoice:
        """Run full validation over the parsed data (raises InvoiceValidationError)."""
        return validate_invoice(self.data)


# --- Input checks ---


def _to_bytes(xml: Any, max_bytes: int) -> bytes:
    if isinstance(xml, str):
        try:
            data = xml.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise MalformedXmlError(f"Input text is not valid Unicode: {exc}") from exc
    elif isinstance(xml, (bytes, bytearray)):
        data = bytes(xml)
    else:
        raise MalformedXmlError(f"Expected XML text or bytes, got {type(xml).__name__}")

    if len(data) > max_bytes:
        raise DocumentTooLargeError(f"Document is {len(data)} bytes, limit is {max_bytes}")

    try:
        data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise UnsupportedEncodingError(f"Document is not valid UTF-8: {exc.reason}") from exc

    if data.startswith(_BOM):
        data = data[len(_BOM) :]
    m = _XML_DECL_RE.match(data)
    if m and m.group(1).decode("ascii").lower() not in _UTF8_NAMES:
        raise UnsupportedEncodingError(
            f"Unsupported declared encoding: {m.group(1).decode('ascii')}"
        )
    if not data.strip():
        raise MalformedXmlError("Document is empty")
    return data


def _parse_root(data: bytes) -> etree._Element:
    parser = etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
    )
    try:
        root = etree.fromstring(data, parser)
    except etree.XMLSyntaxError as exc:
        raise MalformedXmlError(f"Document is not well-formed XML: {exc}") from exc
    if root.getroottree().docinfo.doctype:
        raise MalformedXmlError("DOCTYPE declarations are not allowed")
    qname = etree.QName(root)
    if qname.namespace != INVOICE_NS or qname.localname != "Invoice":
        raise WrongSchemaError(f"Expected a UBL 2.1 Invoice root element, got {root.tag}")
    return root


# --- Value conversion (best effort, failures left for validation) ---


def _decimal(text: str) -> Decimal | str:
    try:
        value = Decimal(text)
    except InvalidOperation:
        return text
    return value if value.is_finite() else text


def _date(text: str) -> date | str:
    try:
        return date.fromisoformat(text)
    except ValueError:
        return text


def _issue_datetime(date_text: str, time_text: str) -> datetime | str:
    try:
        d = date.fromisoformat(date_text)
        t = time.fromisoformat(time_text)
    except ValueError:
        return f"{date_text}T{time_text}"
    return datetime.combine(d, t.replace(tzinfo=None, microsecond=0))


class _Reader:
    """Namespace-aware element lookups that record unrecognized code paths."""

    def __init__(self) -> None:
        self.unrecognized: list[str] = []

    def element(self, parent: etree._Element, xpath: str, where: str) -> etree._Element:
        found = parent.find(xpath, namespaces=_NS)
        if found is None:
            raise MissingElementError(f"{where}/{xpath}")
        return found

    def text(self, parent: etree._Element, xpath: str, where: str) -> str:
        found = parent.find(xpath, namespaces=_NS)
        value = (found.text or "").strip() if found is not None else ""
        if not value:
            raise MissingElementError(f"{where}/{xpath}")
        return value

    def optional_text(self, parent: etree._Element, xpath: str) -> str | None:
        value = parent.findtext(xpath, default="", namespaces=_NS).strip()
        return value or None

    def attribute(self, el: etree._Element, name: str, where: str) -> str:
        value = (el.get(name) or "").strip()
        if not value:
            raise MissingElementError(f"{where}/@{name}")
        return value

    def code(self, member: Any, token: str, data_path: str) -> Any:
        if member is not None:
            return member
        self.unrecognized.append(data_path)
        logger.debug("Unrecognized code %r at %s", token, data_path)
        return UnrecognizedCode(token)


def _party(r: _Reader, root: etree._Element, name: str, data_path: str) -> dict[str, Any]:
    where = f"Invoice/cac:{name}/cac:Party"
    party_el = r.element(root, f"cac:{name}/cac:Party", "Invoice")

    address_el = r.element(party_el, "cac:PostalAddress", where)
    address_where = f"{where}/cac:PostalAddress"
    tax_el = r.element(party_el, "cac:PartyTaxScheme", where)
    tax_where = f"{where}/cac:PartyTaxScheme"
    scheme_token = r.text(tax_el, "cac:TaxScheme/cbc:ID", tax_where)

    party: dict[str, Any] = {
        "oib": r.text(party_el, "cbc:EndpointID", where),
        "registration_name": r.text(
            party_el, "cac:PartyLegalEntity/cbc:RegistrationName", where
        ),
        "postal_address": {
            "street_name": r.text(address_el, "cbc:StreetName", address_where),
            "city_name": r.text(address_el, "cbc:CityName", address_where),
            "postal_zone": r.text(address_el, "cbc:PostalZone", address_where),
            "country_code": r.text(
                address_el, "cac:Country/cbc:IdentificationCode", address_where
            ),
        },
        "party_tax_scheme": {
            "company_id": r.text(tax_el, "cbc:CompanyID", tax_where),
            "tax_scheme_id": r.code(
                TaxSchemeId.from_code(scheme_token),
                scheme_token,
                f"{data_path}.party_tax_scheme.tax_scheme_id",
            ),
        },
    }

    contact_el = party_el.find("cac:Contact", namespaces=_NS)
    if contact_el is not None:
        contact = {
            "name": r.optional_text(contact_el, "cbc:Name"),
            "telephone": r.optional_text(contact_el, "cbc:Telephone"),
            "electronic_mail": r.optional_text(contact_el, "cbc:ElectronicMail"),
        }
        contact = {k: v for k, v in contact.items() if v is not None}
        if contact:
            party["contact"] = contact
    return party


def _tax_category(
    r: _Reader, category_el: etree._Element, where: str, data_path: str
) -> dict[str, Any]:
    code = r.text(category_el, "cbc:ID", where)
    percent = _decimal(r.text(category_el, "cbc:Percent", where))
    scheme_token = r.text(category_el, "cac:TaxScheme/cbc:ID", where)
    member = TaxCategoryId.from_code(code, percent) if isinstance(percent, Decimal) else None
    category: dict[str, Any] = {
        "id": r.code(member, code, f"{data_path}.id"),
        "percent": percent,
        "tax_scheme_id": r.code(
            TaxSchemeId.from_code(scheme_token), scheme_token, f"{data_path}.tax_scheme_id"
        ),
    }
    reason = r.optional_text(category_el, "cbc:TaxExemptionReason")
    if reason is not None:
        category["exemption_reason"] = reason
    return category


def _tax_total(r: _Reader, root: etree._Element) -> dict[str, Any]:
    where = "Invoice/cac:TaxTotal"
    total_el = r.element(root, "cac:TaxTotal", "Invoice")
    subtotal_els = total_el.findall("cac:TaxSubtotal", namespaces=_NS)
    if not subtotal_els:
        raise MissingElementError(f"{where}/cac:TaxSubtotal")
    subtotals = []
    for i, st in enumerate(subtotal_els):
        st_where = f"{where}/cac:TaxSubtotal[{i + 1}]"
        subtotals.append(
            {
                "taxable_amount": _decimal(r.text(st, "cbc:TaxableAmount", st_where)),
                "tax_amount": _decimal(r.text(st, "cbc:TaxAmount", st_where)),
                "tax_category": _tax_category(
                    r,
                    r.element(st, "cac:TaxCategory", st_where),
                    f"{st_where}/cac:TaxCategory",
                    f"tax_total.tax_subtotals[{i}].tax_category",
                ),
            }
        )
    return {
        "tax_amount": _decimal(r.text(total_el, "cbc:TaxAmount", where)),
        "tax_subtotals": subtotals,
    }


def _monetary_total(r: _Reader, root: etree._Element) -> dict[str, Any]:
    where = "Invoice/cac:LegalMonetaryTotal"
    el = r.element(root, "cac:LegalMonetaryTotal", "Invoice")
    return {
        "line_extension_amount": _decimal(r.text(el, "cbc:LineExtensionAmount", where)),
        "tax_exclusive_amount": _decimal(r.text(el, "cbc:TaxExclusiveAmount", where)),
        "tax_inclusive_amount": _decimal(r.text(el, "cbc:TaxInclusiveAmount", where)),
        "payable_amount": _decimal(r.text(el, "cbc:PayableAmount", where)),
    }


def _invoice_line(r: _Reader, line_el: etree._Element, index: int) -> dict[str, Any]:
    where = f"Invoice/cac:InvoiceLine[{index + 1}]"
    data_path = f"invoice_lines[{index}]"

    qty_el = r.element(line_el, "cbc:InvoicedQuantity", where)
    unit_token = r.attribute(qty_el, "unitCode", f"{where}/cbc:InvoicedQuantity")
    item_el = r.element(line_el, "cac:Item", where)
    item_where = f"{where}/cac:Item"

    item: dict[str, Any] = {
        "name": r.text(item_el, "cbc:Name", item_where),
        "classified_tax_category": _tax_category(
            r,
            r.element(item_el, "cac:ClassifiedTaxCategory", item_where),
            f"{item_where}/cac:ClassifiedTaxCategory",
            f"{data_path}.item.classified_tax_category",
        ),
    }
    commodity = r.optional_text(
        item_el, "cac:CommodityClassification/cbc:ItemClassificationCode"
    )
    if commodity is not None:
        item["commodity_classification"] = commodity

    return {
        "id": r.text(line_el, "cbc:ID", where),
        "quantity": _decimal(r.text(line_el, "cbc:InvoicedQuantity", where)),
        "unit_code": r.code(UnitCode.from_code(unit_token), unit_token, f"{data_path}.unit_code"),
        "line_extension_amount": _decimal(r.text(line_el, "cbc:LineExtensionAmount", where)),
        "item": item,
        "price": {"price_amount": _decimal(r.text(line_el, "cac:Price/cbc:PriceAmount", where))},
    }


def _payment_means(r: _Reader, root: etree._Element) -> dict[str, Any] | None:
    el = root.find("cac:PaymentMeans", namespaces=_NS)
    if el is None:
        return None
    means = {
        "payment_means_code": r.text(el, "cbc:PaymentMeansCode", "Invoice/cac:PaymentMeans"),
        "payee_financial_account_id": r.optional_text(el, "cac:PayeeFinancialAccount/cbc:ID"),
        "instruction_note": r.optional_text(el, "cbc:InstructionNote"),
        "payment_id": r.optional_text(el, "cbc:PaymentID"),
    }
    return {k: v for k, v in means.items() if v is not None}


def _seller_contact(r: _Reader, root: etree._Element) -> dict[str, Any] | None:
    el = root.find("cac:AccountingSupplierParty/cac:SellerContact", namespaces=_NS)
    if el is None:
        return None
    contact = {"id": r.optional_text(el, "cbc:ID"), "name": r.optional_text(el, "cbc:Name")}
    return {k: v for k, v in contact.items() if v is not None} or None


def _billing_reference(r: _Reader, root: etree._Element) -> dict[str, Any] | None:
    el = root.find("cac:BillingReference/cac:InvoiceDocumentReference", namespaces=_NS)
    if el is None:
        return None
    where = "Invoice/cac:BillingReference/cac:InvoiceDocumentReference"
    reference: dict[str, Any] = {"id": r.text(el, "cbc:ID", where)}
    issue_date = r.optional_text(el, "cbc:IssueDate")
    if issue_date is not None:
        reference["issue_date"] = _date(issue_date)
    return reference


def _attachments(r: _Reader, root: etree._Element) -> list[dict[str, Any]]:
    attachments = []
    for i, el in enumerate(root.findall("cac:AdditionalDocumentReference", namespaces=_NS)):
        where = f"Invoice/cac:AdditionalDocumentReference[{i + 1}]"
        obj = el.find("cac:Attachment/cbc:EmbeddedDocumentBinaryObject", namespaces=_NS)
        if obj is None:
            # External references carry no embedded content
            logger.debug("Skipping %s without an embedded document", where)
            continue
        attachment = {
            "id": r.text(el, "cbc:ID", where),
            "filename": obj.get("filename"),
            "mime_code": obj.get("mimeCode"),
            "content": (obj.text or "").strip() or None,
        }
        attachments.append({k: v for k, v in attachment.items() if v is not None})
    return attachments


def parse_invoice_xml(xml: str | bytes, *, max_bytes: int | None = None) -> ParsedInvoice:
    """Parse a UBL 2.1 Invoice document.

    Accepts UTF-8 text or bytes. Raises a ParseError subclass (MalformedXmlError,
    WrongSchemaError, UnsupportedEncodingError, DocumentTooLargeError or
    MissingElementError) when the document cannot be decoded.
    """
    limit = max_bytes if max_bytes is not None else get_max_xml_bytes()
    root = _parse_root(_to_bytes(xml, limit))
    r = _Reader()

    issue_datetime = _issue_datetime(
        r.text(root, "cbc:IssueDate", "Invoice"),
        r.text(root, "cbc:IssueTime", "Invoice"),
    )
    note_texts = [el.text or "" for el in root.findall("cbc:Note", namespaces=_NS)]
    parts = decompose_notes(
        note_texts, issue_datetime if isinstance(issue_datetime, datetime) else None
    )
    if parts.operator_name is None:
        raise MissingElementError(f"Invoice/cbc:Note[starts-with(., '{OPERATOR_NOTE_PREFIX}')]")

    currency_token = r.text(root, "cbc:DocumentCurrencyCode", "Invoice")
    type_token = r.text(root, "cbc:InvoiceTypeCode", "Invoice")

    data: dict[str, Any] = {
        "id": r.text(root, "cbc:ID", "Invoice"),
        "issue_datetime": issue_datetime,
        "operator_name": parts.operator_name,
        "currency_code": r.code(
            CurrencyCode.from_code(currency_token), currency_token, "currency_code"
        ),
        "invoice_type_code": r.code(
            InvoiceTypeCode.from_code(type_token), type_token, "invoice_type_code"
        ),
    }

    profile_token = r.optional_text(root, "cbc:ProfileID")
    if profile_token is not None:
        data["business_process"] = r.code(
            BusinessProcess.from_code(profile_token), profile_token, "business_process"
        )
    if parts.operator_oib is not None:
        data["operator_oib"] = parts.operator_oib
    due = r.optional_text(root, "cbc:DueDate")
    if due is not None:
        data["due_date"] = _date(due)
    order_reference = r.optional_text(root, "cac:OrderReference/cbc:ID")
    if order_reference is not None:
        data["order_reference"] = order_reference

    vat_cash_accounting = r.optional_text(
        root, "ext:UBLExtensions//hrext:HRFISK20Data/hrext:HRObracunPDVPoNaplati"
    )
    if vat_cash_accounting is not None:
        data["vat_cash_accounting"] = vat_cash_accounting
    billing_reference = _billing_reference(r, root)
    if billing_reference is not None:
        data["billing_reference"] = billing_reference
    attachments = _attachments(r, root)
    if attachments:
        data["attachments"] = attachments

    data["supplier"] = _party(r, root, "AccountingSupplierParty", "supplier")
    seller_contact = _seller_contact(r, root)
    if seller_contact is not None:
        data["supplier"]["seller_contact"] = seller_contact
    data["customer"] = _party(r, root, "AccountingCustomerParty", "customer")

    delivery = r.optional_text(root, "cac:Delivery/cbc:ActualDeliveryDate")
    if delivery is not None:
        data["delivery_date"] = _date(delivery)
    payment_means = _payment_means(r, root)
    if payment_means is not None:
        data["payment_means"] = payment_means

    data["tax_total"] = _tax_total(r, root)
    data["legal_monetary_total"] = _monetary_total(r, root)

    line_els = root.findall("cac:InvoiceLine", namespaces=_NS)
    if not line_els:
        raise MissingElementError("Invoice/cac:InvoiceLine")
    data["invoice_lines"] = [_invoice_line(r, el, i) for i, el in enumerate(line_els)]

    if parts.other:
        data["notes"] = list(parts.other)

    if r.unrecognized:
        logger.warning(
            "Invoice %s contains %d unrecognized code(s): %s",
            data["id"],
            len(r.unrecognized),
            ", ".join(r.unrecognized),
        )
    logger.debug("Parsed invoice %s (%d lines)", data["id"], len(line_els))
    return ParsedInvoice(
        data=data,
        notes=parts.other,
        issue_timestamp_confirmed=parts.issue_timestamp_confirmed,
        unrecognized=tuple(r.unrecognized),
    )
