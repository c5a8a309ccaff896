from __future__ import annotations

import logging
from decimal import Decimal

from lxml import etree

from ubl_cius.config import (
    CAC_NS,
    CBC_NS,
    COMMODITY_LIST_ID,
    CUSTOMIZATION_ID,
    EXT_NS,
    HREXTAC_NS,
    INVOICE_NS,
    OIB_SCHEME_ID,
)
from ubl_cius.models.invoice import (
    Attachment,
    BillingReference,
    Invoice,
    InvoiceLine,
    PaymentMeans,
)
from ubl_cius.models.party import Party
from ubl_cius.models.tax import LegalMonetaryTotal, TaxCategory, TaxTotal
from ubl_cius.services.notes import compose_notes
from ubl_cius.utils.formatters import (
    format_amount,
    format_date,
    format_percent,
    format_quantity,
    format_time,
)

logger = logging.getLogger(__name__)

NSMAP = {None: INVOICE_NS, "cac": CAC_NS, "cbc": CBC_NS}
# Declared only when the document carries the HR extension
EXTENSION_NSMAP = {"ext": EXT_NS, "hrextac": HREXTAC_NS}


def _cbc(parent: etree._Element, name: str, text: str | None = None) -> etree._Element:
    el = etree.SubElement(parent, f"{{{CBC_NS}}}{name}")
    if text is not None:
        el.text = text
    return el


def _cac(parent: etree._Element, name: str) -> etree._Element:
    return etree.SubElement(parent, f"{{{CAC_NS}}}{name}")


def _amount(parent: etree._Element, name: str, value: Decimal, currency: str) -> etree._Element:
    el = _cbc(parent, name, format_amount(value))
    el.set("currencyID", currency)
    return el


def _party(parent: etree._Element, name: str, party: Party) -> None:
    wrapper = _cac(parent, name)
    p = _cac(wrapper, "Party")
    endpoint = _cbc(p, "EndpointID", party.oib)
    endpoint.set("schemeID", OIB_SCHEME_ID)
    _cbc(_cac(p, "PartyIdentification"), "ID", f"{OIB_SCHEME_ID}:{party.oib}")

    address = party.postal_address
    addr = _cac(p, "PostalAddress")
    _cbc(addr, "StreetName", address.street_name)
    _cbc(addr, "CityName", address.city_name)
    _cbc(addr, "PostalZone", address.postal_zone)
    _cbc(_cac(addr, "Country"), "IdentificationCode", address.country_code)

    pts = _cac(p, "PartyTaxScheme")
    _cbc(pts, "CompanyID", party.party_tax_scheme.company_id)
    _cbc(_cac(pts, "TaxScheme"), "ID", party.party_tax_scheme.tax_scheme_id.code)

    _cbc(_cac(p, "PartyLegalEntity"), "RegistrationName", party.registration_name)

    contact = party.contact
    if contact is not None:
        c = _cac(p, "Contact")
        if contact.name:
            _cbc(c, "Name", contact.name)
        if contact.telephone:
            _cbc(c, "Telephone", contact.telephone)
        if contact.electronic_mail:
            _cbc(c, "ElectronicMail", contact.electronic_mail)

    # SellerContact belongs to AccountingSupplierParty, after the Party block
    if party.seller_contact is not None:
        sc = _cac(wrapper, "SellerContact")
        _cbc(sc, "ID", party.seller_contact.id)
        _cbc(sc, "Name", party.seller_contact.name)


def _vat_cash_accounting(parent: etree._Element, text: str) -> None:
    extension = etree.SubElement(
        etree.SubElement(parent, f"{{{EXT_NS}}}UBLExtensions"), f"{{{EXT_NS}}}UBLExtension"
    )
    content = etree.SubElement(extension, f"{{{EXT_NS}}}ExtensionContent")
    data = etree.SubElement(content, f"{{{HREXTAC_NS}}}HRFISK20Data")
    etree.SubElement(data, f"{{{HREXTAC_NS}}}HRObracunPDVPoNaplati").text = text


def _billing_reference(parent: etree._Element, reference: BillingReference) -> None:
    ref = _cac(_cac(parent, "BillingReference"), "InvoiceDocumentReference")
    _cbc(ref, "ID", reference.id)
    if reference.issue_date is not None:
        _cbc(ref, "IssueDate", format_date(reference.issue_date))


def _attachment(parent: etree._Element, attachment: Attachment) -> None:
    ref = _cac(parent, "AdditionalDocumentReference")
    _cbc(ref, "ID", attachment.id)
    obj = _cbc(_cac(ref, "Attachment"), "EmbeddedDocumentBinaryObject", attachment.content)
    obj.set("mimeCode", attachment.mime_code)
    obj.set("filename", attachment.filename)


def _tax_category(
    parent: etree._Element, name: str, category: TaxCategory, *, classified: bool
) -> None:
    cat = _cac(parent, name)
    _cbc(cat, "ID", category.id.code)
    # Item-level categories carry the Croatian rate label (HR:PDV25, ...)
    if classified and category.id.tax_name:
        _cbc(cat, "Name", category.id.tax_name)
    _cbc(cat, "Percent", format_percent(category.percent))
    if category.exemption_reason:
        _cbc(cat, "TaxExemptionReason", category.exemption_reason)
    _cbc(_cac(cat, "TaxScheme"), "ID", category.tax_scheme_id.code)


def _payment_means(parent: etree._Element, means: PaymentMeans) -> None:
    pm = _cac(parent, "PaymentMeans")
    _cbc(pm, "PaymentMeansCode", means.payment_means_code)
    if means.instruction_note:
        _cbc(pm, "InstructionNote", means.instruction_note)
    if means.payment_id:
        _cbc(pm, "PaymentID", means.payment_id)
    if means.payee_financial_account_id:
        _cbc(_cac(pm, "PayeeFinancialAccount"), "ID", means.payee_financial_account_id)


def _tax_total(parent: etree._Element, tax_total: TaxTotal, currency: str) -> None:
    tt = _cac(parent, "TaxTotal")
    _amount(tt, "TaxAmount", tax_total.tax_amount, currency)
    for subtotal in tax_total.tax_subtotals:
        st = _cac(tt, "TaxSubtotal")
        _amount(st, "TaxableAmount", subtotal.taxable_amount, currency)
        _amount(st, "TaxAmount", subtotal.tax_amount, currency)
        _tax_category(st, "TaxCategory", subtotal.tax_category, classified=False)


def _monetary_total(parent: etree._Element, total: LegalMonetaryTotal, currency: str) -> None:
    lmt = _cac(parent, "LegalMonetaryTotal")
    _amount(lmt, "LineExtensionAmount", total.line_extension_amount, currency)
    _amount(lmt, "TaxExclusiveAmount", total.tax_exclusive_amount, currency)
    _amount(lmt, "TaxInclusiveAmount", total.tax_inclusive_amount, currency)
    _amount(lmt, "PayableAmount", total.payable_amount, currency)


def _invoice_line(parent: etree._Element, line: InvoiceLine, currency: str) -> None:
    il = _cac(parent, "InvoiceLine")
    _cbc(il, "ID", line.id)
    qty = _cbc(il, "InvoicedQuantity", format_quantity(line.quantity))
    qty.set("unitCode", line.unit_code.code)
    _amount(il, "LineExtensionAmount", line.line_extension_amount, currency)

    item = _cac(il, "Item")
    _cbc(item, "Name", line.item.name)
    if line.item.commodity_classification:
        cc = _cbc(
            _cac(item, "CommodityClassification"),
            "ItemClassificationCode",
            line.item.commodity_classification,
        )
        cc.set("listID", COMMODITY_LIST_ID)
    _tax_category(
        item, "ClassifiedTaxCategory", line.item.classified_tax_category, classified=True
    )

    _amount(_cac(il, "Price"), "PriceAmount", line.price.price_amount, currency)


def build_invoice_xml(invoice: Invoice) -> etree._Element:
    """Build the UBL 2.1 <Invoice> element for a validated invoice.

    Elements follow the UBL 2.1 Invoice sequence; the operator and issue-time
    notes are synthesized here from the model.
    """
    currency = invoice.currency_code.code

    nsmap = dict(NSMAP)
    if invoice.vat_cash_accounting:
        nsmap.update(EXTENSION_NSMAP)
    # lxml stubs don't model the None key for the default namespace
    root = etree.Element(f"{{{INVOICE_NS}}}Invoice", nsmap=nsmap)  # type: ignore[arg-type]

    if invoice.vat_cash_accounting:
        _vat_cash_accounting(root, invoice.vat_cash_accounting)
    _cbc(root, "CustomizationID", CUSTOMIZATION_ID)
    _cbc(root, "ProfileID", invoice.business_process.code)
    _cbc(root, "ID", invoice.id)
    _cbc(root, "IssueDate", format_date(invoice.issue_date))
    _cbc(root, "IssueTime", format_time(invoice.issue_time))
    if invoice.due_date is not None:
        _cbc(root, "DueDate", format_date(invoice.due_date))
    _cbc(root, "InvoiceTypeCode", invoice.invoice_type_code.code)
    for note in compose_notes(invoice):
        _cbc(root, "Note", note)
    _cbc(root, "DocumentCurrencyCode", currency)
    if invoice.order_reference:
        _cbc(_cac(root, "OrderReference"), "ID", invoice.order_reference)
    if invoice.billing_reference is not None:
        _billing_reference(root, invoice.billing_reference)
    for attachment in invoice.attachments:
        _attachment(root, attachment)

    _party(root, "AccountingSupplierParty", invoice.supplier)
    _party(root, "AccountingCustomerParty", invoice.customer)

    if invoice.delivery_date is not None:
        _cbc(_cac(root, "Delivery"), "ActualDeliveryDate", format_date(invoice.delivery_date))
    if invoice.payment_means is not None:
        _payment_means(root, invoice.payment_means)

    _tax_total(root, invoice.tax_total, currency)
    _monetary_total(root, invoice.legal_monetary_total, currency)
    for line in invoice.invoice_lines:
        _invoice_line(root, line, currency)

    return root


def render(invoice: Invoice) -> str:
    """Render a validated invoice as UTF-8 XML text with an XML declaration."""
    root = build_invoice_xml(invoice)
    xml_bytes = etree.tostring(
        root,
        xml_declaration=True,
        encoding="UTF-8",
        pretty_print=True,
    )
    logger.debug("Rendered invoice %s (%d bytes)", invoice.id, len(xml_bytes))
    return xml_bytes.decode("utf-8")
