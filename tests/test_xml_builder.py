from __future__ import annotations

from lxml import etree

from ubl_cius.config import CAC_NS, CBC_NS, CUSTOMIZATION_ID, EXT_NS, HREXTAC_NS, INVOICE_NS
from ubl_cius.services.validation import validate_invoice
from ubl_cius.services.xml_builder import build_invoice_xml, render
from tests.conftest import NS, xml_text


def _local_names(el: etree._Element) -> list[str]:
    return [etree.QName(child).localname for child in el]


class TestInvoiceStructure:
    def test_root_and_namespaces(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        assert root.tag == f"{{{INVOICE_NS}}}Invoice"
        assert root.nsmap == {None: INVOICE_NS, "cac": CAC_NS, "cbc": CBC_NS}

    def test_header_fields(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        assert xml_text(root, "cbc:CustomizationID") == CUSTOMIZATION_ID
        assert xml_text(root, "cbc:ProfileID") == "P1"
        assert xml_text(root, "cbc:ID") == "INV-2025-001"
        assert xml_text(root, "cbc:IssueDate") == "2025-05-01"
        assert xml_text(root, "cbc:IssueTime") == "14:30:15"
        assert xml_text(root, "cbc:InvoiceTypeCode") == "380"
        assert xml_text(root, "cbc:DocumentCurrencyCode") == "EUR"

    def test_element_order_minimal(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        assert _local_names(root) == [
            "CustomizationID",
            "ProfileID",
            "ID",
            "IssueDate",
            "IssueTime",
            "InvoiceTypeCode",
            "Note",
            "Note",
            "DocumentCurrencyCode",
            "AccountingSupplierParty",
            "AccountingCustomerParty",
            "TaxTotal",
            "LegalMonetaryTotal",
            "InvoiceLine",
            "InvoiceLine",
        ]

    def test_element_order_full(self, full_invoice_dict):
        root = build_invoice_xml(validate_invoice(full_invoice_dict))
        assert _local_names(root) == [
            "CustomizationID",
            "ProfileID",
            "ID",
            "IssueDate",
            "IssueTime",
            "DueDate",
            "InvoiceTypeCode",
            "Note",
            "Note",
            "Note",
            "Note",
            "Note",
            "DocumentCurrencyCode",
            "OrderReference",
            "AccountingSupplierParty",
            "AccountingCustomerParty",
            "Delivery",
            "PaymentMeans",
            "TaxTotal",
            "LegalMonetaryTotal",
            "InvoiceLine",
            "InvoiceLine",
        ]

    def test_mandated_notes(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        notes = [el.text for el in root.findall("cbc:Note", namespaces=NS)]
        assert notes == ["Operator: Marko Horvat", "Vrijeme izdavanja: 01. 05. 2025. u 14:30"]


class TestParties:
    def test_supplier_block(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        party = root.find("cac:AccountingSupplierParty/cac:Party", namespaces=NS)
        endpoint = party.find("cbc:EndpointID", namespaces=NS)
        assert endpoint.text == "12345678901"
        assert endpoint.get("schemeID") == "9934"
        assert xml_text(party, "cac:PartyIdentification/cbc:ID") == "9934:12345678901"
        assert xml_text(party, "cac:PostalAddress/cbc:StreetName") == "Ilica 1"
        assert xml_text(party, "cac:PostalAddress/cbc:PostalZone") == "10000"
        assert xml_text(party, "cac:PostalAddress/cac:Country/cbc:IdentificationCode") == "HR"
        assert xml_text(party, "cac:PartyTaxScheme/cbc:CompanyID") == "HR12345678901"
        assert xml_text(party, "cac:PartyTaxScheme/cac:TaxScheme/cbc:ID") == "VAT"
        assert xml_text(party, "cac:PartyLegalEntity/cbc:RegistrationName") == "Tvrtka d.o.o."
        assert xml_text(party, "cac:Contact/cbc:ElectronicMail") == "racuni@tvrtka.hr"

    def test_party_child_order(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        party = root.find("cac:AccountingSupplierParty/cac:Party", namespaces=NS)
        assert _local_names(party) == [
            "EndpointID",
            "PartyIdentification",
            "PostalAddress",
            "PartyTaxScheme",
            "PartyLegalEntity",
            "Contact",
        ]

    def test_customer_without_contact(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        party = root.find("cac:AccountingCustomerParty/cac:Party", namespaces=NS)
        assert party.find("cac:Contact", namespaces=NS) is None


class TestAmountsAndTax:
    def test_tax_total(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        amount = root.find("cac:TaxTotal/cbc:TaxAmount", namespaces=NS)
        assert amount.text == "57.80"
        assert amount.get("currencyID") == "EUR"
        subtotals = root.findall("cac:TaxTotal/cac:TaxSubtotal", namespaces=NS)
        assert len(subtotals) == 2
        assert xml_text(subtotals[1], "cbc:TaxableAmount") == "60.00"
        assert xml_text(subtotals[1], "cac:TaxCategory/cbc:ID") == "S"
        assert xml_text(subtotals[1], "cac:TaxCategory/cbc:Percent") == "13.00"
        assert xml_text(subtotals[1], "cac:TaxCategory/cac:TaxScheme/cbc:ID") == "VAT"

    def test_subtotal_category_has_no_name(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        category = root.find("cac:TaxTotal/cac:TaxSubtotal/cac:TaxCategory", namespaces=NS)
        assert category.find("cbc:Name", namespaces=NS) is None

    def test_monetary_total(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        lmt = root.find("cac:LegalMonetaryTotal", namespaces=NS)
        assert _local_names(lmt) == [
            "LineExtensionAmount",
            "TaxExclusiveAmount",
            "TaxInclusiveAmount",
            "PayableAmount",
        ]
        assert xml_text(lmt, "cbc:PayableAmount") == "317.80"
        assert all(child.get("currencyID") == "EUR" for child in lmt)

    def test_exemption_reason(self, exempt_invoice_dict):
        root = build_invoice_xml(validate_invoice(exempt_invoice_dict))
        category = root.find("cac:TaxTotal/cac:TaxSubtotal/cac:TaxCategory", namespaces=NS)
        assert _local_names(category) == ["ID", "Percent", "TaxExemptionReason", "TaxScheme"]
        assert xml_text(category, "cbc:ID") == "E"
        assert xml_text(category, "cbc:Percent") == "0.00"


class TestInvoiceLines:
    def test_line_fields(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        lines = root.findall("cac:InvoiceLine", namespaces=NS)
        qty = lines[1].find("cbc:InvoicedQuantity", namespaces=NS)
        assert qty.text == "1.5"
        assert qty.get("unitCode") == "HUR"
        assert xml_text(lines[0], "cbc:ID") == "1"
        assert xml_text(lines[0], "cbc:LineExtensionAmount") == "200.00"
        assert xml_text(lines[0], "cac:Price/cbc:PriceAmount") == "100.00"

    def test_item(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        item = root.find("cac:InvoiceLine/cac:Item", namespaces=NS)
        assert _local_names(item) == ["Name", "CommodityClassification", "ClassifiedTaxCategory"]
        code = item.find("cac:CommodityClassification/cbc:ItemClassificationCode", namespaces=NS)
        assert code.text == "62.01.11"
        assert code.get("listID") == "CG"
        assert xml_text(item, "cac:ClassifiedTaxCategory/cbc:Name") == "HR:PDV25"
        assert xml_text(item, "cac:ClassifiedTaxCategory/cbc:Percent") == "25.00"


class TestOptionalBlocks:
    def test_payment_means(self, full_invoice_dict):
        root = build_invoice_xml(validate_invoice(full_invoice_dict))
        pm = root.find("cac:PaymentMeans", namespaces=NS)
        assert _local_names(pm) == [
            "PaymentMeansCode",
            "InstructionNote",
            "PaymentID",
            "PayeeFinancialAccount",
        ]
        assert xml_text(pm, "cac:PayeeFinancialAccount/cbc:ID") == "HR1210010051863000160"

    def test_dates_and_reference(self, full_invoice_dict):
        root = build_invoice_xml(validate_invoice(full_invoice_dict))
        assert xml_text(root, "cbc:DueDate") == "2025-05-31"
        assert xml_text(root, "cac:Delivery/cbc:ActualDeliveryDate") == "2025-04-30"
        assert xml_text(root, "cac:OrderReference/cbc:ID") == "PO-77"
        assert xml_text(root, "cbc:ProfileID") == "P2"


class TestReferencingBlocks:
    def test_element_order(self, credit_note_dict):
        root = build_invoice_xml(validate_invoice(credit_note_dict))
        names = _local_names(root)
        assert names[:2] == ["UBLExtensions", "CustomizationID"]
        start = names.index("DocumentCurrencyCode")
        assert names[start : start + 4] == [
            "DocumentCurrencyCode",
            "BillingReference",
            "AdditionalDocumentReference",
            "AccountingSupplierParty",
        ]
        assert xml_text(root, "cbc:InvoiceTypeCode") == "381"

    def test_billing_reference(self, credit_note_dict):
        root = build_invoice_xml(validate_invoice(credit_note_dict))
        ref = root.find("cac:BillingReference/cac:InvoiceDocumentReference", namespaces=NS)
        assert xml_text(ref, "cbc:ID") == "INV-2025-000"
        assert xml_text(ref, "cbc:IssueDate") == "2025-04-15"

    def test_attachment(self, credit_note_dict):
        root = build_invoice_xml(validate_invoice(credit_note_dict))
        obj = root.find(
            "cac:AdditionalDocumentReference/cac:Attachment/cbc:EmbeddedDocumentBinaryObject",
            namespaces=NS,
        )
        assert obj.text == "JVBERi0xLjQK"
        assert obj.get("mimeCode") == "application/pdf"
        assert obj.get("filename") == "racun.pdf"

    def test_vat_cash_accounting_extension(self, credit_note_dict):
        root = build_invoice_xml(validate_invoice(credit_note_dict))
        assert root.nsmap["ext"] == EXT_NS
        assert root.nsmap["hrextac"] == HREXTAC_NS
        ns = {"ext": EXT_NS, "hr": HREXTAC_NS}
        value = root.findtext(
            "ext:UBLExtensions/ext:UBLExtension/ext:ExtensionContent"
            "/hr:HRFISK20Data/hr:HRObracunPDVPoNaplati",
            namespaces=ns,
        )
        assert value == "Obračun po naplaćenoj naknadi"

    def test_seller_contact_follows_party(self, credit_note_dict):
        root = build_invoice_xml(validate_invoice(credit_note_dict))
        supplier = root.find("cac:AccountingSupplierParty", namespaces=NS)
        assert _local_names(supplier) == ["Party", "SellerContact"]
        assert xml_text(supplier, "cac:SellerContact/cbc:ID") == "11122233344"
        assert xml_text(supplier, "cac:SellerContact/cbc:Name") == "Marko Horvat"

    def test_absent_by_default(self, invoice_dict):
        root = build_invoice_xml(validate_invoice(invoice_dict))
        assert root.find("cac:BillingReference", namespaces=NS) is None
        assert root.find(f"{{{EXT_NS}}}UBLExtensions") is None
        assert "ext" not in root.nsmap


class TestRender:
    def test_declaration(self, invoice_dict):
        xml = render(validate_invoice(invoice_dict))
        assert xml.startswith("<?xml version='1.0' encoding='UTF-8'?>")

    def test_non_ascii_preserved(self, invoice_dict):
        xml = render(validate_invoice(invoice_dict))
        assert "Ana Anić" in xml

    def test_deterministic(self, invoice_dict):
        invoice = validate_invoice(invoice_dict)
        assert render(invoice) == render(invoice)

    def test_prefixes(self, invoice_dict):
        xml = render(validate_invoice(invoice_dict))
        assert "<cbc:ID>INV-2025-001</cbc:ID>" in xml
        assert f'xmlns="{INVOICE_NS}"' in xml
