"""Public invoice operations: validate, generate, parse, round trip."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Any

from ubl_cius.config import APP_NAME, CIUS_VERSION, CUSTOMIZATION_ID, UBL_VERSION
from ubl_cius.models.enums import SUPPORTED_CURRENCIES
from ubl_cius.models.invoice import Invoice
from ubl_cius.services import validation
from ubl_cius.services.xml_builder import render
from ubl_cius.services.xml_parser import ParsedInvoice, parse_invoice_xml

logger = logging.getLogger(__name__)

MANDATORY_FEATURES = [
    "operator_notes",
    "croatian_date_format",
    "party_tax_schemes",
    "oib_endpoints",
]

OPTIONAL_FEATURES = [
    "payment_means",
    "due_dates",
    "delivery_dates",
    "order_references",
    "contact_information",
    "commodity_classification",
    "operator_oib",
    "user_notes",
    "billing_references",
    "attachments",
    "vat_cash_accounting",
    "seller_contact",
]


def validate(raw: Any) -> Invoice:
    """Validate raw input into an Invoice. Raises InvoiceValidationError."""
    return validation.validate_invoice(raw)


def validate_report(raw: Any) -> validation.ValidationReport:
    """Validate raw input without raising; see ValidationReport."""
    return validation.validate_report(raw)


def generate(raw: Any) -> str:
    """Validate raw input and render it as UBL 2.1 / CIUS-2025 XML text."""
    invoice = validate(raw)
    xml = render(invoice)
    logger.debug("Generated invoice %s", invoice.id)
    return xml


def parse(xml: str | bytes) -> ParsedInvoice:
    """Parse UBL 2.1 Invoice XML. Raises a ParseError subclass on failure."""
    return parse_invoice_xml(xml)


def round_trip(raw: Any) -> tuple[str, ParsedInvoice]:
    """Generate XML from raw input and parse it back.

    The first failing stage's exception propagates unchanged.
    """
    xml = generate(raw)
    return xml, parse(xml)


def _library_version() -> str:
    try:
        return version(APP_NAME)
    except PackageNotFoundError:
        return "unknown"


def info() -> dict[str, Any]:
    """Return static metadata about the supported document profile."""
    return {
        "library_version": _library_version(),
        "schema_version": UBL_VERSION,
        "jurisdiction_profile_version": CIUS_VERSION,
        "customization_id": CUSTOMIZATION_ID,
        "supported_currencies": list(SUPPORTED_CURRENCIES),
        "mandatory_feature_list": list(MANDATORY_FEATURES),
        "optional_feature_list": list(OPTIONAL_FEATURES),
    }
