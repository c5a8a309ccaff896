"""Primitive field checks used by the invoice validator.

Every function normalizes one raw value. Wrong Python types raise TypeError,
malformed values raise ValueError, and values outside a code list raise
InvalidEnumValueError (a ValueError subclass).
"""

from __future__ import annotations

import base64
import binascii
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeVar

from ubl_cius.models.enums import UnrecognizedCode

E = TypeVar("E", bound=Enum)

TWO_PLACES = Decimal("0.01")

# Bounds that keep amount arithmetic inside the default 28-digit decimal context
MAX_INTEGER_DIGITS = 18
MAX_SIGNIFICANT_DIGITS = 28

ATTACHMENT_MIME_CODES = frozenset(
    {
        "application/pdf",
        "image/png",
        "image/jpeg",
        "image/gif",
        "text/csv",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.oasis.opendocument.spreadsheet",
        "application/xml",
        "text/xml",
    }
)

DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")
DATETIME_FORMATS = ("%d.%m.%Y %H:%M:%S", "%d.%m.%Y %H:%M")

_ISO_DATETIME_RE = re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")
_OIB_RE = re.compile(r"\d{11}")
_COUNTRY_RE = re.compile(r"[A-Z]{2}")
_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_PAYMENT_MEANS_RE = re.compile(r"\d{1,3}")
# Characters outside the XML 1.0 Char production
_XML_INVALID_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


class InvalidEnumValueError(ValueError):
    """Value is a well-formed string that is not in the closed code list."""


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("must be a number or numeric string")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float, str)):
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"not a valid decimal number: '{value}'") from None
    else:
        raise TypeError("must be a number or numeric string")
    if not d.is_finite():
        raise ValueError(f"not a valid decimal number: '{value}'")
    if d and d.adjusted() >= MAX_INTEGER_DIGITS:
        raise ValueError(f"must be less than 10^{MAX_INTEGER_DIGITS}")
    if len(d.as_tuple().digits) > MAX_SIGNIFICANT_DIGITS:
        raise ValueError(f"must have at most {MAX_SIGNIFICANT_DIGITS} significant digits")
    return d


def _check_xml_chars(text: str) -> str:
    m = _XML_INVALID_RE.search(text)
    if m:
        raise ValueError(f"contains a character not allowed in XML: {m.group()!r}")
    return text


def validate_text(value: Any) -> str:
    """Validate a free-text field and return it without surrounding whitespace.

    Control characters and surrogates that XML 1.0 cannot carry are rejected.
    """
    if not isinstance(value, str):
        raise TypeError("must be a string")
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be blank")
    return _check_xml_chars(stripped)


def validate_amount(value: Any) -> Decimal:
    """Validate a monetary amount.

    Returns the amount quantized to exactly 2 decimal places (currency minor units).
    Raises ValueError for negative values or more than 2 fractional digits.
    """
    d = _to_decimal(value)
    if d < 0:
        raise ValueError("must not be negative")
    if d != d.quantize(TWO_PLACES):
        raise ValueError("must have at most 2 decimal places")
    return d.quantize(TWO_PLACES)


def validate_quantity(value: Any) -> Decimal:
    """Validate an invoiced quantity: a positive decimal."""
    d = _to_decimal(value)
    if d <= 0:
        raise ValueError("must be positive")
    return d


def validate_percent(value: Any) -> Decimal:
    """Validate a percentage value (0.00-100.00)."""
    d = _to_decimal(value)
    if d < 0 or d > 100:
        raise ValueError("must be between 0 and 100")
    return d


def validate_oib(value: Any) -> str:
    """Validate a Croatian OIB: exactly 11 digits (shape only)."""
    if not isinstance(value, str):
        raise TypeError("must be a string of 11 digits")
    if not _OIB_RE.fullmatch(value.strip()):
        raise ValueError("must be an 11-digit OIB")
    return value.strip()


def validate_country_code(value: Any) -> str:
    """Validate a country code: exactly 2 uppercase letters (ISO 3166-1 alpha-2)."""
    if not isinstance(value, str):
        raise TypeError("must be a string")
    if not _COUNTRY_RE.fullmatch(value.strip()):
        raise ValueError("must be a 2-letter ISO 3166-1 alpha-2 country code")
    return value.strip()


def validate_email(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError("must be a string")
    if not _EMAIL_RE.fullmatch(value.strip()):
        raise ValueError("must be a valid email address")
    return _check_xml_chars(value.strip())


def validate_mime_code(value: Any) -> str:
    """Validate an attachment MIME type against the accepted list."""
    if not isinstance(value, str):
        raise TypeError("must be a string")
    if value.strip() not in ATTACHMENT_MIME_CODES:
        raise ValueError("must be a supported MIME type (e.g. application/pdf, image/png)")
    return value.strip()


def validate_base64(value: Any) -> str:
    """Validate base64-encoded content and return it without whitespace."""
    if not isinstance(value, str):
        raise TypeError("must be a base64-encoded string")
    compact = "".join(value.split())
    try:
        base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("must be valid base64-encoded content") from None
    return compact


def validate_payment_means_code(value: Any) -> str:
    """Validate a UNCL 4461 payment means code: 1-3 digits."""
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise TypeError("must be a numeric code string")
    if not _PAYMENT_MEANS_RE.fullmatch(value.strip()):
        raise ValueError("must be a numeric code (1-3 digits)")
    return value.strip()


def validate_identifier(value: Any) -> str:
    """Validate a short identifier that may arrive as an integer (line id, postal zone)."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return validate_text(value)


def validate_date(value: Any) -> date:
    """Validate a calendar date given as a date object or YYYY-MM-DD / DD.MM.YYYY."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise TypeError("must be a date or date string")
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    raise ValueError(f"invalid date: '{value}'. Use YYYY-MM-DD.")


def validate_datetime(value: Any) -> datetime:
    """Validate an issue date and time.

    Accepts datetime objects, ISO 8601 strings (with optional seconds, fraction and
    offset) and DD.MM.YYYY HH:MM[:SS]. Returns a naive datetime with second
    precision holding the wall-clock time as written.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        parsed = None
        if _ISO_DATETIME_RE.match(text):
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                parsed = None
        if parsed is None:
            for fmt in DATETIME_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            raise ValueError(
                f"invalid datetime: '{value}'. Use ISO 8601 (e.g. 2025-05-01T12:00:00)."
            )
    else:
        raise TypeError("must be a datetime or datetime string")
    return parsed.replace(tzinfo=None, microsecond=0)


def validate_enum(enum_cls: type[E], value: Any) -> E:
    """Match a raw value case-sensitively against the ids of *enum_cls*."""
    if isinstance(value, enum_cls):
        return value
    allowed = ", ".join(member.value for member in enum_cls)
    if isinstance(value, UnrecognizedCode):
        raise InvalidEnumValueError(f"unrecognized code '{value}'; must be one of: {allowed}")
    if not isinstance(value, str):
        raise TypeError(f"must be one of: {allowed}")
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidEnumValueError(f"must be one of: {allowed}") from None
