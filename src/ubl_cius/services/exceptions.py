from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

# --- Field errors (validation) ---

MISSING = "missing"
INVALID_TYPE = "invalid_type"
INVALID_ENUM_VALUE = "invalid_enum_value"
INVALID_FORMAT = "invalid_format"
INCONSISTENT = "inconsistent"


@dataclass(frozen=True)
class FieldError:
    """One violation at a leaf of the field error tree."""

    reason: str
    message: str


@dataclass(frozen=True)
class FieldWarning:
    """Advisory finding that does not block validation."""

    path: str
    message: str


# Nested dict mirroring the input: field name (or list index) -> FieldError | subtree
ErrorTree = dict[Union[str, int], Union[FieldError, "ErrorTree"]]


def flatten_errors(tree: Mapping[Any, Any], prefix: str = "") -> dict[str, FieldError]:
    """Flatten an error tree into dotted paths, e.g. ``invoice_lines[0].item.name``."""
    flat: dict[str, FieldError] = {}
    for key, value in tree.items():
        if isinstance(key, int):
            path = f"{prefix}[{key}]"
        else:
            path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, FieldError):
            flat[path] = value
        else:
            flat.update(flatten_errors(value, path))
    return flat


class InvoiceValidationError(Exception):
    """Raw invoice input failed validation. Carries the complete error tree."""

    def __init__(self, errors: ErrorTree, warnings: list[FieldWarning] | None = None) -> None:
        self.errors = errors
        self.warnings = warnings or []
        flat = flatten_errors(errors)
        summary = ", ".join(f"{path}: {err.reason}" for path, err in list(flat.items())[:5])
        if len(flat) > 5:
            summary += f", ... ({len(flat)} errors)"
        super().__init__(f"Invoice validation failed: {summary}")


# --- Parse errors (XML decoding) ---


class ParseError(Exception):
    """An XML document could not be decoded into invoice data."""

    reason = "parse_error"


class MalformedXmlError(ParseError):
    """Input is not well-formed XML (or uses a forbidden construct such as a DOCTYPE)."""

    reason = "malformed"


class WrongSchemaError(ParseError):
    """Root element is not a UBL 2.1 Invoice in the expected namespace."""

    reason = "wrong_schema"


class UnsupportedEncodingError(ParseError):
    """Input is not UTF-8 encoded."""

    reason = "unsupported_encoding"


class DocumentTooLargeError(ParseError):
    """Input exceeds the configured size limit."""

    reason = "too_large"


class MissingElementError(ParseError):
    """A required element is absent from the document."""

    reason = "missing_element"

    def __init__(self, path: str) -> None:
        super().__init__(f"Missing required element: {path}")
        self.path = path
