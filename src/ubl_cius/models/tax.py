from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ubl_cius.models.enums import TaxCategoryId, TaxSchemeId

TWO_PLACES = Decimal("0.01")


def check_amount(name: str, value: object) -> None:
    """Raise ValueError unless *value* is a non-negative Decimal with at most 2 places."""
    if not isinstance(value, Decimal) or not value.is_finite():
        raise ValueError(f"{name} must be a finite Decimal, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    if value != value.quantize(TWO_PLACES):
        raise ValueError(f"{name} must have at most 2 decimal places, got {value}")


@dataclass(frozen=True)
class TaxCategory:
    id: TaxCategoryId
    percent: Decimal
    tax_scheme_id: TaxSchemeId
    exemption_reason: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, TaxCategoryId):
            raise ValueError(f"id must be a TaxCategoryId, got {self.id!r}")
        if not isinstance(self.tax_scheme_id, TaxSchemeId):
            raise ValueError(f"tax_scheme_id must be a TaxSchemeId, got {self.tax_scheme_id!r}")
        if self.percent != self.id.percent:
            raise ValueError(
                f"percent {self.percent} does not match {self.id.value} ({self.id.percent})"
            )


@dataclass(frozen=True)
class TaxSubtotal:
    taxable_amount: Decimal
    tax_amount: Decimal
    tax_category: TaxCategory

    def __post_init__(self) -> None:
        check_amount("taxable_amount", self.taxable_amount)
        check_amount("tax_amount", self.tax_amount)


@dataclass(frozen=True)
class TaxTotal:
    tax_amount: Decimal
    tax_subtotals: tuple[TaxSubtotal, ...]

    def __post_init__(self) -> None:
        check_amount("tax_amount", self.tax_amount)
        if not self.tax_subtotals:
            raise ValueError("tax_subtotals must not be empty")


@dataclass(frozen=True)
class LegalMonetaryTotal:
    """Document totals. Allowances and charges are not modeled, so payable == tax inclusive."""

    line_extension_amount: Decimal
    tax_exclusive_amount: Decimal
    tax_inclusive_amount: Decimal
    payable_amount: Decimal

    def __post_init__(self) -> None:
        check_amount("line_extension_amount", self.line_extension_amount)
        check_amount("tax_exclusive_amount", self.tax_exclusive_amount)
        check_amount("tax_inclusive_amount", self.tax_inclusive_amount)
        check_amount("payable_amount", self.payable_amount)
