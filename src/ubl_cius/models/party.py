from __future__ import annotations

from dataclasses import dataclass

from ubl_cius.models.enums import TaxSchemeId


@dataclass(frozen=True)
class PostalAddress:
    street_name: str
    city_name: str
    postal_zone: str
    country_code: str  # ISO 3166-1 alpha-2


@dataclass(frozen=True)
class PartyTaxScheme:
    company_id: str  # e.g. HR12345678901
    tax_scheme_id: TaxSchemeId

    def __post_init__(self) -> None:
        if not isinstance(self.tax_scheme_id, TaxSchemeId):
            raise ValueError(f"tax_scheme_id must be a TaxSchemeId, got {self.tax_scheme_id!r}")


@dataclass(frozen=True)
class Contact:
    name: str | None = None
    telephone: str | None = None
    electronic_mail: str | None = None


def _check_oib(name: str, value: str) -> None:
    if len(value) != 11 or not value.isdigit():
        raise ValueError(f"{name} must be 11 digits, got {value!r}")


@dataclass(frozen=True)
class SellerContact:
    """Operator who issued the invoice on the supplier's behalf (HR-BT-4/5)."""

    id: str  # operator OIB
    name: str

    def __post_init__(self) -> None:
        _check_oib("id", self.id)


@dataclass(frozen=True)
class Party:
    """Supplier or customer: the legal entity identified by its OIB.

    ``seller_contact`` is only ever set on the supplier.
    """

    oib: str
    registration_name: str
    postal_address: PostalAddress
    party_tax_scheme: PartyTaxScheme
    contact: Contact | None = None
    seller_contact: SellerContact | None = None

    def __post_init__(self) -> None:
        _check_oib("oib", self.oib)
