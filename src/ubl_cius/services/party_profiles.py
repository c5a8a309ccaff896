"""Fill supplier/customer blocks of raw invoice input from YAML party profiles."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ubl_cius.config import get_config_dir, load_customer, load_supplier

logger = logging.getLogger(__name__)


def apply_profiles(raw: Mapping[str, Any], customer: str | None = None) -> dict[str, Any]:
    """Return a copy of *raw* with missing parties taken from the config directory.

    The supplier comes from ``supplier.yaml`` when that file exists. The customer
    comes from ``customers/<customer>.yaml`` when a profile name is given; a missing
    named profile raises FileNotFoundError. Parties already present in *raw* win.
    """
    merged = dict(raw)
    if not merged.get("supplier"):
        if (get_config_dir() / "supplier.yaml").exists():
            merged["supplier"] = load_supplier()
            logger.debug("Supplier taken from profile")
    if customer is not None and not merged.get("customer"):
        merged["customer"] = load_customer(customer)
        logger.debug("Customer taken from profile %s", customer)
    return merged
