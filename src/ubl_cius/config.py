from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv

APP_NAME = "ubl-cius"


def _resolve_config_dir_for_dotenv() -> Path | None:
    """Resolve config dir for .env loading without depending on env vars from .env itself.

    Returns None if only platformdirs would resolve and that dir does not exist yet.
    """
    from_env = os.environ.get("UBL_CIUS_CONFIG_DIR")
    if from_env:
        return Path(from_env)
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / "config"
    if candidate.is_dir():
        return candidate
    pd = Path(platformdirs.user_config_dir(APP_NAME))
    if pd.is_dir():
        return pd
    return None


@lru_cache(maxsize=1)
def load_env() -> None:
    """Load .env files once, on first use of a setting rather than at import.

    cwd first (highest priority), then config dir (won't override).
    """
    load_dotenv()
    cfg_dir = _resolve_config_dir_for_dotenv()
    if cfg_dir is not None:
        load_dotenv(cfg_dir / ".env")


def get_config_dir() -> Path:
    """Resolve the config directory. Re-evaluated on each call to pick up env changes.

    Priority: 1) UBL_CIUS_CONFIG_DIR, 2) dev repo layout, 3) platformdirs user directory.
    """
    load_env()
    from_env = os.environ.get("UBL_CIUS_CONFIG_DIR")
    if from_env:
        return Path(from_env)
    # Development layout: src/ubl_cius/config.py -> ../../.. = project root
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / "config"
    if candidate.is_dir():
        return candidate
    return Path(platformdirs.user_config_dir(APP_NAME))


# --- Document profile ---

INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
EXT_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2"
HREXTAC_NS = "urn:mfin.gov.hr:schema:xsd:HRExtensionAggregateComponents-1"

UBL_VERSION = "2.1"
CIUS_VERSION = "CIUS-2025"
CUSTOMIZATION_ID = (
    "urn:cen.eu:en16931:2017#compliant#urn:mfin.gov.hr:cius-2025:1.0"
    "#conformant#urn:mfin.gov.hr:ext-2025:1.0"
)

# Electronic address scheme for Croatian OIB (ISO 6523 ICD)
OIB_SCHEME_ID = "9934"
COMMODITY_LIST_ID = "CG"

OPERATOR_NOTE_PREFIX = "Operator: "
OPERATOR_OIB_NOTE_PREFIX = "OIB operatera: "
ISSUE_TIME_NOTE_PREFIX = "Vrijeme izdavanja: "
ISSUE_TIME_NOTE_FORMAT = "%d. %m. %Y. u %H:%M"

# HRFISK20Data wording for VAT cash accounting ("Obračun PDV po naplati")
VAT_CASH_ACCOUNTING_TEXT = "Obračun po naplaćenoj naknadi"

# --- Parser limits ---

DEFAULT_MAX_XML_BYTES = 5 * 1024 * 1024


def get_max_xml_bytes() -> int:
    """Return the accepted XML input size limit from UBL_CIUS_MAX_XML_BYTES.

    Re-evaluated on each call. Falls back to the default for unset or invalid values.
    """
    load_env()
    raw = os.environ.get("UBL_CIUS_MAX_XML_BYTES")
    if not raw:
        return DEFAULT_MAX_XML_BYTES
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_MAX_XML_BYTES
    return value if value > 0 else DEFAULT_MAX_XML_BYTES


# --- YAML party profiles ---


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict."""
    return yaml.safe_load(path.read_text())


def load_supplier() -> dict:
    """Load the supplier profile from config/supplier.yaml."""
    return load_yaml(get_config_dir() / "supplier.yaml")


def load_customer(name: str) -> dict:
    """Load a customer profile from config/customers/{name}.yaml."""
    return load_yaml(get_config_dir() / "customers" / f"{name}.yaml")


def list_customers() -> list[str]:
    """Return sorted list of customer profile names (YAML file stems)."""
    customers_dir = get_config_dir() / "customers"
    if not customers_dir.exists():
        return []
    return sorted(f.stem for f in customers_dir.glob("*.yaml"))
