"""
Short Name Tables

Manifests refer to payers and code systems by short codes; catalog rows
store the full names. Lookups are case-insensitive and unknown short codes
pass through unchanged.
"""

from typing import Dict

import structlog

logger = structlog.get_logger(__name__)


PAYER_SHORT_NAME_TO_FULL_NAME: Dict[str, str] = {
    "cms": "Centers for Medicare and Medicaid Services",
    "medicare": "Centers for Medicare and Medicaid Services",
    "medicaid": "Medicaid",
    "anthem": "Anthem",
    "bcbs": "Blue Cross Blue Shield",
    "aetna": "Aetna",
    "cigna": "Cigna",
    "humana": "Humana",
    "uhc": "UnitedHealthcare",
}

CODE_SYSTEM_SHORT_NAME_TO_FULL_NAME: Dict[str, str] = {
    "cpt": "http://www.ama-assn.org/go/cpt",
    "hcpcs": "https://bluebutton.cms.gov/resources/codesystem/hcpcs",
    "rxnorm": "http://www.nlm.nih.gov/research/umls/rxnorm",
    "icd10cm": "http://hl7.org/fhir/sid/icd-10-cm",
    "icd10pcs": "http://www.cms.gov/Medicare/Coding/ICD10",
    "snomed": "http://snomed.info/sct",
    "loinc": "http://loinc.org",
    "ndc": "http://hl7.org/fhir/sid/ndc",
}


def _expand(table: Dict[str, str], short_name: str, kind: str) -> str:
    full_name = table.get(short_name.lower())
    if full_name is None:
        logger.debug("No full name for short code", kind=kind, short_name=short_name)
        return short_name
    return full_name


def payer_full_name(short_name: str) -> str:
    """Expand a payer short code (e.g. "cms")."""
    return _expand(PAYER_SHORT_NAME_TO_FULL_NAME, short_name, "payer")


def code_system_full_name(short_name: str) -> str:
    """Expand a code system short code (e.g. "cpt")."""
    return _expand(CODE_SYSTEM_SHORT_NAME_TO_FULL_NAME, short_name, "code_system")
