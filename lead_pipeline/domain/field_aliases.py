"""
Source-field aliases for loosely structured batch records.

Every logical field has one prioritized alias list, and every ingestion path
resolves fields through `find_field_value`. Lookup order for each alias, in
priority order:
1. exact key
2. key compared case-insensitively with spaces, underscores and punctuation
   ignored ("First Name", "first_name" and "FIRSTNAME" are the same key)

The first alias with a non-blank value wins.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .normalization import clean_text


class LeadField(str, Enum):
    MBI = "mbi"
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    FULL_NAME = "full_name"
    PHONE = "phone"
    DATE_OF_BIRTH = "date_of_birth"
    STREET = "street"
    CITY = "city"
    STATE = "state"
    ZIP_CODE = "zip_code"
    TEST_TYPE = "test_type"
    VENDOR_CODE = "vendor_code"
    TRACKING_NUMBER = "tracking_number"
    RETURNED_DATE = "returned_date"
    COMPLETION_STATUS = "completion_status"
    APPROVAL_STATUS = "approval_status"
    APPROVAL_DATE = "approval_date"


FIELD_ALIASES: Mapping[LeadField, Tuple[str, ...]] = {
    LeadField.MBI: (
        "mbi",
        "medicare_beneficiary_identifier",
        "Medicare #",
        "medicare_id",
        "medicare",
        "unique_id",
        "patient_id",
    ),
    LeadField.FIRST_NAME: ("first_name", "firstName", "First Name", "fname", "first"),
    LeadField.LAST_NAME: ("last_name", "lastName", "Last Name", "lname", "last"),
    LeadField.FULL_NAME: (
        "full_name",
        "name",
        "patient_name",
        "Patient Name",
        "shiptocompanyorname",
    ),
    LeadField.PHONE: (
        "phone",
        "phone_number",
        "Phone Number",
        "telephone",
        "tel",
        "mobile",
    ),
    LeadField.DATE_OF_BIRTH: ("date_of_birth", "dateOfBirth", "dob", "DOB", "birth_date"),
    LeadField.STREET: ("street", "address", "address1", "ADDRESS", "shiptoaddress1"),
    LeadField.CITY: ("city", "CITY", "shiptocityortown"),
    LeadField.STATE: ("state", "STATE", "shiptostateprovincecounty"),
    LeadField.ZIP_CODE: ("zip_code", "zipcode", "zip", "ZIP", "postal_code", "shiptopostalcode"),
    LeadField.TEST_TYPE: ("test_type", "testType", "test", "TEST"),
    LeadField.VENDOR_CODE: ("vendor_code", "vendorCode", "lab", "LAB"),
    LeadField.TRACKING_NUMBER: (
        "tracking_number",
        "trackingNumber",
        "Tracking Number",
        "return_tracking",
        "RETURN TRACKING #",
        "packagetrackingnumber",
        "tracking",
        "shipment_id",
    ),
    LeadField.RETURNED_DATE: (
        "returned_date",
        "returnedDate",
        "return_date",
        "date_returned",
        "completion_date",
        "completed_date",
    ),
    LeadField.COMPLETION_STATUS: ("completion_status", "status", "completed"),
    LeadField.APPROVAL_STATUS: ("approval_status", "status", "decision", "approval", "approved"),
    LeadField.APPROVAL_DATE: ("approval_date", "decision_date", "date_seen", "date"),
}

_KEY_NOISE = re.compile(r"[^0-9a-z]")


def normalize_key(key: str) -> str:
    return _KEY_NOISE.sub("", str(key).lower())


def find_field_value(record: Mapping[str, Any], field: LeadField) -> Optional[str]:
    """
    Resolve one logical field from a record using its alias list.

    Returns the stripped value of the first alias present with a non-blank
    value, or None.
    """

    normalized: Dict[str, Any] = {}
    for key, value in record.items():
        normalized.setdefault(normalize_key(key), value)

    for alias in FIELD_ALIASES[field]:
        if alias in record:
            value = clean_text(record[alias])
            if value is not None:
                return value
        value = clean_text(normalized.get(normalize_key(alias)))
        if value is not None:
            return value
    return None


__all__ = [
    "LeadField",
    "FIELD_ALIASES",
    "normalize_key",
    "find_field_value",
]
