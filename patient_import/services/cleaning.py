from __future__ import annotations

import re
import time
import warnings
from datetime import UTC, datetime
from types import MappingProxyType

import pandas as pd

from ..models.patient import CancerSite, Gender, NormalizedPatient
from ..models.raw_record import (
    FIELD_ADDRESS,
    FIELD_AGE,
    FIELD_CONTACT_NO_1,
    FIELD_CONTACT_NO_2,
    FIELD_CONTACT_NO_3,
    FIELD_DATE_LOGGED_IN,
    FIELD_DIAGNOSIS,
    FIELD_SEX,
    FIELD_STAGE,
    FIELD_YEAR,
    RawRecord,
)

"""Field cleaning service: register cell strings -> typed values.

Every function here is total over ``str | None``: unparseable input degrades to
None / "" / the original text, never to an exception. The importer relies on
this so that a dirty cell can never abort a row by itself.

Lookup tables are module-level read-only mappings built once at import time.
"""

__all__ = [
    "DEFAULT_COUNTRY_CODE",
    "split_name",
    "parse_age",
    "clean_phone_number",
    "parse_gender",
    "parse_year",
    "parse_date_logged_in",
    "clean_stage",
    "extract_city_state",
    "estimate_date_of_birth",
    "generate_patient_id",
    "sheet_prefix",
    "cancer_site_for_sheet",
    "normalize_record",
]

DEFAULT_COUNTRY_CODE = "+91"

MIN_AGE = 0
MAX_AGE = 150
MIN_YEAR = 1900
UNKNOWN_AGE_YEARS = 50  # 年齢不明時の生年推定 (現在から50年前)
MAX_AGE_DIGITS = 3

_AGE_RE = re.compile(r"(\d+)\s*(?:yrs?|years?)?", re.IGNORECASE)
_PHONE_STRIP_RE = re.compile(r"[^\d+]")
_YEAR_RE = re.compile(r"(\d{4})")
_INT_RE = re.compile(r"[+-]?\d{1,10}")
_ORDINAL_RE = re.compile(r"(\d+)(?:st|nd|rd|th)", re.IGNORECASE)
_STAGE_PREFIX_RE = re.compile(r"^stage\s*", re.IGNORECASE)
_TRAILING_DIGITS_RE = re.compile(r"\s*\d+.*$")
_NON_DIGIT_RE = re.compile(r"\D")

# Explicit templates, tried in order. US month-first wins over day-first.
_DATE_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%d/%m/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y-%m-%d",
)
# "March 5" / "Mar 5": year is filled with the current year
_MONTH_DAY_FORMATS = (
    "%B %d",
    "%b %d",
)
# pandas が現在時刻に解決する語 (日付としては扱わない)
_RELATIVE_DATE_WORDS = frozenset({"now", "today"})

_GENDERS = MappingProxyType({
    "m": Gender.MALE,
    "male": Gender.MALE,
    "f": Gender.FEMALE,
    "female": Gender.FEMALE,
})

_SHEET_PREFIXES = MappingProxyType({
    "BREAST": "BR",
    "LUNG": "LU",
    "COLORECTAL": "CR",
    "PROSTATE": "PR",
    "CERVIX": "CX",
    "OVARY": "OV",
    "STOMACH": "ST",
    "ADULT LEUKEMIA": "AL",
    "LYMPHOMA": "LY",
    "MYELOMA": "MY",
})
_DEFAULT_PREFIX = "OT"

# Worksheet name -> cohort classification. Keys are the register's sheet names as
# they appear in the workbook (exact match).
_SHEET_CANCER_SITES = MappingProxyType({
    "Breast": CancerSite.BREAST,
    "Lung": CancerSite.LUNG,
    "Colorectal": CancerSite.COLON,
    "Prostate": CancerSite.PROSTATE,
    "Cervix": CancerSite.CERVICAL,
    "Ovary": CancerSite.OVARIAN,
    "Stomach": CancerSite.STOMACH,
    "Esophagus": CancerSite.OTHER,
    "Head & neck": CancerSite.OTHER,
    "Pancratio billiary": CancerSite.PANCREATIC,
    "HCC": CancerSite.LIVER,
    "Adult Leukemia": CancerSite.BLOOD,
    "Lymphoma": CancerSite.BLOOD,
    "Myeloma": CancerSite.BLOOD,
    "MDS": CancerSite.BLOOD,
    "MPN": CancerSite.BLOOD,
    "Pediatric Leukemia": CancerSite.BLOOD,
    "CNS tumors": CancerSite.BRAIN,
    "Sarcoma": CancerSite.OTHER,
    "THYROID": CancerSite.OTHER,
    "Renal cell carcinoma": CancerSite.KIDNEY,
    "Endometrium": CancerSite.OTHER,
    "Neuroendocrine": CancerSite.OTHER,
    "Unknown Primary": CancerSite.OTHER,
    "Pediatric solid": CancerSite.OTHER,
    "BONE TUMORS": CancerSite.OTHER,
    "SKIN CANCER": CancerSite.OTHER,
    "Geniatourinary Urinary bladar": CancerSite.OTHER,
    "GTN": CancerSite.OTHER,
    "Aplastic Anemia": CancerSite.BLOOD,
    "RARE DISEASE": CancerSite.OTHER,
    "Peutz Jeghers syndrome": CancerSite.OTHER,
    "Waldenstrom Macroglobulinemia": CancerSite.BLOOD,
})

# Ordered: first matching city wins.
_CITY_PATTERNS = tuple(
    re.compile(rf"{city}\s*\d*", re.IGNORECASE)
    for city in ("BANGALORE", "BENGALURU", "MUMBAI", "DELHI", "CHENNAI", "KOLKATA", "HYDERABAD", "PUNE")
)
_CITY_STATES = MappingProxyType({
    "BANGALORE": ("Bangalore", "Karnataka"),
    "BENGALURU": ("Bangalore", "Karnataka"),
    "MUMBAI": ("Mumbai", "Maharashtra"),
    "DELHI": ("Delhi", "Delhi"),
    "CHENNAI": ("Chennai", "Tamil Nadu"),
    "KOLKATA": ("Kolkata", "West Bengal"),
    "HYDERABAD": ("Hyderabad", "Telangana"),
    "PUNE": ("Pune", "Maharashtra"),
})
_STATES = (
    "KARNATAKA",
    "MAHARASHTRA",
    "TAMIL NADU",
    "WEST BENGAL",
    "DELHI",
    "TELANGANA",
    "ANDHRA PRADESH",
    "KERALA",
    "GUJARAT",
)


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _current_year() -> int:
    return datetime.now(UTC).year


def _year_in_range(year: int) -> bool:
    return MIN_YEAR <= year <= _current_year() + 1


def split_name(full_name: str | None) -> tuple[str, str]:
    """Split a register name into (first, last).

    >>> split_name("John Q Public")
    ('John', 'Q Public')
    >>> split_name("Madonna")
    ('Madonna', '')
    >>> split_name("  ")
    ('Unknown', 'Unknown')
    """
    if _is_blank(full_name):
        return ("Unknown", "Unknown")
    parts = full_name.split()
    if len(parts) == 1:
        return (parts[0], "")
    return (parts[0], " ".join(parts[1:]))


def parse_age(age: str | None) -> int | None:
    """Parse "45", "45 yrs", "45Years" ... into an int in [0, 150]."""
    if _is_blank(age):
        return None
    match = _AGE_RE.search(age.strip())
    if match is None:
        return None
    digits = match.group(1).lstrip("0") or "0"
    # 4桁以上は範囲外 (巨大な桁数の int 変換も避ける)
    if len(digits) > MAX_AGE_DIGITS:
        return None
    value = int(digits)
    if MIN_AGE <= value <= MAX_AGE:
        return value
    return None


def clean_phone_number(phone: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Normalize a phone cell to "+<digits>" where possible.

    A bare 10-digit number gets ``country_code`` prepended. When the cleaned
    value is not 10-15 characters long the trimmed original is returned as-is.
    """
    if _is_blank(phone):
        return ""
    original = phone.strip()
    stripped = _PHONE_STRIP_RE.sub("", original)
    # "+" は先頭のみ有効
    digits = stripped.replace("+", "")
    cleaned = f"+{digits}" if stripped.startswith("+") else digits

    if len(cleaned) == 10 and not cleaned.startswith("+"):
        cleaned = country_code + cleaned

    if 10 <= len(cleaned) <= 15:
        return cleaned
    return original


def parse_gender(gender: str | None) -> Gender:
    if _is_blank(gender):
        return Gender.OTHER
    return _GENDERS.get(gender.strip().lower(), Gender.OTHER)


def parse_year(year: str | None) -> int | None:
    """Parse a registration year; falls back to the first 4-digit run.

    >>> parse_year("31/12/2021")
    2021
    """
    if _is_blank(year):
        return None
    text = year.strip()
    # 符号付き整数のみ直接変換 ("2_021" や "2021.0" は不可)
    value = int(text) if _INT_RE.fullmatch(text) else None
    if value is not None and _year_in_range(value):
        return value

    match = _YEAR_RE.search(text)
    if match is not None:
        value = int(match.group(1))
        if _year_in_range(value):
            return value
    return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_date_logged_in(value: str | None) -> datetime | None:
    """Parse the free-text "date logged in" column into an aware UTC datetime."""
    if _is_blank(value):
        return None
    cleaned = _ORDINAL_RE.sub(r"\1", value.strip())

    for fmt in _DATE_FORMATS:
        try:
            return _as_utc(datetime.strptime(cleaned, fmt))
        except ValueError:
            continue

    # 年なし表記は当年とみなす (2/29 も当年で検証されるよう年を付けてからパース)
    year = _current_year()
    for fmt in _MONTH_DAY_FORMATS:
        try:
            return _as_utc(datetime.strptime(f"{cleaned} {year}", f"{fmt} %Y"))
        except ValueError:
            continue

    if cleaned.lower() in _RELATIVE_DATE_WORDS:
        return None
    try:
        with warnings.catch_warnings():
            # pandas warns when it has to guess the format; guessing is the point here
            warnings.simplefilter("ignore")
            parsed = pd.to_datetime(cleaned, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return _as_utc(parsed.to_pydatetime())


def clean_stage(stage: str | None) -> str:
    """Drop a leading "stage" and upper-case the rest ("stage iib" -> "IIB")."""
    if _is_blank(stage):
        return ""
    return _STAGE_PREFIX_RE.sub("", stage.strip()).upper()


def extract_city_state(address: str | None) -> tuple[str | None, str | None]:
    """Best-effort (city, state) from a free-text address.

    >>> extract_city_state("BANGALORE 560032")
    ('Bangalore', 'Karnataka')
    """
    if _is_blank(address):
        return (None, None)

    for pattern in _CITY_PATTERNS:
        match = pattern.search(address)
        if match is not None:
            city = _TRAILING_DIGITS_RE.sub("", match.group(0).strip()).strip()
            return _CITY_STATES.get(city.upper(), (city, None))

    upper = address.upper()
    for state in _STATES:
        if state in upper:
            return (None, state.title())
    return (None, None)


def _years_before(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        # 2/29 -> 2/28
        return moment.replace(year=moment.year - years, day=28)


def estimate_date_of_birth(
    age: int | None, registration_year: int | None, now: datetime | None = None
) -> datetime:
    """Jan 1 of (registration year - age); 50 years before now when age is unknown."""
    now = now or datetime.now(UTC)
    if age is None:
        return _years_before(now, UNKNOWN_AGE_YEARS)
    base_year = registration_year if registration_year is not None else now.year
    return datetime(max(base_year - age, 1), 1, 1, tzinfo=UTC)


def sheet_prefix(sheet_name: str | None) -> str:
    return _SHEET_PREFIXES.get((sheet_name or "").strip().upper(), _DEFAULT_PREFIX)


def generate_patient_id(original_mrn: str | None, sheet_name: str | None) -> str:
    """Build "<sheet prefix><MRN digits>", e.g. ("MRN-00123", "Breast") -> "BR00123".

    When the MRN holds no digit at all the suffix is the last 6 digits of a
    nanosecond timestamp, so only that case is non-deterministic.
    """
    digits = _NON_DIGIT_RE.sub("", original_mrn or "")
    if not digits:
        digits = str(time.time_ns())[-6:]
    return f"{sheet_prefix(sheet_name)}{digits}"


def cancer_site_for_sheet(sheet_name: str) -> CancerSite:
    return _SHEET_CANCER_SITES.get(sheet_name, CancerSite.OTHER)


def _start_of_year(year: int) -> datetime:
    return datetime(year, 1, 1, tzinfo=UTC)


def normalize_record(
    record: RawRecord,
    *,
    created_by: str = "System",
    country: str = "India",
    country_code: str = DEFAULT_COUNTRY_CODE,
    now: datetime | None = None,
) -> NormalizedPatient:
    """Clean every field of a RawRecord and build the patient to persist."""
    now = now or datetime.now(UTC)
    first_name, last_name = split_name(record.name)
    age = parse_age(record.get(FIELD_AGE))
    registration_year = parse_year(record.get(FIELD_YEAR))
    city, state = extract_city_state(record.get(FIELD_ADDRESS))
    year_start = _start_of_year(registration_year) if registration_year is not None else None
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    return NormalizedPatient(
        patient_id=generate_patient_id(record.mrn, record.sheet_name),
        first_name=first_name,
        last_name=last_name,
        age=age,
        gender=parse_gender(record.get(FIELD_SEX)),
        mobile_number=clean_phone_number(record.get(FIELD_CONTACT_NO_1), country_code),
        secondary_contact_phone=clean_phone_number(record.get(FIELD_CONTACT_NO_2), country_code),
        tertiary_contact_phone=clean_phone_number(record.get(FIELD_CONTACT_NO_3), country_code),
        address=record.get(FIELD_ADDRESS),
        city=city,
        state=state,
        country=country,
        primary_cancer_site=cancer_site_for_sheet(record.sheet_name),
        cancer_stage=clean_stage(record.get(FIELD_STAGE)),
        site_specific_diagnosis=record.get(FIELD_DIAGNOSIS),
        registration_year=registration_year,
        diagnosis_date=year_start,
        registration_date=year_start or today,
        date_logged_in=parse_date_logged_in(record.get(FIELD_DATE_LOGGED_IN)),
        date_of_birth=estimate_date_of_birth(age, registration_year, now),
        excel_sheet_source=record.sheet_name,
        excel_row_number=record.row_number,
        original_mrn=record.mrn,
        created_by=created_by,
        created_at=now,
    )
