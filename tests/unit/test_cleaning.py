from __future__ import annotations

from datetime import UTC, datetime

import pytest

from patient_import.models.patient import CancerSite, Gender, PatientStatus, RiskLevel, TreatmentPathway
from patient_import.models.raw_record import RawRecord
from patient_import.services.cleaning import (
    cancer_site_for_sheet,
    clean_phone_number,
    clean_stage,
    estimate_date_of_birth,
    extract_city_state,
    generate_patient_id,
    normalize_record,
    parse_age,
    parse_date_logged_in,
    parse_gender,
    parse_year,
    sheet_prefix,
    split_name,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("45", 45),
        ("45 yrs", 45),
        ("45Years", 45),
        ("1 year", 1),
        ("0", 0),
        ("150", 150),
        ("151", None),
        ("0045", 45),
        ("9" * 5000, None),
        ("9" * 5000 + " yrs", None),
        ("abc", None),
        ("", None),
        ("   ", None),
        (None, None),
    ],
)
def test_parse_age(raw, expected):
    assert parse_age(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("9876543210", "+919876543210"),
        ("98765-43210", "+919876543210"),
        ("98765 43210", "+919876543210"),
        ("+91 98765 43211", "+919876543211"),
        ("+919876543211", "+919876543211"),
        ("12345", "12345"),
        ("abc", "abc"),
        ("  12-34  ", "12-34"),
        ("", ""),
        (None, ""),
    ],
)
def test_clean_phone_number(raw, expected):
    assert clean_phone_number(raw) == expected


def test_clean_phone_number_custom_country_code():
    assert clean_phone_number("9876543210", "+1") == "+19876543210"


@pytest.mark.parametrize("raw", ["9876543210", "+91 98765 43211", "12345", "0091-98765-43210", "n/a", ""])
def test_clean_phone_number_is_idempotent(raw):
    once = clean_phone_number(raw)
    assert clean_phone_number(once) == once


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("John Q Public", ("John", "Q Public")),
        ("Madonna", ("Madonna", "")),
        ("  Priya   Sharma  ", ("Priya", "Sharma")),
        ("", ("Unknown", "Unknown")),
        ("   ", ("Unknown", "Unknown")),
        (None, ("Unknown", "Unknown")),
    ],
)
def test_split_name(raw, expected):
    assert split_name(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("M", Gender.MALE),
        ("male", Gender.MALE),
        (" Male ", Gender.MALE),
        ("f", Gender.FEMALE),
        ("FEMALE", Gender.FEMALE),
        ("x", Gender.OTHER),
        ("", Gender.OTHER),
        (None, Gender.OTHER),
    ],
)
def test_parse_gender(raw, expected):
    assert parse_gender(raw) is expected


def test_parse_year():
    assert parse_year("2020") == 2020
    assert parse_year(" 2021 ") == 2021
    assert parse_year("31/12/2021") == 2021
    assert parse_year("Reg 2019-03") == 2019
    assert parse_year("2057") is None
    assert parse_year("1899") is None
    assert parse_year("+2021") == 2021
    assert parse_year("2_021") is None
    assert parse_year("2021.0") == 2021
    assert parse_year("abc") is None
    assert parse_year("") is None
    assert parse_year(None) is None


def test_parse_year_accepts_next_year():
    next_year = datetime.now(UTC).year + 1
    assert parse_year(str(next_year)) == next_year
    assert parse_year(str(next_year + 1)) is None


def test_parse_date_logged_in_explicit_formats():
    assert parse_date_logged_in("3/15/2023 10:30:00 AM") == datetime(2023, 3, 15, 10, 30, tzinfo=UTC)
    assert parse_date_logged_in("15/03/2023 14:05:00") == datetime(2023, 3, 15, 14, 5, tzinfo=UTC)
    assert parse_date_logged_in("2023-04-02 08:00:00") == datetime(2023, 4, 2, 8, 0, tzinfo=UTC)
    assert parse_date_logged_in("2023-04-02") == datetime(2023, 4, 2, tzinfo=UTC)
    # 月が 12 を超える -> day-first
    assert parse_date_logged_in("15/03/2023") == datetime(2023, 3, 15, tzinfo=UTC)
    # 両方解釈できる場合は US (month-first) 優先
    assert parse_date_logged_in("03/04/2023") == datetime(2023, 3, 4, tzinfo=UTC)


def test_parse_date_logged_in_month_day_uses_current_year():
    year = datetime.now(UTC).year
    assert parse_date_logged_in("March 5th") == datetime(year, 3, 5, tzinfo=UTC)
    assert parse_date_logged_in("Jan 12") == datetime(year, 1, 12, tzinfo=UTC)


def test_parse_date_logged_in_converts_aware_values_to_utc():
    parsed = parse_date_logged_in("2023-04-02T10:00:00+05:30")
    assert parsed == datetime(2023, 4, 2, 4, 30, tzinfo=UTC)
    assert parsed.tzinfo is UTC


@pytest.mark.parametrize("raw", ["", "   ", None, "not a date", "32/13/2023", "now", "Today", " TODAY "])
def test_parse_date_logged_in_failure_is_none(raw):
    assert parse_date_logged_in(raw) is None


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("stage IIB", "IIB"),
        ("Stage iv", "IV"),
        ("STAGE  3", "3"),
        ("iiia", "IIIA"),
        ("", ""),
        (None, ""),
    ],
)
def test_clean_stage(raw, expected):
    assert clean_stage(raw) == expected


@pytest.mark.parametrize(
    "address,expected",
    [
        ("BANGALORE 560032", ("Bangalore", "Karnataka")),
        ("12 MG Road, Bengaluru 560001", ("Bangalore", "Karnataka")),
        ("Andheri East, Mumbai 400069", ("Mumbai", "Maharashtra")),
        ("T Nagar, chennai", ("Chennai", "Tamil Nadu")),
        ("Near bus stand, Kerala", (None, "Kerala")),
        ("village road, tamil nadu", (None, "Tamil Nadu")),
        ("Somewhere else", (None, None)),
        ("", (None, None)),
        (None, (None, None)),
    ],
)
def test_extract_city_state(address, expected):
    assert extract_city_state(address) == expected


def test_estimate_date_of_birth():
    now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
    assert estimate_date_of_birth(45, 2021, now) == datetime(1976, 1, 1, tzinfo=UTC)
    assert estimate_date_of_birth(45, None, now) == datetime(1979, 1, 1, tzinfo=UTC)
    assert estimate_date_of_birth(None, 2021, now) == datetime(1974, 6, 1, 12, 0, tzinfo=UTC)


def test_estimate_date_of_birth_unknown_age_on_leap_day():
    now = datetime(2024, 2, 29, tzinfo=UTC)
    assert estimate_date_of_birth(None, None, now) == datetime(1974, 2, 28, tzinfo=UTC)


def test_generate_patient_id_is_deterministic():
    assert generate_patient_id("MRN-00123", "Breast") == "BR00123"
    assert generate_patient_id("MRN-00123", "Breast") == generate_patient_id("MRN-00123", "Breast")
    assert generate_patient_id("12", "adult leukemia") == "AL12"
    assert generate_patient_id("777", "Head & neck") == "OT777"


def test_generate_patient_id_without_digits_uses_timestamp_suffix():
    pid = generate_patient_id("ABC", "Lung")
    assert pid.startswith("LU")
    assert len(pid) == 8
    assert pid[2:].isdigit()
    assert generate_patient_id("", None).startswith("OT")


def test_sheet_prefix():
    assert sheet_prefix("Breast") == "BR"
    assert sheet_prefix(" myeloma ") == "MY"
    assert sheet_prefix("Sarcoma") == "OT"
    assert sheet_prefix(None) == "OT"


def test_cancer_site_for_sheet():
    assert cancer_site_for_sheet("Breast") is CancerSite.BREAST
    assert cancer_site_for_sheet("HCC") is CancerSite.LIVER
    assert cancer_site_for_sheet("Pancratio billiary") is CancerSite.PANCREATIC
    assert cancer_site_for_sheet("Renal cell carcinoma") is CancerSite.KIDNEY
    assert cancer_site_for_sheet("CNS tumors") is CancerSite.BRAIN
    assert cancer_site_for_sheet("Myeloma") is CancerSite.BLOOD
    # 完全一致のみ
    assert cancer_site_for_sheet("breast") is CancerSite.OTHER
    assert cancer_site_for_sheet("Unlisted") is CancerSite.OTHER


@pytest.mark.parametrize("raw", [None, "", " ", "\t", "???", "-1", "1e9", "Stage", "+", "0000", "9" * 5000])
def test_cleaning_functions_never_raise(raw):
    split_name(raw)
    parse_age(raw)
    clean_phone_number(raw)
    parse_gender(raw)
    parse_year(raw)
    parse_date_logged_in(raw)
    clean_stage(raw)
    extract_city_state(raw)
    generate_patient_id(raw, raw)
    sheet_prefix(raw)


def _record(**values: str) -> RawRecord:
    return RawRecord(sheet_name="Breast", row_number=7, values=values)


def test_normalize_record_full_row():
    now = datetime(2024, 6, 1, 9, 15, tzinfo=UTC)
    record = _record(
        name="Priya K Sharma",
        mrn="MRN-00123",
        year="2021",
        diagnosis="IDC left breast",
        stage="stage IIB",
        age="45 yrs",
        sex="F",
        contact_no_1="9876543210",
        contact_no_2="+91 98765 43211",
        address="12 MG Road, BANGALORE 560001",
        date_logged_in="3/15/2023 10:30:00 AM",
    )
    p = normalize_record(record, created_by="tester", country="India", now=now)

    assert p.patient_id == "BR00123"
    assert (p.first_name, p.last_name) == ("Priya", "K Sharma")
    assert p.age == 45
    assert p.gender is Gender.FEMALE
    assert p.mobile_number == "+919876543210"
    assert p.secondary_contact_phone == "+919876543211"
    assert p.tertiary_contact_phone == ""
    assert (p.city, p.state) == ("Bangalore", "Karnataka")
    assert p.country == "India"
    assert p.primary_cancer_site is CancerSite.BREAST
    assert p.cancer_stage == "IIB"
    assert p.site_specific_diagnosis == "IDC left breast"
    assert p.registration_year == 2021
    assert p.diagnosis_date == datetime(2021, 1, 1, tzinfo=UTC)
    assert p.registration_date == datetime(2021, 1, 1, tzinfo=UTC)
    assert p.date_logged_in == datetime(2023, 3, 15, 10, 30, tzinfo=UTC)
    assert p.date_of_birth == datetime(1976, 1, 1, tzinfo=UTC)
    assert p.excel_sheet_source == "Breast"
    assert p.excel_row_number == 7
    assert p.original_mrn == "MRN-00123"
    assert p.imported_from_excel is True
    assert p.treatment_pathway is TreatmentPathway.CURATIVE
    assert p.current_status is PatientStatus.ACTIVE
    assert p.risk_level is RiskLevel.MEDIUM
    assert p.created_by == "tester"
    assert p.created_at == now


def test_normalize_record_sparse_row_defaults():
    now = datetime(2024, 6, 1, 9, 15, tzinfo=UTC)
    p = normalize_record(_record(name="Madonna", mrn="00456"), now=now)

    assert (p.first_name, p.last_name) == ("Madonna", "")
    assert p.age is None
    assert p.gender is Gender.OTHER
    assert p.mobile_number == ""
    assert p.registration_year is None
    assert p.diagnosis_date is None
    assert p.registration_date == datetime(2024, 6, 1, tzinfo=UTC)
    assert p.date_logged_in is None
    assert p.date_of_birth == datetime(1974, 6, 1, 9, 15, tzinfo=UTC)
    assert p.created_by == "System"

    row = p.to_row()
    assert row["age"] == 0
    assert row["gender"] == "O"
    assert row["primary_cancer_site"] == "Breast"
    assert row["updated_at"] == row["created_at"]
