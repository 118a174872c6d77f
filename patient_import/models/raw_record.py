from __future__ import annotations

from dataclasses import dataclass, field

"""RawRecord model: one worksheet row before normalization.

A RawRecord holds the cell strings of a single data row, keyed by canonical
field name (see ``patient_import.excel.reader.HEADER_ALIASES``). Cells whose
header is not recognised are not kept.
"""

__all__ = [
    "RawRecord",
    "FIELD_SERIAL_NUMBER",
    "FIELD_NAME",
    "FIELD_MRN",
    "FIELD_YEAR",
    "FIELD_DIAGNOSIS",
    "FIELD_STAGE",
    "FIELD_AGE",
    "FIELD_SEX",
    "FIELD_CONTACT_NO_1",
    "FIELD_CONTACT_NO_2",
    "FIELD_CONTACT_NO_3",
    "FIELD_ADDRESS",
    "FIELD_DATE_LOGGED_IN",
]

FIELD_SERIAL_NUMBER = "serial_number"
FIELD_NAME = "name"
FIELD_MRN = "mrn"
FIELD_YEAR = "year"
FIELD_DIAGNOSIS = "diagnosis"
FIELD_STAGE = "stage"
FIELD_AGE = "age"
FIELD_SEX = "sex"
FIELD_CONTACT_NO_1 = "contact_no_1"
FIELD_CONTACT_NO_2 = "contact_no_2"
FIELD_CONTACT_NO_3 = "contact_no_3"
FIELD_ADDRESS = "address"
FIELD_DATE_LOGGED_IN = "date_logged_in"


@dataclass(frozen=True)
class RawRecord:
    """Logical representation of a single worksheet row (untyped).

    row_number is the 1-based row number in the worksheet (header row included),
    so it can be used to locate the row in Excel directly.
    """
    sheet_name: str
    row_number: int
    values: dict[str, str] = field(default_factory=dict)

    def get(self, field_name: str) -> str:
        """Return the cell string for a field, or "" when the column is absent."""
        return self.values.get(field_name, "")

    @property
    def name(self) -> str:
        return self.get(FIELD_NAME)

    @property
    def mrn(self) -> str:
        return self.get(FIELD_MRN)

    @property
    def has_anchor_fields(self) -> bool:
        # name と MRN の両方が必須 (どちらか欠けた行は黙って捨てる)
        return bool(self.name.strip()) and bool(self.mrn.strip())
