from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

"""Patient domain model written to the ``patients`` table.

NormalizedPatient is the typed result of cleaning one RawRecord. Enum values are
the strings persisted in the database (Gender uses its single-letter code).
"""

__all__ = [
    "Gender",
    "CancerSite",
    "TreatmentPathway",
    "PatientStatus",
    "RiskLevel",
    "NormalizedPatient",
    "PATIENT_COLUMNS",
]


class Gender(Enum):
    MALE = "M"
    FEMALE = "F"
    OTHER = "O"


class CancerSite(Enum):
    """Primary cancer site classification (derived from the worksheet name)."""
    LUNG = "Lung"
    BREAST = "Breast"
    KIDNEY = "Kidney"
    COLON = "Colon"
    PROSTATE = "Prostate"
    CERVICAL = "Cervical"
    OVARIAN = "Ovarian"
    LIVER = "Liver"
    STOMACH = "Stomach"
    PANCREATIC = "Pancreatic"
    BRAIN = "Brain"
    BLOOD = "Blood"
    OTHER = "Other"


class TreatmentPathway(Enum):
    CURATIVE = "Curative"
    PALLIATIVE = "Palliative"


class PatientStatus(Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    DEFAULTER = "Defaulter"
    LOST_TO_FOLLOWUP = "LostToFollowup"
    DECEASED = "Deceased"


class RiskLevel(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


# INSERT 列順 (patients テーブル定義と一致させること)
PATIENT_COLUMNS = (
    "patient_id",
    "first_name",
    "last_name",
    "age",
    "gender",
    "mobile_number",
    "secondary_contact_phone",
    "tertiary_contact_phone",
    "address",
    "city",
    "state",
    "country",
    "primary_cancer_site",
    "cancer_stage",
    "site_specific_diagnosis",
    "diagnosis_date",
    "treatment_pathway",
    "current_status",
    "risk_level",
    "registration_year",
    "registration_date",
    "date_logged_in",
    "date_of_birth",
    "excel_sheet_source",
    "excel_row_number",
    "original_mrn",
    "imported_from_excel",
    "created_by",
    "created_at",
    "updated_at",
)


@dataclass(frozen=True)
class NormalizedPatient:
    """A cleaned register row ready to be persisted.

    Invariant: patient_id is never empty (see cleaning.generate_patient_id).
    age is None when the register cell could not be parsed; the stored column
    is NOT NULL so ``to_row`` writes 0 in that case.
    """
    patient_id: str
    first_name: str
    last_name: str
    age: int | None
    gender: Gender
    mobile_number: str
    secondary_contact_phone: str
    tertiary_contact_phone: str
    address: str
    city: str | None
    state: str | None
    country: str
    primary_cancer_site: CancerSite
    cancer_stage: str
    site_specific_diagnosis: str
    registration_year: int | None
    diagnosis_date: datetime | None
    registration_date: datetime
    date_logged_in: datetime | None
    date_of_birth: datetime
    excel_sheet_source: str
    excel_row_number: int
    original_mrn: str
    created_by: str
    created_at: datetime
    imported_from_excel: bool = True
    treatment_pathway: TreatmentPathway = TreatmentPathway.CURATIVE
    current_status: PatientStatus = PatientStatus.ACTIVE
    risk_level: RiskLevel = RiskLevel.MEDIUM

    def to_row(self) -> dict[str, Any]:
        """Column -> value mapping in PATIENT_COLUMNS order."""
        return {
            "patient_id": self.patient_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "age": self.age if self.age is not None else 0,
            "gender": self.gender.value,
            "mobile_number": self.mobile_number,
            "secondary_contact_phone": self.secondary_contact_phone,
            "tertiary_contact_phone": self.tertiary_contact_phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "primary_cancer_site": self.primary_cancer_site.value,
            "cancer_stage": self.cancer_stage,
            "site_specific_diagnosis": self.site_specific_diagnosis,
            "diagnosis_date": self.diagnosis_date,
            "treatment_pathway": self.treatment_pathway.value,
            "current_status": self.current_status.value,
            "risk_level": self.risk_level.value,
            "registration_year": self.registration_year,
            "registration_date": self.registration_date,
            "date_logged_in": self.date_logged_in,
            "date_of_birth": self.date_of_birth,
            "excel_sheet_source": self.excel_sheet_source,
            "excel_row_number": self.excel_row_number,
            "original_mrn": self.original_mrn,
            "imported_from_excel": self.imported_from_excel,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.created_at,
        }
