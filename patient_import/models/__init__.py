"""Domain models for the Excel patient-register importer.

This package contains the typed records passed between the reader, the
cleaning service, the importer and the patient store.
"""

from .config_models import DatabaseConfig, ImportConfig
from .error_record import ErrorRecord
from .import_outcome import ImportOutcome, SheetOutcome
from .patient import CancerSite, Gender, NormalizedPatient, PatientStatus, RiskLevel, TreatmentPathway
from .raw_record import RawRecord

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "ImportConfig",
    # Row models
    "RawRecord",
    "NormalizedPatient",
    "Gender",
    "CancerSite",
    "TreatmentPathway",
    "PatientStatus",
    "RiskLevel",
    # Outcome models
    "SheetOutcome",
    "ImportOutcome",
    "ErrorRecord",
]
