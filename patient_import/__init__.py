"""Excel patient-register importer.

Imports a site-wise cancer patient workbook (one worksheet per disease-site
cohort) into the ``patients`` table, one row at a time.
"""

__version__ = "0.1.0"
