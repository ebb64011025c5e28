from entity_resolution.datasets.profiles import CONTACT_COLUMNS, RECORD_ID_COLUMN
from entity_resolution.datasets.reference import ReferenceDataset, ReferenceDatasetGenerator

__all__ = ["CONTACT_COLUMNS", "RECORD_ID_COLUMN", "ReferenceDataset", "ReferenceDatasetGenerator"]
