"""Record store layer — the ranked relational source the index follows."""

from semdex.records.database import DatabaseRecordStore
from semdex.records.protocol import EligibleRecord, RecordInfo, RecordStore

__all__ = [
    "DatabaseRecordStore",
    "EligibleRecord",
    "RecordInfo",
    "RecordStore",
]
