from __future__ import annotations

import threading
from typing import Any, Dict

from medassist.models import DiagnosisFields, DiagnosisRecord


class DiagnosisStore:
    """
    Process-lifetime diagnosis records keyed by id.

    Handed to request handlers through a FastAPI dependency so each test can
    use a fresh instance. Records are never deleted.
    """

    def __init__(self) -> None:
        self._records: Dict[str, DiagnosisRecord] = {}
        self._counter = 0
        self._lock = threading.Lock()

    def get(self, diagnosis_id: str) -> DiagnosisRecord | None:
        with self._lock:
            return self._records.get(diagnosis_id)

    def create(self, fields: DiagnosisFields) -> DiagnosisRecord:
        with self._lock:
            self._counter += 1
            record = DiagnosisRecord(id=str(self._counter), **fields.model_dump())
            self._records[record.id] = record
            return record

    def update(self, diagnosis_id: str, **changes: Any) -> DiagnosisRecord | None:
        unknown = set(changes) - set(DiagnosisFields.model_fields)
        if unknown:
            raise ValueError(f"Unknown diagnosis fields: {', '.join(sorted(unknown))}")

        with self._lock:
            current = self._records.get(diagnosis_id)
            if current is None:
                return None
            updated = DiagnosisRecord.model_validate({**current.model_dump(), **changes})
            self._records[diagnosis_id] = updated
            return updated

    def list_all(self) -> list[DiagnosisRecord]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)
