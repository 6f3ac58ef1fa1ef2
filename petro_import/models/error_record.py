from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON-lines error log.

One record per failed batch. batch_start / batch_end are 0-based, inclusive
indices into the record list of the run. A STORE_UNAVAILABLE record carries the
bounds of the batch that was being written when the store went away.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: workbook name, or "<direct>" for pre-parsed JSON imports
        entity: "rocks" or "minerals"
        batch_start: first record index of the failed batch
        batch_end: last record index of the failed batch
        error_type: error classification in UPPER_SNAKE_CASE
        message: store error message
    """
    timestamp: str
    source: str
    entity: str
    batch_start: int
    batch_end: int
    error_type: str
    message: str

    @staticmethod
    def create(
        source: str, entity: str, batch_start: int, batch_end: int, error_type: str, message: str
    ) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            source=source,
            entity=entity,
            batch_start=batch_start,
            batch_end=batch_end,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
