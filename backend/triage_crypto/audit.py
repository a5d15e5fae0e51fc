from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

import structlog

logger = structlog.get_logger(__name__)

ALGORITHM = "AES-256-GCM"


@dataclass
class AuditRecord:
    operation: str
    key_id: str
    data_size: int
    success: bool = True
    error: str | None = None
    started: float = field(default_factory=time.perf_counter)

    def processing_time_ms(self) -> float:
        return round((time.perf_counter() - self.started) * 1000, 3)


def emit(record: AuditRecord) -> None:
    fields = {
        "operation": record.operation,
        "success": record.success,
        "processing_time_ms": record.processing_time_ms(),
        "data_size": record.data_size,
        "algorithm": ALGORITHM,
        "key_id": record.key_id,
    }
    if record.error:
        fields["error"] = record.error
        logger.warning("encryption_audit", **fields)
    else:
        logger.info("encryption_audit", **fields)


@contextmanager
def audited(operation: str, key_id: str, data_size: int) -> Iterator[AuditRecord]:
    """Emit one audit event for the wrapped operation, success or failure."""
    record = AuditRecord(operation=operation, key_id=key_id, data_size=data_size)
    try:
        yield record
    except Exception as exc:
        record.success = False
        record.error = type(exc).__name__
        raise
    finally:
        emit(record)
