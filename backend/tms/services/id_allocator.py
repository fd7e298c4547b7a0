"""Sequential, human-readable identifiers backed by counter documents."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from ..config import settings
from ..store import DocumentStore, Transaction

logger = logging.getLogger(__name__)

COUNTERS_COLLECTION = "counters"
JIG_COUNTER = "jig-requests-counter"
SAMPLE_COUNTER = "sample-requests-counter"
PRODUCTION_COUNTER = "production-requests-counter"
QUALITY_COUNTER = "quality-inspections-counter"
ALL_COUNTERS = (JIG_COUNTER, SAMPLE_COUNTER, PRODUCTION_COUNTER, QUALITY_COUNTER)


def plant_date(at: datetime | None = None) -> date:
    zone = ZoneInfo(settings.PLANT_TIMEZONE)
    return (at.astimezone(zone) if at is not None else datetime.now(zone)).date()


def format_jig_id(n: int, *, on: date | None = None) -> str:
    return f"T{n}"


def format_sample_id(n: int, *, on: date | None = None) -> str:
    stamp = (on or plant_date()).strftime("%Y%m%d")
    return f"S-{stamp}-{n:03d}"


def format_production_id(n: int, *, on: date | None = None) -> str:
    stamp = (on or plant_date()).strftime("%y%m%d")
    return f"P-{stamp}-{n:03d}"


def read_counter(transaction: Transaction, counter_key: str) -> int:
    snapshot = transaction.get(COUNTERS_COLLECTION, counter_key)
    if not snapshot.exists:
        return 0
    return int(snapshot.get("count", 0) or 0)


def allocate_id(
    store: DocumentStore,
    *,
    counter_key: str,
    collection: str,
    format_id: Callable[[int], str],
    build_document: Callable[[str], dict[str, Any]],
) -> str:
    """Create ``build_document(id)`` under the next id of ``counter_key``.

    The counter increment and the entity write commit together or not at
    all; conflicting allocations are retried by the store.
    """

    def allocate(transaction: Transaction) -> str:
        n = read_counter(transaction, counter_key) + 1
        new_id = format_id(n)
        transaction.create(collection, new_id, build_document(new_id))
        transaction.set(COUNTERS_COLLECTION, counter_key, {"count": n})
        return new_id

    new_id = store.run_transaction(allocate)
    logger.info(f"Allocated {new_id} from {counter_key}")
    return new_id
