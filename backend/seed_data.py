"""Seed the document store with counters and master data."""
from tms.config import settings
from tms.database import SessionLocal
from tms.schemas import Approver, Destination, MasterData, Requester
from tms.services.id_allocator import (
    COUNTERS_COLLECTION,
    JIG_COUNTER,
    PRODUCTION_COUNTER,
    QUALITY_COUNTER,
    SAMPLE_COUNTER,
)
from tms.services.workspace import MASTER_DATA_COLLECTION, MASTER_DATA_DOC
from tms.store import DocumentStore

# Jig requests T1..T19 predate this system.
INITIAL_COUNTS = {
    JIG_COUNTER: 19,
    SAMPLE_COUNTER: 0,
    PRODUCTION_COUNTER: 0,
    QUALITY_COUNTER: 0,
}


def seed():
    """Seed counters (only where missing) and the master data singleton."""
    store = DocumentStore(SessionLocal, max_attempts=settings.STORE_TRANSACTION_MAX_ATTEMPTS)

    try:
        batch = store.batch()
        for counter_key, count in INITIAL_COUNTS.items():
            if not store.get(COUNTERS_COLLECTION, counter_key).exists:
                batch.set(COUNTERS_COLLECTION, counter_key, {"count": count})

        master_data = MasterData(
            requesters=[
                Requester(name="김민준", department="생산관리팀", contact="010-1234-5678", email="minjun.kim@example.com"),
                Requester(name="이서연", department="품질보증팀", contact="010-2345-6789", email="seoyeon.lee@example.com"),
            ],
            destinations=[
                Destination(name="제1공장 도장라인", contact_person="박지훈", contact="031-123-4567"),
                Destination(name="제2공장 조립라인", contact_person="최유진", contact="031-234-5678"),
            ],
            approvers=[
                Approver(name="정현우", department="생산본부", contact="010-3456-7890", authority="최종 승인"),
            ],
            request_types=["신규 제작", "수리", "개조"],
        )
        batch.set(MASTER_DATA_COLLECTION, MASTER_DATA_DOC, master_data.to_document(), merge=True)
        batch.commit()

        print("✅ Document store seeded successfully!")
        for counter_key, count in INITIAL_COUNTS.items():
            print(f"  {counter_key}: {count}")

    except Exception as e:
        print(f"❌ Error seeding document store: {e}")
        raise


if __name__ == "__main__":
    seed()
