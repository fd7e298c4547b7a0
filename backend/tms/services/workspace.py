"""Live cache of the shared collections.

The workspace subscribes to every collection the handlers read from and
keeps the latest snapshot of each in memory. Optimistic mutations replace
cached records directly; the next snapshot always overwrites them. Writes
made by other processes arrive through a background change poll.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial

from pydantic import ValidationError

from ..config import settings
from ..schemas import (
    RECORD_TYPES,
    JigMasterItem,
    MasterData,
    MutableRecord,
    Notification,
    ProductionSchedule,
)
from ..store import DocumentSnapshot, DocumentStore, StoreError, Subscription
from .ledger import now_utc
from .notifier import NOTIFICATIONS_COLLECTION

logger = logging.getLogger(__name__)

MASTER_DATA_COLLECTION = "master-data"
MASTER_DATA_DOC = "singleton"
SCHEDULES_COLLECTION = "production-schedules"
JIG_MASTERS_COLLECTION = "jig-masters"

_LOAD_FAILED_MESSAGES = {
    "jig": "요청 데이터를 불러오는 데 실패했습니다.",
    "sample": "샘플 요청 데이터를 불러오는 데 실패했습니다.",
    "production": "생산 요청 데이터를 불러오는 데 실패했습니다.",
    "quality": "품질 검사 데이터를 불러오는 데 실패했습니다.",
    "shortage": "부족분 신청 데이터를 불러오는 데 실패했습니다.",
    "jig-masters": "지그 마스터 데이터를 불러오는 데 실패했습니다.",
    "notifications": "알림을 불러오는 데 실패했습니다.",
    "master-data": "마스터 데이터를 불러오는 데 실패했습니다.",
    "schedules": "생산일정 데이터를 불러오는 데 실패했습니다.",
}


@dataclass(frozen=True)
class Notice:
    message: str
    level: str = "info"  # info | success | error
    created_at: datetime = field(default_factory=now_utc)


class Workspace:
    def __init__(
        self,
        store: DocumentStore,
        *,
        feed_limit: int | None = None,
        notification_limit: int | None = None,
        notice_log_size: int | None = None,
        poll_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.feed_limit = feed_limit or settings.COLLECTION_FEED_LIMIT
        self.notification_limit = notification_limit or settings.NOTIFICATION_FEED_LIMIT
        self._lock = threading.RLock()
        self._records: dict[str, list[MutableRecord]] = {kind: [] for kind in RECORD_TYPES}
        self._details: dict[str, tuple[str, MutableRecord]] = {}
        self._notifications: list[Notification] = []
        self._schedules: list[ProductionSchedule] = []
        self._jig_masters: list[JigMasterItem] = []
        self._master_data = MasterData()
        self._notices: deque[Notice] = deque(maxlen=notice_log_size or settings.NOTICE_LOG_SIZE)
        self._subscriptions: list[Subscription] = []
        self.poll_seconds = settings.CHANGE_POLL_SECONDS if poll_seconds is None else poll_seconds
        self._stop_polling = threading.Event()
        self._poller: threading.Thread | None = None

    # -- lifecycle -----------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return bool(self._subscriptions)

    def open(self) -> "Workspace":
        if self.is_open:
            return self
        for kind, model in RECORD_TYPES.items():
            self._subscriptions.append(
                self.store.watch(
                    model.COLLECTION,
                    partial(self._on_records, kind),
                    order_by=model.ORDER_FIELD,
                    descending=True,
                    limit=self.feed_limit,
                    on_error=partial(self._on_load_error, kind),
                )
            )
        self._subscriptions.append(
            self.store.watch(
                NOTIFICATIONS_COLLECTION,
                self._on_notifications,
                order_by="date",
                descending=True,
                limit=self.notification_limit,
                on_error=partial(self._on_load_error, "notifications"),
            )
        )
        self._subscriptions.append(
            self.store.watch(
                SCHEDULES_COLLECTION,
                self._on_schedules,
                order_by="planDate",
                descending=True,
                limit=self.feed_limit,
                on_error=partial(self._on_load_error, "schedules"),
            )
        )
        self._subscriptions.append(
            self.store.watch(
                JIG_MASTERS_COLLECTION,
                self._on_jig_masters,
                order_by="createdAt",
                descending=True,
                limit=self.feed_limit,
                on_error=partial(self._on_load_error, "jig-masters"),
            )
        )
        self._subscriptions.append(
            self.store.watch(
                MASTER_DATA_COLLECTION,
                self._on_master_data,
                on_error=partial(self._on_load_error, "master-data"),
            )
        )
        if self.poll_seconds > 0:
            self._stop_polling.clear()
            self._poller = threading.Thread(target=self._poll_changes, name="workspace-change-poll", daemon=True)
            self._poller.start()
        logger.info(f"Workspace opened with {len(self._subscriptions)} live subscriptions")
        return self

    def _poll_changes(self) -> None:
        while not self._stop_polling.wait(self.poll_seconds):
            try:
                self.store.poll_changes()
            except StoreError as e:
                logger.warning(f"Change poll failed: {e}")

    def close(self) -> None:
        self._stop_polling.set()
        if self._poller is not None:
            self._poller.join(timeout=5)
            self._poller = None
        while self._subscriptions:
            self._subscriptions.pop().unsubscribe()
        logger.info("Workspace closed")

    def __enter__(self) -> "Workspace":
        return self.open()

    def __exit__(self, *_exc_info) -> None:
        self.close()

    # -- snapshot handlers ---------------------------------------------------

    def _on_records(self, kind: str, snapshots: list[DocumentSnapshot]) -> None:
        model = RECORD_TYPES[kind]
        records: list[MutableRecord] = []
        for snapshot in snapshots:
            try:
                records.append(model.from_snapshot(snapshot))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {model.COLLECTION}/{snapshot.id}: {e}")
        by_id = {record.id: record for record in records}
        with self._lock:
            self._records[kind] = records
            for viewer_id, (detail_kind, detail) in list(self._details.items()):
                if detail_kind == kind and detail.id in by_id:
                    self._details[viewer_id] = (kind, by_id[detail.id])

    def _on_notifications(self, snapshots: list[DocumentSnapshot]) -> None:
        notifications = []
        for snapshot in snapshots:
            try:
                notifications.append(Notification.from_snapshot(snapshot))
            except ValidationError as e:
                logger.warning(f"Skipping malformed notification {snapshot.id}: {e}")
        with self._lock:
            self._notifications = notifications

    def _on_schedules(self, snapshots: list[DocumentSnapshot]) -> None:
        schedules = [ProductionSchedule.from_snapshot(snapshot) for snapshot in snapshots]
        with self._lock:
            self._schedules = schedules

    def _on_jig_masters(self, snapshots: list[DocumentSnapshot]) -> None:
        items = []
        for snapshot in snapshots:
            try:
                items.append(JigMasterItem.from_snapshot(snapshot))
            except ValidationError as e:
                logger.warning(f"Skipping malformed jig master {snapshot.id}: {e}")
        with self._lock:
            self._jig_masters = items

    def _on_master_data(self, snapshots: list[DocumentSnapshot]) -> None:
        for snapshot in snapshots:
            if snapshot.id == MASTER_DATA_DOC:
                with self._lock:
                    self._master_data = MasterData.model_validate(snapshot.to_dict())
                return

    def _on_load_error(self, name: str, error: StoreError) -> None:
        self.publish(_LOAD_FAILED_MESSAGES.get(name, str(error)), level="error")

    # -- cached reads --------------------------------------------------------

    def records(self, kind: str) -> list[MutableRecord]:
        with self._lock:
            return list(self._records[kind])

    def find(self, kind: str, record_id: str) -> MutableRecord | None:
        with self._lock:
            return next((r for r in self._records[kind] if r.id == record_id), None)

    @property
    def notifications(self) -> list[Notification]:
        with self._lock:
            return list(self._notifications)

    @property
    def schedules(self) -> list[ProductionSchedule]:
        with self._lock:
            return list(self._schedules)

    @property
    def jig_masters(self) -> list[JigMasterItem]:
        with self._lock:
            return list(self._jig_masters)

    def find_jig_master(self, item_id: str) -> JigMasterItem | None:
        with self._lock:
            return next((item for item in self._jig_masters if item.id == item_id), None)

    @property
    def master_data(self) -> MasterData:
        with self._lock:
            return self._master_data

    # -- cache writes --------------------------------------------------------

    def replace(self, kind: str, record: MutableRecord) -> None:
        """Swap the cached record with the same id, in the list and in open detail views."""
        with self._lock:
            self._records[kind] = [record if r.id == record.id else r for r in self._records[kind]]
            for viewer_id, (detail_kind, detail) in list(self._details.items()):
                if detail_kind == kind and detail.id == record.id:
                    self._details[viewer_id] = (kind, record)

    def insert(self, kind: str, record: MutableRecord) -> None:
        with self._lock:
            if any(r.id == record.id for r in self._records[kind]):
                self.replace(kind, record)
            else:
                self._records[kind] = [record, *self._records[kind]]

    def remove(self, kind: str, record_id: str) -> None:
        with self._lock:
            self._records[kind] = [r for r in self._records[kind] if r.id != record_id]
            for viewer_id, (detail_kind, detail) in list(self._details.items()):
                if detail_kind == kind and detail.id == record_id:
                    del self._details[viewer_id]

    # -- detail views --------------------------------------------------------

    def open_detail(self, viewer_id: str, kind: str, record_id: str) -> MutableRecord | None:
        record = self.find(kind, record_id)
        with self._lock:
            if record is None:
                self._details.pop(viewer_id, None)
            else:
                self._details[viewer_id] = (kind, record)
        return record

    def detail(self, viewer_id: str) -> MutableRecord | None:
        with self._lock:
            entry = self._details.get(viewer_id)
        return entry[1] if entry else None

    def close_detail(self, viewer_id: str) -> None:
        with self._lock:
            self._details.pop(viewer_id, None)

    # -- notices -------------------------------------------------------------

    def publish(self, message: str, *, level: str = "info") -> Notice:
        notice = Notice(message=message, level=level)
        with self._lock:
            self._notices.append(notice)
        log = logger.error if level == "error" else logger.info
        log(f"Notice [{level}]: {message}")
        return notice

    def notices(self) -> list[Notice]:
        with self._lock:
            return list(self._notices)
