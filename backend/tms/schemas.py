"""Pydantic models for stored documents and API payloads.

Documents and the HTTP surface share camelCase keys (``receivedQuantity``,
``readBy``, ``requestId``); Python code uses snake_case attributes.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .store import DocumentSnapshot


class JigStatus(str, Enum):
    REQUEST = "요청"
    HOLD = "보류"
    IN_PROGRESS = "진행중"
    RECEIVING = "입고중"
    REJECTED = "반려"
    COMPLETED = "완료"


class SampleStatus(str, Enum):
    RECEIVED = "접수"
    IN_PROGRESS = "진행중"
    COMPLETED = "완료"
    ON_HOLD = "보류"
    REJECTED = "반려"


class ProductionStatus(str, Enum):
    REQUESTED = "요청"
    IN_PROGRESS = "진행중"
    HOLD = "보류"
    COMPLETED = "완료"
    REJECTED = "반려"


class InspectionStatus(str, Enum):
    CREATED = "생성됨"
    PASS = "합격"
    FAIL = "불합격"
    LIMIT_PENDING = "한도대기"
    LIMIT_APPROVED = "한도승인"
    RELEASED = "반출"


class InspectionType(str, Enum):
    INCOMING = "incoming"
    IN_PROCESS = "inProcess"
    OUTGOING = "outgoing"


class ShortageStatus(str, Enum):
    REQUESTED = "requested"
    COMPLETED = "completed"


class ProductionRequestType(str, Enum):
    URGENT = "긴급건"
    SHORTAGE = "부족분"
    SALES_URGENT = "영업부 긴급요청"
    LOGISTICS = "물류이동"
    URGENT_SAMPLE = "긴급샘플"


class NotificationType(str, Enum):
    JIG = "jig"
    QUALITY = "quality"
    WORK = "work"
    SAMPLE = "sample"


class Role(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    MEMBER = "Member"


class DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot):
        return cls.model_validate({**snapshot.to_dict(), "id": snapshot.id})


# Ledger entries
class HistoryEntry(DocumentModel):
    status: str
    date: str
    user: str
    reason: Optional[str] = None


class Comment(DocumentModel):
    id: str
    user: str
    date: str
    text: str
    read_by: list[str] = Field(default_factory=list)


class UserRef(DocumentModel):
    uid: str
    display_name: str


# Tracked records
class MutableRecord(DocumentModel):
    """Record with a status, an append-only history and a comment thread."""

    KIND: ClassVar[str] = "record"
    COLLECTION: ClassVar[str] = ""
    COMMENT_PREFIX: ClassVar[str] = "C-"
    NOTIFICATION_TYPE: ClassVar[NotificationType] = NotificationType.JIG
    STATUSES: ClassVar[type[Enum]] = JigStatus
    ORDER_FIELD: ClassVar[str] = "createdAt"

    id: str
    status: str
    history: list[HistoryEntry] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _known_status(cls, value: Any) -> str:
        return cls.coerce_status(value)

    @classmethod
    def coerce_status(cls, value: Any) -> str:
        """Return the stored form of a status, rejecting values outside the kind's enum."""
        raw = value.value if isinstance(value, Enum) else value
        try:
            return cls.STATUSES(raw).value
        except ValueError:
            raise ValueError(f"Unknown {cls.KIND} status: {raw!r}") from None

    @property
    def label(self) -> str:
        """Name used in notification messages."""
        return self.id


class JigRequest(MutableRecord):
    KIND = "jig"
    COLLECTION = "jig-requests"
    COMMENT_PREFIX = "C-"
    NOTIFICATION_TYPE = NotificationType.JIG
    STATUSES = JigStatus
    ORDER_FIELD = "requestDate"

    request_date: str
    request_type: str = ""
    requester: str = ""
    destination: str = ""
    delivery_date: str = ""
    item_name: str
    part_name: str = ""
    item_number: str = ""
    jig_handle_length: Optional[float] = None
    specification: str = ""
    quantity: int = 0
    received_quantity: int = 0
    core_cost: Optional[float] = None
    unit_price: Optional[float] = None
    remarks: str = ""

    @property
    def label(self) -> str:
        return self.item_name


class SampleItem(DocumentModel):
    part_name: str = ""
    color_spec: str = ""
    quantity: int = 0
    post_processing: list[str] = Field(default_factory=list)
    coating_method: str = ""


class CoatingLayer(DocumentModel):
    conditions: str = ""
    remarks: str = ""


class SampleWorkData(DocumentModel):
    undercoat: Optional[CoatingLayer] = None
    midcoat: Optional[CoatingLayer] = None
    topcoat: Optional[CoatingLayer] = None
    unit_price: Optional[float] = None


class SampleRequest(MutableRecord):
    KIND = "sample"
    COLLECTION = "sample-requests"
    COMMENT_PREFIX = "S-C-"
    NOTIFICATION_TYPE = NotificationType.SAMPLE
    STATUSES = SampleStatus

    created_at: str
    requester_info: Optional[UserRef] = None
    client_name: str = ""
    product_name: str
    items: list[SampleItem] = Field(default_factory=list)
    due_date: str = ""
    remarks: str = ""
    request_date: str = ""
    requester_name: str = ""
    contact: str = ""
    work_data: Optional[SampleWorkData] = None

    @property
    def label(self) -> str:
        return self.product_name


class ProductionRequest(MutableRecord):
    KIND = "production"
    COLLECTION = "production-requests"
    COMMENT_PREFIX = "P-C-"
    NOTIFICATION_TYPE = NotificationType.WORK
    STATUSES = ProductionStatus

    created_at: str
    author: Optional[UserRef] = None
    requester: str = ""
    request_type: ProductionRequestType = ProductionRequestType.URGENT
    order_number: str = ""
    product_name: str
    part_name: str = ""
    supplier: str = ""
    quantity: int = 0
    content: str = ""
    source_report_ids: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.product_name


class QualityInspection(MutableRecord):
    KIND = "quality"
    COLLECTION = "quality-inspections"
    COMMENT_PREFIX = "QC-"
    NOTIFICATION_TYPE = NotificationType.QUALITY
    STATUSES = InspectionStatus

    created_at: str
    inspector: str = ""
    inspection_type: InspectionType = InspectionType.INCOMING
    sequential_id: Optional[int] = None
    inspection_date: Optional[str] = None
    order_number: str = ""
    supplier: str = ""
    product_name: str
    part_name: str = ""
    order_quantity: int = 0
    specification: str = ""
    post_process: str = ""
    result_reason: Optional[str] = None
    # Checklists, defect tables and measurements vary per inspection type.
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.product_name


class ShortageRequest(MutableRecord):
    """Request for the quantity a packaging run came up short.

    Its history logs actions (``생성``, ``수정``, status changes) rather than
    mirroring the status.
    """

    KIND = "shortage"
    COLLECTION = "shortage-requests"
    COMMENT_PREFIX = "SR-C-"
    NOTIFICATION_TYPE = NotificationType.WORK
    STATUSES = ShortageStatus

    created_at: str
    author: Optional[UserRef] = None
    source_report_id: str = ""
    production_line: str = ""
    order_numbers: list[str] = Field(default_factory=list)
    supplier: str = ""
    product_name: str
    part_name: str = ""
    specification: str = ""
    order_quantity: Optional[int] = None
    input_quantity: Optional[int] = None
    good_quantity: Optional[int] = None
    defect_quantity: Optional[int] = None
    shortage_reason: str = ""
    requested_shortage_quantity: int = 0

    @property
    def label(self) -> str:
        return self.product_name


RECORD_TYPES: dict[str, type[MutableRecord]] = {
    model.KIND: model
    for model in (JigRequest, SampleRequest, ProductionRequest, QualityInspection, ShortageRequest)
}


# Jig catalogue
class JigMasterItem(DocumentModel):
    id: str
    created_at: str
    request_type: str = ""
    item_name: str
    part_name: str = ""
    item_number: str = ""
    remarks: str = ""
    image_urls: list[str] = Field(default_factory=list)
    created_by: Optional[UserRef] = None


# Notifications
class Notification(DocumentModel):
    id: str
    message: str
    date: str
    request_id: str
    # Older documents were written before the type field existed.
    type: NotificationType = NotificationType.JIG
    read_by: list[str] = Field(default_factory=list)

    def view_for(self, user_id: str) -> "NotificationView":
        return NotificationView(**self.model_dump(), read=user_id in self.read_by)


class NotificationView(Notification):
    read: bool = False


# Master data
class Requester(DocumentModel):
    name: str
    department: str = ""
    contact: str = ""
    email: str = ""


class Destination(DocumentModel):
    name: str
    contact_person: str = ""
    contact: str = ""


class Approver(DocumentModel):
    name: str
    department: str = ""
    contact: str = ""
    authority: str = ""


class MasterData(DocumentModel):
    requesters: list[Requester] = Field(default_factory=list)
    destinations: list[Destination] = Field(default_factory=list)
    approvers: list[Approver] = Field(default_factory=list)
    request_types: list[str] = Field(default_factory=list)


MASTER_DATA_LISTS: dict[str, type[BaseModel] | type[str]] = {
    "requesters": Requester,
    "destinations": Destination,
    "approvers": Approver,
    "requestTypes": str,
}


# Production plan
class ProductionSchedule(DocumentModel):
    id: str = ""
    plan_date: str
    progress: Optional[str] = None
    shipping: Optional[str] = None
    line: Optional[str] = None
    injection: Optional[str] = None
    order_number: Optional[str] = None
    client: str = ""
    product_name: str = ""
    part_name: str = ""
    order_quantity: int = 0
    specification: Optional[str] = None
    post_process: Optional[str] = None
    remarks: str = ""
    manager: Optional[str] = None
    domestic_or_export: Optional[str] = None
    jig_used: Optional[str] = None
    new_or_re: Optional[str] = None
    shortage_quantity: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    order_index: Optional[int] = None


# User settings
class UserPreferences(DocumentModel):
    theme: Optional[str] = None
    notification_prefs: dict[NotificationType, bool] = Field(default_factory=dict)


class PushTokenRegister(DocumentModel):
    token: str
    device_type: str = "web"


# API payloads
class JigRequestCreate(DocumentModel):
    request_date: Optional[str] = None
    request_type: str = ""
    requester: str = ""
    destination: str = ""
    delivery_date: str = ""
    item_name: str
    part_name: str = ""
    item_number: str = ""
    jig_handle_length: Optional[float] = None
    specification: str = ""
    quantity: int
    core_cost: Optional[float] = None
    unit_price: Optional[float] = None
    remarks: str = ""
    image_urls: list[str] = Field(default_factory=list)


class JigRequestUpdate(DocumentModel):
    request_type: Optional[str] = None
    requester: Optional[str] = None
    destination: Optional[str] = None
    delivery_date: Optional[str] = None
    item_name: Optional[str] = None
    part_name: Optional[str] = None
    item_number: Optional[str] = None
    jig_handle_length: Optional[float] = None
    specification: Optional[str] = None
    quantity: Optional[int] = None
    core_cost: Optional[float] = None
    unit_price: Optional[float] = None
    remarks: Optional[str] = None
    image_urls: Optional[list[str]] = None


class SampleRequestCreate(DocumentModel):
    client_name: str = ""
    product_name: str
    items: list[SampleItem] = Field(default_factory=list)
    due_date: str = ""
    remarks: str = ""
    request_date: str = ""
    requester_name: str = ""
    contact: str = ""
    image_urls: list[str] = Field(default_factory=list)


class SampleRequestUpdate(DocumentModel):
    client_name: Optional[str] = None
    product_name: Optional[str] = None
    items: Optional[list[SampleItem]] = None
    due_date: Optional[str] = None
    remarks: Optional[str] = None
    request_date: Optional[str] = None
    requester_name: Optional[str] = None
    contact: Optional[str] = None
    image_urls: Optional[list[str]] = None


class ProductionRequestCreate(DocumentModel):
    requester: str = ""
    request_type: ProductionRequestType = ProductionRequestType.URGENT
    order_number: str = ""
    product_name: str
    part_name: str = ""
    supplier: str = ""
    quantity: int = 0
    content: str = ""
    image_urls: list[str] = Field(default_factory=list)
    source_report_ids: list[str] = Field(default_factory=list)


class ProductionRequestUpdate(DocumentModel):
    requester: Optional[str] = None
    request_type: Optional[ProductionRequestType] = None
    order_number: Optional[str] = None
    product_name: Optional[str] = None
    part_name: Optional[str] = None
    supplier: Optional[str] = None
    quantity: Optional[int] = None
    content: Optional[str] = None
    image_urls: Optional[list[str]] = None


class QualityInspectionCreate(DocumentModel):
    inspection_type: InspectionType
    inspection_date: Optional[str] = None
    order_number: str = ""
    supplier: str = ""
    product_name: str
    part_name: str = ""
    order_quantity: int = 0
    specification: str = ""
    post_process: str = ""
    result_reason: Optional[str] = None
    image_urls: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class QualityInspectionUpdate(DocumentModel):
    status: Optional[InspectionStatus] = None
    inspection_date: Optional[str] = None
    supplier: Optional[str] = None
    product_name: Optional[str] = None
    part_name: Optional[str] = None
    order_quantity: Optional[int] = None
    specification: Optional[str] = None
    post_process: Optional[str] = None
    result_reason: Optional[str] = None
    image_urls: Optional[list[str]] = None
    details: Optional[dict[str, Any]] = None


class ShortageRequestCreate(DocumentModel):
    source_report_id: str = ""
    production_line: str = ""
    order_numbers: list[str] = Field(default_factory=list)
    supplier: str = ""
    product_name: str
    part_name: str = ""
    specification: str = ""
    order_quantity: Optional[int] = None
    input_quantity: Optional[int] = None
    good_quantity: Optional[int] = None
    defect_quantity: Optional[int] = None
    shortage_reason: str = Field(min_length=1)
    requested_shortage_quantity: int = Field(gt=0)


class ShortageRequestUpdate(DocumentModel):
    shortage_reason: Optional[str] = Field(default=None, min_length=1)
    requested_shortage_quantity: Optional[int] = Field(default=None, gt=0)


class JigMasterCreate(DocumentModel):
    request_type: str = ""
    item_name: str = Field(min_length=1)
    part_name: str = ""
    item_number: str = ""
    remarks: str = ""
    image_urls: list[str] = Field(default_factory=list)


class JigMasterUpdate(DocumentModel):
    request_type: Optional[str] = None
    item_name: Optional[str] = Field(default=None, min_length=1)
    part_name: Optional[str] = None
    item_number: Optional[str] = None
    remarks: Optional[str] = None
    image_urls: Optional[list[str]] = None


class StatusChange(DocumentModel):
    status: str
    reason: Optional[str] = None


class SampleStatusChange(StatusChange):
    work_data: Optional[SampleWorkData] = None


class QuantityReceipt(DocumentModel):
    quantity_change: int


class CommentCreate(DocumentModel):
    text: str = Field(min_length=1)


class MarkAllRead(DocumentModel):
    type: Optional[NotificationType] = None


class ScheduleReplace(DocumentModel):
    schedules: list[ProductionSchedule]


class MasterDataListReplace(DocumentModel):
    items: list[Any]


class MasterDataItem(DocumentModel):
    item: Any


class MutationResponse(DocumentModel):
    ok: bool
    record: Optional[dict[str, Any]] = None
    notice: Optional[str] = None
