"""Goods Return model for damaged/returned stock against a challan."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, ForeignKey, Integer, DateTime, Date, Float, Boolean, JSON
from sqlalchemy import Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid

from app.database import Base


class ReturnReason(str, Enum):
    """Why the goods came back."""
    DAMAGED = "damaged"
    DEFECTIVE = "defective"
    QUALITY_ISSUE = "quality_issue"
    WRONG_ITEM = "wrong_item"
    EXPIRED = "expired"
    OTHER = "other"


class ReturnStatus(str, Enum):
    """Canonical workflow state of a goods return."""
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSED = "processed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ApprovalStatus(str, Enum):
    """Approval view derived from ReturnStatus."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LifecycleStatus(str, Enum):
    """Record lifecycle derived from ReturnStatus."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Returns in these states count towards the item's active return totals
ACTIVE_RETURN_STATUSES = (ReturnStatus.PENDING.value, ReturnStatus.APPROVED.value)

LIFECYCLE_STATUS_MAP = {
    LifecycleStatus.ACTIVE.value: [ReturnStatus.PENDING.value, ReturnStatus.APPROVED.value],
    LifecycleStatus.COMPLETED.value: [ReturnStatus.PROCESSED.value],
    LifecycleStatus.CANCELLED.value: [ReturnStatus.REJECTED.value, ReturnStatus.CANCELLED.value],
}

# Allowed workflow transitions: current -> {action: next}
RETURN_TRANSITIONS = {
    ReturnStatus.PENDING.value: {
        "approve": ReturnStatus.APPROVED.value,
        "reject": ReturnStatus.REJECTED.value,
        "cancel": ReturnStatus.CANCELLED.value,
    },
    ReturnStatus.APPROVED.value: {
        "process": ReturnStatus.PROCESSED.value,
        "cancel": ReturnStatus.CANCELLED.value,
    },
    ReturnStatus.PROCESSED.value: {},
    ReturnStatus.REJECTED.value: {},
    ReturnStatus.CANCELLED.value: {},
}


class GoodsReturn(Base):
    """Goods return header with stock impact snapshot and valuation."""

    __tablename__ = "goods_returns"
    __table_args__ = (
        Index("ix_goods_returns_company_date", "company_id", "return_date"),
        Index("ix_goods_returns_company_item", "company_id", "inventory_item_id"),
        Index("ix_goods_returns_company_status", "company_id", "return_status"),
        Index("ix_goods_returns_company_challan", "company_id", "original_challan_number"),
        Index("ix_goods_returns_company_reason", "company_id", "return_reason"),
        CheckConstraint("damaged_quantity >= 0", name="ck_goods_returns_damaged_non_negative"),
        CheckConstraint("returned_quantity >= 0", name="ck_goods_returns_returned_non_negative"),
        CheckConstraint("total_quantity > 0", name="ck_goods_returns_total_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)

    # Identification
    return_number = Column(String(50), unique=True, nullable=False, index=True)
    return_date = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Item snapshot at creation time
    inventory_item_id = Column(UUID(as_uuid=True), ForeignKey("inventory_items.id"), nullable=False, index=True)
    item_code = Column(String(50), nullable=False, index=True)
    item_name = Column(String(300), nullable=False)
    item_description = Column(Text)

    # Original challan
    original_challan_number = Column(String(100), nullable=False, index=True)
    original_challan_date = Column(Date)

    # Quantities
    damaged_quantity = Column(Integer, nullable=False, default=0)
    returned_quantity = Column(Integer, nullable=False, default=0)
    total_quantity = Column(Integer, nullable=False)
    unit = Column(String(20), nullable=False, default="pcs")

    # Reason
    return_reason = Column(
        String(30),
        nullable=False,
        index=True,
        comment="damaged, defective, quality_issue, wrong_item, expired, other"
    )
    return_reason_details = Column(Text)

    # Location
    warehouse_id = Column(UUID(as_uuid=True), index=True)
    warehouse_name = Column(String(200))
    zone = Column(String(50))
    rack = Column(String(50))
    bin = Column(String(50))

    # Stock impact snapshot (never mutated after creation)
    inventory_stock_before = Column(Integer, nullable=False)
    inventory_stock_after = Column(Integer, nullable=False)
    damaged_stock_before = Column(Integer, nullable=False, default=0)
    damaged_stock_after = Column(Integer, nullable=False)
    returned_stock_before = Column(Integer, nullable=False, default=0)
    returned_stock_after = Column(Integer, nullable=False)

    # Valuation
    unit_cost = Column(Float, default=0)
    damaged_value = Column(Float, default=0)
    returned_value = Column(Float, default=0)
    total_value = Column(Float, default=0)

    # Quality
    quality_grade = Column(String(20))
    defect_details = Column(Text)

    # Batch/Lot
    batch_number = Column(String(50), index=True)
    lot_number = Column(String(50))
    manufacturing_date = Column(Date)
    expiry_date = Column(Date)

    # Supplier
    supplier_id = Column(UUID(as_uuid=True), index=True)
    supplier_name = Column(String(200))
    supplier_code = Column(String(50))

    # Workflow
    return_status = Column(
        String(20),
        nullable=False,
        default=ReturnStatus.APPROVED.value,
        index=True,
        comment="pending, approved, processed, rejected, cancelled"
    )
    approval_required = Column(Boolean, default=False, nullable=False)
    approved_by = Column(UUID(as_uuid=True))
    approved_at = Column(DateTime(timezone=True))
    approval_notes = Column(Text)
    processed_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))

    notes = Column(Text)
    tags = Column(JSON, default=list)

    # Audit
    created_by = Column(UUID(as_uuid=True), nullable=False)
    last_modified_by = Column(UUID(as_uuid=True))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    inventory_item = relationship("InventoryItem")

    @property
    def status(self) -> str:
        """Lifecycle status (active/completed/cancelled)."""
        for lifecycle, states in LIFECYCLE_STATUS_MAP.items():
            if self.return_status in states:
                return lifecycle
        return LifecycleStatus.ACTIVE.value

    @property
    def approval_status(self) -> str:
        if self.return_status == ReturnStatus.PENDING.value:
            return ApprovalStatus.PENDING.value
        if self.return_status == ReturnStatus.REJECTED.value:
            return ApprovalStatus.REJECTED.value
        if self.return_status == ReturnStatus.CANCELLED.value and self.approved_at is None and self.approval_required:
            return ApprovalStatus.PENDING.value
        return ApprovalStatus.APPROVED.value

    @property
    def stock_impact(self) -> dict:
        return {
            "inventory_stock_before": self.inventory_stock_before,
            "inventory_stock_after": self.inventory_stock_after,
            "damaged_stock_before": self.damaged_stock_before,
            "damaged_stock_after": self.damaged_stock_after,
            "returned_stock_before": self.returned_stock_before,
            "returned_stock_after": self.returned_stock_after,
        }

    def __repr__(self):
        return f"<GoodsReturn {self.return_number}>"
