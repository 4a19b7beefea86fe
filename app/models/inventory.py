"""Inventory models for stock management."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, ForeignKey, Integer, DateTime, Date, Float, JSON
from sqlalchemy import UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid

from app.database import Base


class InventoryItem(Base):
    """Stocked item owned by a company.

    The goods return engine only touches the stock columns; everything else is
    maintained by the inventory subsystem.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint("company_id", "item_code", name="uq_inventory_item_company_code"),
        CheckConstraint("current_stock >= 0", name="ck_inventory_item_current_stock_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)

    # Identification
    item_code = Column(String(50), nullable=False, index=True)
    item_name = Column(String(300), nullable=False)
    item_description = Column(Text)
    unit = Column(String(20), default="pcs")

    # Pricing
    cost_price = Column(Float)  # Configured purchase cost, preferred for valuation

    # Stock levels
    current_stock = Column(Integer, default=0, nullable=False)
    available_stock = Column(Integer, default=0, nullable=False)
    reserved_stock = Column(Integer, default=0, nullable=False)
    damaged_stock = Column(Integer, default=0, nullable=False)

    # Valuation
    average_cost = Column(Float, default=0)
    total_value = Column(Float, default=0)

    # Running totals across active goods returns
    returns_damaged_active = Column(Integer, default=0, nullable=False)
    returns_returned_active = Column(Integer, default=0, nullable=False)

    # Bumped on every stock mutation
    stock_version = Column(Integer, default=0, nullable=False)

    # Specifications
    batch_number = Column(String(50))
    lot_number = Column(String(50))
    manufacturing_date = Column(Date)
    expiry_date = Column(Date)

    # Tracking
    last_stock_update = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    company = relationship("Company")

    def __repr__(self):
        return f"<InventoryItem {self.item_code}>"


class StockMovementType(str, Enum):
    """Stock movement direction."""
    INWARD = "inward"
    OUTWARD = "outward"


class StockMovement(Base):
    """Stock movement history/ledger. Append-only."""

    __tablename__ = "stock_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)

    # Reference
    movement_number = Column(String(50), unique=True, nullable=False, index=True)
    movement_type = Column(String(20), nullable=False, index=True, comment="inward, outward")
    movement_date = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Item
    inventory_item_id = Column(UUID(as_uuid=True), ForeignKey("inventory_items.id"), nullable=False, index=True)
    item_code = Column(String(50))
    item_name = Column(String(300))

    # Quantity
    quantity = Column(Integer, nullable=False)
    unit = Column(String(20), default="pcs")

    # Cost
    rate = Column(Float, default=0)
    total_value = Column(Float, default=0)

    # Location
    warehouse_id = Column(UUID(as_uuid=True))
    warehouse_name = Column(String(200))

    # Related document
    reference_type = Column(String(50), index=True)  # goods_return
    reference_id = Column(UUID(as_uuid=True), index=True)
    reference_number = Column(String(100))

    # Stock levels around the movement
    stock_before = Column(Integer, default=0)
    stock_after = Column(Integer, default=0)
    available_before = Column(Integer, default=0)
    available_after = Column(Integer, default=0)

    reason = Column(String(255))
    notes = Column(Text)
    tags = Column(JSON, default=list)

    created_by = Column(UUID(as_uuid=True))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    inventory_item = relationship("InventoryItem")

    def __repr__(self):
        return f"<StockMovement {self.movement_number}>"
