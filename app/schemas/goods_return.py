"""Goods Return schemas for API requests/responses."""
from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema
from typing import Optional, List
from datetime import datetime, date
import uuid

from app.models.goods_return import ReturnReason


# ==================== CREATE / ACTION SCHEMAS ====================

class GoodsReturnCreate(BaseCreateSchema):
    """Goods return creation schema.

    Quantity bounds are enforced by the service so callers get the domain
    error message rather than a schema error.
    """
    inventory_item_id: Optional[uuid.UUID] = None
    original_challan_number: str = Field(..., min_length=1, max_length=100)
    original_challan_date: Optional[date] = None
    damaged_quantity: int = 0
    returned_quantity: int = 0
    return_reason: ReturnReason
    return_reason_details: Optional[str] = None
    warehouse_id: Optional[uuid.UUID] = None
    warehouse_name: Optional[str] = None
    zone: Optional[str] = None
    rack: Optional[str] = None
    bin: Optional[str] = None
    unit_cost: Optional[float] = None
    quality_grade: Optional[str] = None
    defect_details: Optional[str] = None
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None
    supplier_id: Optional[uuid.UUID] = None
    supplier_name: Optional[str] = None
    supplier_code: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = []
    approval_required: bool = False


class GoodsReturnAction(BaseModel):
    """Approve / process / cancel request."""
    notes: Optional[str] = None


class GoodsReturnRejection(BaseModel):
    """Reject request."""
    reason: str = Field(..., min_length=3)


# ==================== RESPONSE SCHEMAS ====================

class StockImpact(BaseModel):
    inventory_stock_before: int
    inventory_stock_after: int
    damaged_stock_before: int
    damaged_stock_after: int
    returned_stock_before: int
    returned_stock_after: int


class GoodsReturnResponse(BaseResponseSchema):
    """Goods return response schema."""
    id: uuid.UUID
    company_id: uuid.UUID
    return_number: str
    return_date: datetime
    inventory_item_id: uuid.UUID
    item_code: str
    item_name: str
    item_description: Optional[str] = None
    original_challan_number: str
    original_challan_date: Optional[date] = None
    damaged_quantity: int
    returned_quantity: int
    total_quantity: int
    unit: str
    return_reason: str
    return_reason_details: Optional[str] = None
    warehouse_id: Optional[uuid.UUID] = None
    warehouse_name: Optional[str] = None
    zone: Optional[str] = None
    rack: Optional[str] = None
    bin: Optional[str] = None
    stock_impact: StockImpact
    unit_cost: float
    damaged_value: float
    returned_value: float
    total_value: float
    quality_grade: Optional[str] = None
    defect_details: Optional[str] = None
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    supplier_id: Optional[uuid.UUID] = None
    supplier_name: Optional[str] = None
    supplier_code: Optional[str] = None
    return_status: str
    approval_status: str
    status: str
    approval_required: bool
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    processed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    tags: List[str] = []
    created_by: uuid.UUID
    last_modified_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ChallanReturnSummary(BaseModel):
    """Aggregate of active returns against one challan."""
    challan_number: str
    total_returns: int
    total_damaged_quantity: int
    total_returned_quantity: int
    total_value: float
    returns: List[GoodsReturnResponse] = []


class ReasonSummary(BaseModel):
    """Active returns rolled up by reason."""
    return_reason: str
    count: int
    total_damaged_quantity: int
    total_returned_quantity: int
    total_value: float


class NextReturnNumber(BaseModel):
    return_number: str
