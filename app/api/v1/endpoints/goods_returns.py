"""Goods Returns API endpoints."""
import logging
from typing import Optional, List
from uuid import UUID
from datetime import date

from fastapi import APIRouter, Query, status

from app.api.deps import DB, CompanyId, UserId
from app.config import settings
from app.schemas.base import PaginatedResponse
from app.schemas.goods_return import (
    GoodsReturnCreate,
    GoodsReturnAction,
    GoodsReturnRejection,
    GoodsReturnResponse,
    ChallanReturnSummary,
    ReasonSummary,
    NextReturnNumber,
)
from app.services.goods_return_service import GoodsReturnService, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


# ==================== Create Goods Return ====================
@router.post("/", response_model=GoodsReturnResponse, status_code=status.HTTP_201_CREATED)
async def create_goods_return(
    data: GoodsReturnCreate,
    db: DB,
    company_id: CompanyId,
    user_id: UserId,
):
    """
    Record damaged/returned goods against a challan.

    The total quantity is deducted from the item's stock in the same
    transaction that stores the return.
    """
    if data.inventory_item_id is None:
        raise ValidationError("inventory_item_id is required")

    service = GoodsReturnService(db, company_id)
    return await service.create_goods_return(data.inventory_item_id, data, user_id)


# ==================== List Goods Returns ====================
@router.get("/", response_model=PaginatedResponse[GoodsReturnResponse])
async def list_goods_returns(
    db: DB,
    company_id: CompanyId,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=settings.MAX_PAGE_SIZE),
    status: Optional[str] = Query(None, description="active, completed, cancelled"),
    return_status: Optional[str] = None,
    return_reason: Optional[str] = None,
    challan_number: Optional[str] = None,
    inventory_item_id: Optional[UUID] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    sort_by: str = "return_date",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """List goods returns with filters and pagination."""
    service = GoodsReturnService(db, company_id)
    items, total = await service.list_goods_returns(
        status=status,
        return_status=return_status,
        return_reason=return_reason,
        challan_number=challan_number,
        inventory_item_id=inventory_item_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        skip=(page - 1) * size,
        limit=size,
    )
    return PaginatedResponse[GoodsReturnResponse].build(
        items=[GoodsReturnResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        size=size,
    )


# ==================== Reports ====================
@router.get("/stats/by-reason", response_model=List[ReasonSummary])
async def get_reason_summary(db: DB, company_id: CompanyId):
    """Active returns grouped by return reason."""
    service = GoodsReturnService(db, company_id)
    return await service.get_reason_summary()


# Challan numbers may contain "/" (DC/AQUA/25-26/00042); summary must match first
@router.get("/challan/{challan_number:path}/summary", response_model=ChallanReturnSummary)
async def get_challan_return_summary(challan_number: str, db: DB, company_id: CompanyId):
    """Totals of the active returns filed against a challan."""
    service = GoodsReturnService(db, company_id)
    return await service.get_challan_return_summary(challan_number)


@router.get("/challan/{challan_number:path}", response_model=List[GoodsReturnResponse])
async def get_returns_by_challan(challan_number: str, db: DB, company_id: CompanyId):
    service = GoodsReturnService(db, company_id)
    return await service.get_returns_by_challan(challan_number)


@router.get("/item/{inventory_item_id}", response_model=List[GoodsReturnResponse])
async def get_returns_by_item(inventory_item_id: UUID, db: DB, company_id: CompanyId):
    service = GoodsReturnService(db, company_id)
    return await service.get_returns_by_item(inventory_item_id)


@router.get("/next-number", response_model=NextReturnNumber)
async def get_next_return_number(db: DB, company_id: CompanyId):
    """Preview the next return number without consuming it."""
    service = GoodsReturnService(db, company_id)
    return {"return_number": await service.preview_next_return_number()}


# ==================== Get Goods Return ====================
@router.get("/{return_id}", response_model=GoodsReturnResponse)
async def get_goods_return(return_id: UUID, db: DB, company_id: CompanyId):
    service = GoodsReturnService(db, company_id)
    return await service.get_goods_return(return_id)


# ==================== Workflow ====================
@router.post("/{return_id}/approve", response_model=GoodsReturnResponse)
async def approve_goods_return(
    return_id: UUID,
    db: DB,
    company_id: CompanyId,
    user_id: UserId,
    data: Optional[GoodsReturnAction] = None,
):
    """Approve a pending goods return."""
    service = GoodsReturnService(db, company_id)
    return await service.approve_goods_return(return_id, user_id, data.notes if data else None)


@router.post("/{return_id}/reject", response_model=GoodsReturnResponse)
async def reject_goods_return(
    return_id: UUID,
    data: GoodsReturnRejection,
    db: DB,
    company_id: CompanyId,
    user_id: UserId,
):
    """Reject a pending goods return. Its quantity goes back into stock."""
    service = GoodsReturnService(db, company_id)
    return await service.reject_goods_return(return_id, user_id, data.reason)


@router.post("/{return_id}/process", response_model=GoodsReturnResponse)
async def process_goods_return(
    return_id: UUID,
    db: DB,
    company_id: CompanyId,
    user_id: UserId,
    data: Optional[GoodsReturnAction] = None,
):
    """Mark an approved goods return as processed."""
    service = GoodsReturnService(db, company_id)
    return await service.mark_as_processed(return_id, user_id, data.notes if data else None)


@router.post("/{return_id}/cancel", response_model=GoodsReturnResponse)
async def cancel_goods_return(
    return_id: UUID,
    db: DB,
    company_id: CompanyId,
    user_id: UserId,
    data: Optional[GoodsReturnAction] = None,
):
    """Cancel a pending or approved goods return. Its quantity goes back into stock."""
    service = GoodsReturnService(db, company_id)
    return await service.cancel_goods_return(return_id, user_id, data.notes if data else None)
