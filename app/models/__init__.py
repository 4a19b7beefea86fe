from app.models.company import Company
from app.models.inventory import InventoryItem, StockMovement, StockMovementType
from app.models.goods_return import (
    GoodsReturn,
    ReturnReason,
    ReturnStatus,
    ApprovalStatus,
    LifecycleStatus,
)
from app.models.document_sequence import DocumentSequence

__all__ = [
    "Company",
    "InventoryItem",
    "StockMovement",
    "StockMovementType",
    "GoodsReturn",
    "ReturnReason",
    "ReturnStatus",
    "ApprovalStatus",
    "LifecycleStatus",
    "DocumentSequence",
]
