# Services module
from app.services.document_sequence_service import DocumentSequenceService
from app.services.goods_return_service import GoodsReturnService

__all__ = [
    "DocumentSequenceService",
    "GoodsReturnService",
]
