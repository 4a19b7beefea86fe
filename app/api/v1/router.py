from fastapi import APIRouter

from app.api.v1.endpoints import goods_returns


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Goods Returns ====================
api_router.include_router(
    goods_returns.router,
    prefix="/goods-returns",
    tags=["Goods Returns"]
)
