from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db


logger = logging.getLogger(__name__)


def _parse_uuid(value: str, header: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        logger.warning(f"Invalid {header} header: {value}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{header} header must be a valid UUID",
        )


async def get_company_id(
    x_company_id: Annotated[Optional[str], Header(alias="X-Company-ID")] = None,
) -> uuid.UUID:
    """
    Resolve the tenant for the request.

    Priority:
    1. Custom header (X-Company-ID)
    2. DEFAULT_COMPANY_ID setting (single-tenant deployments)
    """
    if x_company_id:
        return _parse_uuid(x_company_id, "X-Company-ID")
    if settings.DEFAULT_COMPANY_ID:
        return _parse_uuid(settings.DEFAULT_COMPANY_ID, "DEFAULT_COMPANY_ID")
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="X-Company-ID header is required",
    )


async def get_user_id(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-ID")] = None,
) -> uuid.UUID:
    """Acting user, as passed through by the gateway."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    return _parse_uuid(x_user_id, "X-User-ID")


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
CompanyId = Annotated[uuid.UUID, Depends(get_company_id)]
UserId = Annotated[uuid.UUID, Depends(get_user_id)]
