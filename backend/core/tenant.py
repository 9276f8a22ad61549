from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.errors import ForbiddenError
from db.company import Location as LocationModel
from db.database import get_async_session
from db.users import User


@dataclass(frozen=True)
class TenantContext:
    """Company (and optionally location) a request acts in, already access-checked."""

    company_id: UUID
    location_id: Optional[UUID] = None
    user_id: Optional[UUID] = None


async def get_tenant_context(
    x_location_id: Optional[UUID] = Header(None),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
) -> TenantContext:
    if not user.company_id:
        raise ForbiddenError("User and company context required")

    location_id = x_location_id or user.current_location_id
    if location_id is not None:
        res = await db.execute(
            select(LocationModel.id).where(
                LocationModel.id == location_id,
                LocationModel.company_id == user.company_id,
                LocationModel.deleted_at.is_(None),
            )
        )
        if res.scalar_one_or_none() is None:
            raise ForbiddenError("Location not found or does not belong to company")

    return TenantContext(company_id=user.company_id, location_id=location_id, user_id=user.id)
