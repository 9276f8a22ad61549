import secrets
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import AppError
from db.inventory.item import InventoryItem


def format_document_number(prefix: str, now: Optional[datetime] = None, suffix: Optional[int] = None) -> str:
    """PREFIX-YYYYMM-NNNNNN, e.g. INV-202610-042917."""
    now = now or datetime.now(timezone.utc)
    if suffix is None:
        suffix = secrets.randbelow(1_000_000)
    return f"{prefix}-{now.year}{now.month:02d}-{suffix:06d}"


async def generate_document_number(db: AsyncSession, column, company_column, company_id: UUID, prefix: str) -> str:
    """
    Pick a number not yet used by this company for `column`.

    Candidates are retried on collision up to
    `settings.document_number_max_attempts` times; the unique constraint on
    (company, number) still guards the insert itself.
    """
    for _ in range(max(1, settings.document_number_max_attempts)):
        candidate = format_document_number(prefix)
        res = await db.execute(
            select(column).where(column == candidate, company_column == company_id).limit(1)
        )
        if res.scalar_one_or_none() is None:
            return candidate
    raise AppError(f"Could not generate a unique {prefix} number")


def format_sku(now: Optional[datetime] = None, suffix: Optional[int] = None) -> str:
    """SKU-<last 8 digits of epoch millis>-NNN."""
    now = now or datetime.now(timezone.utc)
    if suffix is None:
        suffix = secrets.randbelow(1000)
    millis = str(int(now.timestamp() * 1000))[-8:]
    return f"SKU-{millis}-{suffix:03d}"


async def generate_sku(db: AsyncSession, company_id: UUID) -> str:
    for _ in range(max(1, settings.document_number_max_attempts)):
        candidate = format_sku()
        res = await db.execute(
            select(InventoryItem.id).where(
                InventoryItem.sku == candidate,
                InventoryItem.company_id == company_id,
                InventoryItem.deleted_at.is_(None),
            ).limit(1)
        )
        if res.scalar_one_or_none() is None:
            return candidate
    raise AppError("Could not generate a unique SKU")
