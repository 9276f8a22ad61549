"""
Typed errors raised by the services layer.

Routers never translate these by hand: `main.py` registers one handler that
renders any `AppError` as `{"detail": message}` with the class status code.
"""

from typing import Optional
from uuid import UUID

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class InsufficientStockError(BadRequestError):
    """A ledger adjustment would drive a tracked quantity below zero."""

    def __init__(
        self,
        *,
        available: int,
        requested: int,
        inventory_item_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
    ):
        super().__init__(f"Insufficient stock. Available: {available}, Requested: {requested}")
        self.available = available
        self.requested = requested
        self.inventory_item_id = inventory_item_id
        self.location_id = location_id
