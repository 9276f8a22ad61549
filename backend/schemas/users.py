# Pydantic schemas for user-related requests/responses
# fastapi-users provides the base schemas; these add the tenant fields

from uuid import UUID
from fastapi_users import schemas
from typing import Optional


class UserRead(schemas.BaseUser[UUID]):
    company_id: Optional[UUID] = None
    current_location_id: Optional[UUID] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserCreate(schemas.BaseUserCreate):
    company_id: Optional[UUID] = None
    current_location_id: Optional[UUID] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserUpdate(schemas.BaseUserUpdate):
    current_location_id: Optional[UUID] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
