from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from storefront.modules.users.models import UserRole, UserStatus


class UserAdminOut(BaseModel):
    id: str
    full_name: str
    email: EmailStr
    whatsapp: Optional[str] = None
    role: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class UserRoleUpdate(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def _role(cls, v: str) -> str:
        if v not in (UserRole.CUSTOMER, UserRole.ADMIN):
            raise ValueError("role deve ser CUSTOMER ou ADMIN")
        return v


class UserStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        if v not in (UserStatus.ACTIVE, UserStatus.BLOCKED):
            raise ValueError("status deve ser ACTIVE ou BLOCKED")
        return v
