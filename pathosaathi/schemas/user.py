"""
User Schemas

Request/response models for user operations.
"""
from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional
from datetime import datetime

from pathosaathi.models.user import UserRole
from pathosaathi.schemas.auth import PHONE_PATTERN


class UserCreate(BaseModel):
    """Schema for creating a staff user."""
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    password: str = Field(..., min_length=8, max_length=100)
    role: UserRole
    lab_id: Optional[str] = None
    partner_id: Optional[str] = None

    @model_validator(mode="after")
    def require_email_or_phone(self):
        if not self.email and not self.phone:
            raise ValueError("Email or phone is required")
        return self


class UserResponse(BaseModel):
    """User response schema (excludes sensitive data)."""
    id: str
    identifier: Optional[str]
    name: str
    email: Optional[str]
    phone: Optional[str]
    role: UserRole
    is_active: bool
    email_verified: bool
    phone_verified: bool
    lab_id: Optional[str]
    partner_id: Optional[str]
    created_at: datetime
    last_login_at: Optional[datetime]

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    """Paginated list of users."""
    users: list[UserResponse]
    total: int
    page: int
    page_size: int
