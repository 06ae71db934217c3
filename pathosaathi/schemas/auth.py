"""
Authentication Schemas

Request/response models for authentication endpoints.
"""
from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional

PHONE_PATTERN = r"^\+?[0-9]{10,15}$"


class LoginRequest(BaseModel):
    """Login with email or phone, plus password."""
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    password: str = Field(..., min_length=1, max_length=128)

    @model_validator(mode="after")
    def require_email_or_phone(self):
        if not self.email and not self.phone:
            raise ValueError("Email or phone is required")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "email": "owner@apollo-labs.in",
                "password": "securepassword123",
            }
        }


class RefreshRequest(BaseModel):
    """Refresh token in the body; the refresh cookie is used when absent."""
    refresh_token: Optional[str] = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
