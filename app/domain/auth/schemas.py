"""Auth domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from ...shared.validators import normalize_phone, validate_password


class RegisterRequest(BaseModel):
    business_name: str = Field(..., min_length=2, max_length=255)
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v):
        return v.lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return normalize_phone(v)
        return v


class VerifyEmailRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6)


class EmailRequest(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)


class UserResponse(BaseModel):
    id: str
    tenant_id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    status: str
    email_verified_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class RegisterResponse(BaseModel):
    message: str
    user_id: str
    tenant_id: str
    email: str


class StaffCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    role: str = "RECEPTIONIST"
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v):
        return v.lower()

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in ("MANAGER", "PROFESSIONAL", "RECEPTIONIST"):
            raise ValueError("Role must be MANAGER, PROFESSIONAL or RECEPTIONIST")
        return v


class StaffUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in ("OWNER", "MANAGER", "PROFESSIONAL", "RECEPTIONIST"):
            raise ValueError("Invalid role")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in ("ACTIVE", "INACTIVE", "SUSPENDED"):
            raise ValueError("Invalid status")
        return v
