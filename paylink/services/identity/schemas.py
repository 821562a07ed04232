"""API request/response schemas for identity endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    phone_number: str = Field(pattern=r"^\+?[1-9]\d{1,14}$")
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8)


class LoginRequest(BaseModel):
    phone_number: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ValidateTokenRequest(BaseModel):
    token: str = Field(min_length=1)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    phone_number: str
    email: str
    created_at: datetime


class LoginResponse(BaseModel):
    access_token: str
    user: UserResponse


class ValidateTokenResponse(BaseModel):
    """Verdict consumed by the payments token gateway; never an HTTP error."""

    valid: bool
    user: UserResponse | None = None
    message: str | None = None
