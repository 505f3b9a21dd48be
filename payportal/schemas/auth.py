"""Authentication-related request and response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Payload for customer registration."""

    full_name: str = Field(min_length=2, max_length=100, pattern=r"^[A-Za-zÀ-ž'.\- ]+$")
    user_name: str = Field(pattern=r"^[A-Za-z0-9_]{3,30}$")
    id_number: str = Field(pattern=r"^\d{13}$")
    account_number: str = Field(pattern=r"^\d{7,11}$")
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    """Payload for customer login."""

    user_name: str
    account_number: str
    password: str


class EmployeeLoginRequest(BaseModel):
    """Payload for employee login."""

    employee_id: str = Field(pattern=r"^EMP\d{3}$")
    password: str


class ReauthRequest(BaseModel):
    """Explicit step-up, optionally scoped to the payment about to be actioned."""

    payment_id: str | None = None
    password: str | None = None
    totp_code: str | None = None


class SessionUser(BaseModel):
    user_name: str
    full_name: str
    role: str


class LoginResponse(BaseModel):
    message: str
    user: SessionUser
    csrf_token: str


class CsrfTokenResponse(BaseModel):
    csrf_token: str


class ReauthResponse(BaseModel):
    message: str = "Re-authentication succeeded"
    last_reauth_at: datetime
    reauth_window_seconds: int


class SessionStatusResponse(BaseModel):
    user_name: str
    role: str
    session_id: str
    issued_at: datetime
    idle_expires_at: datetime
    absolute_expires_at: datetime
    last_reauth_at: datetime | None = None
    reauth_window_seconds: int


class MessageResponse(BaseModel):
    message: str
