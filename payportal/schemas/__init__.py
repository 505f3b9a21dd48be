"""Schema exports."""

from payportal.schemas.audit import (
    AuditDetails,
    LoginDetails,
    ReauthFailureDetails,
    ReauthSuccessDetails,
    SendDetails,
    VerifyDetails,
)
from payportal.schemas.auth import (
    CsrfTokenResponse,
    EmployeeLoginRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ReauthRequest,
    ReauthResponse,
    RegisterRequest,
    SessionStatusResponse,
    SessionUser,
)
from payportal.schemas.payment import (
    PaymentActionRequest,
    PaymentActionResponse,
    PaymentCreate,
    PaymentResponse,
    QueuedPaymentResponse,
)

__all__ = [
    "AuditDetails",
    "LoginDetails",
    "ReauthFailureDetails",
    "ReauthSuccessDetails",
    "SendDetails",
    "VerifyDetails",
    "CsrfTokenResponse",
    "EmployeeLoginRequest",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "ReauthRequest",
    "ReauthResponse",
    "RegisterRequest",
    "SessionStatusResponse",
    "SessionUser",
    "PaymentActionRequest",
    "PaymentActionResponse",
    "PaymentCreate",
    "PaymentResponse",
    "QueuedPaymentResponse",
]
