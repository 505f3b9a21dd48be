"""Typed audit details, one shape per audited action."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class LoginDetails(BaseModel):
    action: Literal["login"] = "login"
    employee_id: str


class VerifyDetails(BaseModel):
    action: Literal["verify"] = "verify"
    swift_match: bool
    confirmation_supplied: bool


class SendDetails(BaseModel):
    action: Literal["send"] = "send"
    swift_code: str
    recipient_account: str


class ReauthSuccessDetails(BaseModel):
    action: Literal["reauth_success"] = "reauth_success"
    method: Literal["password", "recent-window"]
    totp_provided: bool


class ReauthFailureDetails(BaseModel):
    action: Literal["reauth_failure"] = "reauth_failure"
    reason: str
    failure_count: int


AuditDetails = Annotated[
    Union[LoginDetails, VerifyDetails, SendDetails, ReauthSuccessDetails, ReauthFailureDetails],
    Field(discriminator="action"),
]
