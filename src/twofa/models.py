"""Pydantic models for enrollment state and API payloads."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, model_validator

from twofa.config import HashAlgorithm

__all__ = [
    "CodeRequest",
    "ConfirmResult",
    "EnrollResponse",
    "EnrollmentRecord",
    "EnrollmentState",
    "HashAlgorithm",
    "LoginRequest",
    "LoginResult",
    "StatusResponse",
    "VerifyResponse",
    "VerifyResult",
]


# === Enums ===


class EnrollmentState(StrEnum):
    UNENROLLED = "unenrolled"
    PENDING = "pending"
    ACTIVE = "active"


class ConfirmResult(StrEnum):
    SUCCESS = "success"
    INVALID_CODE = "invalid_code"


class VerifyResult(StrEnum):
    SUCCESS = "success"
    INVALID_CODE = "invalid_code"
    NOT_ENABLED = "not_enabled"


# === Persisted state ===


class EnrollmentRecord(BaseModel):
    """Per-account 2FA state. The default instance means "not enrolled"."""

    enabled: bool = False
    secret: str | None = None
    confirmed: bool = False
    last_verified_at: datetime | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> EnrollmentRecord:
        if self.confirmed and not self.secret:
            raise ValueError("confirmed record requires a secret")
        if self.enabled and not (self.confirmed and self.secret):
            raise ValueError("enabled record requires a confirmed secret")
        return self

    @property
    def state(self) -> EnrollmentState:
        if self.enabled:
            return EnrollmentState.ACTIVE
        if self.secret:
            return EnrollmentState.PENDING
        return EnrollmentState.UNENROLLED

    @property
    def is_active(self) -> bool:
        return self.state is EnrollmentState.ACTIVE


# === API payloads ===


class EnrollResponse(BaseModel):
    secret: str
    provisioning_uri: str


class CodeRequest(BaseModel):
    code: str = ""


class VerifyResponse(BaseModel):
    success: bool


class StatusResponse(BaseModel):
    state: EnrollmentState
    required: bool
    last_verified_at: datetime | None = None


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""
    otp: str | None = None


class LoginResult(BaseModel):
    ok: bool = False
    account_id: str | None = None
    access_token: str | None = None
    error_message: str | None = None
