"""2FA enrollment routes and the code-gated login endpoint."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from twofa.errors import EnrollmentDisabled
from twofa.models import (
    CodeRequest,
    ConfirmResult,
    EnrollResponse,
    LoginRequest,
    StatusResponse,
    VerifyResponse,
    VerifyResult,
)
from twofa.service import DeviceInfo, TwoFactorService

router = APIRouter(prefix="/twofa/users/{account_id}/totp", tags=["totp"])
login_router = APIRouter(prefix="/twofa", tags=["login"])


def get_service(request: Request) -> TwoFactorService:
    return request.app.state.twofa


# --- Enrollment ---

@router.post("/enroll", response_model=EnrollResponse)
async def enroll(account_id: str, service: TwoFactorService = Depends(get_service)):
    try:
        return await service.enroll(account_id)
    except EnrollmentDisabled as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/confirm")
async def confirm(account_id: str, body: CodeRequest, service: TwoFactorService = Depends(get_service)):
    result = await service.confirm(account_id, body.code)
    if result is not ConfirmResult.SUCCESS:
        raise HTTPException(status_code=400, detail="Invalid code.")
    return {"ok": True}


@router.post("/verify", response_model=VerifyResponse)
async def verify(account_id: str, body: CodeRequest, service: TwoFactorService = Depends(get_service)):
    result = await service.verify(account_id, body.code)
    if result is VerifyResult.NOT_ENABLED:
        raise HTTPException(status_code=400, detail="2FA is not enabled for this user.")
    if result is VerifyResult.INVALID_CODE:
        raise HTTPException(status_code=400, detail="Invalid code.")
    return VerifyResponse(success=True)


@router.post("/disable")
async def disable(account_id: str, service: TwoFactorService = Depends(get_service)):
    await service.disable(account_id)
    return {"ok": True}


@router.get("/status", response_model=StatusResponse)
async def status(account_id: str, service: TwoFactorService = Depends(get_service)):
    """Enrollment state for an account (never includes the secret)."""
    record = await service.store.get(account_id)
    return StatusResponse(
        state=record.state,
        required=await service.is_required(account_id),
        last_verified_at=record.last_verified_at,
    )


# --- Login ---

def _device(request: Request) -> DeviceInfo:
    name = request.headers.get("X-DeviceName", "").strip() or "Web Browser - 2FA"
    device_id = request.headers.get("X-DeviceId", "").strip() or uuid.uuid4().hex
    remote = request.client.host if request.client else ""
    return DeviceInfo(name=name, device_id=device_id, remote_address=remote)


@login_router.post("/authenticate")
async def authenticate(body: LoginRequest, request: Request, service: TwoFactorService = Depends(get_service)):
    result = await service.authenticate(body.username, body.password, body.otp, _device(request))
    status_code = 200 if result.ok else 401
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))
