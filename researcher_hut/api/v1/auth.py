from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from researcher_hut.api.deps import get_verification_service, require_admin
from researcher_hut.core.db import get_db
from researcher_hut.core.security import clear_admin_session_cookie, set_admin_session_cookie
from researcher_hut.schemas.auth import (
    AdminOut, AdminResetIn, AdminSendOtpIn, AdminVerifyIn,
    EmailChangeSendOtpIn, EmailChangeVerifyIn,
    PasswordResetIn, PasswordResetSendOtpIn,
    SignupSendOtpIn, SignupVerifyIn,
)
from researcher_hut.services.verification import (
    ADMIN_LOGIN_FLOW, ADMIN_RESET_FLOW, EMAIL_CHANGE_FLOW, PASSWORD_RESET_FLOW, SIGNUP_FLOW,
    VerificationService, get_admin_settings,
)

router = APIRouter(prefix="/auth", tags=["auth"])

# ---------- admin login ----------
@router.post("/admin/send-otp")
async def send_admin_otp(
    payload: AdminSendOtpIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    return await svc.request_otp(ADMIN_LOGIN_FLOW, db, payload, background)

@router.post("/admin/verify")
async def verify_admin_login(
    payload: AdminVerifyIn,
    response: Response,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    result = await svc.verify(ADMIN_LOGIN_FLOW, db, payload)
    set_admin_session_cookie(response, result.session_token)
    return result.body

@router.post("/admin/logout")
async def admin_logout(response: Response):
    clear_admin_session_cookie(response)
    return {"success": True}

@router.get("/admin/session")
async def admin_session(
    claims: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    admin = await get_admin_settings(db)
    if not admin or admin.id != claims["sub"]:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized. Invalid or expired token.")
    return {"admin": AdminOut(id=admin.id, email=admin.email).model_dump(by_alias=True)}

@router.get("/admin/settings", dependencies=[Depends(require_admin)])
async def admin_settings(db: AsyncSession = Depends(get_db)):
    admin = await get_admin_settings(db)
    if not admin:
        raise HTTPException(status_code=404, detail="Admin not configured")
    return {"email": admin.email, "username": admin.username}

# ---------- admin credential reset ----------
@router.post("/admin/reset/send-otp")
async def send_admin_reset_otp(
    payload: AdminSendOtpIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    return await svc.request_otp(ADMIN_RESET_FLOW, db, payload, background)

@router.post("/admin/reset")
async def reset_admin_credentials(
    payload: AdminResetIn,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    result = await svc.verify(ADMIN_RESET_FLOW, db, payload)
    return result.body

# ---------- user signup ----------
@router.post("/signup/send-otp")
async def send_signup_otp(
    payload: SignupSendOtpIn,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    return await svc.request_otp(SIGNUP_FLOW, db, payload)

@router.post("/signup/verify")
async def verify_signup(
    payload: SignupVerifyIn,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    result = await svc.verify(SIGNUP_FLOW, db, payload)
    return result.body

# ---------- email change ----------
@router.post("/email/send-otp")
async def send_email_change_otp(
    payload: EmailChangeSendOtpIn,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    return await svc.request_otp(EMAIL_CHANGE_FLOW, db, payload)

@router.post("/email/verify")
async def verify_email_change(
    payload: EmailChangeVerifyIn,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    result = await svc.verify(EMAIL_CHANGE_FLOW, db, payload)
    return result.body

# ---------- password reset ----------
@router.post("/password/send-reset-otp")
async def send_password_reset_otp(
    payload: PasswordResetSendOtpIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    return await svc.request_otp(PASSWORD_RESET_FLOW, db, payload, background)

@router.post("/password/reset")
async def reset_password(
    payload: PasswordResetIn,
    db: AsyncSession = Depends(get_db),
    svc: VerificationService = Depends(get_verification_service),
):
    result = await svc.verify(PASSWORD_RESET_FLOW, db, payload)
    return result.body
