"""
OTP verification flows.

All five flows run through the same two steps:

* ``request_otp``: validate the subject, rate-limit it, check the flow's
  preconditions, store a hashed OTP as a pending action and email the code.
* ``verify``: consume the pending action, compare the code and run the flow's
  terminal change (session, credentials, account, email or password).

A flow is a ``VerificationFlow`` value that plugs its own ``prepare`` and
``finalize`` steps into ``VerificationService``. Verification consumes the
pending action before the code is compared, so one wrong guess burns the code
and the user has to request a new one.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from fastapi import BackgroundTasks
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from researcher_hut.core.config import settings
from researcher_hut.core.errors import (
    ApiError, DeliveryError, PreconditionError, RateLimitError, ServerError,
    ValidationError, VerificationError,
)
from researcher_hut.core.ratelimit import SlidingWindowRateLimiter
from researcher_hut.core.security import (
    create_admin_session_token, generate_otp, hash_otp, hash_password,
    otp_matches, verify_password,
)
from researcher_hut.core.validation import (
    normalize_email, require_admin_username, require_email, require_name,
    require_otp, require_password, require_signup_username,
)
from researcher_hut.models.admin import AdminSettings
from researcher_hut.models.user import User
from researcher_hut.services.email import OtpNotifier
from researcher_hut.services.pending_actions import FlowType, PendingAction, PendingActionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OtpTicket:
    """What ``prepare`` hands back when an OTP should be issued."""
    subject_key: str
    recipient: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class FlowResult:
    body: dict[str, Any]
    session_token: str | None = None


@dataclass
class FlowContext:
    db: AsyncSession
    store: PendingActionStore


def _no_extra_checks(body: Any) -> None:
    return None


@dataclass(frozen=True)
class VerificationFlow:
    flow_type: FlowType
    ttl_minutes: int
    sent_message: str
    subject_of: Callable[[Any], str]
    prepare: Callable[[FlowContext, Any], Awaitable[OtpTicket | None]]
    finalize: Callable[[FlowContext, PendingAction, Any], Awaitable[FlowResult]]
    check_verify: Callable[[Any], None] = _no_extra_checks
    # prepare may return None; the caller then gets the same answer as on success
    enumeration_safe: bool = False

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.ttl_minutes)


class VerificationService:

    def __init__(
        self,
        store: PendingActionStore,
        limiter: SlidingWindowRateLimiter,
        notifier: OtpNotifier,
        delivery_timeout: float | None = None,
    ):
        self.store = store
        self.limiter = limiter
        self.notifier = notifier
        self.delivery_timeout = delivery_timeout or settings.EMAIL_TIMEOUT_SECONDS + 1

    async def request_otp(
        self,
        flow: VerificationFlow,
        db: AsyncSession,
        body: Any,
        background: BackgroundTasks | None = None,
    ) -> dict[str, Any]:
        """
        With ``background``, enumeration-safe flows hand delivery to it and answer
        at once, so a known subject replies as fast as an unknown one.
        """
        subject = flow.subject_of(body)
        self.store.sweep()
        if not self.limiter.hit((flow.flow_type, subject)):
            logger.warning("%s: OTP rate limit hit for %s", flow.flow_type.value, subject)
            raise RateLimitError()

        ctx = FlowContext(db=db, store=self.store)
        ticket = await self._guard(flow, "prepare", flow.prepare(ctx, body))
        if ticket is None:
            logger.debug("%s: no OTP issued for %s", flow.flow_type.value, subject)
            return {"message": flow.sent_message}

        otp = generate_otp()
        self.store.put(ticket.subject_key, flow.flow_type, hash_otp(otp), ticket.payload, flow.ttl)
        logger.info("%s: OTP issued for %s", flow.flow_type.value, ticket.subject_key)

        if flow.enumeration_safe:
            if background is not None:
                background.add_task(self._deliver_later, ticket.recipient, otp, flow, ticket.subject_key)
            else:
                await self._deliver_later(ticket.recipient, otp, flow, ticket.subject_key)
            return {"message": flow.sent_message}

        if not await self._deliver(ticket.recipient, otp, flow):
            raise DeliveryError()
        return {"message": flow.sent_message}

    async def verify(self, flow: VerificationFlow, db: AsyncSession, body: Any) -> FlowResult:
        subject = flow.subject_of(body)
        otp = require_otp(body.otp)
        flow.check_verify(body)

        action = self.store.consume(subject, flow.flow_type)
        if action is None or not otp_matches(otp, action.otp_hash):
            logger.info("%s: verification failed for %s", flow.flow_type.value, subject)
            raise VerificationError()

        ctx = FlowContext(db=db, store=self.store)
        try:
            result = await self._guard(flow, "finalize", flow.finalize(ctx, action, body))
        except ApiError:
            await db.rollback()
            raise
        logger.info("%s: completed for %s", flow.flow_type.value, subject)
        return result

    async def _guard(self, flow: VerificationFlow, step: str, coro: Awaitable[Any]) -> Any:
        try:
            return await coro
        except ApiError:
            raise
        except Exception as exc:
            logger.exception("%s: %s step failed", flow.flow_type.value, step)
            raise ServerError() from exc

    async def _deliver_later(self, to: str, otp: str, flow: VerificationFlow, subject_key: str) -> None:
        if not await self._deliver(to, otp, flow):
            logger.error("%s: OTP delivery failed for %s", flow.flow_type.value, subject_key)

    async def _deliver(self, to: str, otp: str, flow: VerificationFlow) -> bool:
        try:
            return await asyncio.wait_for(
                self.notifier.send_otp_email(to, otp, flow.ttl_minutes),
                timeout=self.delivery_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("%s: OTP delivery to %s timed out", flow.flow_type.value, to)
            return False
        except Exception:
            logger.exception("%s: OTP delivery to %s raised", flow.flow_type.value, to)
            return False


# ---------- lookups ----------

async def get_admin_settings(db: AsyncSession) -> AdminSettings | None:
    res = await db.execute(select(AdminSettings).order_by(AdminSettings.created_at).limit(1))
    return res.scalars().first()

async def configured_admin_email(db: AsyncSession) -> str:
    admin = await get_admin_settings(db)
    return normalize_email(admin.email if admin else settings.ADMIN_EMAIL)

async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    res = await db.execute(select(User).where(func.lower(User.email) == normalize_email(email)))
    return res.scalar_one_or_none()

async def username_exists(db: AsyncSession, username: str) -> bool:
    res = await db.execute(select(User.id).where(func.lower(User.username) == username.lower()))
    return res.first() is not None

def username_reserved(store: PendingActionStore, username: str, except_email: str | None = None) -> bool:
    """True when a live signup for a different email already claimed ``username``."""
    return any(
        a.payload.get("username") == username.lower() and a.subject_key != except_email
        for a in store.live_actions(FlowType.user_signup)
    )


# ---------- subjects ----------

def _email_subject(body: Any) -> str:
    return require_email(body.email)

def _user_subject(body: Any) -> str:
    user_id = (body.user_id or "").strip()
    if not user_id:
        raise ValidationError("User ID is required")
    return user_id


# ---------- admin login ----------

async def _prepare_admin(ctx: FlowContext, body: Any) -> OtpTicket | None:
    email = require_email(body.email)
    admin_email = await configured_admin_email(ctx.db)
    if not admin_email or email != admin_email:
        return None
    return OtpTicket(subject_key=email, recipient=email)

def _check_admin_login(body: Any) -> None:
    if not body.username or not body.password:
        raise ValidationError("Username and password are required")

async def _finalize_admin_login(ctx: FlowContext, action: PendingAction, body: Any) -> FlowResult:
    admin = await get_admin_settings(ctx.db)
    if (
        admin is None
        or normalize_email(admin.email) != action.subject_key
        or body.username.strip() != admin.username
        or not await run_in_threadpool(verify_password, body.password, admin.password_hash)
    ):
        raise VerificationError()

    token = create_admin_session_token(admin.id)
    return FlowResult(
        body={
            "success": True,
            "admin": {"id": admin.id, "email": admin.email, "name": "Admin", "isAdmin": True},
        },
        session_token=token,
    )


# ---------- admin credential reset ----------

def _check_admin_reset(body: Any) -> None:
    require_admin_username(body.new_username)
    require_password(body.new_password, "New password")

async def _finalize_admin_reset(ctx: FlowContext, action: PendingAction, body: Any) -> FlowResult:
    username = require_admin_username(body.new_username)
    password_hash = await run_in_threadpool(hash_password, body.new_password)

    admin = await get_admin_settings(ctx.db)
    if admin is None:
        admin = AdminSettings(email=action.subject_key, username=username, password_hash=password_hash)
        ctx.db.add(admin)
    else:
        admin.email = action.subject_key
        admin.username = username
        admin.password_hash = password_hash
    await ctx.db.commit()
    return FlowResult(body={"success": True, "message": "Credentials updated successfully"})


# ---------- user signup ----------

async def _prepare_signup(ctx: FlowContext, body: Any) -> OtpTicket:
    email = require_email(body.email)
    name = require_name(body.name)
    username = require_signup_username(body.username)
    password = require_password(body.password)

    if await get_user_by_email(ctx.db, email) is not None:
        raise PreconditionError("Email already registered")
    if await username_exists(ctx.db, username) or username_reserved(ctx.store, username, except_email=email):
        raise PreconditionError("Username already taken")

    return OtpTicket(
        subject_key=email,
        recipient=email,
        payload={
            "email": email,
            "name": name,
            "username": username,
            "password_hash": await run_in_threadpool(hash_password, password),
        },
    )

async def _finalize_signup(ctx: FlowContext, action: PendingAction, body: Any) -> FlowResult:
    p = action.payload
    if await get_user_by_email(ctx.db, p["email"]) is not None:
        raise PreconditionError("Email already registered")
    if await username_exists(ctx.db, p["username"]):
        raise PreconditionError("Username already taken")

    user = User(email=p["email"], username=p["username"], name=p["name"], hashed_password=p["password_hash"])
    ctx.db.add(user)
    try:
        await ctx.db.commit()
    except IntegrityError:
        await ctx.db.rollback()
        raise PreconditionError("Email or username already registered")

    return FlowResult(body={
        "success": True,
        "message": "Account created successfully! You can now sign in.",
        "user": {"id": user.id, "email": user.email, "name": user.name, "username": user.username},
    })


# ---------- email change ----------

async def _prepare_email_change(ctx: FlowContext, body: Any) -> OtpTicket:
    user_id = _user_subject(body)
    current_email = require_email(body.current_email, "Current email")
    new_email = require_email(body.new_email, "New email")
    if new_email == current_email:
        raise ValidationError("New email must be different from the current email")

    user = await ctx.db.get(User, user_id)
    if user is None or normalize_email(user.email) != current_email:
        raise PreconditionError("Current email does not match our records")

    other = await get_user_by_email(ctx.db, new_email)
    if other is not None and other.id != user.id:
        raise PreconditionError("Email already in use by another account")

    # the code goes to the new inbox
    return OtpTicket(
        subject_key=user_id,
        recipient=new_email,
        payload={"old_email": current_email, "new_email": new_email},
    )

async def _finalize_email_change(ctx: FlowContext, action: PendingAction, body: Any) -> FlowResult:
    new_email = action.payload["new_email"]
    user = await ctx.db.get(User, action.subject_key)
    if user is None:
        raise PreconditionError("User not found")
    other = await get_user_by_email(ctx.db, new_email)
    if other is not None and other.id != user.id:
        raise PreconditionError("Email already in use by another account")

    user.email = new_email
    try:
        await ctx.db.commit()
    except IntegrityError:
        await ctx.db.rollback()
        raise PreconditionError("Email already in use by another account")
    return FlowResult(body={"success": True, "message": "Email updated successfully", "email": new_email})


# ---------- password reset ----------

async def _prepare_password_reset(ctx: FlowContext, body: Any) -> OtpTicket | None:
    email = require_email(body.email)
    user = await get_user_by_email(ctx.db, email)
    if user is None:
        return None
    return OtpTicket(subject_key=email, recipient=email, payload={"user_id": user.id})

def _check_password_reset(body: Any) -> None:
    require_password(body.new_password, "New password")

async def _finalize_password_reset(ctx: FlowContext, action: PendingAction, body: Any) -> FlowResult:
    user = await ctx.db.get(User, action.payload["user_id"])
    if user is None or normalize_email(user.email) != action.subject_key:
        raise VerificationError()
    user.hashed_password = await run_in_threadpool(hash_password, body.new_password)
    await ctx.db.commit()
    return FlowResult(body={
        "success": True,
        "message": "Password reset successfully. You can now sign in with your new password.",
    })


# ---------- flow table ----------

ADMIN_OTP_SENT = "If this email is authorized, an OTP has been sent."
PASSWORD_RESET_OTP_SENT = "If an account exists with this email, a reset code has been sent."

ADMIN_LOGIN_FLOW = VerificationFlow(
    flow_type=FlowType.admin_login,
    ttl_minutes=settings.ADMIN_OTP_TTL_MINUTES,
    sent_message=ADMIN_OTP_SENT,
    subject_of=_email_subject,
    prepare=_prepare_admin,
    check_verify=_check_admin_login,
    finalize=_finalize_admin_login,
    enumeration_safe=True,
)

ADMIN_RESET_FLOW = VerificationFlow(
    flow_type=FlowType.admin_reset,
    ttl_minutes=settings.ADMIN_OTP_TTL_MINUTES,
    sent_message=ADMIN_OTP_SENT,
    subject_of=_email_subject,
    prepare=_prepare_admin,
    check_verify=_check_admin_reset,
    finalize=_finalize_admin_reset,
    enumeration_safe=True,
)

SIGNUP_FLOW = VerificationFlow(
    flow_type=FlowType.user_signup,
    ttl_minutes=settings.USER_OTP_TTL_MINUTES,
    sent_message="OTP sent successfully. Check your email to complete signup.",
    subject_of=_email_subject,
    prepare=_prepare_signup,
    finalize=_finalize_signup,
)

EMAIL_CHANGE_FLOW = VerificationFlow(
    flow_type=FlowType.email_change,
    ttl_minutes=settings.USER_OTP_TTL_MINUTES,
    sent_message="OTP sent to your new email address.",
    subject_of=_user_subject,
    prepare=_prepare_email_change,
    finalize=_finalize_email_change,
)

PASSWORD_RESET_FLOW = VerificationFlow(
    flow_type=FlowType.password_reset,
    ttl_minutes=settings.USER_OTP_TTL_MINUTES,
    sent_message=PASSWORD_RESET_OTP_SENT,
    subject_of=_email_subject,
    prepare=_prepare_password_reset,
    check_verify=_check_password_reset,
    finalize=_finalize_password_reset,
    enumeration_safe=True,
)
