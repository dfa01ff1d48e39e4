import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from researcher_hut.api.v1.auth import router as auth_router
from researcher_hut.api.v1.users import router as users_router
from researcher_hut.core.config import settings
from researcher_hut.core.db import create_all, engine
from researcher_hut.core.errors import register_exception_handlers
from researcher_hut.core.ratelimit import build_otp_limiter, limiter
from researcher_hut.core.security import ensure_password_backend
from researcher_hut.services.email import build_notifier
from researcher_hut.services.pending_actions import InMemoryPendingActionStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s (%s)", settings.APP_NAME, settings.ENVIRONMENT)
    ensure_password_backend()
    if settings.DB_AUTO_CREATE:
        await create_all()
        logger.info("Database tables ready")
    try:
        yield
    finally:
        logger.info("Shutting down")
        await engine.dispose()


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

# process-local state; a restart drops every in-flight OTP
app.state.pending_store = InMemoryPendingActionStore()
app.state.otp_limiter = build_otp_limiter()
app.state.notifier = build_notifier()
app.state.limiter = limiter

register_exception_handlers(app)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=86400,
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


app.include_router(auth_router, prefix=settings.API_PREFIX)
app.include_router(users_router, prefix=settings.API_PREFIX)


@app.get(f"{settings.API_PREFIX}/health")
async def health():
    return {"status": "OK", "message": "Researcher.Hut Server is running"}
