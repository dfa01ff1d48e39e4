from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from researcher_hut.core.config import settings
from researcher_hut.core.security import ADMIN_ROLE, decode_admin_session_token
from researcher_hut.services.verification import VerificationService


bearer = HTTPBearer(auto_error=False)

def get_verification_service(request: Request) -> VerificationService:
    state = request.app.state
    return VerificationService(
        store=state.pending_store,
        limiter=state.otp_limiter,
        notifier=state.notifier,
    )

# --- admin session ---
async def require_admin(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> dict:
    """
    Accepts the session cookie first, then an ``Authorization: Bearer`` header.
    Returns the decoded token claims.
    """
    token = request.cookies.get(settings.ADMIN_COOKIE_NAME)
    if not token and creds is not None:
        token = creds.credentials
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized. Missing token.")

    try:
        payload = decode_admin_session_token(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized. Invalid or expired token.",
        )

    if payload.get("role") != ADMIN_ROLE or not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden. Admin role required.")
    return payload
