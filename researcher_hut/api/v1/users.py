from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from researcher_hut.core.db import get_db
from researcher_hut.core.validation import SIGNUP_USERNAME_RE
from researcher_hut.models.user import User
from researcher_hut.schemas.user import UserOut, UsernameAvailabilityOut
from researcher_hut.services.verification import username_exists, username_reserved

router = APIRouter(prefix="/users", tags=["users"])

@router.get("/check-username/{username}", response_model=UsernameAvailabilityOut)
async def check_username(username: str, request: Request, db: AsyncSession = Depends(get_db)):
    if not SIGNUP_USERNAME_RE.match(username):
        return UsernameAvailabilityOut(available=False)
    taken = await username_exists(db, username) or username_reserved(request.app.state.pending_store, username)
    return UsernameAvailabilityOut(available=not taken)

@router.get("/{id}", response_model=UserOut)
async def get_user(id: str, db: AsyncSession = Depends(get_db)):
    user = await db.get(User, id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
