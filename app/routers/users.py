"""
Users router: the signed-in user's profile.

Endpoints:
  GET  /users/me  → current user's full profile
"""
from fastapi import APIRouter, Depends

from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.user import UserOut

router = APIRouter()


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    """
    Return the authenticated user's full profile.
    No DB call needed; get_current_user already fetched the user.
    """
    return current_user
