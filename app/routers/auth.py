from fastapi import APIRouter, Depends

from app.deps import get_current_user
from app.models.user import User
from app.routers.users import user_out

router = APIRouter()


@router.get("/me")
async def auth_me(user: User = Depends(get_current_user)):
    """Return current user with wallet balance. Requires session cookie."""
    return user_out(user)
