from fastapi import APIRouter, Depends

from medibook.auth.dependencies import get_current_actor, get_current_user
from medibook.models.user import User
from medibook.scheduling.permissions import Actor

router = APIRouter()


@router.get("/me")
def me(
    current_user: User = Depends(get_current_user),
    actor: Actor = Depends(get_current_actor),
):
    return {
        "id": current_user.id,
        "email": current_user.email,
        "role": current_user.role,
        "doctor_id": actor.doctor_id,
    }
