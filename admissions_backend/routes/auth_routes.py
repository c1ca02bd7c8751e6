from fastapi import APIRouter, Depends

from admissions_backend.auth.dependencies import get_current_user
from admissions_backend.models.user import User
from admissions_backend.routes.common import ApiResponse

router = APIRouter(tags=['auth'])


@router.get("/me", response_model=ApiResponse[dict])
def me(current_user: User = Depends(get_current_user)):
    return ApiResponse(
        data={
            "id": current_user.id,
            "email": current_user.email,
            "full_name": current_user.full_name,
            "user_type": current_user.user_type,
        }
    )
