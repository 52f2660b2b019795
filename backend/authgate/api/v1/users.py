"""User routes"""

from fastapi import APIRouter, Depends

from authgate.api.deps import get_current_user
from authgate.models.user import User
from authgate.schemas.response import ErrorResponse
from authgate.schemas.user import ProfileResponse, UserResponse

router = APIRouter()


@router.get("/profile", response_model=ProfileResponse, responses={401: {"model": ErrorResponse}})
def get_my_profile(
    current_user: User = Depends(get_current_user)
):
    """
    Get current user profile

    Args:
        current_user: Account behind the bearer access token

    Returns:
        User profile
    """
    return ProfileResponse(user=UserResponse.model_validate(current_user))
