"""User account and session endpoints."""
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from vidtube.api.deps import get_current_user, get_db
from vidtube.config import get_settings
from vidtube.errors import Failure, failure_response
from vidtube.models.user import User
from vidtube.schemas.auth import (
    AccountUpdate,
    ApiResponse,
    LoginResponse,
    PasswordChange,
    TokenRefresh,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from vidtube.services import sessions

router = APIRouter(prefix="/users", tags=["users"])
settings = get_settings()


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    """Issue secure HttpOnly access and refresh cookies."""
    response.set_cookie(
        key=settings.access_cookie_name,
        value=access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=settings.access_token_max_age,
    )
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=settings.refresh_token_max_age,
    )


def clear_auth_cookies(response: Response) -> None:
    for key in (settings.access_cookie_name, settings.refresh_cookie_name):
        response.delete_cookie(
            key=key,
            secure=settings.cookie_secure,
            httponly=True,
            samesite=settings.cookie_samesite,
        )


@router.post("/register", response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
def register(user_data: UserRegister, db: Session = Depends(get_db)):
    """Register a new user."""
    result = sessions.register_user(
        db,
        username=user_data.username,
        email=user_data.email,
        fullname=user_data.fullname,
        password=user_data.password,
    )
    if isinstance(result, Failure):
        return failure_response(result)

    return ApiResponse[UserResponse](
        status=status.HTTP_201_CREATED,
        data=UserResponse.model_validate(result),
        message="User registered successfully",
    )


@router.post("/login", response_model=ApiResponse[LoginResponse])
def login(user_data: UserLogin, response: Response, db: Session = Depends(get_db)):
    """Login with username or email and get tokens."""
    result = sessions.login(db, user_data.login_key, user_data.password)
    if isinstance(result, Failure):
        return failure_response(result)

    set_auth_cookies(response, result.tokens.access_token, result.tokens.refresh_token)
    return ApiResponse[LoginResponse](
        data=LoginResponse(
            user=UserResponse.model_validate(result.user),
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
        ),
        message="User logged in successfully",
    )


@router.post("/logout", response_model=ApiResponse[dict])
def logout(
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Logout and forget the current refresh token."""
    sessions.logout(db, current_user.id)
    clear_auth_cookies(response)
    return ApiResponse[dict](data={}, message="User logged out")


@router.post("/refresh-token", response_model=ApiResponse[TokenResponse])
def refresh_token(
    request: Request,
    response: Response,
    body: TokenRefresh | None = None,
    db: Session = Depends(get_db),
):
    """Rotate the refresh token and issue a new access token."""
    presented = request.cookies.get(settings.refresh_cookie_name) or (body.refresh_token if body else None)

    result = sessions.refresh_session(db, presented)
    if isinstance(result, Failure):
        error = failure_response(result)
        clear_auth_cookies(error)
        return error

    set_auth_cookies(response, result.access_token, result.refresh_token)
    return ApiResponse[TokenResponse](
        data=TokenResponse(access_token=result.access_token, refresh_token=result.refresh_token),
        message="Access token refreshed",
    )


@router.post("/change-password", response_model=ApiResponse[dict])
def change_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = sessions.change_password(db, current_user, payload.old_password, payload.new_password)
    if isinstance(result, Failure):
        return failure_response(result)
    return ApiResponse[dict](data={}, message="Password changed successfully")


@router.post("/get-current-user", response_model=ApiResponse[UserResponse])
def get_current_user_details(current_user: User = Depends(get_current_user)):
    return ApiResponse[UserResponse](
        data=UserResponse.model_validate(current_user),
        message="User fetched successfully",
    )


@router.post("/update-user-details", response_model=ApiResponse[UserResponse])
def update_account(
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update the current user's display name or email."""
    result = sessions.update_account(db, current_user, fullname=payload.fullname, email=payload.email)
    if isinstance(result, Failure):
        return failure_response(result)
    return ApiResponse[UserResponse](
        data=UserResponse.model_validate(result),
        message="Account details updated",
    )
