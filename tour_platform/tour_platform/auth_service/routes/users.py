"""
Authentication routes: signup, login, password reset and password update.
"""
from fastapi import APIRouter, Depends, Request, Response, status

from ..config import Settings
from ..deps import get_auth_service, get_settings, protect, set_token_cookie
from ..models import User
from ..schemas import (
    AuthResponse,
    ForgotPasswordRequest,
    MessageResponse,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    UserCreate,
    UserData,
    UserLogin,
    UserOut,
    UserResponse,
)
from ..service import AuthService

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def token_response(user: User, token: str, response: Response, settings: Settings) -> AuthResponse:
    set_token_cookie(response, token, settings)
    # UserOut has no password field, so the hash never leaves the service
    return AuthResponse(token=token, data=UserData(user=UserOut.model_validate(user)))


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def signup(
    payload: UserCreate,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    user, token = service.signup(payload.model_dump())
    return token_response(user, token, response, settings)


@router.post("/login", response_model=AuthResponse)
def login(
    credentials: UserLogin,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    user, token = service.login(credentials.email, credentials.password)
    return token_response(user, token, response, settings)


@router.post("/forgotPassword", response_model=MessageResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    reset_url_base = f"{str(request.base_url).rstrip('/')}{router.prefix}/resetPassword"
    await service.forgot_password(payload.email, reset_url_base)
    return MessageResponse(message="Token sent to email!")


@router.patch("/resetPassword/{token}", response_model=AuthResponse)
def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    user, session_token = service.reset_password(token, payload.password, payload.password_confirm)
    return token_response(user, session_token, response, settings)


@router.patch("/updateMyPassword", response_model=AuthResponse)
def update_password(
    payload: UpdatePasswordRequest,
    response: Response,
    user: User = Depends(protect),
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    user, token = service.update_password(
        user, payload.password_current, payload.password, payload.password_confirm
    )
    return token_response(user, token, response, settings)


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(protect)):
    return UserResponse(data=UserData(user=UserOut.model_validate(user)))
