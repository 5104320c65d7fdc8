from pydantic import BaseModel, ConfigDict, EmailStr, Field

from datetime import datetime
from typing import List, Optional


class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str
    password_confirm: str
    photo: Optional[str] = None
    role: Optional[str] = None


# Missing credentials are reported by the service as a 400, not a schema 422
class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    photo: str
    role: str


class UserData(BaseModel):
    user: UserOut


class AuthResponse(BaseModel):
    status: str = "success"
    token: str
    data: UserData


class UserResponse(BaseModel):
    status: str = "success"
    data: UserData


class MessageResponse(BaseModel):
    status: str = "success"
    message: str


# Password reset
class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: str
    password_confirm: str


class UpdatePasswordRequest(BaseModel):
    password_current: str
    password: str
    password_confirm: str


# Reviews
class ReviewCreate(BaseModel):
    review: str
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    tour: Optional[int] = None
    user: Optional[int] = None


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    review: str
    rating: Optional[int] = None
    created_at: datetime
    tour_id: int
    user_id: int


class ReviewData(BaseModel):
    review: ReviewOut


class ReviewResponse(BaseModel):
    status: str = "success"
    data: ReviewData


class ReviewList(BaseModel):
    reviews: List[ReviewOut]


class ReviewListResponse(BaseModel):
    status: str = "success"
    results: int
    data: ReviewList
