"""Authentication schemas."""
from typing import Generic, TypeVar

from pydantic import BaseModel, EmailStr, Field

DataT = TypeVar("DataT")


class UserRegister(BaseModel):
    """User registration request."""

    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    fullname: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8)


class UserLogin(BaseModel):
    """User login request. Either field may hold the login key."""

    username: str | None = None
    email: str | None = None
    password: str

    @property
    def login_key(self) -> str | None:
        """First of username/email that is not blank."""
        for value in (self.username, self.email):
            if value and value.strip():
                return value
        return None


class TokenRefresh(BaseModel):
    """Token refresh request for clients that do not keep cookies."""

    refresh_token: str | None = None


class PasswordChange(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=8)


class AccountUpdate(BaseModel):
    fullname: str | None = Field(None, max_length=100)
    email: EmailStr | None = None


class UserResponse(BaseModel):
    """Public user view; never includes the password hash or refresh token."""

    id: str
    username: str
    email: str
    fullname: str
    created_at: str

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(TokenResponse):
    user: UserResponse


class ApiResponse(BaseModel, Generic[DataT]):
    """Uniform success envelope."""

    status: int = 200
    data: DataT | None = None
    message: str
    success: bool = True
