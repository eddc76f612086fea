"""
User schemas for API request/response validation.
Separates internal models from API contracts using Pydantic.

Field constraints (lengths, formats, role-dependent requirements) are
checked by UserService so that a request gets every violation reported
at once; these schemas only fix the shape.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from nursecred.core.roles import Permission, UserRole, menus_of, redirect_of


class UserBase(BaseModel):
    """Base user schema with common fields."""

    username: str
    email: str
    full_name: Optional[str] = None


class UserCreate(UserBase):
    """Schema for user creation by an administrator."""

    password: str
    role: Optional[UserRole] = None
    npk: Optional[str] = None
    unit: Optional[str] = None
    permissions: Optional[List[Permission]] = None


class UserRegister(UserBase):
    """Schema for self-registration."""

    password: str
    role: UserRole = UserRole.PERAWAT
    npk: Optional[str] = None
    unit: Optional[str] = None


class UserUpdate(BaseModel):
    """
    Partial update. Unknown keys are accepted and dropped by the service's
    allow-list rather than rejected here.
    """

    model_config = ConfigDict(extra="allow")

    def patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class RoleUpdate(BaseModel):
    role: UserRole


class PasswordUpdate(BaseModel):
    current_password: str
    new_password: str


class UserResponse(UserBase):
    """
    Schema for user data in API responses.
    Excludes sensitive information like hashed_password.
    """

    id: str
    email: EmailStr
    npk: Optional[str] = None
    role: UserRole
    permissions: List[str] = Field(default_factory=list)
    unit: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserProfile(UserResponse):
    """User data with the menus and landing page of the user's role."""

    menu_access: List[str] = Field(default_factory=list)
    redirect_url: str = "/"

    @classmethod
    def from_user(cls, user: Any) -> "UserProfile":
        profile = UserResponse.model_validate(user).model_dump()
        return cls(
            **profile,
            menu_access=sorted(menu.value for menu in menus_of(user.role)),
            redirect_url=redirect_of(user.role),
        )


class UserPage(BaseModel):
    records: List[UserResponse]
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class RoleCount(BaseModel):
    role: str
    count: int


class UserStats(BaseModel):
    total_users: int
    role_distribution: List[RoleCount]
    new_users_this_week: int


class AuthResponse(BaseModel):
    """Token plus the profile returned by login and registration."""

    success: bool = True
    access_token: str
    token_type: str = "bearer"
    user: UserProfile
    redirect_url: str
