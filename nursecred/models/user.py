"""
User model with role-based access control.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlmodel import JSON, Column, Field, SQLModel

from nursecred.core.roles import UserRole

NPK_SEQUENCE_NAME = "npk"


class User(SQLModel, table=True):
    """
    User model with authentication and role support.

    Attributes:
        id: UUID primary key, assigned once at creation
        username: Unique login name (3-30 characters)
        email: Unique email address, stored lowercased
        full_name: Optional display name
        hashed_password: Password hash; never part of a response schema
        npk: Nurse license code (NPK + 4 digits), unique when present
        role: One of the RBAC roles, defaults to perawat
        permissions: Grants that add to the role's own permissions
        unit: Ward or unit, required for perawat and kepala-unit
        is_active: False once soft-deleted
        last_login: Timestamp of the last authenticated activity
        created_at: Timestamp of account creation
        updated_at: Timestamp of last update
    """

    __tablename__ = "users"  # type: ignore

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    username: str = Field(unique=True, index=True, max_length=30)
    email: str = Field(unique=True, index=True, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=100)
    hashed_password: str
    npk: Optional[str] = Field(default=None, unique=True, index=True, max_length=7)
    role: UserRole = Field(default=UserRole.PERAWAT, index=True)
    permissions: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    unit: Optional[str] = Field(default=None, index=True, max_length=100)
    is_active: bool = Field(default=True, index=True)
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NpkSequence(SQLModel, table=True):
    """
    Named counter row used to hand out NPK numbers.

    Incrementing it with a single UPDATE serializes concurrent claims at the
    database, so two creations can never read the same "last" number.
    """

    __tablename__ = "npk_sequences"  # type: ignore

    name: str = Field(primary_key=True, max_length=32)
    value: int = Field(default=0)
