"""
Nurse credential (license) model.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from sqlmodel import JSON, Column, Field, SQLModel


class CredentialStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    PENDING = "pending"


def status_for_expiry(expiry_date: Optional[date], today: Optional[date] = None) -> CredentialStatus:
    """A credential past its expiry date is expired, otherwise active."""
    today = today or datetime.now(timezone.utc).date()
    if expiry_date is not None and expiry_date < today:
        return CredentialStatus.EXPIRED
    return CredentialStatus.ACTIVE


class Credential(SQLModel, table=True):
    """
    Attributes:
        user_id: Owner of the credential; non-privileged users only see their own
        license_number: Unique across all credentials
        status: Derived from expiry_date unless set explicitly
    """

    __tablename__ = "credentials"  # type: ignore

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    nurse_id: str = Field(index=True, max_length=50)
    nurse_name: str = Field(max_length=100)
    license_number: str = Field(unique=True, index=True, max_length=100)
    license_type: str = Field(max_length=100)
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    department: Optional[str] = Field(default=None, index=True, max_length=100)
    specializations: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    certifications: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    notes: Optional[str] = None
    status: CredentialStatus = Field(default=CredentialStatus.ACTIVE, index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    created_by: str = Field(foreign_key="users.id")
    updated_by: Optional[str] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
