"""
Credential schemas for API request/response validation.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from nursecred.models.credential import CredentialStatus


class CredentialCreate(BaseModel):
    """New credential; camelCase field names are accepted as well."""

    model_config = ConfigDict(populate_by_name=True)

    nurse_id: str = Field(validation_alias=AliasChoices("nurse_id", "nurseId"))
    nurse_name: str = Field(validation_alias=AliasChoices("nurse_name", "nurseName"))
    license_number: str = Field(validation_alias=AliasChoices("license_number", "licenseNumber"))
    license_type: str = Field(validation_alias=AliasChoices("license_type", "licenseType"))
    issue_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("issue_date", "issueDate"))
    expiry_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("expiry_date", "expiryDate"))
    department: Optional[str] = None
    specializations: List[str] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class CredentialUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    nurse_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("nurse_id", "nurseId"))
    nurse_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("nurse_name", "nurseName"))
    license_number: Optional[str] = Field(default=None, validation_alias=AliasChoices("license_number", "licenseNumber"))
    license_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("license_type", "licenseType"))
    issue_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("issue_date", "issueDate"))
    expiry_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("expiry_date", "expiryDate"))
    department: Optional[str] = None
    specializations: Optional[List[str]] = None
    certifications: Optional[List[str]] = None
    notes: Optional[str] = None
    status: Optional[CredentialStatus] = None

    def patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class StatusUpdate(BaseModel):
    status: CredentialStatus


class BulkImport(BaseModel):
    """Rows are validated one at a time so a bad row doesn't sink the batch."""

    credentials: List[Dict[str, Any]] = Field(min_length=1)


class BulkDelete(BaseModel):
    credential_ids: List[str] = Field(min_length=1, validation_alias=AliasChoices("credential_ids", "credentialIds"))


class CredentialSearch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    search_term: Optional[str] = Field(default=None, validation_alias=AliasChoices("search_term", "searchTerm"))
    filters: Dict[str, Any] = Field(default_factory=dict)
    sort_by: str = Field(default="created_at", validation_alias=AliasChoices("sort_by", "sortBy"))
    sort_order: str = Field(default="desc", pattern="^(asc|desc)$", validation_alias=AliasChoices("sort_order", "sortOrder"))
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class CredentialResponse(BaseModel):
    id: str
    nurse_id: str
    nurse_name: str
    license_number: str
    license_type: str
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    department: Optional[str] = None
    specializations: List[str]
    certifications: List[str]
    notes: Optional[str] = None
    status: CredentialStatus
    user_id: str
    created_by: str
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CredentialPage(BaseModel):
    credentials: List[CredentialResponse]
    current_page: int
    total_pages: int
    total_count: int


class ImportRowError(BaseModel):
    row: int
    error: str


class ImportResult(BaseModel):
    successful: int
    failed: int
    errors: List[ImportRowError]


class DepartmentCount(BaseModel):
    department: Optional[str] = None
    count: int


class CredentialStats(BaseModel):
    total: int
    active: int
    expired: int
    pending: int
    suspended: int
    by_department: List[DepartmentCount]
    recent: List[CredentialResponse]
