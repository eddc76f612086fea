"""
Credential service: nurse licenses with owner-scoped access.

Admins and unit heads (kepala-unit) work on every credential; any other
role only sees and edits credentials it owns.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from nursecred.core.exceptions import AppError, AuthorizationError, DuplicateError, NotFoundError
from nursecred.core.logging import get_logger
from nursecred.core.roles import UserRole
from nursecred.models.credential import Credential, CredentialStatus, status_for_expiry
from nursecred.schemas.credential import CredentialCreate, CredentialSearch
from nursecred.services.validators import FieldErrors, parse_enum

logger = get_logger(__name__)

PRIVILEGED_ROLES = (UserRole.ADMIN.value, UserRole.KEPALA_UNIT.value)
REQUIRED_TEXT_FIELDS = ("nurse_id", "nurse_name", "license_number", "license_type")
EDITABLE_FIELDS = REQUIRED_TEXT_FIELDS + (
    "issue_date",
    "expiry_date",
    "department",
    "specializations",
    "certifications",
    "notes",
    "status",
)
SORTABLE_FIELDS = (
    "created_at",
    "updated_at",
    "nurse_id",
    "nurse_name",
    "license_number",
    "license_type",
    "department",
    "status",
    "issue_date",
    "expiry_date",
)
FILTERABLE_FIELDS = ("status", "department", "license_type", "nurse_id", "user_id")


def is_privileged(role: str) -> bool:
    return role in PRIVILEGED_ROLES


def _check_values(values: Dict[str, Any]) -> None:
    errors = FieldErrors()
    for field in REQUIRED_TEXT_FIELDS:
        if field in values and not values[field]:
            errors.add(field, f"{field} is required")
    issue_date, expiry_date = values.get("issue_date"), values.get("expiry_date")
    if issue_date and expiry_date and expiry_date < issue_date:
        errors.add("expiry_date", "Expiry date cannot be before issue date")
    errors.raise_if_any()


def _strip(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value.strip() if isinstance(value, str) else value for key, value in values.items()}


class CredentialService:
    """Service for nurse credentials."""

    def __init__(self, session: Session):
        self.session = session

    def _scope(self, role: str, user_id: str) -> List[Any]:
        return [] if is_privileged(role) else [Credential.user_id == user_id]

    def _page(self, conditions: List[Any], order_by: Any, page: int, limit: int) -> Dict[str, Any]:
        page = max(page, 1)
        limit = max(limit, 1)
        total = self.session.exec(select(func.count()).select_from(Credential).where(*conditions)).one()
        credentials = self.session.exec(
            select(Credential).where(*conditions).order_by(order_by).offset((page - 1) * limit).limit(limit)
        ).all()
        return {
            "credentials": list(credentials),
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_count": total,
        }

    def _ensure_license_free(self, license_number: str, exclude_id: Optional[str] = None) -> None:
        query = select(Credential.id).where(Credential.license_number == license_number)
        if exclude_id is not None:
            query = query.where(Credential.id != exclude_id)
        if self.session.exec(query).first() is not None:
            raise DuplicateError("license_number", "License number already exists")

    def _commit(self, credential: Credential) -> Credential:
        try:
            self.session.add(credential)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateError("license_number", "License number already exists")
        self.session.refresh(credential)
        return credential

    def list_credentials(
        self,
        role: str,
        user_id: str,
        search: Optional[str] = None,
        department: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """List credentials visible to the caller, newest first."""
        conditions = self._scope(role, user_id)
        if search:
            conditions.append(
                or_(
                    Credential.nurse_id.icontains(search, autoescape=True),  # type: ignore[attr-defined]
                    Credential.nurse_name.icontains(search, autoescape=True),  # type: ignore[attr-defined]
                    Credential.license_number.icontains(search, autoescape=True),  # type: ignore[attr-defined]
                )
            )
        if department:
            conditions.append(Credential.department == department)
        if status:
            conditions.append(Credential.status == parse_enum(CredentialStatus, status, "status"))
        return self._page(conditions, Credential.created_at.desc(), page, limit)  # type: ignore[attr-defined]

    def search(self, role: str, user_id: str, params: CredentialSearch) -> Dict[str, Any]:
        """
        Search with a free-text term, field filters and sorting.

        Unknown filter or sort fields are rejected rather than ignored.
        """
        errors = FieldErrors()
        conditions = self._scope(role, user_id)

        if params.search_term:
            term = params.search_term
            conditions.append(
                or_(
                    Credential.nurse_id.icontains(term, autoescape=True),  # type: ignore[attr-defined]
                    Credential.nurse_name.icontains(term, autoescape=True),  # type: ignore[attr-defined]
                    Credential.license_number.icontains(term, autoescape=True),  # type: ignore[attr-defined]
                    Credential.department.icontains(term, autoescape=True),  # type: ignore[union-attr]
                )
            )

        for field, value in params.filters.items():
            if value is None or value == "":
                continue
            if field not in FILTERABLE_FIELDS:
                errors.add(f"filters.{field}", f"Cannot filter by {field}")
                continue
            if field == "status":
                value = parse_enum(CredentialStatus, value, "status")
            conditions.append(getattr(Credential, field) == value)

        if params.sort_by not in SORTABLE_FIELDS:
            errors.add("sort_by", f"Cannot sort by {params.sort_by}")
        errors.raise_if_any()

        column = getattr(Credential, params.sort_by)
        order_by = column.desc() if params.sort_order == "desc" else column.asc()
        return self._page(conditions, order_by, params.page, params.limit)

    def get(self, credential_id: str, role: str, user_id: str, action: str = "view") -> Credential:
        """
        Fetch a credential the caller may access.

        Raises:
            NotFoundError: unknown credential
            AuthorizationError: owned by someone else and caller not privileged
        """
        credential = self.session.get(Credential, credential_id)
        if credential is None:
            raise NotFoundError("Credential not found")
        if not is_privileged(role) and credential.user_id != user_id:
            logger.warning(f"User {user_id} denied {action} on credential {credential_id}")
            raise AuthorizationError(f"Access denied. You can only {action} your own credentials.")
        return credential

    def create(self, data: CredentialCreate, actor_id: str) -> Credential:
        """
        Create a credential owned by the actor.

        Raises:
            ValidationError: blank required field or inconsistent dates
            DuplicateError: license number already exists
        """
        values = _strip(data.model_dump())
        _check_values(values)
        self._ensure_license_free(values["license_number"])

        credential = Credential(
            **values,
            status=status_for_expiry(values.get("expiry_date")),
            user_id=actor_id,
            created_by=actor_id,
        )
        credential = self._commit(credential)
        logger.info(f"Created credential {credential.id} ({credential.license_number})")
        return credential

    def bulk_import(self, rows: List[Dict[str, Any]], actor_id: str) -> Dict[str, Any]:
        """
        Create credentials row by row.

        Returns:
            Counts of successful and failed rows plus per-row errors
            (rows numbered from 1)
        """
        results: Dict[str, Any] = {"successful": 0, "failed": 0, "errors": []}
        for row_number, row in enumerate(rows, start=1):
            try:
                self.create(CredentialCreate.model_validate(row), actor_id)
            except PydanticValidationError as e:
                fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in e.errors())
                message = f"Invalid or missing fields: {fields}"
            except AppError as e:
                message = e.message
            else:
                results["successful"] += 1
                continue
            results["failed"] += 1
            results["errors"].append({"row": row_number, "error": message})

        logger.info(f"Bulk import: {results['successful']} created, {results['failed']} failed")
        return results

    def update(self, credential_id: str, patch: Dict[str, Any], role: str, user_id: str) -> Credential:
        """
        Update a credential the caller may edit.

        A new expiry date re-derives the status unless a status is given.
        """
        credential = self.get(credential_id, role, user_id, action="edit")
        updates = _strip({key: value for key, value in patch.items() if key in EDITABLE_FIELDS})

        merged = {field: getattr(credential, field) for field in EDITABLE_FIELDS}
        merged.update(updates)
        _check_values(merged)

        license_number = updates.get("license_number")
        if license_number and license_number != credential.license_number:
            self._ensure_license_free(license_number, exclude_id=credential.id)

        if updates.get("expiry_date") and not updates.get("status"):
            updates["status"] = status_for_expiry(updates["expiry_date"])

        for field, value in updates.items():
            setattr(credential, field, value)
        credential.updated_by = user_id
        credential.updated_at = datetime.now(timezone.utc)
        credential = self._commit(credential)
        logger.info(f"Updated credential {credential.id}")
        return credential

    def set_status(self, credential_id: str, status: CredentialStatus, actor_id: str) -> Credential:
        credential = self.session.get(Credential, credential_id)
        if credential is None:
            raise NotFoundError("Credential not found")
        credential.status = status
        credential.updated_by = actor_id
        credential.updated_at = datetime.now(timezone.utc)
        credential = self._commit(credential)
        logger.info(f"Credential {credential.id} status set to {status.value}")
        return credential

    def delete(self, credential_id: str) -> None:
        credential = self.session.get(Credential, credential_id)
        if credential is None:
            raise NotFoundError("Credential not found")
        self.session.delete(credential)
        self.session.commit()
        logger.info(f"Deleted credential {credential_id}")

    def bulk_delete(self, credential_ids: List[str]) -> int:
        result = self.session.connection().execute(
            delete(Credential.__table__).where(Credential.__table__.c.id.in_(credential_ids))  # type: ignore[attr-defined]
        )
        self.session.commit()
        logger.info(f"Bulk deleted {result.rowcount} credentials")
        return result.rowcount

    def get_stats(self) -> Dict[str, Any]:
        counts = dict(
            self.session.exec(select(Credential.status, func.count()).group_by(Credential.status)).all()
        )
        by_department = self.session.exec(
            select(Credential.department, func.count())
            .group_by(Credential.department)
            .order_by(func.count().desc())
        ).all()
        recent = self.session.exec(
            select(Credential).order_by(Credential.created_at.desc()).limit(5)  # type: ignore[attr-defined]
        ).all()

        return {
            "total": sum(counts.values()),
            "active": counts.get(CredentialStatus.ACTIVE, 0),
            "expired": counts.get(CredentialStatus.EXPIRED, 0),
            "pending": counts.get(CredentialStatus.PENDING, 0),
            "suspended": counts.get(CredentialStatus.SUSPENDED, 0),
            "by_department": [
                {"department": department, "count": count} for department, count in by_department
            ],
            "recent": list(recent),
        }
