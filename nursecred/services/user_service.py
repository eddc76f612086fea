"""
User service layer implementing business logic for user operations.
Separates business logic from API routes and database operations.
"""

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, EmailStr, TypeAdapter
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func, inspect as sa_inspect, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import defer
from sqlmodel import Session, select

from nursecred.core.exceptions import DuplicateError, InternalError, NotFoundError, ValidationError
from nursecred.core.logging import get_logger
from nursecred.core.roles import Permission, UserRole, permissions_of
from nursecred.core.security import get_password_hash, verify_password
from nursecred.models.user import NPK_SEQUENCE_NAME, NpkSequence, User
from nursecred.services.validators import parse_enum

logger = get_logger(__name__)

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
FULL_NAME_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 8
NPK_PATTERN = re.compile(r"^NPK\d{4}$")
NPK_MAX_NUMBER = 9999
NPK_ASSIGN_ATTEMPTS = 5

UNIT_REQUIRED_ROLES = (UserRole.PERAWAT, UserRole.KEPALA_UNIT)
UPDATABLE_FIELDS = ("username", "email", "full_name", "role", "unit", "npk", "permissions", "is_active")
UNIQUE_FIELDS = ("username", "email", "npk")

_ROLE_VALUES = {r.value for r in UserRole}
_PERMISSION_VALUES = {p.value for p in Permission}
_email_adapter = TypeAdapter(EmailStr)
_npk_sequences = NpkSequence.__table__
_users = User.__table__


def format_npk(number: int) -> str:
    return f"NPK{number:04d}"


def _as_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def _error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def _clean_and_validate(data: Dict[str, Any], require_password: bool) -> Tuple[Dict[str, Any], List[Dict[str, str]]]:
    """
    Normalize candidate user fields and collect every constraint violation.

    Returns the cleaned values and the list of errors (empty when valid).
    """
    errors: List[Dict[str, str]] = []
    cleaned: Dict[str, Any] = {}

    username = data.get("username")
    if not isinstance(username, str) or not username.strip():
        errors.append(_error("username", "Username is required"))
    else:
        username = username.strip()
        if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
            errors.append(
                _error(
                    "username",
                    f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters long",
                )
            )
        cleaned["username"] = username

    email = data.get("email")
    if not isinstance(email, str) or not email.strip():
        errors.append(_error("email", "Email is required"))
    else:
        email = email.strip().lower()
        try:
            email = _email_adapter.validate_python(email).lower()
        except SchemaValidationError:
            errors.append(_error("email", "Please provide a valid email address"))
        cleaned["email"] = email

    if require_password:
        password = data.get("password")
        if not isinstance(password, str) or not password:
            errors.append(_error("password", "Password is required"))
        elif len(password) < PASSWORD_MIN_LENGTH:
            errors.append(_error("password", f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"))
        else:
            cleaned["password"] = password

    if "full_name" in data:
        full_name = data["full_name"]
        if full_name is not None:
            full_name = str(full_name).strip()
            if len(full_name) > FULL_NAME_MAX_LENGTH:
                errors.append(_error("full_name", f"Full name cannot exceed {FULL_NAME_MAX_LENGTH} characters"))
        cleaned["full_name"] = full_name or None

    role = _as_value(data.get("role")) or UserRole.PERAWAT.value
    if role not in _ROLE_VALUES:
        errors.append(_error("role", f"Invalid role. Allowed roles: {', '.join(sorted(_ROLE_VALUES))}"))
        role = None
    else:
        cleaned["role"] = UserRole(role)

    npk = data.get("npk")
    if isinstance(npk, str):
        npk = npk.strip() or None
    if npk is not None:
        if not isinstance(npk, str) or not NPK_PATTERN.match(npk):
            errors.append(_error("npk", f"{npk} is not a valid NPK format! Must be NPK followed by 4 digits"))
    cleaned["npk"] = npk

    unit = data.get("unit")
    if isinstance(unit, str):
        unit = unit.strip() or None
    if unit is None and role in {r.value for r in UNIT_REQUIRED_ROLES}:
        errors.append(_error("unit", f"Unit is required for role {role}"))
    cleaned["unit"] = unit

    permissions = data.get("permissions")
    if permissions is not None:
        if not isinstance(permissions, (list, tuple, set)):
            errors.append(_error("permissions", "Permissions must be a list"))
        else:
            values = [_as_value(p) for p in permissions]
            unknown = [p for p in values if p not in _PERMISSION_VALUES]
            if unknown:
                errors.append(_error("permissions", f"Unknown permissions: {', '.join(map(str, unknown))}"))
            else:
                # Keep order, drop duplicates
                cleaned["permissions"] = list(dict.fromkeys(values))

    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            errors.append(_error("is_active", "is_active must be a boolean"))
        else:
            cleaned["is_active"] = data["is_active"]

    return cleaned, errors


def _conflicting_field(error: IntegrityError) -> Optional[str]:
    """Work out which unique constraint an IntegrityError reports."""
    message = str(error.orig)
    if "npk_sequences" in message:
        return "npk_sequence"
    for field in UNIQUE_FIELDS:
        if f"users.{field}" in message or f"({field})" in message or f"ix_users_{field}" in message:
            return field
    return None


class UserService:
    """Service class for user-related operations."""

    # Lookups

    @staticmethod
    def _active_query(*conditions: Any, include_password: bool = False):
        statement = select(User).where(User.is_active == True, *conditions)  # noqa: E712
        if not include_password:
            statement = statement.options(defer(User.hashed_password))
        return statement

    @staticmethod
    def get_by_username(session: Session, username: str, include_password: bool = False) -> Optional[User]:
        """
        Retrieve an active user by username.

        Args:
            session: Database session
            username: Username to search for
            include_password: Load the password hash as well (login path only)

        Returns:
            User if found, None otherwise
        """
        statement = UserService._active_query(User.username == username, include_password=include_password)
        return session.exec(statement).first()

    @staticmethod
    def get_by_email(session: Session, email: str, include_password: bool = False) -> Optional[User]:
        """
        Retrieve an active user by email address (case-insensitive).

        Args:
            session: Database session
            email: Email address to search for
            include_password: Load the password hash as well (login path only)

        Returns:
            User if found, None otherwise
        """
        statement = UserService._active_query(
            User.email == email.strip().lower(), include_password=include_password
        )
        return session.exec(statement).first()

    @staticmethod
    def get_by_login(session: Session, identifier: str, include_password: bool = False) -> Optional[User]:
        """Retrieve an active user by username or email."""
        identifier = identifier.strip()
        statement = UserService._active_query(
            or_(User.username == identifier, User.email == identifier.lower()),
            include_password=include_password,
        )
        return session.exec(statement).first()

    @staticmethod
    def get_by_id(
        session: Session,
        user_id: str,
        include_inactive: bool = False,
        include_password: bool = False,
    ) -> Optional[User]:
        """
        Retrieve a user by ID.

        Args:
            session: Database session
            user_id: User ID to search for
            include_inactive: Also return soft-deleted users (administrative paths)
            include_password: Load the password hash as well

        Returns:
            User if found, None otherwise
        """
        if include_inactive:
            statement = select(User).where(User.id == user_id)
            if not include_password:
                statement = statement.options(defer(User.hashed_password))
        else:
            statement = UserService._active_query(User.id == user_id, include_password=include_password)
        return session.exec(statement).first()

    # NPK assignment

    @staticmethod
    def _max_npk_number(session: Session) -> int:
        statement = select(User.npk).where(User.npk.like("NPK%")).order_by(User.npk.desc())  # type: ignore[union-attr]
        for npk in session.exec(statement):
            if npk and NPK_PATTERN.match(npk):
                return int(npk[3:])
        return 0

    @staticmethod
    def _claim_npk(session: Session) -> str:
        """
        Claim the next NPK inside the caller's transaction.

        The counter row is bumped with one UPDATE, which takes the row (or
        database) write lock until the caller commits, so concurrent claims
        are serialized. A number below an NPK already on record (e.g. one set
        by hand) is lifted past it.
        """
        connection = session.connection()
        result = connection.execute(
            update(_npk_sequences)
            .where(_npk_sequences.c.name == NPK_SEQUENCE_NAME)
            .values(value=_npk_sequences.c.value + 1)
        )
        highest = UserService._max_npk_number(session)

        if result.rowcount == 0:
            number = highest + 1
            session.add(NpkSequence(name=NPK_SEQUENCE_NAME, value=number))
            session.flush()
        else:
            number = connection.execute(
                select(_npk_sequences.c.value).where(_npk_sequences.c.name == NPK_SEQUENCE_NAME)
            ).scalar_one()
            if number <= highest:
                number = highest + 1
                connection.execute(
                    update(_npk_sequences)
                    .where(_npk_sequences.c.name == NPK_SEQUENCE_NAME)
                    .values(value=number)
                )

        if number > NPK_MAX_NUMBER:
            raise InternalError("NPK sequence exhausted")
        return format_npk(number)

    @staticmethod
    def _ensure_unique(session: Session, values: Dict[str, Any], exclude_id: Optional[str] = None) -> None:
        """Raise DuplicateError for the first unique field already taken."""
        for field in UNIQUE_FIELDS:
            value = values.get(field)
            if value is None:
                continue
            statement = select(User.id).where(getattr(User, field) == value)
            if exclude_id is not None:
                statement = statement.where(User.id != exclude_id)
            if session.exec(statement).first() is not None:
                raise DuplicateError(field)

    @staticmethod
    def _save(session: Session, user: User, assign_npk: bool) -> User:
        """
        Persist a new or modified user, assigning an NPK when asked.

        A unique conflict on an auto-assigned NPK (or on the counter seed
        row) means another writer got there first; the claim is retried.
        Any other conflict is reported as a DuplicateError.
        """
        pending = {column: getattr(user, column) for column in User.model_fields if column in _users.c}

        for attempt in range(1, NPK_ASSIGN_ATTEMPTS + 1):
            try:
                if assign_npk:
                    user.npk = UserService._claim_npk(session)
                session.add(user)
                session.commit()
            except IntegrityError as e:
                session.rollback()
                field = _conflicting_field(e)
                if assign_npk and field in ("npk", "npk_sequence"):
                    logger.info(f"NPK conflict on attempt {attempt}, claiming again")
                    # Rollback expired the instance; restore what we meant to write
                    for column, value in pending.items():
                        setattr(user, column, value)
                    continue
                raise DuplicateError(field or "record")
            session.refresh(user)
            return user

        raise InternalError("Could not assign a unique NPK")

    # Lifecycle

    @staticmethod
    def create(session: Session, user_create: Union[BaseModel, Dict[str, Any]], role: Optional[UserRole] = None) -> User:
        """
        Create a new user with hashed password.

        Args:
            session: Database session
            user_create: User creation data (schema or plain dict)
            role: Overrides the role in user_create

        Returns:
            Created user instance

        Raises:
            ValidationError: listing every violated field constraint
            DuplicateError: username, email or npk already taken
        """
        data = user_create.model_dump() if isinstance(user_create, BaseModel) else dict(user_create)
        if role is not None:
            data["role"] = role

        cleaned, errors = _clean_and_validate(data, require_password=True)
        if errors:
            raise ValidationError(errors)

        UserService._ensure_unique(session, cleaned)

        # Hash before claiming an NPK so the counter lock is held only briefly
        hashed_password = get_password_hash(cleaned["password"])
        permissions = cleaned.get("permissions")
        if permissions is None:
            permissions = sorted(p.value for p in permissions_of(cleaned["role"]))

        user = User(
            username=cleaned["username"],
            email=cleaned["email"],
            full_name=cleaned.get("full_name"),
            hashed_password=hashed_password,
            npk=cleaned.get("npk"),
            role=cleaned["role"],
            permissions=permissions,
            unit=cleaned.get("unit"),
        )
        assign_npk = user.role == UserRole.PERAWAT and not user.npk
        user = UserService._save(session, user, assign_npk=assign_npk)
        logger.info(f"Created user {user.username} (ID: {user.id}, role: {user.role.value})")
        return user

    @staticmethod
    def update_allowed_fields(session: Session, user_id: str, patch: Dict[str, Any]) -> User:
        """
        Update a user through the field allow-list.

        Keys outside the allow-list are dropped silently.

        Raises:
            ValidationError: nothing updatable in the patch, or the merged
                record violates a constraint
            NotFoundError: no active user with that id
            DuplicateError: unique constraint collision
        """
        updates = {key: value for key, value in patch.items() if key in UPDATABLE_FIELDS}
        if not updates:
            raise ValidationError.single("patch", "No valid fields to update")

        user = UserService.get_by_id(session, user_id)
        if user is None:
            raise NotFoundError("User not found")

        merged = {field: getattr(user, field) for field in UPDATABLE_FIELDS}
        merged.update(updates)
        cleaned, errors = _clean_and_validate(merged, require_password=False)
        if errors:
            raise ValidationError(errors)

        changed = {field: cleaned.get(field) for field in updates if field in cleaned}
        # Grants of the previous role must not survive a role change
        if "role" in changed and "permissions" not in updates and changed["role"] != user.role:
            changed["permissions"] = sorted(p.value for p in permissions_of(changed["role"]))
        UserService._ensure_unique(
            session,
            {field: value for field, value in changed.items() if field in UNIQUE_FIELDS},
            exclude_id=user.id,
        )

        for field, value in changed.items():
            setattr(user, field, value)
        user.updated_at = datetime.now(timezone.utc)

        assign_npk = user.role == UserRole.PERAWAT and not user.npk
        user = UserService._save(session, user, assign_npk=assign_npk)
        logger.info(f"Updated user {user.id}: {', '.join(sorted(changed))}")
        return user

    @staticmethod
    def change_role(session: Session, user_id: str, role: UserRole) -> User:
        """Set a user's role and reset permissions to that role's defaults."""
        role_permissions = sorted(p.value for p in permissions_of(role))
        return UserService.update_allowed_fields(
            session, user_id, {"role": role, "permissions": role_permissions}
        )

    @staticmethod
    def compare_password(session: Session, user: User, candidate: Optional[str]) -> bool:
        """
        Check a candidate password against the user's stored hash.

        The hash is fetched if the record was loaded without it.

        Returns:
            True on match; False on mismatch or an empty candidate

        Raises:
            InternalError: the hash cannot be retrieved or is unreadable
        """
        if not candidate:
            return False

        hashed_password = None
        if "hashed_password" not in sa_inspect(user).unloaded:
            hashed_password = user.hashed_password
        if not hashed_password:
            hashed_password = session.exec(select(User.hashed_password).where(User.id == user.id)).first()
        if not hashed_password:
            raise InternalError("Could not retrieve user password")

        try:
            return verify_password(candidate, hashed_password)
        except ValueError as e:
            raise InternalError(f"Failed to compare passwords: {e}")

    @staticmethod
    def authenticate(session: Session, identifier: str, password: str) -> Optional[User]:
        """
        Authenticate by username or email and password.

        Unknown user, inactive user and wrong password all return None.
        """
        user = UserService.get_by_login(session, identifier, include_password=True)
        if not user:
            return None
        if not UserService.compare_password(session, user, password):
            return None
        return user

    @staticmethod
    def update_password(session: Session, user: User, new_password: str) -> User:
        if not new_password or len(new_password) < PASSWORD_MIN_LENGTH:
            raise ValidationError.single(
                "new_password", f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
            )
        user.hashed_password = get_password_hash(new_password)
        user.updated_at = datetime.now(timezone.utc)
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info(f"Password updated for user {user.id}")
        return user

    @staticmethod
    def update_last_login(session: Session, user_id: str) -> None:
        """Stamp last_login with a direct UPDATE, skipping record validation."""
        session.connection().execute(
            update(_users).where(_users.c.id == user_id).values(last_login=datetime.now(timezone.utc))
        )
        session.commit()

    @staticmethod
    def soft_delete(session: Session, user_id: str) -> User:
        user = UserService.get_by_id(session, user_id)
        if user is None:
            raise NotFoundError("User not found")
        user.is_active = False
        user.updated_at = datetime.now(timezone.utc)
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info(f"Deactivated user {user.id}")
        return user

    @staticmethod
    def purge(session: Session, user_id: str) -> None:
        """Physically remove a user, active or not."""
        user = UserService.get_by_id(session, user_id, include_inactive=True)
        if user is None:
            raise NotFoundError("User not found")
        session.delete(user)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ValidationError.single("id", "User still owns records; deactivate the account instead")
        logger.info(f"Purged user {user_id}")

    # Listing and maintenance

    @staticmethod
    def list_paginated(
        session: Session,
        role: Optional[str] = None,
        unit: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """
        List active users, newest first, with filters and pagination.

        Returns:
            Dict with records, current_page, total_pages, total_count,
            has_next and has_prev
        """
        page = max(page, 1)
        limit = max(limit, 1)

        conditions: List[Any] = [User.is_active == True]  # noqa: E712
        if role:
            conditions.append(User.role == parse_enum(UserRole, _as_value(role), "role"))
        if unit:
            conditions.append(User.unit == unit)
        if search:
            conditions.append(
                or_(
                    User.username.icontains(search, autoescape=True),  # type: ignore[attr-defined]
                    User.full_name.icontains(search, autoescape=True),  # type: ignore[union-attr]
                    User.email.icontains(search, autoescape=True),  # type: ignore[attr-defined]
                    User.npk.icontains(search, autoescape=True),  # type: ignore[union-attr]
                )
            )

        total = session.exec(select(func.count()).select_from(User).where(*conditions)).one()
        records = session.exec(
            select(User)
            .where(*conditions)
            .options(defer(User.hashed_password))
            .order_by(User.created_at.desc())  # type: ignore[attr-defined]
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return {
            "records": list(records),
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_count": total,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        }

    @staticmethod
    def generate_missing_npks(session: Session) -> int:
        """
        Give every perawat without a well-formed NPK the next one.

        Records are repaired oldest first. Numbers come from the same counter
        as creation, so this can run alongside new registrations.

        Returns:
            Number of records repaired
        """
        for attempt in range(1, NPK_ASSIGN_ATTEMPTS + 1):
            nurses = session.exec(
                select(User).where(User.role == UserRole.PERAWAT).order_by(User.created_at.asc())  # type: ignore[attr-defined]
            ).all()
            broken = [nurse for nurse in nurses if not nurse.npk or not NPK_PATTERN.match(nurse.npk)]
            if not broken:
                return 0

            try:
                now = datetime.now(timezone.utc)
                for nurse in broken:
                    # Clear the malformed value first so it can't shadow the max
                    nurse.npk = None
                    session.add(nurse)
                    session.flush()
                    nurse.npk = UserService._claim_npk(session)
                    nurse.updated_at = now
                    session.add(nurse)
                    session.flush()
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.info(f"NPK repair conflict on attempt {attempt}: {_conflicting_field(e)}")
                continue

            logger.info(f"Assigned NPKs to {len(broken)} users")
            return len(broken)

        raise InternalError("Could not assign unique NPKs")

    @staticmethod
    def get_stats(session: Session) -> Dict[str, Any]:
        """Active user count, role distribution and sign-ups in the last 7 days."""
        active = User.is_active == True  # noqa: E712
        total = session.exec(select(func.count()).select_from(User).where(active)).one()
        distribution = session.exec(
            select(User.role, func.count()).where(active).group_by(User.role)
        ).all()
        week_ago = datetime.now(timezone.utc) - timedelta(days=7)
        new_this_week = session.exec(
            select(func.count()).select_from(User).where(active, User.created_at >= week_ago)
        ).one()

        return {
            "total_users": total,
            "role_distribution": [
                {"role": _as_value(role), "count": count} for role, count in distribution
            ],
            "new_users_this_week": new_this_week,
        }

    @staticmethod
    def is_admin(user: User) -> bool:
        """
        Check if a user has admin privileges.

        Args:
            user: User to check

        Returns:
            True if user is admin, False otherwise
        """
        return user.role == UserRole.ADMIN
