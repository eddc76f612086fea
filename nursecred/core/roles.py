"""
Role policy table for RBAC.

Static mapping from role to permissions, visible menus, hierarchy level and
post-login redirect. Built once at import and exposed read-only; every
lookup is total, so an unknown role gets no permissions, no menus, level 0
and the default redirect instead of an error.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional


class UserRole(str, Enum):
    """User role enumeration for RBAC."""

    ADMIN = "admin"
    MITRA = "mitra"
    PERAWAT = "perawat"
    KEPALA_UNIT = "kepala-unit"


class Permission(str, Enum):
    """Capabilities that can be granted by role or per user."""

    VIEW_CREDENTIALS = "view_credentials"
    CREATE_CREDENTIALS = "create_credentials"
    EDIT_CREDENTIALS = "edit_credentials"
    DELETE_CREDENTIALS = "delete_credentials"
    MANAGE_USERS = "manage_users"
    VIEW_REPORTS = "view_reports"
    SYSTEM_SETTINGS = "system_settings"


class MenuItem(str, Enum):
    """Frontend menu entries a role may see."""

    DASHBOARD = "dashboard"
    CREDENTIALS = "credentials"
    USERS = "users"
    REPORTS = "reports"
    SETTINGS = "settings"
    PROFILE = "profile"
    EXAMS = "exams"
    FILES = "files"


DEFAULT_REDIRECT = "/"


@dataclass(frozen=True)
class RolePolicy:
    permissions: FrozenSet[Permission]
    menus: FrozenSet[MenuItem]
    level: int
    redirect: str


_EMPTY_POLICY = RolePolicy(
    permissions=frozenset(),
    menus=frozenset(),
    level=0,
    redirect=DEFAULT_REDIRECT,
)

ROLE_POLICIES: Mapping[str, RolePolicy] = MappingProxyType(
    {
        UserRole.ADMIN.value: RolePolicy(
            permissions=frozenset(Permission),
            menus=frozenset(
                {
                    MenuItem.DASHBOARD,
                    MenuItem.CREDENTIALS,
                    MenuItem.USERS,
                    MenuItem.REPORTS,
                    MenuItem.SETTINGS,
                    MenuItem.PROFILE,
                    MenuItem.EXAMS,
                    MenuItem.FILES,
                }
            ),
            level=3,
            redirect="/dashboard-kepala-unit",
        ),
        UserRole.KEPALA_UNIT.value: RolePolicy(
            permissions=frozenset(
                {
                    Permission.VIEW_CREDENTIALS,
                    Permission.CREATE_CREDENTIALS,
                    Permission.EDIT_CREDENTIALS,
                    Permission.VIEW_REPORTS,
                }
            ),
            menus=frozenset(
                {
                    MenuItem.DASHBOARD,
                    MenuItem.CREDENTIALS,
                    MenuItem.REPORTS,
                    MenuItem.PROFILE,
                    MenuItem.EXAMS,
                    MenuItem.FILES,
                }
            ),
            level=2,
            redirect="/dashboard-kepala-unit",
        ),
        UserRole.MITRA.value: RolePolicy(
            permissions=frozenset(
                {
                    Permission.VIEW_CREDENTIALS,
                    Permission.CREATE_CREDENTIALS,
                    Permission.EDIT_CREDENTIALS,
                    Permission.VIEW_REPORTS,
                }
            ),
            menus=frozenset(
                {
                    MenuItem.DASHBOARD,
                    MenuItem.CREDENTIALS,
                    MenuItem.REPORTS,
                    MenuItem.PROFILE,
                }
            ),
            level=2,
            redirect="/dashboard-mitra-bestari",
        ),
        UserRole.PERAWAT.value: RolePolicy(
            permissions=frozenset(
                {
                    Permission.VIEW_CREDENTIALS,
                    Permission.CREATE_CREDENTIALS,
                }
            ),
            menus=frozenset(
                {
                    MenuItem.DASHBOARD,
                    MenuItem.CREDENTIALS,
                    MenuItem.PROFILE,
                    MenuItem.EXAMS,
                }
            ),
            level=1,
            redirect="/dashboard-perawat",
        ),
    }
)


def _role_key(role: Optional[str]) -> Optional[str]:
    if isinstance(role, UserRole):
        return role.value
    return role


def policy_of(role: Optional[str]) -> RolePolicy:
    return ROLE_POLICIES.get(_role_key(role), _EMPTY_POLICY)  # type: ignore[arg-type]


def permissions_of(role: Optional[str]) -> FrozenSet[Permission]:
    return policy_of(role).permissions


def menus_of(role: Optional[str]) -> FrozenSet[MenuItem]:
    return policy_of(role).menus


def level_of(role: Optional[str]) -> int:
    return policy_of(role).level


def redirect_of(role: Optional[str]) -> str:
    return policy_of(role).redirect


def has_permission(
    role: Optional[str],
    permission: Permission | str,
    extra_permissions: Iterable[str] = (),
) -> bool:
    """
    Check a permission against the role table and the record's own grants.

    Record-level permissions only ever add to what the role provides.
    """
    value = permission.value if isinstance(permission, Permission) else permission
    if value in {p.value for p in permissions_of(role)}:
        return True
    granted = {p.value if isinstance(p, Permission) else p for p in extra_permissions or ()}
    return value in granted


def can_access_menu(role: Optional[str], menu: MenuItem | str) -> bool:
    value = menu.value if isinstance(menu, MenuItem) else menu
    return value in {m.value for m in menus_of(role)}


def can_access_role(role: Optional[str], minimum_role: Optional[str]) -> bool:
    return level_of(role) >= level_of(minimum_role)
