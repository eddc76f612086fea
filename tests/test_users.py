"""
Tests for user endpoints.
"""

from fastapi.testclient import TestClient
from sqlmodel import Session

from nursecred.core.config import settings
from nursecred.core.roles import UserRole
from nursecred.models.user import User
from nursecred.services.user_service import UserService

API = settings.API_PREFIX


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_get_current_user(client: TestClient, nurse_token: str, nurse: User) -> None:
    response = client.get(f"{API}/users/me", headers=auth(nurse_token))
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == nurse.id
    assert data["npk"] == "NPK0001"
    assert data["redirect_url"] == "/dashboard-perawat"
    assert data["menu_access"] == ["credentials", "dashboard", "exams", "profile"]


def test_get_current_user_unauthorized(client: TestClient) -> None:
    response = client.get(f"{API}/users/me")
    assert response.status_code == 401


def test_list_users_as_admin(client: TestClient, admin_token: str, nurse: User, head: User) -> None:
    response = client.get(f"{API}/users", params={"role": "perawat"}, headers=auth(admin_token))
    assert response.status_code == 200
    data = response.json()
    assert data["total_count"] == 1
    assert data["records"][0]["username"] == "nurse"
    assert data["has_next"] is False


def test_list_users_bad_role_filter(client: TestClient, admin_token: str) -> None:
    response = client.get(f"{API}/users", params={"role": "superuser"}, headers=auth(admin_token))
    assert response.status_code == 400


def test_list_users_as_nurse(client: TestClient, nurse_token: str) -> None:
    response = client.get(f"{API}/users", headers=auth(nurse_token))
    assert response.status_code == 403


def test_user_stats(client: TestClient, head_token: str, nurse: User) -> None:
    response = client.get(f"{API}/users/stats", headers=auth(head_token))
    assert response.status_code == 200
    data = response.json()
    assert data["total_users"] == 2
    assert data["new_users_this_week"] == 2


def test_admin_creates_admin(client: TestClient, admin_token: str) -> None:
    response = client.post(
        f"{API}/users",
        json={
            "username": "second-admin",
            "email": "second@example.com",
            "password": "password123",
            "role": "admin",
        },
        headers=auth(admin_token),
    )
    assert response.status_code == 201
    assert response.json()["role"] == "admin"
    assert response.json()["npk"] is None


def test_get_user_self_or_manager(
    client: TestClient, nurse_token: str, admin_token: str, nurse: User, head: User
) -> None:
    assert client.get(f"{API}/users/{nurse.id}", headers=auth(nurse_token)).status_code == 200
    assert client.get(f"{API}/users/{head.id}", headers=auth(nurse_token)).status_code == 403
    assert client.get(f"{API}/users/{head.id}", headers=auth(admin_token)).status_code == 200
    assert client.get(f"{API}/users/missing", headers=auth(admin_token)).status_code == 404


def test_update_user(client: TestClient, admin_token: str, nurse: User) -> None:
    response = client.put(
        f"{API}/users/{nurse.id}",
        json={"full_name": "Renamed Nurse", "unit": "ER", "hashed_password": "ignored"},
        headers=auth(admin_token),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["full_name"] == "Renamed Nurse"
    assert data["unit"] == "ER"


def test_update_user_nothing_allowed(client: TestClient, admin_token: str, nurse: User) -> None:
    response = client.put(
        f"{API}/users/{nurse.id}",
        json={"hashed_password": "ignored"},
        headers=auth(admin_token),
    )
    assert response.status_code == 400


def test_change_role(client: TestClient, admin_token: str, nurse: User) -> None:
    response = client.patch(
        f"{API}/users/{nurse.id}/role",
        json={"role": "kepala-unit"},
        headers=auth(admin_token),
    )
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["role"] == "kepala-unit"
    assert "edit_credentials" in user["permissions"]


def test_update_role_revokes_admin_access(client: TestClient, admin_token: str, session: Session) -> None:
    demoted = UserService.create(
        session,
        {
            "username": "former-admin",
            "email": "former@example.com",
            "password": "password123",
        },
        role=UserRole.ADMIN,
    )

    response = client.put(
        f"{API}/users/{demoted.id}",
        json={"role": "perawat", "unit": "ICU"},
        headers=auth(admin_token),
    )
    assert response.status_code == 200
    assert "manage_users" not in response.json()["permissions"]

    login = client.post(
        f"{API}/auth/login",
        data={"username": "former-admin", "password": "password123"},
    )
    assert login.status_code == 200
    response = client.get(f"{API}/users", headers=auth(login.json()["access_token"]))
    assert response.status_code == 403


def test_update_user_clears_full_name(client: TestClient, admin_token: str, nurse: User) -> None:
    response = client.put(
        f"{API}/users/{nurse.id}",
        json={"full_name": None},
        headers=auth(admin_token),
    )
    assert response.status_code == 200
    assert response.json()["full_name"] is None


def test_deactivate_user(client: TestClient, admin_token: str, nurse: User) -> None:
    response = client.delete(f"{API}/users/{nurse.id}", headers=auth(admin_token))
    assert response.status_code == 200

    login = client.post(
        f"{API}/auth/login",
        data={"username": "nurse", "password": "nursepassword123"},
    )
    assert login.status_code == 401


def test_deactivated_user_token_stops_working(client: TestClient, admin_token: str, nurse_token: str, nurse: User) -> None:
    client.delete(f"{API}/users/{nurse.id}", headers=auth(admin_token))

    response = client.get(f"{API}/users/me", headers=auth(nurse_token))
    assert response.status_code == 403


def test_cannot_deactivate_self(client: TestClient, admin_token: str, admin: User) -> None:
    response = client.delete(f"{API}/users/{admin.id}", headers=auth(admin_token))
    assert response.status_code == 403


def test_purge_user(client: TestClient, session: Session, admin_token: str, nurse: User) -> None:
    response = client.delete(f"{API}/users/{nurse.id}/purge", headers=auth(admin_token))
    assert response.status_code == 200
    assert UserService.get_by_id(session, nurse.id, include_inactive=True) is None


def test_purge_requires_admin_role(client: TestClient, session: Session, nurse: User, head: User) -> None:
    # Granting manage_users is not enough; purging is reserved to the admin role
    UserService.update_allowed_fields(
        session,
        head.id,
        {"permissions": ["view_credentials", "create_credentials", "edit_credentials", "view_reports", "manage_users"]},
    )
    login = client.post(f"{API}/auth/login", data={"username": "kepala", "password": "kepalapassword123"})
    token = login.json()["access_token"]

    assert client.get(f"{API}/users", headers=auth(token)).status_code == 200
    assert client.delete(f"{API}/users/{nurse.id}/purge", headers=auth(token)).status_code == 403


def test_repair_npks_inline(client: TestClient, session: Session, admin_token: str) -> None:
    session.add(
        User(
            username="legacy",
            email="legacy@example.com",
            hashed_password="x",
            role=UserRole.PERAWAT,
            unit="ICU",
        )
    )
    session.commit()

    response = client.post(f"{API}/users/npk/repair", headers=auth(admin_token))
    assert response.status_code == 200
    assert response.json()["repaired"] == 1
    assert UserService.get_by_username(session, "legacy").npk == "NPK0001"


def test_repair_npks_requires_system_settings(client: TestClient, head_token: str) -> None:
    response = client.post(f"{API}/users/npk/repair", headers=auth(head_token))
    assert response.status_code == 403
