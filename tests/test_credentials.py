"""
Tests for credential endpoints and owner scoping.
"""

from datetime import date, timedelta

from fastapi.testclient import TestClient

from nursecred.core.config import settings

API = settings.API_PREFIX


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def credential(n: int, **overrides) -> dict:
    data = {
        "nurseId": f"N-{n:03d}",
        "nurseName": f"Nurse {n}",
        "licenseNumber": f"STR-{n:05d}",
        "licenseType": "STR",
        "issueDate": "2024-01-01",
        "expiryDate": (date.today() + timedelta(days=365)).isoformat(),
        "department": "ICU",
    }
    data.update(overrides)
    return data


def create(client: TestClient, token: str, n: int, **overrides) -> dict:
    response = client.post(f"{API}/credentials", json=credential(n, **overrides), headers=auth(token))
    assert response.status_code == 201, response.text
    return response.json()


def test_create_credential(client: TestClient, nurse_token: str, nurse) -> None:
    data = create(client, nurse_token, 1)
    assert data["status"] == "active"
    assert data["user_id"] == nurse.id
    assert data["created_by"] == nurse.id
    assert data["license_number"] == "STR-00001"


def test_past_expiry_is_expired(client: TestClient, nurse_token: str) -> None:
    data = create(client, nurse_token, 1, expiryDate="2024-06-01")
    assert data["status"] == "expired"


def test_expiry_before_issue(client: TestClient, nurse_token: str) -> None:
    response = client.post(
        f"{API}/credentials",
        json=credential(1, issueDate="2025-01-01", expiryDate="2024-01-01"),
        headers=auth(nurse_token),
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "expiry_date"


def test_duplicate_license(client: TestClient, nurse_token: str) -> None:
    create(client, nurse_token, 1)
    response = client.post(f"{API}/credentials", json=credential(2, licenseNumber="STR-00001"), headers=auth(nurse_token))
    assert response.status_code == 409
    assert response.json()["field"] == "license_number"


def test_owner_scoping(client: TestClient, nurse_token: str, mitra_token: str, head_token: str) -> None:
    own = create(client, nurse_token, 1)
    create(client, mitra_token, 2)

    nurse_view = client.get(f"{API}/credentials", headers=auth(nurse_token)).json()
    assert [c["id"] for c in nurse_view["credentials"]] == [own["id"]]

    head_view = client.get(f"{API}/credentials", headers=auth(head_token)).json()
    assert head_view["total_count"] == 2

    assert client.get(f"{API}/credentials/{own['id']}", headers=auth(nurse_token)).status_code == 200
    denied = client.get(f"{API}/credentials/{own['id']}", headers=auth(mitra_token))
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Access denied. You can only view your own credentials."


def test_update_own_only(client: TestClient, nurse_token: str, mitra_token: str, head_token: str) -> None:
    mine = create(client, mitra_token, 1)
    theirs = create(client, nurse_token, 2)

    updated = client.put(f"{API}/credentials/{mine['id']}", json={"notes": "Renewed"}, headers=auth(mitra_token))
    assert updated.status_code == 200
    assert updated.json()["notes"] == "Renewed"

    assert client.put(
        f"{API}/credentials/{theirs['id']}", json={"notes": "x"}, headers=auth(mitra_token)
    ).status_code == 403
    assert client.put(
        f"{API}/credentials/{theirs['id']}", json={"notes": "Checked"}, headers=auth(head_token)
    ).status_code == 200


def test_nurse_cannot_edit(client: TestClient, nurse_token: str) -> None:
    mine = create(client, nurse_token, 1)
    response = client.put(f"{API}/credentials/{mine['id']}", json={"notes": "x"}, headers=auth(nurse_token))
    assert response.status_code == 403
    assert response.json()["permission"] == "edit_credentials"


def test_new_expiry_rederives_status(client: TestClient, mitra_token: str) -> None:
    mine = create(client, mitra_token, 1)
    response = client.put(
        f"{API}/credentials/{mine['id']}", json={"expiryDate": "2020-01-01", "issueDate": "2019-01-01"},
        headers=auth(mitra_token),
    )
    assert response.json()["status"] == "expired"


def test_set_status(client: TestClient, nurse_token: str, head_token: str) -> None:
    mine = create(client, nurse_token, 1)

    assert client.put(
        f"{API}/credentials/{mine['id']}/status", json={"status": "suspended"}, headers=auth(nurse_token)
    ).status_code == 403

    response = client.put(
        f"{API}/credentials/{mine['id']}/status", json={"status": "suspended"}, headers=auth(head_token)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "suspended"


def test_delete_admin_only(client: TestClient, nurse_token: str, head_token: str, admin_token: str) -> None:
    mine = create(client, nurse_token, 1)

    assert client.delete(f"{API}/credentials/{mine['id']}", headers=auth(head_token)).status_code == 403
    assert client.delete(f"{API}/credentials/{mine['id']}", headers=auth(admin_token)).status_code == 200
    assert client.get(f"{API}/credentials/{mine['id']}", headers=auth(admin_token)).status_code == 404


def test_search(client: TestClient, head_token: str, nurse_token: str) -> None:
    create(client, nurse_token, 1, department="ICU", nurseName="Ani")
    create(client, nurse_token, 2, department="ER", nurseName="Budi")
    create(client, nurse_token, 3, department="ER", nurseName="Cici", expiryDate="2023-01-01", issueDate="2022-01-01")

    response = client.post(
        f"{API}/credentials/search",
        json={"filters": {"department": "ER"}, "sortBy": "nurse_name", "sortOrder": "asc"},
        headers=auth(head_token),
    )
    assert response.status_code == 200
    assert [c["nurse_name"] for c in response.json()["credentials"]] == ["Budi", "Cici"]

    expired = client.post(
        f"{API}/credentials/search", json={"filters": {"status": "expired"}}, headers=auth(head_token)
    ).json()
    assert expired["total_count"] == 1

    term = client.post(f"{API}/credentials/search", json={"searchTerm": "ani"}, headers=auth(head_token)).json()
    assert [c["nurse_name"] for c in term["credentials"]] == ["Ani"]


def test_search_rejects_unknown_fields(client: TestClient, head_token: str) -> None:
    response = client.post(
        f"{API}/credentials/search",
        json={"filters": {"hashed_password": "x"}, "sortBy": "notes"},
        headers=auth(head_token),
    )
    assert response.status_code == 400
    fields = {e["field"] for e in response.json()["errors"]}
    assert fields == {"filters.hashed_password", "sort_by"}


def test_bulk_import(client: TestClient, admin_token: str, head_token: str) -> None:
    rows = [credential(1), credential(2, licenseNumber="STR-00001"), {"nurseId": "N-9"}, credential(3)]

    assert client.post(
        f"{API}/credentials/bulk-import", json={"credentials": rows}, headers=auth(head_token)
    ).status_code == 403

    response = client.post(f"{API}/credentials/bulk-import", json={"credentials": rows}, headers=auth(admin_token))
    assert response.status_code == 200
    data = response.json()
    assert data["successful"] == 2
    assert data["failed"] == 2
    assert [e["row"] for e in data["errors"]] == [2, 3]


def test_bulk_delete(client: TestClient, admin_token: str) -> None:
    ids = [create(client, admin_token, n)["id"] for n in range(1, 4)]

    response = client.request(
        "DELETE",
        f"{API}/credentials/bulk-delete",
        json={"credentialIds": ids[:2]},
        headers=auth(admin_token),
    )
    assert response.status_code == 200
    assert response.json()["deleted_count"] == 2

    remaining = client.get(f"{API}/credentials", headers=auth(admin_token)).json()
    assert [c["id"] for c in remaining["credentials"]] == [ids[2]]


def test_stats(client: TestClient, nurse_token: str, head_token: str) -> None:
    create(client, nurse_token, 1, department="ICU")
    create(client, nurse_token, 2, department="ICU")
    create(client, nurse_token, 3, department="ER", expiryDate="2023-01-01", issueDate="2022-01-01")

    assert client.get(f"{API}/credentials/stats/overview", headers=auth(nurse_token)).status_code == 403

    stats = client.get(f"{API}/credentials/stats/overview", headers=auth(head_token)).json()
    assert stats["total"] == 3
    assert stats["active"] == 2
    assert stats["expired"] == 1
    assert stats["by_department"][0] == {"department": "ICU", "count": 2}
    assert len(stats["recent"]) == 3
