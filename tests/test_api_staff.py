"""Tests for the /staff-accounts routes and their role gating."""

import pytest
from fastapi.testclient import TestClient

from medicalink.app import create_app

PASSWORD = "password123"


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime))


@pytest.fixture
def staff(make_account):
    return {
        "SUPER_ADMIN": make_account("root@x.com", PASSWORD, role="SUPER_ADMIN"),
        "ADMIN": make_account("admin@x.com", PASSWORD, role="ADMIN"),
        "DOCTOR": make_account("doc@x.com", PASSWORD, role="DOCTOR"),
    }


@pytest.fixture
def headers(client, staff):
    def _headers(role):
        response = client.post(
            "/auth/login", json={"email": staff[role].email, "password": PASSWORD}
        )
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['data']['token']}"}

    return _headers


def _new_account(**overrides):
    body = {
        "fullName": "New Doctor",
        "email": "new@x.com",
        "password": "password123",
        "role": "DOCTOR",
    }
    body.update(overrides)
    return body


class TestCreate:
    def test_super_admin_creates(self, client, headers):
        response = client.post("/staff-accounts", json=_new_account(), headers=headers("SUPER_ADMIN"))

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["email"] == "new@x.com"
        assert data["fullName"] == "New Doctor"
        assert "password" not in data
        assert "passwordHash" not in data

    @pytest.mark.parametrize("role", ["ADMIN", "DOCTOR"])
    def test_other_roles_forbidden(self, client, headers, role):
        response = client.post("/staff-accounts", json=_new_account(), headers=headers(role))

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Insufficient role"

    def test_duplicate_email_conflicts(self, client, headers):
        response = client.post(
            "/staff-accounts", json=_new_account(email="doc@x.com"), headers=headers("SUPER_ADMIN")
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "conflict"

    def test_unknown_role_rejected(self, client, headers):
        response = client.post(
            "/staff-accounts", json=_new_account(role="NURSE"), headers=headers("SUPER_ADMIN")
        )

        assert response.status_code == 400

    def test_unauthenticated(self, client):
        response = client.post("/staff-accounts", json=_new_account())

        assert response.status_code == 401


class TestRead:
    def test_admin_lists(self, client, headers):
        response = client.get("/staff-accounts", headers=headers("ADMIN"))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 3
        assert {item["email"] for item in data["items"]} == {"root@x.com", "admin@x.com", "doc@x.com"}

    def test_doctor_cannot_list(self, client, headers):
        assert client.get("/staff-accounts", headers=headers("DOCTOR")).status_code == 403

    def test_deleted_listing_is_super_admin_only(self, client, headers):
        admin = client.get("/staff-accounts?deleted=true", headers=headers("ADMIN"))
        root = client.get("/staff-accounts?deleted=true", headers=headers("SUPER_ADMIN"))

        assert admin.status_code == 403
        assert root.status_code == 200
        assert root.json()["data"]["items"] == []

    def test_get_by_id(self, client, headers, staff):
        response = client.get(f"/staff-accounts/{staff['DOCTOR'].id}", headers=headers("ADMIN"))

        assert response.status_code == 200
        assert response.json()["data"]["email"] == "doc@x.com"

    def test_get_missing(self, client, headers):
        response = client.get("/staff-accounts/missing", headers=headers("ADMIN"))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_statistics(self, client, headers):
        response = client.get("/staff-accounts/statistics", headers=headers("ADMIN"))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 3
        assert data["byRole"] == {"SUPER_ADMIN": 1, "ADMIN": 1, "DOCTOR": 1}
        assert data["recentlyCreated"] == 3
        assert data["active"] == 3


class TestAdminActions:
    def test_reset_password(self, client, headers, staff):
        response = client.post(
            f"/staff-accounts/{staff['DOCTOR'].id}/reset-password",
            json={"newPassword": "resetpass99", "confirmPassword": "resetpass99"},
            headers=headers("SUPER_ADMIN"),
        )

        assert response.status_code == 200
        login = client.post("/auth/login", json={"email": "doc@x.com", "password": "resetpass99"})
        assert login.status_code == 200

    def test_delete_revokes_sessions(self, client, headers, staff):
        doctor_headers = headers("DOCTOR")

        response = client.delete(
            f"/staff-accounts/{staff['DOCTOR'].id}", headers=headers("SUPER_ADMIN")
        )

        assert response.status_code == 200
        assert response.json()["data"]["message"] == "Staff account deleted successfully"
        assert client.get("/auth/profile", headers=doctor_headers).status_code == 401
        login = client.post("/auth/login", json={"email": "doc@x.com", "password": PASSWORD})
        assert login.status_code == 401

    def test_delete_super_admin_refused(self, client, headers, staff):
        response = client.delete(
            f"/staff-accounts/{staff['SUPER_ADMIN'].id}", headers=headers("SUPER_ADMIN")
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Cannot delete Super Admin accounts"

    def test_restore(self, client, headers, staff):
        root = headers("SUPER_ADMIN")
        doctor_id = staff["DOCTOR"].id
        client.delete(f"/staff-accounts/{doctor_id}", headers=root)

        response = client.post(f"/staff-accounts/{doctor_id}/restore", headers=root)

        assert response.status_code == 200
        assert client.get(f"/staff-accounts/{doctor_id}", headers=root).status_code == 200

    def test_admin_cannot_delete(self, client, headers, staff):
        response = client.delete(f"/staff-accounts/{staff['DOCTOR'].id}", headers=headers("ADMIN"))

        assert response.status_code == 403
