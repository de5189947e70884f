"""Tests for staff account management and the account store."""

import json
from datetime import timedelta

import pytest

from medicalink.service.accounts import RESET_REQUESTED_MESSAGE, StaffAccountService
from medicalink.service.errors import BadRequestError, ConflictError, NotFoundError
from medicalink.service.passwords import verify_password
from medicalink.storage.memory import MemoryAccountStore
from medicalink.storage.models import utcnow


@pytest.fixture
def service(account_store):
    return StaffAccountService(account_store)


class TestCreate:
    def test_create_returns_profile_without_hash(self, service, account_store):
        profile = service.create("New@Example.com", "New Staff", "password123", "ADMIN")

        assert profile.email == "new@example.com"
        assert profile.role == "ADMIN"
        assert not hasattr(profile, "password_hash")
        stored = account_store.get_account(profile.id)
        assert verify_password("password123", stored.password_hash)

    def test_duplicate_email_conflicts(self, service):
        service.create("dup@example.com", "One", "password123", "DOCTOR")

        with pytest.raises(ConflictError):
            service.create("DUP@example.com", "Two", "password123", "DOCTOR")

    def test_unknown_role_rejected(self, account_store):
        with pytest.raises(ValueError):
            account_store.create_account("x@example.com", "X", "hash", role="NURSE")


class TestGetAndList:
    def test_get_missing(self, service):
        with pytest.raises(NotFoundError) as excinfo:
            service.get("nope")
        assert excinfo.value.message == "Staff account with id nope not found"

    def test_list_splits_active_and_deleted(self, service, make_account):
        keep = make_account("keep@example.com")
        gone = make_account("gone@example.com")
        service.admin_delete(gone.id, actor_id=keep.id)

        active = [p.id for p in service.list_accounts()]
        deleted = [p.id for p in service.list_accounts(deleted=True)]

        assert active == [keep.id]
        assert deleted == [gone.id]

    def test_list_limit(self, service, make_account):
        for i in range(5):
            make_account(f"user{i}@example.com")

        assert len(service.list_accounts(limit=3)) == 3


class TestPasswords:
    def test_change_password(self, service, make_account, account_store):
        acct = make_account(password="oldpassword")

        service.change_password(acct.id, "oldpassword", "newpassword", "newpassword")

        assert verify_password("newpassword", account_store.get_account(acct.id).password_hash)

    def test_change_password_mismatch(self, service, make_account):
        acct = make_account(password="oldpassword")

        with pytest.raises(BadRequestError) as excinfo:
            service.change_password(acct.id, "oldpassword", "newpassword", "otherpassword")
        assert excinfo.value.message == "New password and confirm password do not match"

    def test_change_password_wrong_old(self, service, make_account):
        acct = make_account(password="oldpassword")

        with pytest.raises(BadRequestError) as excinfo:
            service.change_password(acct.id, "wrong", "newpassword", "newpassword")
        assert excinfo.value.message == "Old password is incorrect"

    def test_reset_request_is_uniform(self, service, make_account):
        make_account("known@example.com")

        assert service.request_password_reset("known@example.com") == RESET_REQUESTED_MESSAGE
        assert service.request_password_reset("unknown@example.com") == RESET_REQUESTED_MESSAGE

    def test_admin_reset(self, service, make_account, account_store):
        acct = make_account(password="oldpassword")

        service.admin_reset_password(acct.id, "brandnewpass", "brandnewpass")

        assert verify_password("brandnewpass", account_store.get_account(acct.id).password_hash)


class TestDeleteRestore:
    def test_cannot_delete_super_admin(self, service, make_account):
        root = make_account("root@example.com", role="SUPER_ADMIN")
        admin = make_account("admin@example.com", role="ADMIN")

        with pytest.raises(BadRequestError) as excinfo:
            service.admin_delete(root.id, actor_id=admin.id)
        assert excinfo.value.message == "Cannot delete Super Admin accounts"

    def test_cannot_delete_self(self, service, make_account):
        admin = make_account("admin@example.com", role="ADMIN")

        with pytest.raises(BadRequestError) as excinfo:
            service.admin_delete(admin.id, actor_id=admin.id)
        assert excinfo.value.message == "Cannot delete your own account"

    def test_deleted_account_cannot_be_found_by_email(self, service, make_account, account_store):
        root = make_account("root@example.com", role="SUPER_ADMIN")
        doc = make_account("doc@example.com")

        service.admin_delete(doc.id, actor_id=root.id)

        assert account_store.find_by_email("doc@example.com") is None
        with pytest.raises(NotFoundError):
            service.get(doc.id)

    def test_restore(self, service, make_account):
        root = make_account("root@example.com", role="SUPER_ADMIN")
        doc = make_account("doc@example.com")
        service.admin_delete(doc.id, actor_id=root.id)

        service.restore(doc.id)

        assert service.get(doc.id).email == "doc@example.com"

    def test_restore_active_account(self, service, make_account):
        doc = make_account("doc@example.com")

        with pytest.raises(BadRequestError) as excinfo:
            service.restore(doc.id)
        assert excinfo.value.message == "Account is not deleted"


class TestStatistics:
    def test_counts(self, service, make_account, account_store):
        root = make_account("root@example.com", role="SUPER_ADMIN")
        make_account("admin@example.com", role="ADMIN")
        make_account("doc1@example.com")
        old = make_account("doc2@example.com")
        old.created_at = utcnow() - timedelta(days=45)
        gone = make_account("doc3@example.com")
        service.admin_delete(gone.id, actor_id=root.id)

        stats = service.statistics()

        assert stats["total"] == 4
        assert stats["by_role"] == {"SUPER_ADMIN": 1, "ADMIN": 1, "DOCTOR": 2}
        assert stats["recently_created"] == 3
        assert stats["active"] == 4


class TestPersistence:
    def test_round_trip_through_data_root(self, tmp_path):
        store = MemoryAccountStore(data_root=str(tmp_path))
        created = store.create_account("persist@example.com", "Persisted", "hash", role="ADMIN")

        reloaded = MemoryAccountStore(data_root=str(tmp_path))

        account = reloaded.get_account(created.id)
        assert account is not None
        assert account.email == "persist@example.com"
        assert account.role == "ADMIN"
        assert account.created_at == created.created_at

    def test_state_file_is_json(self, tmp_path):
        store = MemoryAccountStore(data_root=str(tmp_path))
        store.create_account("file@example.com", "File", "hash")

        data = json.loads((tmp_path / MemoryAccountStore.STATE_FILE).read_text())
        assert data["accounts"][0]["email"] == "file@example.com"
