from __future__ import annotations

from datetime import timedelta
from typing import Dict, List

from medicalink.logging import fingerprint, get_logger
from medicalink.service.errors import BadRequestError, ConflictError, NotFoundError
from medicalink.service.passwords import hash_password, verify_password
from medicalink.storage.errors import ConstraintViolation
from medicalink.storage.memory import MemoryAccountStore
from medicalink.storage.models import StaffAccount, StaffProfile, StaffRole, utcnow

RESET_REQUESTED_MESSAGE = "If the email exists, a password reset link has been sent"
RECENT_WINDOW = timedelta(days=30)


class StaffAccountService:
    """Staff account management around the account store.

    Password hashes never leave this class; callers get ``StaffProfile``.
    """

    def __init__(self, store: MemoryAccountStore) -> None:
        self.store = store
        self.logger = get_logger(__name__)

    def _require(self, account_id: str) -> StaffAccount:
        account = self.store.get_account(account_id)
        if not account:
            raise NotFoundError(f"Staff account with id {account_id} not found")
        return account

    @staticmethod
    def _check_confirmation(new_password: str, confirm_password: str) -> None:
        if new_password != confirm_password:
            raise BadRequestError("New password and confirm password do not match")

    def create(self, email: str, full_name: str, password: str, role: str) -> StaffProfile:
        try:
            account = self.store.create_account(
                email, full_name, hash_password(password), role=role
            )
        except ConstraintViolation as exc:
            raise ConflictError(exc.message, detail=exc.detail) from exc
        self.logger.info("staff_account_created", user_id=account.id, role=account.role)
        return account.profile()

    def get(self, account_id: str) -> StaffProfile:
        return self._require(account_id).profile()

    def list_accounts(self, *, deleted: bool = False, limit: int = 100) -> List[StaffProfile]:
        return [acct.profile() for acct in self.store.list_accounts(deleted=deleted, limit=limit)]

    def change_password(
        self,
        account_id: str,
        old_password: str,
        new_password: str,
        confirm_password: str,
    ) -> None:
        self._check_confirmation(new_password, confirm_password)
        account = self._require(account_id)
        if not verify_password(old_password, account.password_hash):
            raise BadRequestError("Old password is incorrect")
        self.store.update_password(account.id, hash_password(new_password))
        self.logger.info("password_changed", user_id=account.id)

    def request_password_reset(self, email: str) -> str:
        """Start a reset; the reply is identical whether or not the email exists."""
        account = self.store.find_by_email(email)
        if account:
            # Delivery is not wired up; record the request only
            self.logger.info(
                "password_reset_requested",
                user_id=account.id,
                email_hash=fingerprint(account.email),
            )
        return RESET_REQUESTED_MESSAGE

    def admin_reset_password(
        self, account_id: str, new_password: str, confirm_password: str
    ) -> None:
        self._check_confirmation(new_password, confirm_password)
        account = self._require(account_id)
        self.store.update_password(account.id, hash_password(new_password))
        self.logger.info("password_reset_by_admin", user_id=account.id)

    def admin_delete(self, account_id: str, actor_id: str) -> None:
        account = self._require(account_id)
        if account.role == StaffRole.SUPER_ADMIN.value:
            raise BadRequestError("Cannot delete Super Admin accounts")
        if account.id == actor_id:
            raise BadRequestError("Cannot delete your own account")
        self.store.set_deleted(account.id, True)
        self.logger.info("staff_account_deleted", user_id=account.id, actor_id=actor_id)

    def restore(self, account_id: str) -> None:
        account = self.store.get_account(account_id, include_deleted=True)
        if not account:
            raise NotFoundError(f"Staff account with id {account_id} not found")
        if account.is_active:
            raise BadRequestError("Account is not deleted")
        self.store.set_deleted(account.id, False)
        self.logger.info("staff_account_restored", user_id=account.id)

    def statistics(self) -> Dict[str, object]:
        total = self.store.count()
        cutoff = utcnow() - RECENT_WINDOW
        recent = sum(
            1 for acct in self.store.list_accounts(limit=total) if acct.created_at >= cutoff
        )
        return {
            "total": total,
            "by_role": self.store.count_by_role(),
            "recently_created": recent,
            "active": total,
        }

