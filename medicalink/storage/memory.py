from __future__ import annotations

import json
import os
import threading
import uuid
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from medicalink.logging import get_logger
from medicalink.storage.errors import ConstraintViolation
from medicalink.storage.models import StaffAccount, StaffRole, utcnow


class MemoryAccountStore:
    """In-process staff account store.

    Stands in for the relational account table. When ``data_root`` is given
    the accounts are written to ``staff_accounts.json`` after each mutation
    and loaded back on start, so the bootstrap script and the API process can
    share them.
    """

    STATE_FILE = "staff_accounts.json"

    def __init__(self, data_root: Optional[str] = None) -> None:
        self.logger = get_logger(__name__)
        self.accounts: Dict[str, StaffAccount] = {}
        self._data_lock = threading.RLock()
        self.data_root = Path(data_root) if data_root else None
        if self.data_root:
            self._load_state()

    @staticmethod
    def _normalize_email(email: str) -> str:
        return email.strip().lower()

    def create_account(
        self,
        email: str,
        full_name: str,
        password_hash: str,
        *,
        role: str = StaffRole.DOCTOR.value,
    ) -> StaffAccount:
        normalized = self._normalize_email(email)
        with self._data_lock:
            if any(acct.email == normalized for acct in self.accounts.values()):
                raise ConstraintViolation("Email already exists", {"field": "email"})
            account = StaffAccount(
                id=str(uuid.uuid4()),
                email=normalized,
                full_name=full_name,
                password_hash=password_hash,
                role=StaffRole(role).value,
            )
            self.accounts[account.id] = account
            self._persist_state()
            return account

    def find_by_email(self, email: str) -> Optional[StaffAccount]:
        """Active account lookup used for credential checks."""
        normalized = self._normalize_email(email)
        with self._data_lock:
            return next(
                (
                    acct
                    for acct in self.accounts.values()
                    if acct.email == normalized and acct.is_active
                ),
                None,
            )

    def get_account(self, account_id: str, *, include_deleted: bool = False) -> Optional[StaffAccount]:
        with self._data_lock:
            account = self.accounts.get(account_id)
            if account and (include_deleted or account.is_active):
                return account
            return None

    def list_accounts(self, *, deleted: bool = False, limit: int = 100) -> List[StaffAccount]:
        with self._data_lock:
            results = [acct for acct in self.accounts.values() if acct.is_active != deleted]
            return sorted(results, key=lambda acct: acct.created_at, reverse=True)[:limit]

    def update_password(self, account_id: str, password_hash: str) -> Optional[StaffAccount]:
        with self._data_lock:
            account = self.accounts.get(account_id)
            if not account:
                return None
            account.password_hash = password_hash
            account.updated_at = utcnow()
            self._persist_state()
            return account

    def set_deleted(self, account_id: str, deleted: bool) -> Optional[StaffAccount]:
        with self._data_lock:
            account = self.accounts.get(account_id)
            if not account:
                return None
            account.deleted_at = utcnow() if deleted else None
            account.updated_at = utcnow()
            self._persist_state()
            return account

    def count_by_role(self) -> Dict[str, int]:
        with self._data_lock:
            counts = Counter(acct.role for acct in self.accounts.values() if acct.is_active)
        return {role.value: counts.get(role.value, 0) for role in StaffRole}

    def count(self, *, include_deleted: bool = False) -> int:
        with self._data_lock:
            return sum(1 for acct in self.accounts.values() if include_deleted or acct.is_active)

    def _state_path(self) -> Path:
        assert self.data_root is not None
        return self.data_root / self.STATE_FILE

    @staticmethod
    def _serialize_account(account: StaffAccount) -> dict:
        return {
            "id": account.id,
            "email": account.email,
            "full_name": account.full_name,
            "password_hash": account.password_hash,
            "role": account.role,
            "created_at": account.created_at.isoformat(),
            "updated_at": account.updated_at.isoformat(),
            "deleted_at": account.deleted_at.isoformat() if account.deleted_at else None,
        }

    @staticmethod
    def _deserialize_account(data: dict) -> StaffAccount:
        deleted_raw = data.get("deleted_at")
        return StaffAccount(
            id=data["id"],
            email=data["email"],
            full_name=data.get("full_name", ""),
            password_hash=data["password_hash"],
            role=data.get("role", StaffRole.DOCTOR.value),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            deleted_at=datetime.fromisoformat(deleted_raw) if deleted_raw else None,
        )

    def _persist_state(self) -> None:
        if not self.data_root:
            return
        state = {"accounts": [self._serialize_account(a) for a in self.accounts.values()]}
        self.data_root.mkdir(parents=True, exist_ok=True)
        path = self._state_path()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(state))
        os.replace(tmp_path, path)

    def _load_state(self) -> bool:
        path = self._state_path()
        # Read directly instead of exists() to avoid a TOCTOU race
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return False
        except json.JSONDecodeError as exc:
            self.logger.error("account_state_corrupt", path=str(path), error=str(exc))
            raise
        self.accounts = {
            entry["id"]: self._deserialize_account(entry) for entry in data.get("accounts", [])
        }
        self.logger.info("account_state_loaded", accounts=len(self.accounts))
        return True
