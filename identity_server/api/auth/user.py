# identity_server/api/auth/user.py
"""
User records and the JSON-file user repository.

A user is a key/value field store plus one token slot per namespace. The repository
hands out copies read from disk on every call; changes become visible to other callers
(and other worker processes) only through persist().
Read-check-write sequences must run inside lock(user).
"""
from __future__ import annotations
import copy
import json
import os
import threading
from enum import Enum
from typing import Any, Dict, List, Optional

from identity_server.api.utils.locks import UserLocks
from identity_server.api.utils.logger import write_log

# serializes whole-file rewrites across workers; never a user id
STORE_LOCK_ID = "store:users"


class ChangeKind(Enum):
    CREATE = "create"
    UPDATE = "update"


class User:
    def __init__(self, id: str, type: str, username: str, fields: Optional[Dict[str, Any]] = None, tokens: Optional[Dict[str, str]] = None):
        self.id = str(id)
        self.type = type
        self.username = username
        self.fields = dict(fields or {})
        self.tokens = dict(tokens or {})

    @property
    def identity(self) -> str:
        return f"{self.type}/{self.id}"

    def get_field(self, name: str) -> Any:
        return self.fields.get(name)

    def set_field(self, name: str, value: Any):
        self.fields[name] = value

    def get_token(self, namespace: str) -> Optional[str]:
        return self.tokens.get(namespace)

    def set_token(self, namespace: str, value: Optional[str]):
        if value is None:
            self.tokens.pop(namespace, None)
        else:
            self.tokens[namespace] = value

    def to_record(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "username": self.username,
            "fields": copy.deepcopy(self.fields),
            "tokens": dict(self.tokens),
        }

    @classmethod
    def from_record(cls, user_id: str, record: Dict[str, Any]) -> "User":
        return cls(
            id=user_id,
            type=record["type"],
            username=record["username"],
            fields=copy.deepcopy(record.get("fields") or {}),
            tokens=record.get("tokens") or {},
        )

    def __repr__(self):
        return f"<User {self.identity} {self.username!r}>"


class JsonUserRepository:
    def __init__(self, path: str, locks: Optional[UserLocks] = None):
        self.path = path
        self.locks = locks or UserLocks()
        self._io_lock = threading.RLock()
        self._read()

    def _read(self) -> Dict[str, Dict[str, Any]]:
        # always from disk: other workers write the same file
        if not os.path.exists(self.path):
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"user store {self.path} must contain a JSON object")
        return data

    def _write(self, records: Dict[str, Dict[str, Any]]):
        tmp_path = f"{self.path}.{os.getpid()}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, user_id: str) -> Optional[User]:
        with self._io_lock:
            record = self._read().get(str(user_id))
        return User.from_record(str(user_id), record) if record else None

    def load(self, type_name: str, username: str) -> Optional[User]:
        with self._io_lock:
            records = self._read()
        for user_id, record in records.items():
            if record.get("type") == type_name and record.get("username") == username:
                return User.from_record(user_id, record)
        return None

    def load_current(self, identity: Optional[str]) -> Optional[User]:
        """Resolve an authenticated identity ("<Type>/<id>") to its user."""
        if not identity or "/" not in identity:
            return None
        type_name, user_id = identity.split("/", 1)
        user = self.get(user_id)
        if user is None or user.type != type_name:
            return None
        return user

    def refresh(self, user: User) -> User:
        fresh = self.get(user.id)
        if fresh is None:
            raise LookupError(f"user {user.identity} no longer exists")
        return fresh

    def find_by_field(self, type_name: str, field: str, value: Any) -> List[User]:
        with self._io_lock:
            records = self._read()
        return [
            User.from_record(user_id, record)
            for user_id, record in records.items()
            if record.get("type") == type_name and (record.get("fields") or {}).get(field) == value
        ]

    def persist(self, user: User, change_kind: ChangeKind = ChangeKind.UPDATE):
        """Write one user's record into the current file contents; other records are left as found."""
        with self._io_lock, self.locks.hold(STORE_LOCK_ID):
            records = self._read()
            exists = user.id in records
            if change_kind is ChangeKind.CREATE and exists:
                raise ValueError(f"user {user.identity} already exists")
            if change_kind is ChangeKind.UPDATE and not exists:
                raise LookupError(f"user {user.identity} does not exist")
            records[user.id] = user.to_record()
            self._write(records)
        write_log({"event": "user_persisted", "user": user.identity, "change": change_kind.value}, stream="system")

    def lock(self, user: User):
        return self.locks.hold(user.id)
