# identity_server/api/validation.py
"""
Single-field validation against the constraints declared in the domain schema.
"""
from __future__ import annotations
import re
from typing import Any, List

from identity_server.api.auth.user import JsonUserRepository, User
from identity_server.api.schema_store import SchemaStore

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class FieldValidationError(Exception):
    def __init__(self, violations: List[str]):
        super().__init__("; ".join(violations))
        self.violations = list(violations)


class FieldValidator:
    def __init__(self, store: SchemaStore, repository: JsonUserRepository):
        self.store = store
        self.repository = repository

    def violations(self, user: User, field: str, value: Any) -> List[str]:
        user_type = self.store.get_user_type(user.type)
        field_def = user_type.get_field(field) if user_type else None
        if field_def is None:
            return ["unknown_field"]

        constraints = field_def.constraints
        if value is None or value == "":
            return ["required"] if constraints.get("required") else []

        errors = []
        if field_def.type in ("email", "text", "password") and not isinstance(value, str):
            errors.append("invalid_type")
            return errors
        if field_def.type == "email" and not EMAIL_PATTERN.match(value):
            errors.append("invalid_email")
        max_length = constraints.get("maxLength")
        if max_length is not None and len(value) > int(max_length):
            errors.append("too_long")
        if constraints.get("unique"):
            others = [u for u in self.repository.find_by_field(user.type, field, value) if u.id != user.id]
            if others:
                errors.append("not_unique")
        return errors

    def validate(self, user: User, field: str, value: Any, persist_immediately: bool = False):
        """
        Raise FieldValidationError if value is not acceptable for user's field.
        With persist_immediately the value is assigned on the user; storing it is
        still up to the caller's persist().
        """
        errors = self.violations(user, field, value)
        if errors:
            raise FieldValidationError(errors)
        if persist_immediately:
            user.set_field(field, value)
