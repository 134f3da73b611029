# identity_server/api/policy.py
"""
Policy resolution: read one policy directive from one user type and validate its
arguments against the type's real fields.

Unresolvable configuration yields None plus an operator-facing warning; callers
must short-circuit before using any policy value.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from identity_server.api.schema_store import SchemaStore
from identity_server.api.utils.logger import write_log

EMAIL_CHANGE = "emailChange"
PASSWORD_AUTHENTICATOR = "passwordAuthenticator"


@dataclass(frozen=True)
class PolicyRule:
    # argument name -> required field kind (None: any kind)
    field_args: Mapping[str, Optional[str]]
    required_args: Tuple[str, ...] = ()


POLICY_RULES: Dict[str, PolicyRule] = {
    EMAIL_CHANGE: PolicyRule(field_args={"emailField": "email"}, required_args=("changeUrl",)),
    PASSWORD_AUTHENTICATOR: PolicyRule(field_args={"passwordField": None}),
}


@dataclass(frozen=True)
class PolicyConfig:
    directive: str
    user_type: str
    args: Mapping[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.args[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.args.get(key, default)


class PolicyResolver:
    def __init__(self, store: SchemaStore):
        self.store = store

    def _warn(self, event: str, **details):
        write_log(dict(event=event, **details), stream="security", level="warning")

    def resolve(self, type_name: str, directive_name: str) -> Optional[PolicyConfig]:
        user_type = self.store.get_user_type(type_name)
        if user_type is None:
            self._warn("policy_unknown_user_type", type=type_name, directive=directive_name)
            return None

        directive = user_type.get_directive(directive_name)
        if directive is None:
            self._warn("policy_not_configured", type=type_name, directive=directive_name)
            return None

        rule = POLICY_RULES.get(directive_name, PolicyRule(field_args={}))
        for arg in rule.required_args:
            if not directive.args.get(arg):
                self._warn("policy_missing_argument", type=type_name, directive=directive_name, argument=arg)
                return None

        for arg, expected_kind in rule.field_args.items():
            field_name = directive.args.get(arg)
            field_def = user_type.get_field(field_name)
            if field_def is None:
                self._warn("policy_missing_field", type=type_name, directive=directive_name, argument=arg, field=field_name)
                return None
            if expected_kind and field_def.type != expected_kind:
                self._warn(
                    "policy_field_wrong_type",
                    type=type_name,
                    directive=directive_name,
                    field=field_name,
                    expected=expected_kind,
                    actual=field_def.type,
                )
                return None

        return PolicyConfig(directive=directive_name, user_type=type_name, args=MappingProxyType(dict(directive.args)))
