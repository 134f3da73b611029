# identity_server/api/workflows/confirmation.py
"""
Two-phase (request -> confirm) token workflow shared by every account-change flow.

A WorkflowDescriptor selects the policy directive, the token namespace on the user,
the token lifetime and the payload shape. Expected conditions come back as an
Outcome; only infrastructure faults (storage, locking, signing keys) raise.

Invariants:
- at most one live token per (user, namespace); request() refuses while one exists
- the stored token is cleared in the same persist() that applies the change
- both check-then-act sections run under the repository's per-user lock
"""
from __future__ import annotations
import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from identity_server.api.auth.token import TokenCodec, TokenFailure
from identity_server.api.auth.user import ChangeKind, JsonUserRepository, User
from identity_server.api.policy import PolicyConfig, PolicyResolver
from identity_server.api.utils.logger import write_log
from identity_server.api.validation import FieldValidationError, FieldValidator


class Outcome(Enum):
    ACCEPTED = "ACCEPTED"
    CONFIRMED = "CONFIRMED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    NO_OP = "NO_OP"
    ALREADY_PENDING = "ALREADY_PENDING"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    NO_PENDING_TOKEN = "NO_PENDING_TOKEN"

    @property
    def ok(self) -> bool:
        return self in (Outcome.ACCEPTED, Outcome.CONFIRMED)


TOKEN_OUTCOMES = {
    TokenFailure.INVALID: Outcome.TOKEN_INVALID,
    TokenFailure.EXPIRED: Outcome.TOKEN_EXPIRED,
}


@dataclass(frozen=True)
class WorkflowResult:
    outcome: Outcome
    violations: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.outcome.ok


class NotificationSender(Protocol):
    def send(self, target: str, token: str, value: Any) -> int: ...


@dataclass(frozen=True)
class WorkflowDescriptor:
    kind: str
    directive: str
    token_namespace: str
    ttl: int
    # policy argument naming the user field that receives the confirmed value
    field_arg: str
    # key of the pending value in request args and in the token payload
    value_key: str
    # policy argument handed to the notification sender as delivery target
    target_arg: str

    def payload_from_args(self, args: Mapping[str, Any]) -> Dict[str, Any]:
        return {self.value_key: args.get(self.value_key)}


def _sync(caller: User, user: User):
    # keep the caller's copy in step with what was persisted
    caller.fields = dict(user.fields)
    caller.tokens = dict(user.tokens)


class ConfirmationWorkflow:
    def __init__(
        self,
        descriptor: WorkflowDescriptor,
        resolver: PolicyResolver,
        repository: JsonUserRepository,
        codec: TokenCodec,
        validator: FieldValidator,
        sender: NotificationSender,
    ):
        self.descriptor = descriptor
        self.resolver = resolver
        self.repository = repository
        self.codec = codec
        self.validator = validator
        self.sender = sender

    def _log(self, event: str, level: str = "info", **details):
        write_log(dict(event=event, workflow=self.descriptor.kind, **details), stream="workflow", level=level)

    def _preconditions(self, caller: Optional[User], phase: str) -> Tuple[Optional[PolicyConfig], Optional[WorkflowResult]]:
        if caller is None or not isinstance(caller, User):
            self._log(f"{phase}_anonymous", level="warning")
            return None, WorkflowResult(Outcome.UNAUTHENTICATED)
        config = self.resolver.resolve(caller.type, self.descriptor.directive)
        if config is None:
            return None, WorkflowResult(Outcome.NOT_CONFIGURED)
        return config, None

    def _has_live_token(self, user: User) -> bool:
        return self.codec.is_live(user.get_token(self.descriptor.token_namespace), user.identity, self.descriptor.token_namespace)

    def request(self, caller: Optional[User], args: Mapping[str, Any]) -> WorkflowResult:
        d = self.descriptor
        config, failure = self._preconditions(caller, "request")
        if failure:
            return failure
        field_name = config[d.field_arg]
        payload = d.payload_from_args(args)
        new_value = payload[d.value_key]

        with self.repository.lock(caller):
            user = self.repository.refresh(caller)

            if new_value == user.get_field(field_name):
                self._log("request_no_op", level="warning", user=user.identity)
                return WorkflowResult(Outcome.NO_OP)

            if self._has_live_token(user):
                self._log("request_already_pending", level="warning", user=user.identity)
                return WorkflowResult(Outcome.ALREADY_PENDING)

            try:
                self.validator.validate(user, field_name, new_value, persist_immediately=False)
            except FieldValidationError as e:
                self._log("request_validation_failed", level="warning", user=user.identity, violations=e.violations)
                return WorkflowResult(Outcome.VALIDATION_FAILED, tuple(e.violations))

            token = self.codec.issue(user.identity, d.ttl, payload, namespace=d.token_namespace)
            user.set_token(d.token_namespace, token)
            self.repository.persist(user, ChangeKind.UPDATE)
        _sync(caller, user)

        if self.sender.send(config[d.target_arg], token, new_value) <= 0:
            # the persisted token stays live and confirmable
            self._log("request_delivery_failed", level="error", user=user.identity)
            return WorkflowResult(Outcome.DELIVERY_FAILED)

        self._log("request_accepted", user=user.identity)
        return WorkflowResult(Outcome.ACCEPTED)

    def confirm(self, caller: Optional[User], args: Mapping[str, Any]) -> WorkflowResult:
        d = self.descriptor
        config, failure = self._preconditions(caller, "confirm")
        if failure:
            return failure
        field_name = config[d.field_arg]
        presented = args.get("token") or ""

        with self.repository.lock(caller):
            user = self.repository.refresh(caller)
            stored = user.get_token(d.token_namespace)

            if self.codec.subject_of(presented) != user.identity:
                self._log("confirm_foreign_token", level="warning", user=user.identity)
                return WorkflowResult(Outcome.TOKEN_INVALID)

            if not stored:
                self._log("confirm_no_pending_token", level="warning", user=user.identity)
                return WorkflowResult(Outcome.NO_PENDING_TOKEN)

            if not hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8")):
                self._log("confirm_token_mismatch", level="warning", user=user.identity)
                return WorkflowResult(Outcome.TOKEN_INVALID)

            payload = self.codec.verify(stored, user.identity, d.token_namespace)
            if isinstance(payload, TokenFailure):
                outcome = TOKEN_OUTCOMES[payload]
                self._log("confirm_token_rejected", level="warning", user=user.identity, outcome=outcome.value)
                return WorkflowResult(outcome)

            try:
                self.validator.validate(user, field_name, payload.get(d.value_key), persist_immediately=True)
            except FieldValidationError as e:
                self._log("confirm_validation_failed", level="warning", user=user.identity, violations=e.violations)
                return WorkflowResult(Outcome.VALIDATION_FAILED, tuple(e.violations))

            user.set_token(d.token_namespace, None)
            self.repository.persist(user, ChangeKind.UPDATE)

        _sync(caller, user)
        self._log("confirm_succeeded", user=user.identity)
        return WorkflowResult(Outcome.CONFIRMED)
