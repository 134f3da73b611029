# identity_server/api/services.py
"""
Wiring of the identity core: one Services instance per process, built at startup
from settings and handed to resolvers through the GraphQL context.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping

from identity_server.api.auth.credentials import CredentialVerifier
from identity_server.api.auth.token import TokenCodec
from identity_server.api.auth.user import JsonUserRepository
from identity_server.api.mailer import EmailChangeMailer
from identity_server.api.policy import PolicyResolver
from identity_server.api.schema_store import SchemaStore
from identity_server.api.utils.keys import build_key_manager
from identity_server.api.utils.locks import UserLocks
from identity_server.api.validation import FieldValidator
from identity_server.api.workflows import ConfirmationWorkflow, email_change_descriptor


@dataclass
class Services:
    settings: Mapping[str, Any]
    store: SchemaStore
    repository: JsonUserRepository
    codec: TokenCodec
    resolver: PolicyResolver
    validator: FieldValidator
    mailer: EmailChangeMailer
    credentials: CredentialVerifier
    email_change: ConfirmationWorkflow


def build_services(settings: Mapping[str, Any]) -> Services:
    store = SchemaStore.from_file(settings["DOMAIN_SCHEMA_PATH"])
    locks = UserLocks(
        redis_url=settings.get("REDIS_URL") or "",
        ttl=settings["USER_LOCK_TTL"],
        timeout=settings["USER_LOCK_TIMEOUT"],
    )
    repository = JsonUserRepository(settings["USERS_PATH"], locks=locks)
    codec = TokenCodec(build_key_manager(settings), algorithm=settings.get("JWT_ALG", "HS256"))
    resolver = PolicyResolver(store)
    validator = FieldValidator(store, repository)
    mailer = EmailChangeMailer(settings)
    return Services(
        settings=settings,
        store=store,
        repository=repository,
        codec=codec,
        resolver=resolver,
        validator=validator,
        mailer=mailer,
        credentials=CredentialVerifier(resolver, repository, rounds=settings["BCRYPT_ROUNDS"]),
        email_change=ConfirmationWorkflow(
            email_change_descriptor(settings["EMAIL_CHANGE_TTL"]),
            resolver,
            repository,
            codec,
            validator,
            mailer,
        ),
    )
