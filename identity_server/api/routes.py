from ariadne import QueryType, MutationType

from identity_server.api.auth.token import TokenFailure
from identity_server.api.permissions import caller_payload, log_mutation, workflow_response
from identity_server.api.utils.logger import write_log

ACCESS_NAMESPACE = "access"

query = QueryType()
mutation = MutationType()


def _services(info):
    return info.context["services"]


def current_user(info):
    """Authenticated user behind the bearer token in the context, or None."""
    if "user" in info.context:
        return info.context["user"]
    services = _services(info)
    token = info.context.get("token")
    user = None
    if token:
        subject = services.codec.subject_of(token)
        claims = services.codec.verify(token, subject, ACCESS_NAMESPACE) if subject else TokenFailure.INVALID
        if isinstance(claims, TokenFailure):
            write_log({"event": "access_token_rejected", "reason": claims.value}, stream="security", level="warning")
        else:
            user = services.repository.load_current(subject)
    info.context["user"] = user
    return user


@query.field("ping")
def resolve_ping(_, info):
    return "pong"


@query.field("me")
def resolve_me(_, info):
    user = current_user(info)
    if user is None:
        return None
    return {"id": user.id, "type": user.type, "username": user.username}


@mutation.field("login")
def resolve_login(_, info, type, username, password):
    services = _services(info)
    username = username.strip()

    write_log({"event": "login_attempt", "type": type, "username": username}, stream="security")

    valid = services.credentials.verify(type, username, password)
    if valid is None:
        log_mutation({}, "login", "denied", "method not available for type")
        return None
    if not valid:
        log_mutation({}, "login", "denied", "invalid credentials")
        return None

    user = services.repository.load(type, username)
    ttl = services.settings["ACCESS_TTL"]
    access_token = services.codec.issue(user.identity, ttl, {"username": user.username}, namespace=ACCESS_NAMESPACE)
    log_mutation(caller_payload(user), "login", "success")
    return {"accessToken": access_token, "tokenType": "bearer", "expiresIn": ttl}


@mutation.field("emailChangeRequest")
def resolve_email_change_request(_, info, email):
    user = current_user(info)
    result = _services(info).email_change.request(user, {"email": email})
    log_mutation(caller_payload(user), "emailChangeRequest", "success" if result.ok else "denied", result.outcome.value)
    return workflow_response(result)


@mutation.field("emailChangeConfirm")
def resolve_email_change_confirm(_, info, token):
    user = current_user(info)
    result = _services(info).email_change.confirm(user, {"token": token})
    log_mutation(caller_payload(user), "emailChangeConfirm", "success" if result.ok else "denied", result.outcome.value)
    return workflow_response(result)
