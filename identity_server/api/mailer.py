# identity_server/api/mailer.py
"""
Out-of-band delivery of email-change confirmation links.

send() returns the number of recipients the message was delivered to; 0 means the
workflow must report a delivery failure. Delivery is a single attempt.
"""
from __future__ import annotations
import os
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Mapping
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from identity_server.api.utils.logger import write_log, token_fingerprint

TOKEN_PLACEHOLDER = "{token}"
SMTP_TIMEOUT = 10

_templates = Environment(
    loader=FileSystemLoader(os.path.join(os.path.dirname(__file__), "templates")),
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


def build_confirm_url(change_url: str, token: str) -> str:
    quoted = quote(token, safe="")
    if TOKEN_PLACEHOLDER in change_url:
        return change_url.replace(TOKEN_PLACEHOLDER, quoted)
    separator = "&" if "?" in change_url else "?"
    return f"{change_url}{separator}token={quoted}"


class EmailChangeMailer:
    template_name = "email_change.txt"
    subject = "Confirm your new email address"

    def __init__(self, settings: Mapping[str, Any]):
        self.backend = settings.get("MAIL_BACKEND", "memory")
        self.sender = settings.get("MAIL_FROM", "no-reply@localhost")
        self.smtp_host = settings.get("SMTP_HOST", "localhost")
        self.smtp_port = int(settings.get("SMTP_PORT", 25))
        self.outbox: List[Dict[str, str]] = []
        if self.backend not in ("smtp", "memory"):
            raise ValueError(f"unknown MAIL_BACKEND '{self.backend}'")

    def render(self, change_url: str, token: str, new_email: str) -> EmailMessage:
        body = _templates.get_template(self.template_name).render(
            confirm_url=build_confirm_url(change_url, token),
            email=new_email,
        )
        message = EmailMessage()
        message["Subject"] = self.subject
        message["From"] = self.sender
        message["To"] = new_email
        message.set_content(body)
        return message

    def send(self, change_url: str, token: str, new_email: str) -> int:
        message = self.render(change_url, token, new_email)

        if self.backend == "memory":
            self.outbox.append({"to": new_email, "subject": self.subject, "body": message.get_content()})
            write_log({"event": "mail_queued", "backend": "memory", "to": new_email, "token": token_fingerprint(token)}, stream="mail")
            return 1

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=SMTP_TIMEOUT) as smtp:
                refused = smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            write_log({"event": "mail_send_failed", "to": new_email, "error": str(e)}, stream="mail", level="error")
            return 0

        delivered = 1 - len(refused)
        write_log({"event": "mail_sent", "backend": "smtp", "to": new_email, "delivered": delivered, "token": token_fingerprint(token)}, stream="mail")
        return delivered
