"""Renders credential emails from the Jinja2 templates in templates/emails/."""

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import PolicySettings
from services.outcome import IssuedCredential
from shared.datetime_utils import utcnow

_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)


@dataclass(frozen=True)
class ComposedEmail:
    subject: str
    html_body: str
    text_body: Optional[str] = None


class EmailComposer:
    def __init__(
        self,
        policy: PolicySettings,
        app_name: str = "LingUBible",
        app_url: str = "https://lingubible.com",
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._policy = policy
        self._app_name = app_name
        self._app_url = app_url.rstrip("/")
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def _render(self, name: str, subject: str, **context) -> ComposedEmail:
        context.update(
            title=subject,
            app_name=self._app_name,
            app_url=self._app_url,
            year=utcnow().year,
        )
        html_body = self._jinja.get_template(f"{name}.html").render(**context)
        text_body = self._jinja.get_template(f"{name}.txt").render(**context)
        return ComposedEmail(subject=subject, html_body=html_body, text_body=text_body)

    def reset_url(self, user_id: str, token: str) -> str:
        query = urlencode({"userId": user_id, "token": token})
        return f"{self._app_url}/reset-password?{query}"

    def verification_code(self, credential: IssuedCredential) -> ComposedEmail:
        return self._render(
            "verification_code",
            f"[{self._app_name}] Your verification code",
            code=credential.secret,
            ttl_minutes=self._policy.verification_code_ttl_minutes,
            max_attempts=self._policy.verification_max_attempts,
        )

    def password_reset(self, credential: IssuedCredential) -> ComposedEmail:
        return self._render(
            "password_reset",
            f"[{self._app_name}] Password Reset Request",
            reset_url=self.reset_url(credential.user_id or "", credential.secret),
            display_name=credential.display_name,
            ttl_minutes=self._policy.reset_token_ttl_minutes,
        )
