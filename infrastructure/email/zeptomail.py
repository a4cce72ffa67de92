"""ZeptoMail implementation of EmailGateway.

Sends pre-rendered bodies; templating lives in EmailComposer. Any delivery
problem is logged and reported as None so the caller can compensate.
"""

from typing import Optional

import httpx

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger, mask_email

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.com/v1.1/email"
_TOKEN_PREFIX = "Zoho-enczapikey "


class ZeptoMailGateway:
    def __init__(self, settings: EmailSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    def _auth_header(self) -> str:
        token = self._settings.zepto_api_token
        if not token.startswith(_TOKEN_PREFIX):
            token = f"{_TOKEN_PREFIX}{token}"
        return token

    async def send(
        self,
        to_address: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> Optional[str]:
        if not self._settings.zepto_api_token:
            log.error("email_send_failed", reason="token_not_configured")
            return None

        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": to_address, "name": to_address}}],
            "subject": subject,
            "htmlbody": html_body,
        }
        if text_body:
            payload["textbody"] = text_body

        headers = {
            "Authorization": self._auth_header(),
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        try:
            response = await self._http.post(_ZEPTO_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            log.error(
                "email_send_error",
                to_email=mask_email(to_address),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if response.status_code not in (200, 201, 202):
            log.error(
                "email_send_failed",
                to_email=mask_email(to_address),
                status_code=response.status_code,
                response=response.text[:200],
            )
            return None

        try:
            message_id = response.json().get("request_id")
        except ValueError:
            message_id = None
        message_id = message_id or "accepted"
        log.info("email_sent", to_email=mask_email(to_address), message_id=message_id)
        return message_id
