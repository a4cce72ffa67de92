"""Google reCAPTCHA v3 implementation of CaptchaVerifier.

A token must pass siteverify and score at least ``min_score``. In dev mode a
missing token, secret or score is waved through so local environments work
without Google keys.
"""

from typing import Optional

import httpx

from infrastructure.captcha.protocol import CaptchaResult
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class RecaptchaVerifier:
    def __init__(
        self,
        secret: str,
        http_client: HttpClient,
        min_score: float = 0.5,
        dev_mode: bool = False,
    ) -> None:
        self._secret = secret
        self._http = http_client
        self._min_score = min_score
        self._dev_mode = dev_mode

    async def verify(
        self, response_token: Optional[str], client_ip: Optional[str]
    ) -> CaptchaResult:
        if not response_token or not self._secret:
            if self._dev_mode:
                log.info(
                    "recaptcha_bypassed_dev_mode",
                    reason="missing_token" if not response_token else "missing_secret",
                )
                return CaptchaResult(success=True, score=1.0)
            if not self._secret:
                log.error("recaptcha_secret_not_configured")
                return CaptchaResult(
                    success=False, error_codes=["missing-input-secret"], unavailable=True
                )
            return CaptchaResult(success=False, error_codes=["missing-input-response"])

        try:
            response = await self._http.post(
                _RECAPTCHA_VERIFY_URL,
                data={
                    "secret": self._secret,
                    "response": response_token,
                    "remoteip": client_ip or "",
                },
            )
        except httpx.HTTPError as e:
            log.error(
                "recaptcha_request_failed", error=str(e), error_type=type(e).__name__
            )
            return CaptchaResult(success=False, unavailable=True)

        if response.status_code != 200:
            log.error(
                "recaptcha_api_error",
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            return CaptchaResult(success=False, unavailable=True)

        data = response.json()
        score = data.get("score")
        error_codes = data.get("error-codes", [])
        if not data.get("success", False):
            log.warning("recaptcha_verification_failed", error_codes=error_codes)
            return CaptchaResult(success=False, score=score, error_codes=error_codes)

        if score is None:
            if self._dev_mode:
                log.info("recaptcha_bypassed_dev_mode", reason="missing_score")
                return CaptchaResult(success=True, score=None)
            log.warning("recaptcha_score_missing")
            return CaptchaResult(success=False, error_codes=["missing-score"])

        if score < self._min_score:
            log.warning("recaptcha_score_too_low", score=score, min_score=self._min_score)
            return CaptchaResult(
                success=False, score=score, error_codes=["score-too-low"]
            )

        return CaptchaResult(success=True, score=score)
