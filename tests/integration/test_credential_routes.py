"""Integration tests for the credential endpoints.

The DispatchOrchestrator is an AsyncMock injected via lifespan; these tests
cover request parsing, Outcome-to-HTTP translation and the JSON error shape.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from errors import register_error_handlers
from routes.credential_routes import router as credential_router
from services.dispatch import IssueContext
from services.outcome import ErrorKind, Outcome


def _build_test_app(orchestrator) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.orchestrator = orchestrator
        yield

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(credential_router)
    return app


@pytest.fixture
def orchestrator():
    mock = AsyncMock()
    for name in (
        "issue_verification_code",
        "validate_verification_code",
        "issue_reset_token",
        "validate_reset_token",
        "consume_reset_token",
        "check_username",
    ):
        getattr(mock, name).return_value = Outcome.success()
    mock.create_verified_account.return_value = Outcome.success("64b000000000000000000001")
    return mock


@pytest.fixture
def client(orchestrator):
    with TestClient(_build_test_app(orchestrator)) as c:
        yield c


# ── /verification/* ───────────────────────────────────────────────────────────


class TestSendVerificationCode:
    def test_success(self, client, orchestrator):
        resp = client.post(
            "/verification/send",
            json={"email": "student@ln.edu.hk", "recaptchaToken": "tok"},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "ua"},
        )

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        orchestrator.issue_verification_code.assert_awaited_once_with(
            IssueContext(
                email="student@ln.edu.hk",
                ip_address="203.0.113.7",
                user_agent="ua",
                captcha_token="tok",
            )
        )

    def test_missing_email_is_validation_error(self, client, orchestrator):
        resp = client.post("/verification/send", json={})

        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "validation_error"
        assert "email" in body["details"]["fields"]
        orchestrator.issue_verification_code.assert_not_awaited()

    def test_rate_limited_sets_retry_after(self, client, orchestrator):
        orchestrator.issue_verification_code.return_value = Outcome.failure(
            ErrorKind.RATE_LIMITED, retry_after_seconds=120
        )

        resp = client.post("/verification/send", json={"email": "student@ln.edu.hk"})

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "120"
        assert resp.json()["code"] == "rate_limit_exceeded"

    def test_already_pending(self, client, orchestrator):
        orchestrator.issue_verification_code.return_value = Outcome.failure(
            ErrorKind.ALREADY_PENDING, remaining_minutes=9
        )

        resp = client.post("/verification/send", json={"email": "student@ln.edu.hk"})

        assert resp.status_code == 409
        assert resp.json()["details"] == {"remaining_minutes": 9}

    def test_policy_rejected(self, client, orchestrator):
        orchestrator.issue_verification_code.return_value = Outcome.failure(
            ErrorKind.POLICY_REJECTED
        )
        resp = client.post("/verification/send", json={"email": "x@gmail.com"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "policy_rejected"

    def test_email_failure_hides_details(self, client, orchestrator):
        orchestrator.issue_verification_code.return_value = Outcome.failure(
            ErrorKind.EMAIL_FAILED, reason="zepto 500"
        )

        resp = client.post("/verification/send", json={"email": "student@ln.edu.hk"})

        assert resp.status_code == 502
        assert "details" not in resp.json()


class TestVerifyCode:
    def test_success(self, client, orchestrator):
        resp = client.post(
            "/verification/verify", json={"email": "student@ln.edu.hk", "code": "123456"}
        )
        assert resp.status_code == 200
        orchestrator.validate_verification_code.assert_awaited_once_with(
            "student@ln.edu.hk", "123456"
        )

    @pytest.mark.parametrize(
        "kind,status,code",
        [
            (ErrorKind.MISMATCH, 400, "mismatch"),
            (ErrorKind.EXPIRED, 410, "expired"),
            (ErrorKind.ATTEMPTS_EXHAUSTED, 429, "attempts_exhausted"),
            (ErrorKind.NOT_FOUND, 404, "not_found"),
        ],
    )
    def test_failures_keep_their_kind(self, client, orchestrator, kind, status, code):
        orchestrator.validate_verification_code.return_value = Outcome.failure(kind)

        resp = client.post(
            "/verification/verify", json={"email": "student@ln.edu.hk", "code": "000000"}
        )

        assert resp.status_code == status
        assert resp.json()["code"] == code

    def test_mismatch_reports_remaining_attempts(self, client, orchestrator):
        orchestrator.validate_verification_code.return_value = Outcome.failure(
            ErrorKind.MISMATCH, remaining_attempts=2
        )

        resp = client.post(
            "/verification/verify", json={"email": "student@ln.edu.hk", "code": "000000"}
        )

        assert resp.json()["details"] == {"remaining_attempts": 2}


class TestCreateVerifiedAccount:
    def test_success(self, client, orchestrator):
        resp = client.post(
            "/verification/create-account",
            json={
                "email": "student@ln.edu.hk",
                "password": "passw0rd1",
                "displayName": "Ada",
            },
        )

        assert resp.status_code == 200
        assert resp.json()["user_id"] == "64b000000000000000000001"
        orchestrator.create_verified_account.assert_awaited_once_with(
            "student@ln.edu.hk",
            "passw0rd1",
            "Ada",
            captcha_token=None,
            ip_address="testclient",
        )

    def test_unverified_email(self, client, orchestrator):
        orchestrator.create_verified_account.return_value = Outcome.failure(
            ErrorKind.NOT_FOUND
        )

        resp = client.post(
            "/verification/create-account",
            json={
                "email": "student@ln.edu.hk",
                "password": "passw0rd1",
                "displayName": "Ada",
            },
        )

        assert resp.status_code == 403
        assert resp.json()["code"] == "email_not_verified"

    def test_weak_password(self, client, orchestrator):
        orchestrator.create_verified_account.return_value = Outcome.failure(
            ErrorKind.POLICY_REJECTED, requirements=["digit"]
        )

        resp = client.post(
            "/verification/create-account",
            json={"email": "student@ln.edu.hk", "password": "weak", "displayName": "Ada"},
        )

        body = resp.json()
        assert resp.status_code == 400
        assert body["field"] == "password"
        assert body["details"] == {"requirements": ["digit"]}

    def test_conflict(self, client, orchestrator):
        orchestrator.create_verified_account.return_value = Outcome.failure(
            ErrorKind.CONFLICT
        )
        resp = client.post(
            "/verification/create-account",
            json={
                "email": "student@ln.edu.hk",
                "password": "passw0rd1",
                "displayName": "Ada",
            },
        )
        assert resp.status_code == 409

    def test_display_name_required(self, client, orchestrator):
        resp = client.post(
            "/verification/create-account",
            json={"email": "student@ln.edu.hk", "password": "passw0rd1"},
        )

        assert resp.status_code == 400
        assert "displayName" in resp.json()["details"]["fields"]
        orchestrator.create_verified_account.assert_not_awaited()

    def test_taken_display_name(self, client, orchestrator):
        orchestrator.create_verified_account.return_value = Outcome.failure(
            ErrorKind.USERNAME_UNAVAILABLE, reason="taken"
        )

        resp = client.post(
            "/verification/create-account",
            json={
                "email": "student@ln.edu.hk",
                "password": "passw0rd1",
                "displayName": "Ada",
            },
        )

        body = resp.json()
        assert resp.status_code == 400
        assert body["code"] == "username_unavailable"
        assert body["field"] == "display_name"


class TestCheckUsername:
    def test_available(self, client, orchestrator):
        resp = client.post("/verification/check-username", json={"username": "Ada Lovelace"})

        assert resp.status_code == 200
        assert resp.json()["available"] is True
        orchestrator.check_username.assert_awaited_once_with("Ada Lovelace")

    @pytest.mark.parametrize("reason", ["required", "length", "reserved", "taken"])
    def test_unavailable_reports_reason(self, client, orchestrator, reason):
        orchestrator.check_username.return_value = Outcome.failure(
            ErrorKind.USERNAME_UNAVAILABLE, reason=reason
        )

        resp = client.post("/verification/check-username", json={"username": "admin"})

        body = resp.json()
        assert resp.status_code == 200
        assert body["success"] is False
        assert body["available"] is False
        assert body["reason"] == reason

    def test_store_failure(self, client, orchestrator):
        orchestrator.check_username.return_value = Outcome.failure(
            ErrorKind.SERVICE_ERROR
        )

        resp = client.post("/verification/check-username", json={"username": "Ada"})

        assert resp.status_code == 500
        assert resp.json()["code"] == "service_error"


# ── /password-reset/* ─────────────────────────────────────────────────────────


class TestRequestPasswordReset:
    def test_same_message_for_any_email(self, client, orchestrator):
        resp = client.post("/password-reset/request", json={"email": "ghost@ln.edu.hk"})

        assert resp.status_code == 200
        assert "If an account exists" in resp.json()["message"]

    def test_rate_limited(self, client, orchestrator):
        orchestrator.issue_reset_token.return_value = Outcome.failure(
            ErrorKind.RATE_LIMITED, retry_after_seconds=3000
        )

        resp = client.post("/password-reset/request", json={"email": "user@ln.edu.hk"})

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "3000"

    def test_captcha_failed(self, client, orchestrator):
        orchestrator.issue_reset_token.return_value = Outcome.failure(
            ErrorKind.CAPTCHA_FAILED
        )
        resp = client.post("/password-reset/request", json={"email": "user@ln.edu.hk"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "captcha_failed"


class TestValidateResetToken:
    def test_valid(self, client, orchestrator):
        resp = client.post("/password-reset/validate", json={"userId": "u1", "token": "t"})

        assert resp.status_code == 200
        assert resp.json()["valid"] is True
        orchestrator.validate_reset_token.assert_awaited_once_with("u1", "t")

    @pytest.mark.parametrize(
        "kind",
        [ErrorKind.NOT_FOUND, ErrorKind.EXPIRED, ErrorKind.ALREADY_USED, ErrorKind.INVALID_TOKEN],
    )
    def test_token_failures_are_indistinguishable(self, client, orchestrator, kind):
        orchestrator.validate_reset_token.return_value = Outcome.failure(kind)

        resp = client.post("/password-reset/validate", json={"userId": "u1", "token": "t"})

        assert resp.status_code == 400
        assert resp.json() == {
            "error": "This reset link is invalid or has expired.",
            "code": "invalid_or_expired_token",
        }


class TestCompletePasswordReset:
    def test_success(self, client, orchestrator):
        resp = client.post(
            "/password-reset/complete",
            json={"userId": "u1", "token": "t", "newPassword": "n3wpassword"},
        )

        assert resp.status_code == 200
        orchestrator.consume_reset_token.assert_awaited_once_with(
            "u1", "t", "n3wpassword", ip_address="testclient"
        )

    def test_weak_password_keeps_requirements(self, client, orchestrator):
        orchestrator.consume_reset_token.return_value = Outcome.failure(
            ErrorKind.UPDATE_FAILED,
            cause=ErrorKind.POLICY_REJECTED,
            requirements=["min_length"],
        )

        resp = client.post(
            "/password-reset/complete",
            json={"userId": "u1", "token": "t", "newPassword": "short"},
        )

        body = resp.json()
        assert resp.status_code == 400
        assert body["code"] == "policy_rejected"
        assert body["field"] == "new_password"

    def test_store_failure_is_service_error(self, client, orchestrator):
        orchestrator.consume_reset_token.return_value = Outcome.failure(
            ErrorKind.UPDATE_FAILED, cause=ErrorKind.SERVICE_ERROR
        )

        resp = client.post(
            "/password-reset/complete",
            json={"userId": "u1", "token": "t", "newPassword": "n3wpassword"},
        )

        assert resp.status_code == 500
        assert resp.json()["code"] == "service_error"

    def test_used_token_collapsed(self, client, orchestrator):
        orchestrator.consume_reset_token.return_value = Outcome.failure(
            ErrorKind.INVALID_TOKEN
        )

        resp = client.post(
            "/password-reset/complete",
            json={"userId": "u1", "token": "t", "newPassword": "n3wpassword"},
        )

        assert resp.json()["code"] == "invalid_or_expired_token"
