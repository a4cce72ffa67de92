"""
Credential endpoints.

POST /verification/send            — email a registration verification code
POST /verification/verify          — check a submitted code
POST /verification/create-account  — create an account from a verified email
POST /verification/check-username  — check a display name before sign-up
POST /password-reset/request       — email a password reset link
POST /password-reset/validate      — check a reset link before showing the form
POST /password-reset/complete      — set a new password with a reset link

Handlers translate failed Outcomes with error_from_outcome() and raise; the
registered AppError handler renders the JSON body.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from dependencies import get_orchestrator
from errors import ACCOUNT_FLOW, RESET_FLOW, error_from_outcome
from schemas.dto.requests.credentials import (
    CheckUsernameRequest,
    CompletePasswordResetRequest,
    CreateVerifiedAccountRequest,
    RequestPasswordResetRequest,
    SendVerificationCodeRequest,
    ValidateResetTokenRequest,
    VerifyCodeRequest,
)
from schemas.dto.responses.credentials import (
    AccountCreatedResponse,
    ResetTokenStatusResponse,
    SuccessResponse,
    UsernameAvailabilityResponse,
)
from services.dispatch import DispatchOrchestrator, IssueContext
from services.outcome import ErrorKind
from shared.ip_utils import get_client_ip, get_user_agent

router = APIRouter(tags=["credentials"])

# Same answer whether or not the account exists
_RESET_REQUESTED_MESSAGE = (
    "If an account exists for this email, a password reset link has been sent."
)


def _issue_context(request: Request, email: str, captcha_token: str | None) -> IssueContext:
    return IssueContext(
        email=email,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        captcha_token=captcha_token,
    )


@router.post("/verification/send", response_model=SuccessResponse)
async def send_verification_code(
    body: SendVerificationCodeRequest,
    request: Request,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> SuccessResponse:
    outcome = await orchestrator.issue_verification_code(
        _issue_context(request, body.email, body.captcha_token)
    )
    if not outcome:
        raise error_from_outcome(outcome)
    return SuccessResponse(message="Verification code sent.")


@router.post("/verification/verify", response_model=SuccessResponse)
async def verify_code(
    body: VerifyCodeRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> SuccessResponse:
    outcome = await orchestrator.validate_verification_code(body.email, body.code)
    if not outcome:
        raise error_from_outcome(outcome)
    return SuccessResponse(message="Email verified.")


@router.post("/verification/create-account", response_model=AccountCreatedResponse)
async def create_verified_account(
    body: CreateVerifiedAccountRequest,
    request: Request,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> AccountCreatedResponse:
    outcome = await orchestrator.create_verified_account(
        body.email,
        body.password,
        body.display_name,
        captcha_token=body.captcha_token,
        ip_address=get_client_ip(request),
    )
    if not outcome:
        raise error_from_outcome(outcome, flow=ACCOUNT_FLOW)
    return AccountCreatedResponse(user_id=outcome.value, message="Account created.")


@router.post("/verification/check-username", response_model=UsernameAvailabilityResponse)
async def check_username(
    body: CheckUsernameRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> UsernameAvailabilityResponse:
    outcome = await orchestrator.check_username(body.username)
    if outcome:
        return UsernameAvailabilityResponse(available=True)
    if outcome.error is ErrorKind.USERNAME_UNAVAILABLE:
        return UsernameAvailabilityResponse(
            success=False,
            available=False,
            reason=outcome.details.get("reason"),
            message="This username is not available.",
        )
    raise error_from_outcome(outcome)


@router.post("/password-reset/request", response_model=SuccessResponse)
async def request_password_reset(
    body: RequestPasswordResetRequest,
    request: Request,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> SuccessResponse:
    outcome = await orchestrator.issue_reset_token(
        _issue_context(request, body.email, body.captcha_token)
    )
    if not outcome:
        raise error_from_outcome(outcome, flow=RESET_FLOW)
    return SuccessResponse(message=_RESET_REQUESTED_MESSAGE)


@router.post("/password-reset/validate", response_model=ResetTokenStatusResponse)
async def validate_reset_token(
    body: ValidateResetTokenRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> ResetTokenStatusResponse:
    outcome = await orchestrator.validate_reset_token(body.user_id, body.token)
    if not outcome:
        raise error_from_outcome(outcome, flow=RESET_FLOW)
    return ResetTokenStatusResponse()


@router.post("/password-reset/complete", response_model=SuccessResponse)
async def complete_password_reset(
    body: CompletePasswordResetRequest,
    request: Request,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> SuccessResponse:
    outcome = await orchestrator.consume_reset_token(
        body.user_id,
        body.token,
        body.new_password,
        ip_address=get_client_ip(request),
    )
    if not outcome:
        raise error_from_outcome(outcome, flow=RESET_FLOW)
    return SuccessResponse(message="Password updated.")
