"""
Issue-then-deliver with a compensating delete.

An issued credential that could not be delivered must not linger: it would
count against rate limits and, for codes, block re-issue as already_pending.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from services.outcome import ErrorKind, IssuedCredential, Outcome
from shared.logging import get_logger

log = get_logger(__name__)

IssueStep = Callable[[], Awaitable[Outcome[Optional[IssuedCredential]]]]
DeliverStep = Callable[[IssuedCredential], Awaitable[bool]]
CompensateStep = Callable[[Any], Awaitable[bool]]


async def run_issue_saga(
    issue: IssueStep,
    deliver: DeliverStep,
    compensate: CompensateStep,
) -> Outcome[Optional[IssuedCredential]]:
    """Run issue -> deliver, revoking the issued record if delivery fails.

    An issue step that succeeds without a credential (unknown reset email)
    ends the saga successfully with nothing delivered.
    """
    issued = await issue()
    if not issued or issued.value is None:
        return issued

    credential = issued.value
    try:
        delivered = await deliver(credential)
    except Exception as e:
        log.error(
            "credential_delivery_crashed",
            record_id=str(credential.record_id),
            error=str(e),
            error_type=type(e).__name__,
        )
        delivered = False

    if delivered:
        return issued

    revoked = await compensate(credential.record_id)
    log.warning(
        "credential_delivery_failed",
        record_id=str(credential.record_id),
        compensated=revoked,
    )
    return Outcome.failure(ErrorKind.EMAIL_FAILED)
