"""
Periodic deletion of expired credential records.

Advisory only: every validate/consume path checks ``expires_at`` itself, so
a sweeper that is late, disabled or failing never makes an expired
credential usable. Each run deletes at most one batch per collection.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pymongo.errors import PyMongoError

from repositories.base import CredentialRepository
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass
class SweepReport:
    deleted: dict[str, int] = field(default_factory=dict)
    failures: dict[str, int] = field(default_factory=dict)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())


class CleanupSweeper:
    def __init__(
        self,
        repositories: Iterable[CredentialRepository],
        batch_size: int = 100,
        clock: Clock = utcnow,
    ) -> None:
        self._repos = list(repositories)
        self._batch_size = batch_size
        self._clock = clock

    async def sweep_repository(
        self, repo: CredentialRepository, report: Optional[SweepReport] = None
    ) -> SweepReport:
        """Reap one batch of expired records from a single collection."""
        report = report if report is not None else SweepReport()
        report.deleted.setdefault(repo.name, 0)
        report.failures.setdefault(repo.name, 0)
        try:
            expired_ids = await repo.find_expired_ids(self._clock(), self._batch_size)
        except PyMongoError as e:
            report.failures[repo.name] += 1
            log.error(
                "credential_sweep_query_failed",
                collection=repo.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return report

        for record_id in expired_ids:
            try:
                # Nothing matched means something else already deleted it
                await repo.delete(record_id)
            except PyMongoError as e:
                report.failures[repo.name] += 1
                log.warning(
                    "credential_sweep_delete_failed",
                    collection=repo.name,
                    record_id=str(record_id),
                    error=str(e),
                )
                continue
            report.deleted[repo.name] += 1
        return report

    async def sweep(self) -> SweepReport:
        report = SweepReport()
        for repo in self._repos:
            await self.sweep_repository(repo, report)
        log.info(
            "credential_sweep_completed",
            deleted=report.deleted,
            failures=report.failures,
        )
        return report

    async def run_forever(
        self, interval_seconds: float, stop_event: asyncio.Event
    ) -> None:
        """Sweep every *interval_seconds* until *stop_event* is set."""
        log.info("credential_sweeper_started", interval_seconds=interval_seconds)
        while not stop_event.is_set():
            try:
                await self.sweep()
            except Exception as e:
                log.error(
                    "credential_sweep_crashed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
        log.info("credential_sweeper_stopped")
