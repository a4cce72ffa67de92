"""Unit tests for services.cleanup_sweeper."""

import asyncio
from datetime import timedelta

import pytest

from repositories.password_reset_repository import PasswordResetRepository
from repositories.verification_code_repository import VerificationCodeRepository
from services.cleanup_sweeper import CleanupSweeper


def _doc(expires_at, **extra):
    doc = {"created_at": expires_at - timedelta(minutes=15), "expires_at": expires_at}
    doc.update(extra)
    return doc


@pytest.fixture
def codes(db):
    return db["verification-codes"]


@pytest.fixture
def resets(db):
    return db["password-resets"]


@pytest.fixture
def sweeper(codes, resets, clock):
    return CleanupSweeper(
        [VerificationCodeRepository(codes), PasswordResetRepository(resets)],
        batch_size=100,
        clock=clock,
    )


class TestSweep:
    async def test_deletes_only_expired(self, sweeper, codes, resets, clock):
        codes.sync.insert_many(
            [
                _doc(clock.now - timedelta(minutes=1), email="a@ln.edu.hk"),
                _doc(clock.now + timedelta(minutes=1), email="b@ln.edu.hk"),
            ]
        )
        resets.sync.insert_one(_doc(clock.now - timedelta(hours=1), user_id="u1"))

        report = await sweeper.sweep()

        assert report.deleted == {"verification-codes": 1, "password-resets": 1}
        assert report.total_deleted == 2
        assert codes.sync.find_one({})["email"] == "b@ln.edu.hk"
        assert resets.sync.count_documents({}) == 0

    async def test_record_expiring_now_kept_until_past(self, sweeper, codes, clock):
        codes.sync.insert_one(_doc(clock.now))

        report = await sweeper.sweep()

        assert report.deleted["verification-codes"] == 0

    async def test_batch_size_bounds_each_run(self, codes, clock):
        codes.sync.insert_many(
            [_doc(clock.now - timedelta(minutes=5), n=i) for i in range(5)]
        )
        sweeper = CleanupSweeper([VerificationCodeRepository(codes)], batch_size=2, clock=clock)

        report = await sweeper.sweep()

        assert report.deleted["verification-codes"] == 2
        assert codes.sync.count_documents({}) == 3

    async def test_query_failure_continues_with_next_collection(self, db, resets, clock):
        broken = db.broken("verification-codes", "find")
        resets.sync.insert_one(_doc(clock.now - timedelta(hours=1)))
        sweeper = CleanupSweeper(
            [VerificationCodeRepository(broken), PasswordResetRepository(resets)],
            clock=clock,
        )

        report = await sweeper.sweep()

        assert report.failures["verification-codes"] == 1
        assert report.deleted["password-resets"] == 1

    async def test_delete_failure_skipped(self, db, clock):
        db["verification-codes"].sync.insert_one(_doc(clock.now - timedelta(hours=1)))
        broken = db.broken("verification-codes", "delete_one")
        sweeper = CleanupSweeper([VerificationCodeRepository(broken)], clock=clock)

        report = await sweeper.sweep()

        assert report.deleted["verification-codes"] == 0
        assert report.failures["verification-codes"] == 1


class TestRunForever:
    async def test_stops_when_event_set(self, sweeper, mocker):
        sweep = mocker.patch.object(sweeper, "sweep")
        stop_event = asyncio.Event()

        task = asyncio.create_task(sweeper.run_forever(0.01, stop_event))
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert sweep.call_count >= 1

    async def test_survives_unexpected_error(self, sweeper, mocker):
        sweep = mocker.patch.object(sweeper, "sweep", side_effect=RuntimeError("boom"))
        stop_event = asyncio.Event()

        task = asyncio.create_task(sweeper.run_forever(0.01, stop_event))
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert sweep.call_count >= 2
