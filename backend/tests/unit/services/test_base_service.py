"""BaseService transaction handling and operation metrics."""

from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from mentorline.core.exceptions import NotFoundException, ServiceException
from mentorline.models.availability import BlockedDate
from mentorline.services.base import BaseService, SweepResult


class _SampleService(BaseService):
    @BaseService.measure_operation("sample_ok")
    def ok(self) -> str:
        return "done"

    @BaseService.measure_operation("sample_fail")
    def fail(self) -> None:
        raise NotFoundException("missing")


def _blocked_count(db) -> int:
    return db.query(BlockedDate).count()


def test_transaction_commits_on_success(db, clock):
    service = BaseService(db, clock)

    with service.transaction():
        db.add(BlockedDate(mentor_id="mentor-1", date=date(2024, 1, 5), created_at=clock.now()))

    db.expunge_all()
    assert _blocked_count(db) == 1


def test_transaction_wraps_database_errors(db, clock):
    service = BaseService(db, clock)

    with pytest.raises(ServiceException) as exc_info:
        with service.transaction():
            db.add(BlockedDate(mentor_id="mentor-1", date=date(2024, 1, 5), created_at=clock.now()))
            db.flush()
            raise SQLAlchemyError("disk full")

    assert "disk full" in exc_info.value.message
    assert _blocked_count(db) == 0


def test_transaction_rolls_back_and_reraises_domain_errors(db, clock):
    service = BaseService(db, clock)

    with pytest.raises(NotFoundException):
        with service.transaction():
            db.add(BlockedDate(mentor_id="mentor-1", date=date(2024, 1, 5), created_at=clock.now()))
            db.flush()
            raise NotFoundException("gone")

    assert _blocked_count(db) == 0


def test_now_reads_injected_clock(db, clock):
    assert BaseService(db, clock).now() == clock.now()


def test_measure_operation_records_success_and_failure(db, clock):
    service = _SampleService(db, clock)

    assert service.ok() == "done"
    with pytest.raises(NotFoundException):
        service.fail()

    metrics = service.get_metrics()
    assert metrics["sample_ok"]["success_count"] >= 1
    assert metrics["sample_fail"]["failure_count"] >= 1


def test_measure_operation_rejects_coroutines():
    with pytest.raises(TypeError):

        @BaseService.measure_operation("async_sample")
        async def handler(self):
            return None


def test_sweep_result_as_dict():
    assert SweepResult(processed=3, failed=1).as_dict() == {
        "processed": 3,
        "failed": 1,
        "skipped": 0,
    }
