# backend/tests/unit/services/test_base_service.py
"""BaseService: transaction handling and Prometheus-backed operation timing."""

import pytest
from sqlalchemy.exc import OperationalError

from smartcal.core.exceptions import PersistenceError, ValidationException
from smartcal.monitoring.prometheus_metrics import REGISTRY
from smartcal.services.base import BaseService


class SampleService(BaseService):
    @BaseService.measure_operation("succeed")
    def succeed(self) -> int:
        return 7

    @BaseService.measure_operation("reject")
    def reject(self) -> None:
        raise ValidationException("nope")

    def store_failure(self) -> None:
        with self.transaction():
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))


def _count(operation: str, status: str) -> float:
    value = REGISTRY.get_sample_value(
        "smartcal_service_operations_total",
        {"service": "SampleService", "operation": operation, "status": status},
    )
    return value or 0.0


class TestMeasureOperation:
    def test_success_counted_in_prometheus(self, unit_db):
        before = _count("succeed", "success")

        assert SampleService(unit_db).succeed() == 7

        assert _count("succeed", "success") == before + 1

    def test_failure_counted_with_error_type(self, unit_db):
        before = _count("reject", "error")
        errors_before = REGISTRY.get_sample_value(
            "smartcal_errors_total",
            {"service": "SampleService", "operation": "reject", "error_type": "ValidationException"},
        ) or 0.0

        with pytest.raises(ValidationException):
            SampleService(unit_db).reject()

        assert _count("reject", "error") == before + 1
        assert REGISTRY.get_sample_value(
            "smartcal_errors_total",
            {"service": "SampleService", "operation": "reject", "error_type": "ValidationException"},
        ) == errors_before + 1


class TestTransaction:
    def test_store_errors_become_persistence_errors(self, unit_db):
        with pytest.raises(PersistenceError):
            SampleService(unit_db).store_failure()
