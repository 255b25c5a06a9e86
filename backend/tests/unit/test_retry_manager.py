#!/usr/bin/env python3
"""
Tests for the RetryManager backoff policy.
"""

from dataclasses import dataclass
from datetime import timedelta

import pytest

from gallery.utils.time_utils import utc_now
from gallery.workers.mixins.retry_manager import JobWithRetry, RetryManager


@dataclass
class FakeJob:
    id: int
    retry_count: int
    max_attempts: int


@pytest.mark.unit
@pytest.mark.worker
class TestRetryManager:
    @pytest.fixture
    def manager(self):
        return RetryManager(base_seconds=2, cap_seconds=60, worker_name="TestWorker")

    @pytest.mark.parametrize(
        "attempt,expected",
        [(0, 2), (1, 2), (2, 8), (3, 18), (5, 50), (6, 60), (20, 60)],
    )
    def test_quadratic_capped_delay(self, manager, attempt, expected):
        assert manager.get_retry_delay(attempt) == expected

    def test_attempt_number_is_one_based(self):
        assert RetryManager.attempt_number(FakeJob(1, 0, 3)) == 1
        assert RetryManager.attempt_number(FakeJob(1, 2, 3)) == 3

    @pytest.mark.parametrize(
        "retry_count,can_retry", [(0, True), (1, True), (2, False), (5, False)]
    )
    def test_should_retry_respects_job_budget(self, manager, retry_count, can_retry):
        assert manager.should_retry(FakeJob(7, retry_count, 3)) is can_retry

    def test_next_retry_time(self, manager):
        before = utc_now()
        due = manager.calculate_next_retry_time(2)
        assert before + timedelta(seconds=8) <= due <= utc_now() + timedelta(seconds=8)

    def test_retry_info(self, manager):
        info = manager.get_retry_info(FakeJob(9, 1, 3))
        assert info["attempt"] == 2
        assert info["can_retry"] is True
        assert info["retry_delay_seconds"] == 8

        exhausted = manager.get_retry_info(FakeJob(9, 2, 3))
        assert exhausted["can_retry"] is False
        assert "retry_delay_seconds" not in exhausted

    def test_fake_job_satisfies_protocol(self):
        assert isinstance(FakeJob(1, 0, 1), JobWithRetry)

    @pytest.mark.parametrize("base,cap", [(0, 10), (-1, 10), (10, 5)])
    def test_rejects_invalid_configuration(self, base, cap):
        with pytest.raises(ValueError):
            RetryManager(base_seconds=base, cap_seconds=cap)

    def test_stats_and_repr(self, manager):
        assert manager.get_stats() == {
            "worker_name": "TestWorker",
            "base_seconds": 2,
            "cap_seconds": 60,
        }
        assert "TestWorker" in repr(manager)
