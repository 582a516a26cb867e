"""
Unit tests for DatabaseRetryPolicy.

Tests error classification, attempt counting and backoff computation.
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from guildwatch.core.database import DatabaseRetryConfig, DatabaseRetryPolicy


def _policy(max_attempts=3, initial=0, maximum=0, jitter=0) -> DatabaseRetryPolicy:
    return DatabaseRetryPolicy(
        DatabaseRetryConfig(
            max_attempts=max_attempts,
            initial_backoff_ms=initial,
            max_backoff_ms=maximum,
            jitter_ms=jitter,
        )
    )


def _operational_error() -> OperationalError:
    return OperationalError("UPDATE players", {}, Exception("database is locked"))


def _integrity_error() -> IntegrityError:
    return IntegrityError(
        "INSERT INTO guilds", {}, Exception("UNIQUE constraint failed: guilds.name")
    )


@pytest.mark.unit
class TestRetryClassification:
    """Which failures re-run the operation."""

    async def test_integrity_error_fails_fast(self, mocker):
        """Unique violations surface unchanged after a single attempt."""
        # Arrange
        error = _integrity_error()
        operation = mocker.AsyncMock(side_effect=error)

        # Act
        with pytest.raises(IntegrityError) as exc_info:
            await _policy().execute(operation, operation_name="test.integrity")

        # Assert
        assert exc_info.value is error
        assert operation.await_count == 1

    async def test_operational_error_exhausts_attempts(self, mocker):
        operation = mocker.AsyncMock(side_effect=_operational_error())

        with pytest.raises(OperationalError):
            await _policy(max_attempts=3).execute(
                operation, operation_name="test.operational"
            )

        assert operation.await_count == 3

    async def test_transient_failure_then_success(self, mocker):
        operation = mocker.AsyncMock(side_effect=[_operational_error(), "done"])

        result = await _policy().execute(operation, operation_name="test.recover")

        assert result == "done"
        assert operation.await_count == 2

    async def test_domain_errors_are_not_retried(self, mocker):
        operation = mocker.AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            await _policy().execute(operation, operation_name="test.domain")

        assert operation.await_count == 1

    async def test_backoff_sleeps_between_attempts(self, mocker):
        sleep = mocker.patch(
            "guildwatch.core.database.retry_policy.asyncio.sleep",
            new=mocker.AsyncMock(),
        )
        operation = mocker.AsyncMock(side_effect=_operational_error())

        with pytest.raises(OperationalError):
            await _policy(max_attempts=3, initial=100, maximum=2000).execute(
                operation, operation_name="test.sleep"
            )

        # No sleep after the final attempt
        assert [call.args[0] for call in sleep.await_args_list] == [0.1, 0.2]


@pytest.mark.unit
class TestBackoff:
    def test_exponential_growth(self):
        policy = _policy(initial=100, maximum=2000)

        assert policy._compute_backoff_ms(1) == 100
        assert policy._compute_backoff_ms(2) == 200
        assert policy._compute_backoff_ms(3) == 400

    def test_capped_at_maximum(self):
        policy = _policy(initial=100, maximum=2000)

        assert policy._compute_backoff_ms(6) == 2000
        assert policy._compute_backoff_ms(20) == 2000

    def test_jitter_is_bounded(self):
        policy = _policy(initial=100, maximum=2000, jitter=25)

        for _ in range(50):
            assert 100 <= policy._compute_backoff_ms(1) <= 125
