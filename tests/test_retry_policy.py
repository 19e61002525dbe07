import pytest

from core.domain.errors import CanonicalError, ErrorCode
from core.services.retry_policy import RetryPolicy


def _err(code: str) -> CanonicalError:
    return CanonicalError(code=code, message=code)


@pytest.mark.parametrize("code", [ErrorCode.TIMEOUT, ErrorCode.NETWORK_ERROR])
def test_transient_codes_are_retryable(code):
    assert RetryPolicy().is_retryable(_err(code))


@pytest.mark.parametrize(
    "code",
    [ErrorCode.SCHEMA_MISMATCH, ErrorCode.UNKNOWN, ErrorCode.STALE_PLAN_REV, "NOT_FOUND"],
)
def test_other_codes_are_not_retryable(code):
    assert not RetryPolicy().is_retryable(_err(code))


def test_should_retry_respects_budget():
    policy = RetryPolicy()
    timeout = _err(ErrorCode.TIMEOUT)

    assert policy.should_retry(timeout, attempt=0, max_attempts=3)
    assert policy.should_retry(timeout, attempt=1, max_attempts=3)
    assert not policy.should_retry(timeout, attempt=2, max_attempts=3)
    assert not policy.should_retry(timeout, attempt=0, max_attempts=1)


def test_linear_backoff():
    policy = RetryPolicy(base_delay_ms=1_000)

    assert [policy.delay_ms(i) for i in range(3)] == [1_000, 2_000, 3_000]


def test_exponential_backoff():
    policy = RetryPolicy(base_delay_ms=100, backoff="exponential")

    assert [policy.delay_ms(i) for i in range(4)] == [100, 200, 400, 800]


def test_invalid_configuration_is_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(base_delay_ms=-1)
    with pytest.raises(ValueError):
        RetryPolicy(backoff="random")  # type: ignore[arg-type]


def test_custom_retryable_codes():
    policy = RetryPolicy(retryable_codes=frozenset({"BUSY"}))

    assert policy.is_retryable(_err("BUSY"))
    assert not policy.is_retryable(_err(ErrorCode.TIMEOUT))
