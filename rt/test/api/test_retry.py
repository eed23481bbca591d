"""Tests for rt.api.retry module."""

from __future__ import annotations

from rt.api.models import ApiError
from rt.api.retry import RetryPolicy, is_transient
from rt.core.result import Err, Ok, Result


def _error(status: int, message: str = "boom") -> ApiError:
    return ApiError(method="GET", url="https://gitlab.com/api/v4/x", status=status, message=message)


class TestIsTransient:
    def test_server_errors_and_rate_limits(self) -> None:
        assert is_transient(_error(500))
        assert is_transient(_error(503))
        assert is_transient(_error(429))

    def test_client_errors_are_permanent(self) -> None:
        assert not is_transient(_error(400))
        assert not is_transient(_error(401))
        assert not is_transient(_error(404))

    def test_transport_errors(self) -> None:
        assert is_transient(_error(0, "Request timed out"))
        assert is_transient(_error(0, "[Errno 111] Connection refused"))
        assert is_transient(_error(0, ""))
        assert not is_transient(_error(0, "JSON parse error: Expecting value"))


class FakeCall:
    def __init__(self, *results: Result[str, ApiError]) -> None:
        self._results = list(results)
        self.count = 0

    def __call__(self) -> Result[str, ApiError]:
        self.count += 1
        return self._results.pop(0)


class TestRetryPolicy:
    def test_success_first_try(self) -> None:
        sleeps: list[float] = []
        call = FakeCall(Ok("ok"))

        result = RetryPolicy(sleep=sleeps.append).run(call)

        assert result == Ok("ok")
        assert call.count == 1
        assert sleeps == []

    def test_retries_transient_with_backoff(self) -> None:
        sleeps: list[float] = []
        call = FakeCall(Err(_error(502)), Err(_error(502)), Ok("ok"))

        result = RetryPolicy(attempts=3, base_interval=5.0, sleep=sleeps.append).run(call)

        assert result == Ok("ok")
        assert call.count == 3
        assert sleeps == [5.0, 10.0]

    def test_gives_up_after_attempts(self) -> None:
        sleeps: list[float] = []
        call = FakeCall(Err(_error(500)), Err(_error(500)), Err(_error(500)))

        result = RetryPolicy(attempts=3, base_interval=1.0, sleep=sleeps.append).run(call)

        assert isinstance(result, Err)
        assert call.count == 3
        assert sleeps == [1.0, 2.0]

    def test_permanent_error_is_not_retried(self) -> None:
        sleeps: list[float] = []
        call = FakeCall(Err(_error(404)))

        result = RetryPolicy(sleep=sleeps.append).run(call)

        assert isinstance(result, Err)
        assert call.count == 1
        assert sleeps == []

    def test_none_policy(self) -> None:
        call = FakeCall(Err(_error(500)))
        assert isinstance(RetryPolicy.none().run(call), Err)
        assert call.count == 1

    def test_custom_predicate(self) -> None:
        sleeps: list[float] = []
        call = FakeCall(Err(_error(404)), Ok("ok"))

        policy = RetryPolicy(attempts=2, base_interval=0.5, is_retryable=lambda e: e.not_found, sleep=sleeps.append)

        assert policy.run(call) == Ok("ok")
        assert sleeps == [0.5]
