import pytest
import requests

from backoff import RetryPolicy, is_transient_error, with_retry
from shopify_client import ShopifyApiError, ShopifyUserError


class Flaky:
    def __init__(self, failures, error=None, result="ok"):
        self.failures = failures
        self.error = error or ConnectionError("boom")
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


class TestWithRetry:
    def test_returns_first_success_with_growing_delays(self):
        delays = []
        op = Flaky(failures=2)

        assert with_retry(op, retries=3, base_delay=1, factor=3, sleep=delays.append) == "ok"
        assert op.calls == 3
        assert delays == [1, 3]

    def test_exhaustion_reraises_original_error(self):
        error = ValueError("still broken")
        op = Flaky(failures=10, error=error)

        with pytest.raises(ValueError) as excinfo:
            with_retry(op, retries=2, base_delay=0.5, factor=2, sleep=lambda s: None)

        assert excinfo.value is error
        assert op.calls == 3

    def test_zero_retries_calls_once(self):
        op = Flaky(failures=1)
        with pytest.raises(ConnectionError):
            with_retry(op, retries=0, sleep=lambda s: None)
        assert op.calls == 1

    def test_should_retry_refusal_stops_immediately(self):
        op = Flaky(failures=5, error=KeyError("nope"))
        with pytest.raises(KeyError):
            with_retry(op, retries=3, should_retry=lambda e: False, sleep=lambda s: None)
        assert op.calls == 1

    def test_on_retry_hook_sees_attempt_numbers(self):
        seen = []
        op = Flaky(failures=2)
        with_retry(op, retries=3, on_retry=lambda e, n: seen.append(n), sleep=lambda s: None)
        assert seen == [1, 2]

    def test_broken_hook_does_not_stop_retrying(self):
        def hook(error, attempt):
            raise RuntimeError("hook failed")

        op = Flaky(failures=1)
        assert with_retry(op, retries=1, on_retry=hook, sleep=lambda s: None) == "ok"


class TestTransientErrors:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert is_transient_error(ShopifyApiError("x", status_code=status))

    @pytest.mark.parametrize("status", [400, 401, 404, 422])
    def test_client_errors_are_not_transient(self, status):
        assert not is_transient_error(ShopifyApiError("x", status_code=status))

    def test_connection_problems(self):
        assert is_transient_error(requests.ConnectionError("reset"))
        assert is_transient_error(requests.Timeout("slow"))
        assert is_transient_error(TimeoutError())

    def test_user_errors_are_not_transient(self):
        assert not is_transient_error(ShopifyUserError("productCreate", [{"message": "Title can't be blank"}]))

    def test_requests_http_error_status(self):
        response = requests.Response()
        response.status_code = 503
        assert is_transient_error(requests.HTTPError(response=response))


class TestRetryPolicy:
    def test_run_uses_policy_settings(self):
        delays = []
        policy = RetryPolicy(name="svc", retries=2, base_delay=2, factor=2, sleep=delays.append)
        op = Flaky(failures=2)

        assert policy.run(op, "fetch") == "ok"
        assert delays == [2, 4]

    def test_policy_filter_applies(self):
        policy = RetryPolicy(retries=3, should_retry=is_transient_error, sleep=lambda s: None)
        op = Flaky(failures=3, error=ShopifyApiError("bad input", status_code=400))

        with pytest.raises(ShopifyApiError):
            policy.run(op)
        assert op.calls == 1
