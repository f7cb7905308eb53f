import pytest
import requests

from data_sources.error_handling import UpstreamUnavailable, request_with_retry
from data_sources.retry_config import RetryConfig, RetryProfile, get_retry_config


class _Resp:
    def __init__(self, status_code, headers=None):
        self.status_code = status_code
        self.headers = headers or {}


def _sequence(*outcomes):
    calls = []

    def request_fn(attempt):
        calls.append(attempt)
        outcome = outcomes[attempt]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return request_fn, calls


def test_returns_first_success():
    fn, calls = _sequence(_Resp(200))
    assert request_with_retry(fn, get_retry_config("geocoding"), "test").status_code == 200
    assert calls == [0]


def test_backs_off_exponentially():
    sleeps = []
    fn, calls = _sequence(_Resp(502), requests.exceptions.Timeout("slow"), _Resp(200))
    config = RetryConfig(max_attempts=3, base_wait=1.0, max_wait=10.0)

    request_with_retry(fn, config, "test", sleep=sleeps.append)

    assert calls == [0, 1, 2]
    assert sleeps == [1.0, 2.0]


def test_retry_after_header_is_honoured_and_capped():
    sleeps = []
    fn, _ = _sequence(_Resp(429, {"Retry-After": "120"}), _Resp(200))
    config = RetryConfig(max_attempts=2, base_wait=1.0, max_wait=5.0)
    request_with_retry(fn, config, "test", sleep=sleeps.append)
    assert sleeps == [5.0]


def test_non_retryable_status_fails_fast():
    fn, calls = _sequence(_Resp(400), _Resp(200))
    with pytest.raises(UpstreamUnavailable) as exc:
        request_with_retry(fn, RetryConfig(max_attempts=3, base_wait=0.0), "test", sleep=lambda s: None)
    assert calls == [0]
    assert exc.value.upstream_status == 400


def test_gives_up_after_max_attempts():
    fn, calls = _sequence(*[requests.exceptions.ConnectionError("refused")] * 3)
    with pytest.raises(UpstreamUnavailable) as exc:
        request_with_retry(fn, RetryConfig(max_attempts=3, base_wait=0.0), "overpass", sleep=lambda s: None)
    assert calls == [0, 1, 2]
    assert exc.value.api_name == "overpass"


def test_profiles():
    assert get_retry_config("healthcare").max_attempts == 3
    assert get_retry_config("unregistered").max_attempts == 1
    assert get_retry_config("healthcare", RetryProfile.NONE).max_attempts == 1
    with pytest.raises(ValueError):
        RetryConfig(max_attempts=0)
