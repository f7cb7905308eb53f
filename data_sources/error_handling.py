"""
Error taxonomy and retry helper for CareConnect API
Every outbound call funnels its failures into UpstreamUnavailable
"""

import time
from typing import Callable, Optional

import requests

from logging_config import get_logger
from .retry_config import RetryConfig

logger = get_logger(__name__)


class CareConnectError(Exception):
    """Base exception for CareConnect errors."""
    status_code = 500


class ValidationError(CareConnectError):
    """A request is missing a required field or carries an invalid value."""
    status_code = 400


class LocationNotFound(CareConnectError):
    """The geocoder returned no match for the supplied location."""
    status_code = 400


class NotFoundError(CareConnectError):
    """Unknown resource id (directory facility or map element)."""
    status_code = 404


class UpstreamUnavailable(CareConnectError):
    """Exception for network, timeout or parse failures talking to an external API."""
    status_code = 500

    def __init__(self, message: str, api_name: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.api_name = api_name
        self.upstream_status = status_code


# Statuses worth another attempt; everything else non-200 fails immediately
_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


def _backoff(config: RetryConfig, attempt: int, retry_after: Optional[str] = None) -> float:
    if retry_after:
        try:
            return min(float(retry_after), config.max_wait)
        except ValueError:
            pass
    if config.exponential_backoff:
        wait = config.base_wait * (2 ** attempt)
    else:
        wait = config.base_wait
    return min(wait, config.max_wait)


def request_with_retry(
    request_fn: Callable[[int], requests.Response],
    config: RetryConfig,
    api_name: str,
    sleep: Callable[[float], None] = time.sleep,
) -> requests.Response:
    """
    Run an HTTP request with bounded retry and exponential backoff.

    Args:
        request_fn: Performs one attempt; receives the zero-based attempt number
                    (used by callers that rotate endpoints between attempts)
        config: Retry behaviour for this query type
        api_name: Name used in logs and in the raised error
        sleep: Injectable sleep, tests pass a no-op

    Returns:
        The first response with HTTP 200

    Raises:
        UpstreamUnavailable: all attempts failed, or a non-retryable status came back
    """
    last_error = "no attempt made"
    last_status: Optional[int] = None

    for attempt in range(config.max_attempts):
        is_last = attempt == config.max_attempts - 1
        try:
            resp = request_fn(attempt)
        except requests.exceptions.Timeout as e:
            last_error = f"{api_name} request timed out: {e}"
            last_status = None
            if not config.retry_on_timeout or is_last:
                break
            wait = _backoff(config, attempt)
            logger.warning(f"{api_name} request timeout, waiting {wait:.1f}s before retry ({attempt + 1}/{config.max_attempts})...",
                           extra={"api_name": api_name, "attempt": attempt + 1})
            sleep(wait)
            continue
        except requests.exceptions.RequestException as e:
            last_error = f"{api_name} network error: {e}"
            last_status = None
            if is_last:
                break
            wait = _backoff(config, attempt)
            logger.warning(f"{api_name} network error, waiting {wait:.1f}s before retry ({attempt + 1}/{config.max_attempts})...",
                           extra={"api_name": api_name, "attempt": attempt + 1})
            sleep(wait)
            continue

        if resp.status_code == 200:
            return resp

        last_status = resp.status_code
        last_error = f"{api_name} returned HTTP {resp.status_code}"
        if resp.status_code not in _RETRYABLE_STATUSES or is_last:
            break
        if resp.status_code == 429 and not config.retry_on_429:
            break

        wait = _backoff(config, attempt, resp.headers.get("Retry-After"))
        logger.warning(f"{api_name} HTTP {resp.status_code}, waiting {wait:.1f}s before retry ({attempt + 1}/{config.max_attempts})...",
                       extra={"api_name": api_name, "status_code": resp.status_code, "attempt": attempt + 1})
        sleep(wait)

    logger.warning(f"{api_name} unavailable after retries: {last_error}",
                   extra={"api_name": api_name, "status_code": last_status})
    raise UpstreamUnavailable(last_error, api_name, last_status)
