"""
Bounded retry around a single capability call.

Only transient failures are retried. Whatever is still failing once the
attempts are exhausted (or was never retryable) is re-raised as an
``UpstreamError`` naming the service.
"""

from collections.abc import Callable
from typing import TypeVar

import requests
import structlog
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import UpstreamError

logger = structlog.get_logger()

T = TypeVar("T")

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

DEFAULT_WAIT = wait_exponential(multiplier=1, min=1, max=10)


def is_transient_http_error(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    return False


def describe_http_error(exc: requests.RequestException) -> str:
    response = getattr(exc, "response", None)
    if response is None:
        return str(exc) or exc.__class__.__name__
    body = (response.text or "").strip()
    message = f"{response.status_code} {response.reason or ''}".strip()
    return f"{message} - {body[:500]}" if body else message


def call_with_retry(
    fn: Callable[[], T],
    *,
    service: str,
    max_attempts: int,
    is_transient: Callable[[BaseException], bool] = is_transient_http_error,
    wrap: tuple[type[BaseException], ...] = (requests.RequestException,),
    describe: Callable[[BaseException], str] = describe_http_error,
    wait=None,
) -> T:
    """
    Run ``fn`` up to ``max_attempts`` times.

    Raises:
        UpstreamError: If ``fn`` keeps failing with one of the ``wrap`` types
    """

    def _log_retry(retry_state):
        logger.warning(
            "upstream_call_retry",
            service=service,
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()),
        )

    retrying = Retrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait if wait is not None else DEFAULT_WAIT,
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        return retrying(fn)
    except wrap as exc:
        raise UpstreamError(service, describe(exc)) from exc
