"""
Infrastructure-specific decorators, providing cross-cutting concerns like
retry logic for network operations.
"""

import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from ..application.exceptions import IncompleteTransferError
from .config_models import TransferPolicy

logger = logging.getLogger(__name__)

# The status codes curl's --retry treats as transient.
TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def is_transient(exception: BaseException) -> bool:
    """Whether a failed network operation is worth another attempt."""
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in TRANSIENT_STATUS_CODES
    return isinstance(
        exception, (httpx.TransportError, IncompleteTransferError)
    )


def _log_before_retry(retry_state):
    """Log the retry attempt with details about the exception and wait time."""
    exception = retry_state.outcome.exception()
    next_attempt_in = retry_state.next_action.sleep
    logger.warning(
        f"Retrying {retry_state.fn.__name__} in {next_attempt_in:.2f}s due to "
        f"{type(exception).__name__} (attempt {retry_state.attempt_number})..."
    )


def retry_on_network_error(policy: TransferPolicy):
    """
    Builds a retry decorator for async network operations.

    The policy's retry count is the number of attempts after the first one,
    separated by a fixed delay. The last exception is re-raised unchanged.
    """
    return retry(
        stop=stop_after_attempt(policy.retry_attempts + 1),
        wait=wait_fixed(policy.retry_delay),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_before_retry,
        reraise=True,
    )
