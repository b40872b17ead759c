"""
Retry helpers for directory connections.

Binding is the one step retried automatically: a pass that loses its
connection halfway is abandoned and the next pass starts over.
"""

import time
import logging
from typing import Callable, Any, Dict, Tuple, Type, Optional

from ldap3.core.exceptions import LDAPCommunicationError, LDAPOperationResult

from ldap_enforcer.gateway import AuthenticationError, TransportError

logger = logging.getLogger(__name__)

# busy, unavailable, serverDown, timeout, connectError
TRANSIENT_RESULT_CODES = frozenset({51, 52, 81, 85, 91})


class MaxRetriesExceeded(Exception):
    """Every attempt failed; carries the last failure."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"gave up after {attempts} attempts: {last_exception}")


def retry_call(
    func: Callable,
    args: tuple = (),
    kwargs: dict = None,
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep
) -> Any:
    """
    Call func until it succeeds or max_attempts is used up.

    Only exceptions listed in ``exceptions`` are retried, and of those only
    the ones ``retry_if`` accepts; anything else propagates immediately.

    Args:
        func: Function to call
        args: Positional arguments for func
        kwargs: Keyword arguments for func
        max_attempts: Total attempts, including the first
        delay: Seconds to wait before the second attempt
        backoff: Multiplier applied to the wait after each failure
        exceptions: Exception types eligible for retry
        retry_if: Optional predicate narrowing ``exceptions`` further
        on_retry: Called with (attempt, exception) before each wait
        sleep: Waiting function, replaceable in tests

    Returns:
        Whatever func returns

    Raises:
        MaxRetriesExceeded: If the last attempt also fails
    """
    if kwargs is None:
        kwargs = {}

    last_exception = None
    wait = delay

    for attempt in range(1, max_attempts + 1):
        try:
            result = func(*args, **kwargs)
        except exceptions as e:
            if retry_if is not None and not retry_if(e):
                raise
            last_exception = e
            if attempt == max_attempts:
                break

            logger.debug(f"Attempt {attempt}/{max_attempts} failed ({type(e).__name__}: {e}); "
                         f"waiting {wait:.1f}s")
            if on_retry:
                try:
                    on_retry(attempt, e)
                except Exception as callback_error:
                    logger.warning(f"Retry callback raised {callback_error!r}")

            sleep(wait)
            wait *= backoff
        else:
            if attempt > 1:
                logger.info(f"Succeeded on attempt {attempt}/{max_attempts}")
            return result

    raise MaxRetriesExceeded(max_attempts, last_exception)


def retry_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Translate the ``error_handling`` section into retry_call keyword arguments.

    ``max_retries`` counts retries, so the attempt total is one more.
    """
    return {
        'max_attempts': int(config.get('max_retries', 3)) + 1,
        'delay': float(config.get('retry_wait_seconds', 1.0)),
        'backoff': float(config.get('retry_backoff', 1.0)),
    }


def is_retryable_error(exception: Exception) -> bool:
    """
    True for failures that another bind attempt could plausibly fix.

    Rejected credentials never qualify. Lost or refused connections do, as do
    ldap3 operation results carrying a transient result code.
    """
    if isinstance(exception, AuthenticationError):
        return False

    if isinstance(exception, (TransportError, LDAPCommunicationError, ConnectionError, TimeoutError)):
        return True

    if isinstance(exception, LDAPOperationResult):
        return exception.result in TRANSIENT_RESULT_CODES

    return False


def create_retry_callback(operation_name: str) -> Callable[[int, Exception], None]:
    """Return an on_retry callback that logs a warning naming the operation."""
    def on_retry(attempt: int, exception: Exception):
        logger.warning(f"{operation_name}: attempt {attempt} failed "
                       f"({type(exception).__name__}: {exception}), retrying")

    return on_retry
