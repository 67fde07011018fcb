# /forkharness/core/decorators.py
# Reusable decorators for backend reads.
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential, before_sleep_log
from requests.exceptions import ConnectionError as RequestsConnectionError, Timeout
from forkharness.core.logger import get_logger
import logging

log = get_logger(__name__)

# Only for read-only calls. Anything that mutates ledger state is sent exactly once.
retriable_read_call = retry(
    retry=retry_if_exception_type((RequestsConnectionError, Timeout)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True # Re-raise the last exception after retries are exhausted
)
