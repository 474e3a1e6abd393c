"""
Decorators and API request utilities.
"""

import functools
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from app.rebalancer.logging_config import LOGGER_NAME


def retry_request(logger: logging.Logger, max_retries: int = 3, delay: float = 10) -> Callable:
    """
    Decorator to retry a function on RequestException.

    Args:
        logger: Logger instance for retry logging.
        max_retries: Maximum number of retry attempts.
        delay: Delay between retries in seconds.

    Returns:
        Decorated function with retry logic, returning None once retries are exhausted.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except requests.RequestException as e:
                    logger.warning(
                        "Error in API request, attempt %s/%s: %s",
                        attempt, max_retries, e,
                    )

                    if attempt == max_retries:
                        logger.error("Failed after %s attempts.", max_retries)
                        return None

                    time.sleep(delay)
            return None

        return wrapper

    return decorator


@retry_request(logging.getLogger(LOGGER_NAME), max_retries=2, delay=1)
def make_api_request(url: str, timeout: float = 10) -> Optional[Dict[str, Any]]:
    """
    GET a JSON document, retrying on request errors.

    A body that is not valid JSON counts as a request error.

    Returns:
        Decoded JSON if successful, None once retries are exhausted.
    """
    response = requests.get(url, headers={"Accept": "application/json"}, timeout=timeout)
    response.raise_for_status()
    return response.json()
