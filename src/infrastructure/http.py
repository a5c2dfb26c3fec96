import aiohttp
import asyncio
import logging
import random
from typing import Dict, Any, Optional

from src.domain.exceptions import ResponseParseException, TransportException

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {500, 502, 503, 504}
DEFAULT_SECONDARY_LIMIT_SLEEP = 60


def backoff_delay(attempt: int) -> float:
    return (2 ** attempt) + random.uniform(0, 2)


async def post_json(
    session: aiohttp.ClientSession,
    url: str,
    payload: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[aiohttp.ClientTimeout] = None,
    max_retries: int = 5,
) -> Dict[str, Any]:
    """
    POSTs a JSON payload and returns the decoded JSON body.

    Retries secondary rate limits (403 + Retry-After), 5xx responses and
    transport errors with exponential backoff.

    Raises:
        TransportException: on a non-retryable status or once retries are exhausted.
        ResponseParseException: when a 2xx body is not JSON.
    """
    last_error = "no attempt made"
    for attempt in range(max_retries):
        try:
            async with session.post(url, json=payload, headers=headers, timeout=timeout) as response:
                if response.status == 403:
                    retry_after = response.headers.get('Retry-After')
                    sleep_time = int(retry_after) if retry_after else DEFAULT_SECONDARY_LIMIT_SLEEP
                    logger.warning(f"Secondary rate limit (403) from {url}. Sleeping {sleep_time}s...")
                    last_error = "secondary rate limit"
                    await asyncio.sleep(sleep_time)
                    continue

                if response.status in RETRYABLE_STATUSES:
                    sleep_time = backoff_delay(attempt)
                    logger.warning(
                        f"Server error ({response.status}) from {url}, "
                        f"retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{max_retries})..."
                    )
                    last_error = f"server error {response.status}"
                    await asyncio.sleep(sleep_time)
                    continue

                if response.status >= 400:
                    raise TransportException(url, f"Request failed with status {response.status}", response.status)

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    # Covers JSONDecodeError and UnicodeDecodeError.
                    raise ResponseParseException(f"Response from {url} is not valid JSON: {e}") from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            sleep_time = backoff_delay(attempt)
            logger.warning(
                f"Request to {url} failed (attempt {attempt + 1}/{max_retries}): {e}. "
                f"Retrying in {sleep_time:.1f}s..."
            )
            last_error = str(e) or type(e).__name__
            await asyncio.sleep(sleep_time)

    raise TransportException(url, f"Failed after {max_retries} attempts: {last_error}")


async def get_text(
    session: aiohttp.ClientSession,
    url: str,
    timeout: Optional[aiohttp.ClientTimeout] = None,
    max_retries: int = 5,
) -> str:
    """GETs a plain-text document, retrying 5xx responses and transport errors."""
    last_error = "no attempt made"
    for attempt in range(max_retries):
        try:
            async with session.get(url, timeout=timeout) as response:
                if response.status in RETRYABLE_STATUSES:
                    sleep_time = backoff_delay(attempt)
                    logger.warning(f"Server error ({response.status}) from {url}, retrying in {sleep_time:.1f}s...")
                    last_error = f"server error {response.status}"
                    await asyncio.sleep(sleep_time)
                    continue

                if response.status >= 400:
                    raise TransportException(url, f"Request failed with status {response.status}", response.status)

                try:
                    return await response.text()
                except UnicodeDecodeError as e:
                    raise ResponseParseException(f"Response from {url} is not decodable text: {e}") from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            sleep_time = backoff_delay(attempt)
            logger.warning(f"GET {url} failed (attempt {attempt + 1}/{max_retries}): {e}. Retrying in {sleep_time:.1f}s...")
            last_error = str(e) or type(e).__name__
            await asyncio.sleep(sleep_time)

    raise TransportException(url, f"Failed after {max_retries} attempts: {last_error}")
