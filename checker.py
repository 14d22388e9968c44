import asyncio
import logging
import time
from typing import Optional

import httpx

import config
from schemas import CheckResult
from scoring import calculate_performance_score

logger = logging.getLogger(__name__)

TTFB_RATIO = 0.3


def _elapsed_ms(start: float) -> int:
    return round((time.monotonic() - start) * 1000)


def _header_content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


async def _probe(client: httpx.AsyncClient, url: str, start: float):
    async with client.stream("GET", url, headers={"User-Agent": config.USER_AGENT}) as response:
        load_time = _elapsed_ms(start)
        content_length = _header_content_length(response)
        if content_length is None:
            # no usable header, so the whole body is buffered to measure it
            body = await response.aread()
            content_length = len(body)
        return response.status_code, load_time, content_length


def _describe(exc: Exception) -> str:
    message = str(exc)
    name = type(exc).__name__
    return f"{name}: {message}" if message else name


async def check_website(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout_ms: int = config.CHECK_TIMEOUT_MS,
) -> CheckResult:
    """Issue one timed GET against ``url`` and describe the outcome.

    Never raises: timeouts, DNS failures, refused connections and any other
    failure come back as an offline result with a score of 0.
    Any status code the server answers with counts as online.
    """
    owns_client = client is None
    if owns_client:
        # the deadline below is the only timeout, httpx's own defaults are shorter
        client = httpx.AsyncClient(follow_redirects=True, timeout=None)

    start = time.monotonic()
    try:
        status_code, load_time, content_length = await asyncio.wait_for(
            _probe(client, url, start), timeout=timeout_ms / 1000
        )
    except asyncio.TimeoutError:
        load_time = _elapsed_ms(start)
        logger.warning("DOWN: %s timed out after %d ms", url, load_time)
        return CheckResult(
            url=url,
            status="offline",
            load_time=load_time,
            error=f"Request timed out after {timeout_ms} ms",
            performance_score=0,
        )
    except Exception as e:
        load_time = _elapsed_ms(start)
        logger.warning("DOWN: %s - %s", url, _describe(e))
        return CheckResult(
            url=url,
            status="offline",
            load_time=load_time,
            error=_describe(e),
            performance_score=0,
        )
    finally:
        if owns_client:
            await client.aclose()

    score = calculate_performance_score(load_time, status_code)
    logger.info("UP: %s - status %d in %d ms, score %d", url, status_code, load_time, score)
    return CheckResult(
        url=url,
        status="online",
        status_code=status_code,
        load_time=load_time,
        content_length=content_length,
        performance_score=score,
        ttfb=round(load_time * TTFB_RATIO),
    )
