"""
HTTP Raw Transport - Fetches replay shards from the remote service.

Endpoint used:
- GET {base_url}/filter/{exchange}/{minute}
    query: channels (repeated), start, end (nanoseconds), format

The body is text with one record per line, tab separated:

    type \\t timestamp \\t channel \\t message

Channel and message may be absent for non-message lines. A 404 means
the shard holds no data.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

from market_replay.config import ClientConfig
from market_replay.exceptions import RateLimitError, TransportError
from market_replay.models import LineType, RawLine
from market_replay.transport.base import BaseRawTransport


logger = logging.getLogger(__name__)


def parse_shard(exchange: str, body: str) -> list[RawLine]:
    """
    Parse a shard body into raw lines.

    Raises:
        TransportError: If a line is malformed
    """
    lines: list[RawLine] = []
    # Only "\n" separates records; JSON payloads may hold other line breaks
    for number, text in enumerate(body.split("\n"), start=1):
        text = text.rstrip("\r")
        if not text:
            continue
        parts = text.split("\t", 3)
        try:
            if len(parts) < 2:
                raise ValueError("expected at least type and timestamp")
            line_type = LineType.parse(parts[0])
            timestamp = int(parts[1])
            channel = parts[2] if len(parts) > 2 and parts[2] else None
            message = parts[3].encode("utf-8") if len(parts) > 3 else None
            lines.append(RawLine(
                exchange=exchange,
                type=line_type,
                timestamp=timestamp,
                channel=channel,
                message=message,
            ))
        except ValueError as e:
            raise TransportError(
                message=f"Malformed line {number} in {exchange} shard: {e}",
                response_body=text[:1000],
                original_error=e,
            ) from e
    return lines


class HttpRawTransport(BaseRawTransport):
    """
    Raw transport over the remote HTTP API.

    Retries server errors, rate limits and connection failures with
    exponential backoff; client errors are raised at once.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._session = session
        self._owns_session = session is None

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "http"

    @property
    def config(self) -> ClientConfig:
        """Client configuration in use."""
        return self._config

    async def fetch_shard(
        self,
        exchange: str,
        channels: list[str],
        minute: int,
        start: int,
        end: int,
        format: str,
    ) -> list[RawLine]:
        """Fetch and parse one shard."""
        url = f"{self._config.base_url}/filter/{exchange}/{minute}"
        params: list[tuple[str, Any]] = [("channels", channel) for channel in channels]
        params.extend([
            ("start", str(start)),
            ("end", str(end)),
            ("format", format),
        ])

        body = await self._fetch_with_retry(url, params)
        if body is None:
            logger.debug(f"[{self.name}] Empty shard {exchange}/{minute}")
            return []
        return parse_shard(exchange, body)

    async def _fetch_with_retry(
        self,
        url: str,
        params: list[tuple[str, Any]],
    ) -> Optional[str]:
        """Fetch with exponential backoff retry."""
        max_retries = self._config.max_retries
        backoff = self._config.retry_backoff_base
        last_error: Optional[Exception] = None

        for attempt in range(max_retries):
            try:
                return await self._make_request(url, params)

            except RateLimitError as e:
                wait_time = e.retry_after_seconds or (backoff ** attempt)
                logger.warning(
                    f"[{self.name}] Rate limited, waiting {wait_time}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                last_error = e

            except TransportError as e:
                if not e.retryable:
                    # Don't retry client errors
                    raise
                wait_time = backoff ** attempt
                logger.warning(
                    f"[{self.name}] {e.message}, retrying in {wait_time}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                last_error = e

            if attempt + 1 < max_retries:
                await asyncio.sleep(wait_time)

        # All retries exhausted
        raise TransportError(
            message=f"Failed after {max_retries} attempts",
            request_url=url,
            status_code=getattr(last_error, "status_code", None),
            original_error=last_error,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        headers = {
            "Accept": "text/plain",
            "User-Agent": "market-replay/1.0",
        }
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    async def _make_request(
        self,
        url: str,
        params: list[tuple[str, Any]],
    ) -> Optional[str]:
        """Make HTTP request with error handling. None means no content."""
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.get(url, params=params) as response:
                latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                        request_url=url,
                    )

                if response.status == 404:
                    return None

                if response.status >= 400:
                    body = await response.text()
                    raise TransportError(
                        message=f"HTTP {response.status}",
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                body = await response.text()
                logger.debug(f"[{self.name}] {url} completed in {latency_ms:.1f}ms")
                return body

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                message=f"Connection error: {e}",
                request_url=url,
                original_error=e,
            ) from e

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
