"""REST API transport built on aiohttp, with rate limiting and retry logic."""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential
)
from tenacity.wait import wait_base
from reposcope.config import Settings
from reposcope.domain.errors import (
    ApiError,
    DeserializationError,
    RateLimitException,
    TransportError
)
from reposcope.domain.models import ApiResponse
from reposcope.domain.transport_interface import Deserializer, ITransport, R


logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


def _encode_query(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    """Render a parameter bag as query-string values.

    aiohttp refuses booleans in query strings, so they are spelled the way
    the API expects them.
    """
    if params is None:
        return None
    encoded = {}
    for key, value in params.items():
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


def _header_int(headers: Mapping[str, str], name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class wait_for_rate_limit(wait_base):
    """Wait as long as a rate-limit response asks, else defer to ``fallback``.

    ``Retry-After`` wins over ``X-RateLimit-Reset``; a reset time already in
    the past falls through to the fallback strategy.
    """

    def __init__(self, fallback, clock=time.time):
        self.fallback = fallback
        self.clock = clock

    def __call__(self, retry_state) -> float:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None and outcome.failed else None
        if isinstance(error, RateLimitException):
            if error.retry_after is not None:
                return max(float(error.retry_after), 0.0)
            if error.reset_at is not None:
                until_reset = error.reset_at - self.clock()
                if until_reset > 0:
                    logger.warning(f"Rate limited; retrying in {until_reset:.0f} seconds")
                    return until_reset + 1  # Add 1 second buffer
        return self.fallback(retry_state)


class AiohttpTransport(ITransport):
    """REST transport with rate limiting and retry mechanisms.

    Implements the ITransport port. Owns the HTTP session, authentication
    headers and the retry policy, none of which request builders see.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        retry_wait=None,
    ):
        """Initialize the transport.

        Args:
            settings: Connection settings; defaults are used when omitted
            retry_wait: tenacity wait strategy between attempts when the
                server does not say how long to wait
        """
        self._settings = settings or Settings()
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=4, max=60)
        self._session: Optional[aiohttp.ClientSession] = None
        self._rate_limit_remaining: Optional[int] = None
        self._rate_limit_reset_at: Optional[datetime] = None

    @property
    def rate_limit_remaining(self) -> Optional[int]:
        return self._rate_limit_remaining

    @property
    def rate_limit_reset_at(self) -> Optional[datetime]:
        return self._rate_limit_reset_at

    async def _init_session(self) -> aiohttp.ClientSession:
        """Initialize the HTTP session (lazy initialization)."""
        if self._session is None or self._session.closed:
            headers = {
                "Accept": "application/vnd.github+json",
                "User-Agent": self._settings.user_agent,
            }
            if self._settings.token:
                headers["Authorization"] = f"Bearer {self._settings.token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout_seconds),
            )
        return self._session

    async def _check_rate_limit(self) -> None:
        """Check and handle rate limiting."""
        if self._rate_limit_remaining is None:
            return
        if self._rate_limit_remaining <= self._settings.rate_limit_floor:
            if self._rate_limit_reset_at:
                wait_time = (self._rate_limit_reset_at - datetime.now(timezone.utc)).total_seconds()
                if wait_time > 0:
                    logger.warning(
                        f"Rate limit nearly exhausted. Waiting {wait_time:.0f} seconds "
                        f"until reset at {self._rate_limit_reset_at}"
                    )
                    await asyncio.sleep(wait_time + 1)  # Add 1 second buffer

    def _update_rate_limit(self, headers: Mapping[str, str]) -> None:
        remaining = _header_int(headers, "X-RateLimit-Remaining")
        if remaining is None:
            return
        self._rate_limit_remaining = remaining
        reset = _header_int(headers, "X-RateLimit-Reset")
        if reset is not None:
            self._rate_limit_reset_at = datetime.fromtimestamp(reset, tz=timezone.utc)
        logger.info(
            f"Rate limit remaining: {self._rate_limit_remaining}, "
            f"resets at: {self._rate_limit_reset_at}"
        )

    def _url(self, route: str) -> str:
        if route.startswith("http://") or route.startswith("https://"):
            return route
        return self._settings.api_base_url.rstrip("/") + "/" + route.lstrip("/")

    def _error_from_response(
        self,
        status: int,
        url: str,
        headers: Mapping[str, str],
        body: Any,
    ) -> ApiError:
        message = f"HTTP {status}"
        documentation_url = None
        errors = None
        if isinstance(body, Mapping):
            message = str(body.get("message") or message)
            documentation_url = body.get("documentation_url")
            errors = body.get("errors")

        retry_after = _header_int(headers, "Retry-After")
        exhausted = _header_int(headers, "X-RateLimit-Remaining") == 0
        if status == 429 or (
            status == 403
            and (exhausted or retry_after is not None or "rate limit" in message.lower())
        ):
            return RateLimitException(
                message,
                status,
                reset_at=_header_int(headers, "X-RateLimit-Reset"),
                retry_after=retry_after,
                url=url,
                documentation_url=documentation_url,
                errors=errors,
            )
        return ApiError(
            message,
            status,
            url=url,
            documentation_url=documentation_url,
            errors=errors,
        )

    async def _execute(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, str]],
        body: Optional[Mapping[str, Any]],
    ) -> ApiResponse:
        """Execute a single HTTP request.

        Raises:
            RateLimitException: When rate limit is hit
            ApiError: On any other non-2xx status
            TransportError: On network failure or timeout
        """
        session = await self._init_session()
        await self._check_rate_limit()

        logger.debug(f"{method} {url} params={params}")
        try:
            async with session.request(method, url, params=params, json=body) as response:
                self._update_rate_limit(response.headers)
                try:
                    payload = await response.json(content_type=None)
                except ValueError as e:
                    if response.status < 400:
                        raise DeserializationError(f"Response from {url} is not JSON: {e}") from e
                    payload = None

                if response.status >= 400:
                    raise self._error_from_response(
                        response.status, url, response.headers, payload
                    )

                links = {
                    str(rel): str(link["url"])
                    for rel, link in response.links.items()
                }
                return ApiResponse(
                    status=response.status,
                    json=payload,
                    headers=dict(response.headers),
                    links=links,
                )
        except asyncio.TimeoutError as e:
            logger.error(f"Timed out on {method} {url}")
            raise TransportError(f"Request timed out: {method} {url}", url=url) from e
        except aiohttp.ClientError as e:
            logger.error(f"Error executing {method} {url}: {e}")
            raise TransportError(str(e), url=url) from e

    async def _request(
        self,
        method: str,
        route: str,
        params: Optional[Mapping[str, Any]],
        body: Optional[Mapping[str, Any]],
        deserializer: Deserializer,
    ) -> R:
        url = self._url(route)
        idempotent = method in IDEMPOTENT_METHODS

        def should_retry(error: BaseException) -> bool:
            if isinstance(error, RateLimitException):
                return True
            # Only connection-level failures of safe requests are replayed
            return (
                idempotent
                and isinstance(error, TransportError)
                and not isinstance(error, ApiError)
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception(should_retry),
            stop=stop_after_attempt(self._settings.max_retries),
            wait=wait_for_rate_limit(self._retry_wait),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._execute(method, url, _encode_query(params), body)
        return deserializer(response)

    async def get(
        self,
        route: str,
        params: Optional[Mapping[str, Any]],
        deserializer: Deserializer,
    ) -> R:
        return await self._request("GET", route, params, None, deserializer)

    async def post(
        self,
        route: str,
        body: Optional[Mapping[str, Any]],
        deserializer: Deserializer,
    ) -> R:
        return await self._request("POST", route, None, body, deserializer)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
