import logging
import time
from typing import Callable, Mapping, NamedTuple, Optional, Tuple, Type, TypeVar, Union

import httpx

from exceptions import ParseError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_RETRY_DELAY_SECONDS = 3.0


class FetchResponse(NamedTuple):
    status_code: int
    content: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


def call_with_retries(
    operation: Callable[[], T],
    max_attempts: int,
    retry_delay: float,
    retry_on: Tuple[Type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Exceptions listed in ``retry_on`` trigger another attempt after
    ``retry_delay`` seconds; anything else propagates immediately. When the
    budget is spent the last exception is re-raised.
    """
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except retry_on as e:
            logger.warning(
                "%s failed (attempt %d/%d): %s", description, attempt, attempts, e
            )
            if attempt == attempts:
                raise
            sleep(retry_delay)

    raise AssertionError("unreachable")  # pragma: no cover


class Transport:
    """
    Blocking HTTP transport with a bounded retry loop.

    Only connection and body-read failures are retried; a URL httpx cannot
    parse raises ParseError at once. A response with any status code is
    returned to the caller as data.
    """

    def __init__(
        self,
        timeout: float = 30,
        proxy: Optional[str] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        client: Optional[httpx.Client] = None,
    ):
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.sleep = sleep
        if client is None:
            # The proxy lives on the client so every attempt goes through it.
            client = httpx.Client(timeout=timeout, proxy=proxy or None, follow_redirects=True)
        self._client = client

    def fetch(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> FetchResponse:
        def attempt() -> FetchResponse:
            try:
                response = self._client.request(
                    method.upper(), url, headers=dict(headers or {}), content=body
                )
            except httpx.InvalidURL as e:
                # Malformed URLs are not retried.
                raise ParseError(f"{method.upper()} {url}: {e}") from e
            except httpx.RequestError as e:
                raise TransportError(f"{method.upper()} {url}: {e}") from e
            return FetchResponse(response.status_code, response.content)

        return call_with_retries(
            attempt,
            max_attempts=self.max_attempts if max_attempts is None else max_attempts,
            retry_delay=self.retry_delay if retry_delay is None else retry_delay,
            retry_on=(TransportError,),
            sleep=self.sleep,
            description=f"{method.upper()} {url}",
        )

    def close(self) -> None:
        self._client.close()
