"""
Retrieval of entitlement records from the publishing surface.

Two strategies read the same logical table:

* ``ApiStrategy`` posts the source code and password to the batch API and
  digs an HTML fragment out of the nested JSON it returns.
* ``ScrapeStrategy`` loads the public source page, follows the embedded
  ``jump_url`` and reads the table from the page it points at.

``RecordFetcher`` walks its strategies in order and returns the first
non-empty result.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Sequence, Union
from urllib.parse import urlencode, urljoin, urlparse

from entitlement_cache import ResolverState
from exceptions import FetchError, NoDataError, ParseError, TransportError
from markup import RedirectExtractor, TableExtractor, extract_redirect, extract_table
from models import EntitlementSet
from transport import Transport, call_with_retries

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36 Edg/143.0.0.0"
)
BROWSER_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
    "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
)

CONTENT_HTML_PATH = (
    "data", "qrcode_msg", "qrcode_component", 0,
    "attribute_list", 0, "content_html", "value",
)


class RecordStrategy:
    """One self-contained way of obtaining the entitlement table."""

    name = "strategy"

    def is_available(self, state: ResolverState) -> bool:
        return True

    def try_fetch(self, state: ResolverState) -> EntitlementSet:
        """Return the records or raise ``TransportError`` / ``ParseError``."""
        raise NotImplementedError


def _decode_json(payload: Union[str, bytes], what: str) -> Any:
    try:
        return json.loads(payload)
    except (TypeError, ValueError, RecursionError) as e:
        raise ParseError(f"{what} is not valid JSON: {e}") from e


def _dig(node: Any, path: Sequence[Union[str, int]]) -> Any:
    walked: List[str] = []
    for step in path:
        walked.append(str(step))
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                raise ParseError(f"api response has no {'.'.join(walked)}")
        elif not isinstance(node, dict) or step not in node:
            raise ParseError(f"api response has no {'.'.join(walked)}")
        node = node[step]
    return node


def extract_content_html(envelope_text: Union[str, bytes]) -> str:
    """
    Pull the table fragment out of a batch API response.

    The outer envelope carries a list of response bodies under
    ``responses``; the first one is itself JSON (either a string, a
    ``{"body": ...}`` wrapper or an already-decoded object).
    """
    envelope = _decode_json(envelope_text, "batch envelope")
    responses = envelope.get("responses") if isinstance(envelope, dict) else envelope
    if not isinstance(responses, list) or not responses:
        raise ParseError("batch envelope holds no responses")

    body = responses[0]
    if isinstance(body, dict) and "body" in body:
        body = body["body"]
    if isinstance(body, (str, bytes)):
        body = _decode_json(body, "batch response body")

    fragment = _dig(body, CONTENT_HTML_PATH)
    if not isinstance(fragment, str) or not fragment.strip():
        raise ParseError("api response content_html is empty")
    return fragment


class ApiStrategy(RecordStrategy):
    name = "api"

    def __init__(
        self,
        transport: Transport,
        api_url: str,
        route_path: str,
        source_base_url: str,
        table_extractor: TableExtractor = extract_table,
    ):
        self.transport = transport
        self.api_url = api_url
        self.route_path = route_path
        self.source_base_url = source_base_url
        self.table_extractor = table_extractor

    def is_available(self, state: ResolverState) -> bool:
        return bool(state.password)

    def build_envelope(self, state: ResolverState) -> str:
        form = urlencode({"code": state.source_code, "password": state.password or ""})
        return json.dumps({
            "requests": [{
                "method": "POST",
                "path": self.route_path,
                "headers": {"content-type": "application/x-www-form-urlencoded"},
                "body": form,
            }]
        })

    def build_headers(self, state: ResolverState) -> Dict[str, str]:
        source = urlparse(self.source_base_url)
        origin = f"{source.scheme}://{source.netloc}"
        return {
            "accept": "application/json, text/plain, */*",
            "content-type": "application/json;charset=UTF-8",
            "origin": origin,
            "referer": f"{origin}/{state.source_code}",
            "sec-ch-ua": '"Microsoft Edge";v="143", "Chromium";v="143", "Not A(Brand";v="24"',
            "sec-ch-ua-mobile": "?0",
            "sec-ch-ua-platform": '"Windows"',
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "cross-site",
            "user-agent": BROWSER_USER_AGENT,
        }

    def try_fetch(self, state: ResolverState) -> EntitlementSet:
        response = self.transport.fetch(
            "POST",
            self.api_url,
            headers=self.build_headers(state),
            body=self.build_envelope(state),
        )
        fragment = extract_content_html(response.content)
        table = self.table_extractor(fragment)
        if not table:
            raise ParseError("api content_html holds no table rows")
        return EntitlementSet.from_mapping(table)


class ScrapeStrategy(RecordStrategy):
    name = "scrape"

    def __init__(
        self,
        transport: Transport,
        source_base_url: str,
        table_extractor: TableExtractor = extract_table,
        redirect_extractor: RedirectExtractor = extract_redirect,
    ):
        self.transport = transport
        self.source_base_url = source_base_url
        self.table_extractor = table_extractor
        self.redirect_extractor = redirect_extractor

    def source_url(self, state: ResolverState) -> str:
        return self.source_base_url.rstrip("/") + "/" + state.source_code

    def _with_retries(self, operation, description: str):
        # Both stages retry on "not found yet" as well as on transport errors.
        return call_with_retries(
            operation,
            max_attempts=self.transport.max_attempts,
            retry_delay=self.transport.retry_delay,
            retry_on=(TransportError, ParseError),
            sleep=self.transport.sleep,
            description=description,
        )

    def _find_redirect(self, url: str) -> str:
        response = self.transport.fetch("GET", url, max_attempts=1)
        target = self.redirect_extractor(response.text)
        if not target:
            raise ParseError(f"jump_url not found at {url}")
        try:
            return urljoin(url, target)
        except ValueError as e:
            raise ParseError(f"malformed jump_url {target!r} at {url}: {e}") from e

    def _read_table(self, url: str) -> Dict[str, str]:
        response = self.transport.fetch(
            "GET",
            url,
            headers={"accept": BROWSER_ACCEPT, "user-agent": BROWSER_USER_AGENT},
            max_attempts=1,
        )
        table = self.table_extractor(response.text)
        if not table:
            raise ParseError(f"table not found at {url}")
        return table

    def try_fetch(self, state: ResolverState) -> EntitlementSet:
        source_url = self.source_url(state)
        jump_url = self._with_retries(
            lambda: self._find_redirect(source_url), f"resolve jump_url from {source_url}"
        )
        table = self._with_retries(
            lambda: self._read_table(jump_url), f"read table from {jump_url}"
        )
        return EntitlementSet.from_mapping(table)


class RecordFetcher:
    def __init__(self, strategies: Iterable[RecordStrategy]):
        self.strategies = list(strategies)

    @classmethod
    def from_settings(cls, transport: Transport, settings) -> "RecordFetcher":
        return cls([
            ApiStrategy(
                transport,
                api_url=settings.LICENSE_BATCH_API_URL,
                route_path=settings.LICENSE_BATCH_ROUTE_PATH,
                source_base_url=settings.LICENSE_SOURCE_BASE_URL,
            ),
            ScrapeStrategy(transport, source_base_url=settings.LICENSE_SOURCE_BASE_URL),
        ])

    def fetch_records(self, state: ResolverState) -> EntitlementSet:
        """
        Return the first non-empty EntitlementSet any strategy produces.

        Raises NoDataError when every available strategy fails or comes back
        empty.
        """
        for strategy in self.strategies:
            if not strategy.is_available(state):
                logger.debug("Skipping %s strategy: not configured", strategy.name)
                continue

            try:
                records = strategy.try_fetch(state)
            except FetchError as e:
                logger.warning("%s strategy failed for %s: %s", strategy.name, state.source_code, e)
                continue

            if records:
                logger.info(
                    "%s strategy returned %d record(s) for %s",
                    strategy.name, len(records), state.source_code,
                )
                return records

            logger.warning("%s strategy returned no records for %s", strategy.name, state.source_code)

        raise NoDataError("no data found")
