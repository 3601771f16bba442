import logging
from datetime import datetime
from typing import Callable, Optional

from config import Settings, settings as default_settings
from entitlement_cache import ResolverState
from exceptions import ExpiryParseError, FetchError
from models import EntitlementSet
from record_fetcher import RecordFetcher
from time_parser import parse_expiry
from transport import Transport

logger = logging.getLogger(__name__)

class LicenseClient:
    def __init__(
        self,
        state: ResolverState,
        fetcher: RecordFetcher,
        clock: Callable[[], datetime] = datetime.now,
        transport: Optional[Transport] = None,
    ):
        self.state = state
        self.fetcher = fetcher
        self.clock = clock
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LicenseClient":
        """Build a client (state, transport and fetcher) for the configured source."""
        settings = settings or default_settings
        transport = Transport(
            timeout=settings.LICENSE_API_TIMEOUT,
            proxy=settings.HTTP_PROXY,
            max_attempts=settings.FETCH_MAX_ATTEMPTS,
            retry_delay=settings.FETCH_RETRY_DELAY_SECONDS,
        )
        state = ResolverState(settings.LICENSE_SOURCE_CODE, settings.LICENSE_SOURCE_PASSWORD)
        return cls(state, RecordFetcher.from_settings(transport, settings), transport=transport)

    def fetch_entitlements(self) -> EntitlementSet:
        """
        Fetch the remote table and replace the cache with it.

        Runs outside the cache lock. On failure the FetchError propagates and
        the cache keeps whatever it held before.
        """
        records = self.fetcher.fetch_records(self.state)
        self.state.cache.write(records)
        return records

    def is_authorized(self, identifier: str, now: Optional[datetime] = None) -> bool:
        """
        Check whether ``identifier`` holds an unexpired entitlement.

        Any failure (fetch, missing identifier, unparseable expiry) answers
        False. The cache is only populated from the remote source while it is
        empty.
        """
        now = now or self.clock()

        records = self.state.cache.read()
        if records:
            logger.debug("Entitlement cache hit for %s", self.state.source_code)
        else:
            try:
                records = self.fetch_entitlements()
            except FetchError as e:
                logger.warning("Could not fetch entitlements for %s: %s", self.state.source_code, e)
                return False

        record = records.get(identifier)
        if record is None:
            return False

        try:
            expiry = parse_expiry(record.expiry_raw, now)
        except ExpiryParseError as e:
            logger.warning("Denying %s: %s", identifier, e)
            return False

        return now <= expiry

    def close(self):
        if self._transport is not None:
            self._transport.close()

    def __enter__(self) -> "LicenseClient":
        return self

    def __exit__(self, *exc_info):
        self.close()
