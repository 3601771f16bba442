"""Error taxonomy for entitlement resolution.

None of these escape ``LicenseClient.is_authorized``; they are converted to a
``False`` result there. ``fetch_entitlements`` lets ``FetchError`` through so
operators can see why a refresh failed.
"""


class EntitlementError(Exception):
    """Base class for every entitlement resolution failure."""


class FetchError(EntitlementError):
    """The remote source did not produce usable records."""


class TransportError(FetchError):
    """Connection or body-read failure after the attempt budget ran out."""


class ParseError(FetchError):
    """A response did not have the expected HTML/JSON shape."""


class NoDataError(FetchError):
    """Every strategy finished without a single usable record."""


class ExpiryParseError(EntitlementError, ValueError):
    """An expiry string matched none of the accepted layouts."""
