import re
from datetime import datetime
from functools import lru_cache
from typing import Optional, Sequence

from exceptions import ExpiryParseError

# Priority order: the first layout that parses wins.
DEFAULT_LAYOUTS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)

# strptime accepts unpadded fields, so each directive is pinned to a fixed width.
_DIRECTIVE_WIDTHS = {"Y": 4, "m": 2, "d": 2, "H": 2, "M": 2, "S": 2}
_DIRECTIVE_RE = re.compile(r"%(.)")


@lru_cache(maxsize=None)
def layout_pattern(layout: str) -> "re.Pattern[str]":
    """Return a regex matching exactly the zero-padded shape of ``layout``."""
    parts = []
    position = 0
    for match in _DIRECTIVE_RE.finditer(layout):
        parts.append(re.escape(layout[position:match.start()]))
        directive = match.group(1)
        if directive in _DIRECTIVE_WIDTHS:
            parts.append(r"\d{%d}" % _DIRECTIVE_WIDTHS[directive])
        elif directive == "%":
            parts.append("%")
        else:
            raise ValueError(f"unsupported directive %{directive} in layout {layout!r}")
        position = match.end()
    parts.append(re.escape(layout[position:]))
    return re.compile("".join(parts), re.ASCII)


def parse_first_match(
    raw: str,
    layouts: Sequence[str] = DEFAULT_LAYOUTS,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Parse ``raw`` as local wall time using the first layout that fits.

    Only the exact zero-padded shape of a layout is accepted. When ``now`` is
    timezone-aware the result is made aware in the local zone so the two can
    be compared; otherwise a naive local datetime is returned.
    """
    value = (raw or "").strip()
    if not value:
        return None

    for layout in layouts:
        if not layout_pattern(layout).fullmatch(value):
            continue
        try:
            parsed = datetime.strptime(value, layout)
        except ValueError:
            continue
        if now is not None and now.tzinfo is not None:
            parsed = parsed.astimezone()
        return parsed

    return None


def parse_expiry(raw: str, now: Optional[datetime] = None) -> datetime:
    parsed = parse_first_match(raw, DEFAULT_LAYOUTS, now)
    if parsed is None:
        raise ExpiryParseError(f"unrecognised expiry format: {raw!r}")
    return parsed
