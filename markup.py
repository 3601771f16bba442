"""
Pattern-based extraction over the HTML served by the publishing surface.

Callers depend only on the ``TableExtractor`` / ``RedirectExtractor``
signatures, so a real HTML-tree implementation can replace these functions
without touching the record fetcher.
"""
import html
import re
from typing import Callable, Dict, Optional

TableExtractor = Callable[[str], Dict[str, str]]
RedirectExtractor = Callable[[str], Optional[str]]

_JUMP_URL_RE = re.compile(r'var jump_url="(.*?)";')
_TABLE_RE = re.compile(r"(<table.*?</table>)", re.S)
_ROW_RE = re.compile(r"<tr.*?>(.*?)</tr>", re.S)
_CELL_RE = re.compile(r"<td.*?>(.*?)</td>", re.S)
_TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(fragment: str) -> str:
    """Remove markup from a cell and return its trimmed text."""
    return html.unescape(_TAG_RE.sub("", fragment)).strip()


def extract_table(document: str) -> Dict[str, str]:
    """
    Read ``first cell -> second cell`` pairs from the first table in a page.

    Rows with fewer than two cells, or with an empty key or value, are
    skipped. A repeated key keeps the value from the later row. Returns an
    empty dict when the page has no table.
    """
    match = _TABLE_RE.search(document or "")
    if not match:
        return {}

    table: Dict[str, str] = {}
    for row in _ROW_RE.findall(match.group(1)):
        cells = _CELL_RE.findall(row)
        if len(cells) < 2:
            continue
        key = strip_tags(cells[0])
        value = strip_tags(cells[1])
        if not key or not value:
            continue
        table[key] = value

    return table


def extract_redirect(document: str) -> Optional[str]:
    """Return the ``var jump_url="...";`` target embedded in a page, if any."""
    match = _JUMP_URL_RE.search(document or "")
    if not match:
        return None
    return match.group(1) or None
