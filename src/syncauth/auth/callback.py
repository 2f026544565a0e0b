"""Parsing of the provider's loopback redirect and the page sent back to the browser.

Only the request line is looked at. The browser-visible page is
informational; nothing in the session depends on it being delivered.
"""

from __future__ import annotations

import enum
import html
import logging
from urllib.parse import unquote

from syncauth.models import CallbackResult

logger = logging.getLogger(__name__)

_PAGE_STYLE = "font-family:sans-serif;text-align:center;padding:40px"


class CallbackPage(str, enum.Enum):
    """Which HTML page to answer a callback connection with."""

    SUCCESS = "success"
    FAILURE = "failure"
    UNEXPECTED = "unexpected"


def _parse_query(query: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in query.split("&"):
        key, _, value = pair.partition("=")
        if key:
            params[unquote(key)] = unquote(value)
    return params


def parse_callback(raw_request: bytes) -> CallbackResult:
    """Extract the authorization code or error from a raw HTTP request.

    The request line must read ``GET <path> HTTP/<version>``. The query
    string after the first ``?`` is split on ``&``, each pair on its first
    ``=``, and both halves are percent-decoded. ``code`` wins over
    ``error`` when both are present; empty values count as absent.

    Args:
        raw_request: Bytes read from the loopback connection.

    Returns:
        A :class:`~syncauth.models.CallbackResult`; empty for a non-GET or
        unparseable request, or one carrying neither parameter.
    """
    text = raw_request.decode("utf-8", errors="replace")
    request_line = text.split("\r\n", 1)[0].split("\n", 1)[0]
    parts = request_line.split()
    if len(parts) != 3 or parts[0] != "GET" or not parts[2].startswith("HTTP/"):
        logger.debug("Ignoring malformed callback request line: %.80r", request_line)
        return CallbackResult()

    _, _, query = parts[1].partition("?")
    params = _parse_query(query)

    if params.get("code"):
        return CallbackResult(code=params["code"])
    if params.get("error"):
        return CallbackResult(
            error=params["error"],
            error_description=params.get("error_description"),
        )
    return CallbackResult()


def _render_page(page: CallbackPage, detail: str | None) -> str:
    if page == CallbackPage.SUCCESS:
        return (
            f'<html><body style="{_PAGE_STYLE}">'
            "<h1>Authorization Successful</h1>"
            "<p>You can close this tab and return to the application.</p>"
            "</body></html>"
        )
    if page == CallbackPage.FAILURE:
        message = html.escape(detail or "Authorization failed")
        return (
            f'<html><body style="{_PAGE_STYLE}">'
            f"<h1>Authorization Failed</h1><p>{message}</p>"
            "</body></html>"
        )
    return "<html><body><p>Unexpected request</p></body></html>"


def build_response(page: CallbackPage, detail: str | None = None) -> bytes:
    """Build a complete ``HTTP/1.1 200`` response for *page*.

    The response always carries ``Content-Type: text/html; charset=UTF-8``,
    an exact ``Content-Length`` and ``Connection: close``.

    Args:
        page: Which page to render.
        detail: Provider error text shown on the failure page (HTML-escaped).
    """
    body = _render_page(page, detail).encode("utf-8")
    head = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: text/html; charset=UTF-8\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode("ascii")
    return head + body
