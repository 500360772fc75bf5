"""
HTTP utilities - raw requests and readable page extraction.

- utility_curl_command: CURL-like request, returns status, headers and a
  window of the body
- utility_read_webpage: fetch a page and extract readable text with
  BeautifulSoup (httpx for fetching, SSRF guard, small in-memory cache)
"""

import hashlib
import logging
import re
import time
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from ..errors import UtilityExecutionError
from ..tools import ExecutionContext, UtilityDescriptor

logger = logging.getLogger(__name__)

_USER_AGENT = "Mozilla/5.0 (compatible; AgentBase/1.0)"

# ---------------------------------------------------------------------------
# SSRF guard
# ---------------------------------------------------------------------------

_BLOCKED_PATTERNS = re.compile(
    r"^https?://"
    r"(localhost|127\.|10\.|172\.(1[6-9]|2\d|3[01])\.|192\.168\.|169\.254\.|0\.0\.0\.0|\[::1?\])",
    re.IGNORECASE,
)


def is_safe_url(url: str) -> bool:
    return not _BLOCKED_PATTERNS.match(url)


def _normalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    return url


# ---------------------------------------------------------------------------
# utility_curl_command
# ---------------------------------------------------------------------------

CURL_WINDOW_CHARS = 4000
HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


async def curl_command_executor(args: dict, context: ExecutionContext) -> dict:
    """Execute an HTTP request and return a window of the response body."""
    url = _normalize_url(args["url"])
    method = args.get("method", "GET")
    headers: Dict[str, str] = args.get("headers") or {}
    body: Optional[str] = args.get("body")
    timeout_ms = args.get("timeout_ms", 10000)
    from_character = args.get("from_character", 0)

    if not is_safe_url(url):
        raise UtilityExecutionError("Cannot request internal or private network URLs.", {"url": url})

    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=timeout_ms / 1000) as client:
            response = await client.request(method, url, headers=headers, content=body)
    except httpx.TimeoutException:
        raise UtilityExecutionError(
            f"Request to {url} timed out after {timeout_ms}ms.",
            {"url": url, "timeout_ms": timeout_ms},
        )
    except httpx.HTTPError as e:
        raise UtilityExecutionError(f"Network error for {url}: {e}", {"url": url})

    text = response.text
    return {
        "status_code": response.status_code,
        "headers": dict(response.headers),
        "body": text[from_character:from_character + CURL_WINDOW_CHARS],
        "original_body_length": len(text),
        "from_character": from_character,
        "to_character": from_character + CURL_WINDOW_CHARS,
    }


CURL_COMMAND_SCHEMA = {
    "type": "object",
    "properties": {
        "url": {"type": "string", "description": "The URL to send the request to."},
        "method": {
            "type": "string",
            "enum": HTTP_METHODS,
            "default": "GET",
            "description": "The HTTP method to use.",
        },
        "headers": {
            "type": "object",
            "additionalProperties": {"type": "string"},
            "description": "Optional. Key-value pairs for request headers.",
        },
        "body": {"type": "string", "description": "Optional. The request body (e.g., for POST, PUT)."},
        "timeout_ms": {
            "type": "integer",
            "minimum": 1,
            "default": 10000,
            "description": "Optional. Request timeout in milliseconds.",
        },
        "from_character": {
            "type": "integer",
            "minimum": 0,
            "default": 0,
            "description": (
                "Optional. The starting character index to read the response from. "
                f"The response is truncated to {CURL_WINDOW_CHARS} characters from this point."
            ),
        },
    },
    "required": ["url"],
}


# ---------------------------------------------------------------------------
# utility_read_webpage
# ---------------------------------------------------------------------------

_cache: Dict[str, Tuple[str, float]] = {}
_CACHE_TTL_S = 300
_MAX_CACHE_ENTRIES = 64
_MAX_CONTENT_CHARS = 12000

_NON_CONTENT_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "form", "svg"]


def _cache_get(url: str) -> Optional[str]:
    key = hashlib.sha256(url.encode()).hexdigest()
    entry = _cache.get(key)
    if entry and entry[1] > time.time():
        return entry[0]
    _cache.pop(key, None)
    return None


def _cache_set(url: str, content: str) -> None:
    if len(_cache) >= _MAX_CACHE_ENTRIES:
        oldest_key = min(_cache, key=lambda k: _cache[k][1])
        _cache.pop(oldest_key, None)
    key = hashlib.sha256(url.encode()).hexdigest()
    _cache[key] = (content, time.time() + _CACHE_TTL_S)


def clear_cache() -> None:
    _cache.clear()


def extract_readable_text(raw_html: str, url: str, include_links: bool = False) -> Optional[str]:
    """Visible text of an HTML document, or None when nothing meaningful is found."""
    soup = BeautifulSoup(raw_html, "lxml")
    for tag in soup(_NON_CONTENT_TAGS):
        tag.decompose()

    if include_links:
        for link in soup.find_all("a", href=True):
            label = link.get_text(" ", strip=True)
            href = urljoin(url, link["href"])
            link.replace_with(f"{label} ({href})" if label else href)

    root = soup.find("main") or soup.find("article") or soup.body or soup
    text = root.get_text(separator="\n")
    lines = [ln.strip() for ln in text.splitlines()]
    text = "\n".join(ln for ln in lines if ln)
    if len(text) < 30:
        return None
    return text


async def read_webpage_executor(args: dict, context: ExecutionContext) -> str:
    """Fetch a URL and return its content as readable text."""
    url = _normalize_url(args["url"])
    include_links = args.get("include_links", False)

    if not is_safe_url(url):
        raise UtilityExecutionError("Cannot fetch internal or private network URLs.", {"url": url})

    cached = _cache_get(url)
    if cached:
        return cached

    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=20.0,
            headers={"User-Agent": _USER_AGENT},
        ) as client:
            resp = await client.get(url)
    except httpx.TimeoutException:
        raise UtilityExecutionError(f"Request to {url} timed out (20s).", {"url": url})
    except httpx.HTTPError as e:
        raise UtilityExecutionError(f"Could not fetch {url}: {e}", {"url": url})

    if resp.status_code >= 400:
        raise UtilityExecutionError(
            f"HTTP {resp.status_code} fetching {url}",
            {"url": url, "status_code": resp.status_code},
        )

    content_type = resp.headers.get("content-type", "")
    if "text/plain" in content_type or "application/json" in content_type:
        text = resp.text[:_MAX_CONTENT_CHARS]
        _cache_set(url, text)
        return text

    text = extract_readable_text(resp.text, url, include_links=include_links)
    if text is None:
        return (
            f"Fetched {url} but could not extract meaningful content. "
            "The page may require JavaScript or be behind a login."
        )

    if len(text) > _MAX_CONTENT_CHARS:
        text = text[:_MAX_CONTENT_CHARS] + "\n\n[Content truncated]"

    result = f"Content from {url}\n\n{text}"
    _cache_set(url, result)
    return result


READ_WEBPAGE_SCHEMA = {
    "type": "object",
    "properties": {
        "url": {
            "type": "string",
            "description": "The URL to fetch and read content from.",
        },
        "include_links": {
            "type": "boolean",
            "description": "Whether to include hyperlinks in the extracted text (default false).",
            "default": False,
        },
    },
    "required": ["url"],
}


curl_command = UtilityDescriptor(
    id="utility_curl_command",
    description="Executes a CURL-like HTTP request to a specified URL and returns the response.",
    parameters=CURL_COMMAND_SCHEMA,
    executor=curl_command_executor,
)

read_webpage = UtilityDescriptor(
    id="utility_read_webpage",
    description=(
        "Fetch a web page and return its main readable text. "
        "Use this to look things up or read a link the user shared."
    ),
    parameters=READ_WEBPAGE_SCHEMA,
    executor=read_webpage_executor,
)
