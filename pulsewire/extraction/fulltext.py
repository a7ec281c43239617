"""Article page fetch + extraction.

The orchestrator only needs title, body and images; anything that cannot
produce a title and a body is reported as a non-ok status and skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

import ipaddress
import logging
from urllib.parse import urlparse

import requests
import trafilatura

from pulsewire.ingestion.content_types import ArticleDetail

logger = logging.getLogger(__name__)

USER_AGENT = "PulseWire/1.0 (+news digest)"


@dataclass(frozen=True)
class FulltextResult:
    detail: Optional[ArticleDetail]
    status: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok" and self.detail is not None


_PRIVATE_NETS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]


def _is_private_ip(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return any(ip in net for net in _PRIVATE_NETS)


def validate_fetch_url(url: str) -> Optional[str]:
    """Return an error code if the URL must not be fetched (SSRF guard)."""
    try:
        p = urlparse(url)
    except ValueError:
        return "invalid_url"
    if p.scheme not in ("http", "https"):
        return "bad_scheme"
    host = (p.hostname or "").strip().lower()
    if not p.netloc or not host:
        return "missing_host"
    if host in ("localhost", "localhost.localdomain"):
        return "blocked_host"
    if _is_private_ip(host):
        return "blocked_private_ip"
    return None


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def download_html(url: str, *, timeout: float = 25, max_bytes: int = 2_000_000) -> Tuple[Optional[str], str]:
    """(html, status); html is None unless status is "ok"."""
    resp = requests.get(
        url,
        headers={"User-Agent": USER_AGENT},
        timeout=(5, timeout),
        allow_redirects=True,
        stream=True,
    )
    if resp.status_code >= 400:
        return None, f"http_{resp.status_code}"
    content = b""
    for chunk in resp.iter_content(chunk_size=64 * 1024):
        if not chunk:
            continue
        content += chunk
        if len(content) > max_bytes:
            return None, "too_large"
    html = content.decode(resp.encoding or "utf-8", errors="replace")
    if not html.strip():
        return None, "empty"
    return html, "ok"


def extract_article(url: str, html: str) -> FulltextResult:
    body = trafilatura.extract(html, include_comments=False, include_tables=False)
    if not body or not body.strip():
        return FulltextResult(detail=None, status="no_extract", error="no_extract")
    meta = trafilatura.extract_metadata(html)
    title = (getattr(meta, "title", None) or "").strip()
    if not title:
        return FulltextResult(detail=None, status="no_title", error="no_title")
    image = getattr(meta, "image", None)
    detail = ArticleDetail(
        url=url,
        title=title,
        body=body.strip(),
        image_urls=(image,) if image else (),
        published_at=_parse_date(getattr(meta, "date", None)),
    )
    return FulltextResult(detail=detail, status="ok")


def fetch_article(url: str, *, timeout: float = 25, max_bytes: int = 2_000_000) -> FulltextResult:
    if not url:
        return FulltextResult(detail=None, status="error", error="empty_url")
    err = validate_fetch_url(url)
    if err:
        return FulltextResult(detail=None, status="blocked", error=err)
    try:
        html, status = download_html(url, timeout=timeout, max_bytes=max_bytes)
    except requests.RequestException as e:
        return FulltextResult(detail=None, status="error", error=str(e))
    if html is None:
        return FulltextResult(detail=None, status=status, error=status)
    return extract_article(url, html)
