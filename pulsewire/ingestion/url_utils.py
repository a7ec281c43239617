"""URL helpers for natural keys: canonical article URLs and platform ids."""

from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


DEFAULT_STRIP_QUERY_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    "gclid",
    "fbclid",
    "mc_cid",
    "mc_eid",
    "ref",
    "ref_src",
    "cmpid",
    "guccounter",
}

_TWEET_ID_RE = re.compile(r"/status(?:es)?/(\d+)")
_VIDEO_ID_RES = [
    re.compile(r"[?&]v=([^&#]+)"),
    re.compile(r"youtu\.be/([^?&#/]+)"),
    re.compile(r"youtube\.com/(?:embed|v|shorts)/([^?&#/]+)"),
]


def canonicalize_url(url: str, *, strip_params: Optional[Iterable[str]] = None) -> str:
    """Article URL as stored in `articles.url`.

    Lowercases scheme and host, drops the fragment and tracking parameters,
    and sorts what is left so the same page always maps to one key.
    """
    if not url:
        return ""
    strip = set(strip_params) if strip_params is not None else DEFAULT_STRIP_QUERY_PARAMS
    p = urlparse(url.strip())
    scheme = (p.scheme or "https").lower()
    netloc = (p.netloc or "").lower()
    path = p.path or "/"

    kept = [(k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if k.lower() not in strip]
    kept.sort(key=lambda kv: (kv[0].lower(), kv[1]))
    return urlunparse((scheme, netloc, path, "", urlencode(kept, doseq=True), ""))


def domain_of(url: str) -> Optional[str]:
    host = (urlparse(url or "").netloc or "").lower().strip()
    return host or None


def extract_tweet_id(url: str) -> Optional[str]:
    m = _TWEET_ID_RE.search(url or "")
    return m.group(1) if m else None


def extract_video_id(url: str) -> Optional[str]:
    """YouTube id from watch?v=, youtu.be/, embed/, v/ and shorts/ URLs."""
    for pattern in _VIDEO_ID_RES:
        m = pattern.search(url or "")
        if m and m.group(1):
            return m.group(1)
    return None
