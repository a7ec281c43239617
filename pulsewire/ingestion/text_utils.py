"""Text helpers for enrichment input and output."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

SUMMARY_LINE_RE = re.compile(r"^\d+\.")
DETAIL_FAILED_PREFIX = "Detail generation failed: "

_LINK_RE = re.compile(r"https?://\S+")
_HANGUL_RE = re.compile(r"[\u1100-\u11FF\u3130-\u318F\uAC00-\uD7AF]")
_LATIN_RE = re.compile(r"[a-zA-Z]")


def split_summary_lines(text: Optional[str]) -> List[str]:
    """Numbered points from a summary completion.

    "1. A\\n2. B\\nnoise\\n3. C" -> ["1. A", "2. B", "3. C"]; any line not
    starting with digits and a dot is dropped.
    """
    lines = re.split(r"\r\n|\r|\n", text or "")
    return [line.strip() for line in lines if SUMMARY_LINE_RE.match(line.strip())]


def detail_failed(summary_line: str) -> str:
    """Sentinel stored in place of a detail that could not be generated."""
    return f"{DETAIL_FAILED_PREFIX}{summary_line}"


def detect_language(text: str) -> str:
    """Return 'ko', 'en' or 'other' from the share of Hangul / Latin characters."""
    if not text:
        return "other"
    total = len(text)
    if len(_HANGUL_RE.findall(text)) / total > 0.3:
        return "ko"
    if len(_LATIN_RE.findall(text)) / total > 0.5:
        return "en"
    return "other"


def mask_links(text: str) -> Tuple[str, List[str]]:
    """Replace URLs with __LINK_n__ so a translation cannot mangle them."""
    links: List[str] = []

    def _sub(m: re.Match) -> str:
        links.append(m.group(0))
        return f"__LINK_{len(links) - 1}__"

    return _LINK_RE.sub(_sub, text or ""), links


def unmask_links(text: str, links: List[str]) -> str:
    out = text or ""
    for idx, link in enumerate(links):
        out = out.replace(f"__LINK_{idx}__", link)
    # Models sometimes echo escaped newlines literally
    return out.replace("\\n", "\n")
