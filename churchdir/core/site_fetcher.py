"""Website fetching used to ground AI enrichment in a church's own pages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = "ChurchDirectory/1.0 (enrichment bot)"
REQUEST_TIMEOUT = 6
MAX_CONTENT_CHARS = 15000

EMAIL_REGEX = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

IGNORED_EMAIL_FRAGMENTS = (
    "example.com",
    "domain.com",
    "sentry",
    "wixpress",
    "wix.com",
    "wordpress",
    "schema.org",
    "mailchimp",
    "constantcontact",
    "hubspot",
    "google.com",
    "facebook.com",
    "twitter.com",
    ".png",
    ".jpg",
    ".gif",
    ".svg",
)
IGNORED_EMAIL_SUFFIXES = (".js", ".css")
IGNORED_LOCAL_PARTS = ("user", "test", "noreply", "no-reply")
PREFERRED_LOCAL_PARTS = ("info", "contact", "office", "admin", "hello", "church", "mail", "email", "general")
STRIPPED_TAGS = ("script", "style", "nav", "footer", "noscript")

_SESSION = requests.Session()
_SESSION.headers.update({"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"})


@dataclass(slots=True)
class WebsiteContent:
    content: Optional[str] = None
    email: Optional[str] = None


def sanitize_website(raw_url: Optional[str]) -> Optional[str]:
    """Normalise raw website strings into absolute URLs, defaulting to https."""

    if not raw_url:
        return None

    url = raw_url.strip()
    if not url:
        return None

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        parsed = urlparse(f"https://{url}")

    if not parsed.netloc:
        return None

    return urlunparse(parsed._replace(fragment=""))


def _is_contact_email(email: str) -> bool:
    if any(fragment in email for fragment in IGNORED_EMAIL_FRAGMENTS):
        return False
    if email.endswith(IGNORED_EMAIL_SUFFIXES):
        return False
    local_part = email.split("@", 1)[0]
    return local_part not in IGNORED_LOCAL_PARTS


def extract_email(html: Optional[str]) -> Optional[str]:
    """Pick the most likely general-inbox address from raw HTML."""

    candidates: List[str] = []
    for match in EMAIL_REGEX.finditer(html or ""):
        email = match.group(0).lower()
        if email not in candidates and _is_contact_email(email):
            candidates.append(email)

    if not candidates:
        return None

    for local_part in PREFERRED_LOCAL_PARTS:
        for email in candidates:
            if email.startswith(f"{local_part}@"):
                return email
    return candidates[0]


def html_to_text(html: Optional[str], *, max_chars: int = MAX_CONTENT_CHARS) -> str:
    """Strip boilerplate blocks and markup, returning collapsed visible text."""

    soup = BeautifulSoup(html or "", "html.parser")
    for node in soup.find_all(STRIPPED_TAGS):
        node.decompose()
    text = _WHITESPACE.sub(" ", soup.get_text(" ")).strip()
    return text[:max_chars]


def fetch_website_content(
    url: Optional[str],
    *,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> WebsiteContent:
    """Fetch a church homepage once; failures yield an empty ``WebsiteContent``."""

    target = sanitize_website(url)
    if not target:
        return WebsiteContent()

    http = session or _SESSION
    try:
        response = http.get(target, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:  # noqa: BLE001
        logger.warning("Failed to fetch %s: %s", target, exc)
        return WebsiteContent()

    if not 200 <= response.status_code < 300:
        logger.debug("Skipping %s (status=%s)", target, response.status_code)
        return WebsiteContent()

    content_type = (response.headers.get("Content-Type") or "").lower()
    if content_type and "html" not in content_type:
        logger.debug("Skipping non-HTML content at %s (content-type=%s)", target, content_type)
        return WebsiteContent()

    html = response.text or ""
    content = html_to_text(html)
    return WebsiteContent(content=content or None, email=extract_email(html))
