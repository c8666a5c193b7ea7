"""
Figma notification email parsing.

Figma delivers comment notifications by email; an inbound mail provider
(Mailgun-style routes) forwards them to the Figma webhook as form fields:

    from, recipient, subject, body-html, body-plain, stripped-text, timestamp

This module recovers the comment text, the links in the message and the
Figma file key the comment belongs to. HTML is parsed with BeautifulSoup.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Figma sends comment notifications from comments-<FILEKEY>@email.figma.com
_SENDER_KEY_PATTERN = re.compile(r"comments-([a-zA-Z0-9]+)@", re.IGNORECASE)

_FILE_KEY_PATTERNS = (
    re.compile(r"figma\.com/file/([a-zA-Z0-9]+)"),
    re.compile(r"figma\.com/design/([a-zA-Z0-9]+)"),
    re.compile(r"figma\.com/proto/([a-zA-Z0-9]+)"),
    re.compile(r"figma\.com/board/([a-zA-Z0-9]+)"),
    re.compile(r"api-cdn\.figma\.com/resize/images/(\d+)/"),
)

_FILE_URL_MARKERS = ("/file/", "/design/", "/proto/")

_COMMENT_SELECTORS = (".comment-body", ".comment-text", 'td[class*="comment"]', "p")

_COMMENT_SUBJECT_WORDS = ("commented", "comment", "mentioned you")
_INVITATION_SUBJECT_WORDS = ("invited", "invitation", "shared")


@dataclass
class ParsedEmail:
    """What could be recovered from one notification email."""

    text: str
    links: list[str] = field(default_factory=list)
    file_key: str | None = None
    file_url: str | None = None
    author: str | None = None
    subject: str | None = None
    html: str | None = None
    timestamp: datetime | None = None
    email_type: str = "unknown"
    file_name: str | None = None


def extract_file_key_from_url(url: str) -> str | None:
    """
    Extract a Figma file key from a URL.

    Examples:
        https://www.figma.com/file/abc123/Design -> abc123
        https://www.figma.com/design/abc123/...   -> abc123
        https://api-cdn.figma.com/resize/images/2265042955578165560/... -> 2265042955578165560
    """
    for pattern in _FILE_KEY_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def extract_text_from_html(html: str) -> str:
    """Comment text from the email HTML, falling back to the whole body."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    for selector in _COMMENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            text = element.get_text(" ", strip=True)
            if text:
                return text

    body = soup.body or soup
    return body.get_text(" ", strip=True)


def extract_links_from_html(html: str) -> list[str]:
    """
    All http(s) links in the email, de-duplicated.

    Figma image sources carrying comment coordinates (``commentx=`` and
    ``commenty=``) point at the commented location and come first.
    """
    soup = BeautifulSoup(html, "html.parser")
    priority: list[str] = []
    links: list[str] = []

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if href.startswith("http"):
            links.append(href)

    for image in soup.find_all("img", src=True):
        src = image["src"]
        if not src.startswith("http") or "figma.com" not in src:
            continue
        if "commentx=" in src and "commenty=" in src:
            priority.append(src)
        else:
            links.append(src)

    return list(dict.fromkeys(priority + links))


def determine_email_type(subject: str | None) -> str:
    """Classify the notification as ``comment``, ``invitation`` or ``unknown``."""
    if not subject:
        return "unknown"
    lowered = subject.lower()
    if any(word in lowered for word in _COMMENT_SUBJECT_WORDS):
        return "comment"
    if any(word in lowered for word in _INVITATION_SUBJECT_WORDS):
        return "invitation"
    return "unknown"


def _file_name_from_url(url: str) -> str | None:
    # https://www.figma.com/design/<key>/<File-Name>?node-id=...
    match = re.search(r"figma\.com/(?:file|design|proto|board)/[a-zA-Z0-9]+/([^/?#]+)", url)
    if not match:
        return None
    return match.group(1).replace("-", " ")


def _parse_timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(float(value), UTC)
    except (TypeError, ValueError, OverflowError):
        logger.debug(f"[email] Ignoring unparseable timestamp: {value!r}")
        return None


def parse_figma_email(payload: dict[str, Any]) -> ParsedEmail:
    """
    Parse a forwarded Figma notification.

    The file key is taken from the sender address when present (the most
    reliable source), otherwise from the first link that carries one.

    Args:
        payload: Inbound email fields

    Returns:
        ParsedEmail; ``file_key`` and ``text`` may be empty and are
        validated by the caller
    """
    html = payload.get("body-html") or ""
    plain = payload.get("stripped-text") or payload.get("body-plain") or ""
    sender = payload.get("from") or None
    subject = payload.get("subject") or None

    text = plain.strip() or (extract_text_from_html(html) if html else "")
    links = extract_links_from_html(html) if html else []

    file_key: str | None = None
    if sender:
        match = _SENDER_KEY_PATTERN.search(sender)
        if match:
            file_key = match.group(1)
            logger.debug(f"[email] File key {file_key} from sender address")

    if not file_key:
        for link in links:
            file_key = extract_file_key_from_url(link)
            if file_key:
                logger.debug(f"[email] File key {file_key} from link")
                break

    file_url = next(
        (
            link
            for link in links
            if "figma.com" in link and any(marker in link for marker in _FILE_URL_MARKERS)
        ),
        None,
    )

    return ParsedEmail(
        text=text,
        links=links,
        file_key=file_key,
        file_url=file_url,
        author=sender,
        subject=subject,
        html=html or None,
        timestamp=_parse_timestamp(payload.get("timestamp")),
        email_type=determine_email_type(subject),
        file_name=_file_name_from_url(file_url) if file_url else None,
    )


def recipient_slug(recipient: str | None) -> str:
    """Local part of the recipient address (``team-slug@...``), or "default"."""
    if not recipient:
        return "default"
    match = re.match(r"^([^@]+)@", recipient.strip())
    return match.group(1) if match else "default"


__all__ = [
    "ParsedEmail",
    "determine_email_type",
    "extract_file_key_from_url",
    "extract_links_from_html",
    "extract_text_from_html",
    "parse_figma_email",
    "recipient_slug",
]
