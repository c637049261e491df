# -*- coding: utf-8 -*-
"""Link detection for Wolt group orders in chat messages."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# https://wolt.com/en/isr/tel-aviv/group-order/ABC123/join
GROUP_LINK_RE = re.compile(r"/group(-order)?/(?P<id>[A-Z0-9]+?)((/join)?/?$)")


@dataclass(frozen=True)
class Link:
    domain: str
    url: str


@dataclass(frozen=True)
class LinksRequest:
    """One inbound chat message carrying links."""
    channel: int
    message_id: int
    links: List[Link]


def link_domain(url: str) -> str:
    """Host of a URL without a leading www."""
    if "://" not in url:
        url = f"https://{url}"
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def get_group_id(links: Sequence[Link], domain: str) -> Optional[str]:
    """
    Return the group order ID of the first qualifying link.

    Only one order is handled per message, later links are ignored.
    Links from other domains are skipped and a link whose path does not
    parse is logged and skipped.
    """
    for link in links:
        if link.domain != domain:
            continue

        try:
            path = urlparse(link.url).path
        except ValueError as e:
            logger.warning(f"Error parsing {domain} URL {link.url!r}: {e}")
            continue

        match = GROUP_LINK_RE.search(path)
        if not match:
            continue

        return match.group("id")
    return None


def extract_links(message: Dict[str, Any]) -> List[Link]:
    """
    Collect links from a Telegram message update, in message order.

    Entity offsets are counted in UTF-16 code units.
    """
    text = message.get("text") or message.get("caption") or ""
    entities = message.get("entities") or message.get("caption_entities") or []
    encoded = text.encode("utf-16-le")

    links = []
    for entity in entities:
        entity_type = entity.get("type")
        if entity_type == "url":
            start = entity["offset"] * 2
            end = start + entity["length"] * 2
            url = encoded[start:end].decode("utf-16-le", errors="ignore")
        elif entity_type == "text_link":
            url = entity.get("url", "")
        else:
            continue

        if url:
            links.append(Link(domain=link_domain(url), url=url))
    return links
