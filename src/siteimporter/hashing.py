"""
Structural hashing for template clustering.

Two pages rendered from the same template (say, two product detail pages)
should hash alike even though their text, image counts and list lengths differ.
"""

import hashlib
import logging
from typing import Optional
from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

MAX_DEPTH = 10

# Decorative/inline tags: their count and position vary too much between pages
IGNORED_TAGS = frozenset({
    'a', 'span', 'img', 'i', 'em', 'strong', 'b', 'u', 'br', 'svg', 'path',
})

REMOVED_TAGS = ['script', 'style', 'noscript']

# Stored instead of a hash for items imported from a product feed
FEED_ITEM_HASH = "feed-item"


def structural_tokens(html: str, max_depth: int = MAX_DEPTH) -> Optional[list[str]]:
    """
    Open/close token stream of the body's tag shape, e.g.
    ['body', 'div', 'ul', 'li', '/li', '/ul', '/div', '/body'].

    Runs of same-named siblings contribute once, so list length does not
    matter. Returns None when the document has no body.
    """
    soup = BeautifulSoup(html, 'html.parser')
    for tag in soup.find_all(REMOVED_TAGS):
        tag.decompose()

    body = soup.body
    if body is None:
        return None

    tokens: list[str] = []

    def traverse(node: Tag, depth: int):
        if depth > max_depth:
            return
        tokens.append(node.name)
        last = None
        for child in node.children:
            if not isinstance(child, Tag) or child.name in IGNORED_TAGS:
                continue
            if child.name == last:
                continue
            traverse(child, depth + 1)
            last = child.name
        tokens.append(f"/{node.name}")

    traverse(body, 0)
    return tokens


def structural_hash(html: str, max_depth: int = MAX_DEPTH) -> Optional[str]:
    """
    SHA256 of the page's structural token stream, or None if the page has no
    body or cannot be parsed. Never raises.
    """
    if not html:
        return None
    try:
        tokens = structural_tokens(html, max_depth)
    except Exception as e:
        logger.debug("Failed to parse HTML for structural hashing: %s", e)
        return None
    if tokens is None:
        return None
    return hashlib.sha256('>'.join(tokens).encode('utf-8')).hexdigest()
