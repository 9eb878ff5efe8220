"""Thin queryable wrapper around BeautifulSoup for the extraction strategies."""

import logging
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

logger = logging.getLogger(__name__)

CONTENT_MARKER = "::content"


@dataclass(frozen=True)
class SelectorHint:
    base_selector: str
    force_attribute_read: bool = False


def parse_selector_hint(selector: str) -> SelectorHint:
    """Split an optional trailing ``::content`` marker off a CSS selector."""
    sel = selector.strip()
    if sel.endswith(CONTENT_MARKER):
        return SelectorHint(sel[: -len(CONTENT_MARKER)].strip(), True)
    return SelectorHint(sel)


class Document:
    def __init__(self, html: str, url: str | None = None):
        self.soup = BeautifulSoup(html or "", "html.parser")
        self.url = url

    def select_one(self, selector: str) -> Tag | None:
        try:
            return self.soup.select_one(selector)
        except SelectorSyntaxError as e:
            logger.debug("Invalid selector %r: %s", selector, e)
            return None

    def select(self, selector: str) -> list[Tag]:
        try:
            return self.soup.select(selector)
        except SelectorSyntaxError as e:
            logger.debug("Invalid selector %r: %s", selector, e)
            return []

    @staticmethod
    def attr(node: Tag | None, name: str) -> str:
        if node is None:
            return ""
        value = node.get(name)
        if isinstance(value, list):
            value = " ".join(value)
        return (value or "").strip()

    @staticmethod
    def text(node: Tag | None) -> str:
        if node is None:
            return ""
        return node.get_text().strip()

    def read(self, selector: str) -> str:
        """Resolve a selector hint and return the trimmed value it points at.

        Meta elements, and any element when the hint carries ``::content``,
        yield their ``content`` attribute; everything else yields its text.
        """
        hint = parse_selector_hint(selector)
        if not hint.base_selector:
            return ""
        node = self.select_one(hint.base_selector)
        if node is None:
            return ""
        if hint.force_attribute_read or node.name == "meta":
            return self.attr(node, "content")
        return self.text(node)

    def meta_property(self, name: str) -> str:
        return self.attr(self.select_one(f'meta[property="{name}"]'), "content")

    def origin_url(self) -> str:
        """Canonical link, then ``<base>``, then the URL the markup came from."""
        for selector in ('link[rel="canonical"]', "base[href]"):
            href = self.attr(self.select_one(selector), "href")
            if href:
                try:
                    return urljoin(self.url or "", href)
                except ValueError:
                    logger.debug("Ignoring malformed %s href %r", selector, href)
        return self.url or ""

    def scripts(self, script_type: str) -> list[str]:
        return [
            node.string or node.get_text()
            for node in self.select(f'script[type="{script_type}"]')
        ]


def parse_document(html: str, url: str | None = None) -> Document:
    return Document(html, url)
