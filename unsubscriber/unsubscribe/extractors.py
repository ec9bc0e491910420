"""
Unsubscribe link extraction from email headers and body content.

Header candidates come from List-Unsubscribe; body candidates ("guessed"
links) are URLs found in the plain-text and HTML bodies that contain
``unsub``. No URL validation happens here: anything matching the scan
pattern is kept as an opaque string.
"""

import re
from typing import List, Optional
from bs4 import BeautifulSoup

from .constants import (
    BODY_URL_PATTERN, HEADER_URL_PATTERN, GUESS_KEYWORD,
    MAILTO_PREFIX, HTTP_PREFIXES
)
from .logging import UnsubscribeLogger
from .types import UnsubscribeLinks

# Elements whose content is never shown to the reader
HIDDEN_ELEMENTS = ('script', 'style', 'noscript')


class UnsubscribeLinkExtractor:
    """Extract unsubscribe links from email headers and body content."""

    def __init__(self):
        self.url_pattern = BODY_URL_PATTERN
        self.header_url_pattern = HEADER_URL_PATTERN
        self.logger = UnsubscribeLogger("link_extractor")

    def extract(self, list_unsubscribe: Optional[str] = None,
                body_text: Optional[str] = None,
                body_html: Optional[str] = None,
                list_unsubscribe_post: Optional[str] = None) -> UnsubscribeLinks:
        """Build the UnsubscribeLinks for one message."""
        http_links, mailto_links = self.extract_from_header(list_unsubscribe)
        guessed_links = self.extract_from_body(body_text, body_html)

        links = UnsubscribeLinks(
            http_links=http_links,
            mailto_links=mailto_links,
            guessed_links=guessed_links,
            list_unsubscribe_post=list_unsubscribe_post,
        )

        self.logger.debug("Extracted unsubscribe links", {
            'http_links': len(links.http_links),
            'mailto_links': len(links.mailto_links),
            'guessed_links': len(links.guessed_links),
        })
        return links

    def extract_from_header(self, header: Optional[str]):
        """Split a List-Unsubscribe value into (http_links, mailto_links).

        Bracketed ``<...>`` tokens are the candidates when any are present;
        otherwise the raw value is split on commas.
        """
        http_links: List[str] = []
        mailto_links: List[str] = []

        header = header or ''
        bracketed = self.header_url_pattern.findall(header)
        parts = bracketed if bracketed else header.split(',')

        for part in parts:
            candidate = part.strip()
            if not candidate:
                continue
            lowered = candidate.lower()
            if lowered.startswith(MAILTO_PREFIX):
                mailto_links.append(candidate)
            elif lowered.startswith(HTTP_PREFIXES):
                http_links.append(candidate)

        return list(dict.fromkeys(http_links)), list(dict.fromkeys(mailto_links))

    def extract_from_body(self, body_text: Optional[str], body_html: Optional[str]) -> List[str]:
        """Find guessed unsubscribe URLs, in order of first appearance."""
        text = '\n'.join([
            self._unwrap_quoted_printable_lines(body_text or ''),
            self._html_to_scannable_text(body_html or ''),
        ])

        guesses = [
            url for url in self.url_pattern.findall(text)
            if GUESS_KEYWORD in url.lower()
        ]
        return list(dict.fromkeys(guesses))

    def _unwrap_quoted_printable_lines(self, text: str) -> str:
        """
        Handle quoted-printable soft line breaks in text content.

        A line ending with '=' continues on the next line, which splits long
        URLs. ``=3D`` is the encoded form of '='.

        Example:
            "https://example.com/unsubscribe?id=3D\\nabc123"
            becomes "https://example.com/unsubscribe?id=abc123"
        """
        text = re.sub(r'=\r?\n', '', text)
        return text.replace('=3D', '=')

    def _html_to_scannable_text(self, html_content: str) -> str:
        """Flatten HTML to its visible text.

        Tags are stripped and script, style and noscript content is dropped,
        so URLs that only appear in attributes or hidden blocks are never
        guessed.
        """
        if not html_content:
            return ''

        unwrapped = self._unwrap_quoted_printable_lines(html_content)
        soup = BeautifulSoup(unwrapped, 'html.parser')
        for hidden in soup(list(HIDDEN_ELEMENTS)):
            hidden.decompose()

        return soup.get_text(' ')
