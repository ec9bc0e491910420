"""
Page text capture and the keyword fallback for unsubscribe confirmation.
"""

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

from ...unsubscribe.constants import UNSUBSCRIBED_PHRASES, HTML_SNIPPET_LENGTH

SOURCE_INNER_TEXT = 'innerText'
SOURCE_TEXT_CONTENT = 'textContent'
SOURCE_HTML_STRIP = 'htmlStrip'


@dataclass(frozen=True)
class PageText:
    text: str
    source: str
    html_snippet: Optional[str] = None


def strip_html_to_text(html: str) -> str:
    """Visible text of an HTML document with whitespace collapsed."""
    if not html:
        return ''
    soup = BeautifulSoup(html, 'html.parser')
    for hidden in soup(['script', 'style', 'noscript']):
        hidden.decompose()
    return re.sub(r'\s+', ' ', soup.get_text(' ')).strip()


def _read(read) -> str:
    try:
        value = read()
    except Exception:
        return ''
    return value if isinstance(value, str) else ''


def capture_page_text(page) -> PageText:
    """Text of the current page for verification and planning.

    Tries rendered inner text, then raw text content, then stripped HTML.
    Each source is read independently and a failing read never raises.
    """
    inner = _read(lambda: page.inner_text('body')).strip()
    if inner:
        return PageText(text=inner, source=SOURCE_INNER_TEXT)

    text_content = _read(lambda: page.text_content('body')).strip()
    if text_content:
        return PageText(text=text_content, source=SOURCE_TEXT_CONTENT)

    html = _read(page.content)
    return PageText(
        text=strip_html_to_text(html),
        source=SOURCE_HTML_STRIP,
        html_snippet=html[:HTML_SNIPPET_LENGTH],
    )


def looks_unsubscribed(text: str) -> bool:
    """Keyword check used when the verification service gives no answer."""
    lowered = (text or '').lower()
    return any(phrase in lowered for phrase in UNSUBSCRIBED_PHRASES)
