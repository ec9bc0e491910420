"""
Tests for unsubscribe link extraction from headers and bodies.
"""

import pytest

from unsubscriber.unsubscribe.extractors import UnsubscribeLinkExtractor
from unsubscriber.unsubscribe.types import UnsubscribeLinks


class TestHeaderExtraction:
    """List-Unsubscribe header parsing."""

    def setup_method(self):
        self.extractor = UnsubscribeLinkExtractor()

    def test_bracketed_entries_are_partitioned(self):
        header = '<mailto:unsub@example.com?subject=unsubscribe>, <https://example.com/u/1>'
        http_links, mailto_links = self.extractor.extract_from_header(header)

        assert http_links == ['https://example.com/u/1']
        assert mailto_links == ['mailto:unsub@example.com?subject=unsubscribe']

    def test_bracketed_entries_are_deduplicated_in_order(self):
        header = '<https://a.example/u>, <https://b.example/u>, <https://a.example/u>'
        http_links, _ = self.extractor.extract_from_header(header)

        assert http_links == ['https://a.example/u', 'https://b.example/u']

    def test_unbracketed_comma_separated_header(self):
        header = 'https://example.com/unsub?id=1 , mailto:leave@example.com'
        http_links, mailto_links = self.extractor.extract_from_header(header)

        assert http_links == ['https://example.com/unsub?id=1']
        assert mailto_links == ['mailto:leave@example.com']

    def test_scheme_matching_is_case_insensitive(self):
        http_links, mailto_links = self.extractor.extract_from_header('<HTTPS://Example.com/U>, <MAILTO:x@y.z>')

        assert http_links == ['HTTPS://Example.com/U']
        assert mailto_links == ['MAILTO:x@y.z']

    def test_unknown_schemes_are_ignored(self):
        http_links, mailto_links = self.extractor.extract_from_header('<ftp://example.com/u>, <javascript:void(0)>')

        assert http_links == []
        assert mailto_links == []

    @pytest.mark.parametrize('header', [None, '', '   '])
    def test_empty_header(self, header):
        assert self.extractor.extract_from_header(header) == ([], [])


class TestBodyExtraction:
    """Guessed links from message bodies."""

    def setup_method(self):
        self.extractor = UnsubscribeLinkExtractor()

    def test_only_urls_containing_unsub_are_guessed(self):
        text = "Shop https://shop.example.com/sale or leave https://example.com/UnSubscribe?id=9 now"
        guessed = self.extractor.extract_from_body(text, None)

        assert guessed == ['https://example.com/UnSubscribe?id=9']

    def test_urls_inside_script_and_style_are_excluded(self):
        html = """
        <html><head><style>.x { background: url(https://cdn.example.com/unsub.png) }</style></head>
        <body>
          <script>var u = "https://tracker.example.com/unsub-track";</script>
          <p>Stop emails: https://example.com/unsubscribe/abc</p>
        </body></html>
        """
        guessed = self.extractor.extract_from_body(None, html)

        assert guessed == ['https://example.com/unsubscribe/abc']

    def test_anchor_href_is_not_scanned(self):
        html = '<p>Don\'t want these? <a href="https://news.example.com/unsub?u=42">Click here</a></p>'
        guessed = self.extractor.extract_from_body(None, html)

        assert guessed == []

    def test_visible_url_in_anchor_text_is_scanned(self):
        html = '<p>Leave: <a href="https://track.example.com/c/1">https://news.example.com/unsub?u=42</a></p>'
        guessed = self.extractor.extract_from_body(None, html)

        assert guessed == ['https://news.example.com/unsub?u=42']

    def test_text_before_html_and_deduplicated(self):
        text = "Unsubscribe: https://example.com/unsub/1"
        html = '<p>https://example.com/unsub/2</p> <p>https://example.com/unsub/1</p>'
        guessed = self.extractor.extract_from_body(text, html)

        assert guessed == ['https://example.com/unsub/1', 'https://example.com/unsub/2']

    def test_quoted_printable_wrapped_url_is_recovered(self):
        text = "Leave: https://manage.example-lists.com/subscriptions/unsubsc=\nribe?a=3DKwB"
        guessed = self.extractor.extract_from_body(text, None)

        assert guessed == ['https://manage.example-lists.com/subscriptions/unsubscribe?a=KwB']

    def test_no_bodies(self):
        assert self.extractor.extract_from_body(None, None) == []


class TestQuotedPrintableUnwrap:

    def setup_method(self):
        self.extractor = UnsubscribeLinkExtractor()

    def test_unwrap_soft_line_breaks(self):
        text = "Visit https://example.com/subscriptions/unsubsc=\nribe?id=123"
        assert self.extractor._unwrap_quoted_printable_lines(text) == \
            "Visit https://example.com/subscriptions/unsubscribe?id=123"

    def test_unwrap_with_crlf(self):
        text = "https://example.com/subscriptio=\r\nns/unsubscribe"
        assert self.extractor._unwrap_quoted_printable_lines(text) == "https://example.com/subscriptions/unsubscribe"


class TestExtract:

    def test_extract_combines_header_and_body(self):
        extractor = UnsubscribeLinkExtractor()
        links = extractor.extract(
            list_unsubscribe='<https://example.com/h>, <mailto:u@example.com>',
            body_text='https://example.com/unsub/b',
            list_unsubscribe_post='List-Unsubscribe=One-Click',
        )

        assert links.http_links == ['https://example.com/h']
        assert links.mailto_links == ['mailto:u@example.com']
        assert links.guessed_links == ['https://example.com/unsub/b']
        assert links.list_unsubscribe_post == 'List-Unsubscribe=One-Click'
        assert links.http_candidate == 'https://example.com/h'

    def test_body_guess_is_candidate_without_header_link(self):
        links = UnsubscribeLinkExtractor().extract(body_text='https://example.com/unsub/b')

        assert links.http_candidate == 'https://example.com/unsub/b'
        assert links.mailto_candidate is None

    def test_nothing_found(self):
        links = UnsubscribeLinkExtractor().extract()

        assert links.is_empty()
        assert links.http_candidate is None


class TestUnsubscribeLinksSerialization:

    def test_to_dict_from_dict(self):
        links = UnsubscribeLinks(
            http_links=['https://a.example/u'],
            mailto_links=['mailto:a@example.com'],
            guessed_links=[],
            list_unsubscribe_post='List-Unsubscribe=One-Click',
        )
        assert UnsubscribeLinks.from_dict(links.to_dict()) == links

    @pytest.mark.parametrize('data', [
        None,
        [],
        {'http_links': 'https://a.example/u', 'mailto_links': [], 'guessed_links': []},
        {'http_links': [1], 'mailto_links': [], 'guessed_links': []},
        {'http_links': [], 'mailto_links': []},
        {'http_links': [], 'mailto_links': [], 'guessed_links': [], 'list_unsubscribe_post': 5},
    ])
    def test_from_dict_rejects_malformed(self, data):
        with pytest.raises(ValueError):
            UnsubscribeLinks.from_dict(data)
