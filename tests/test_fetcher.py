"""
Tests for the HTTP fetch gate and page text extraction.
"""

import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import requests

from common.errors import FetchError
from content.base import FetchStatus, Validators
from content.extraction import detect_content_type, extract_article_text
from content.fetcher import HTTPFetcher, parse_entry_date

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Chip Wire</title>
    <description>Semiconductor news</description>
    <item>
      <title>Nvidia ships Blackwell</title>
      <link>https://news.example.com/nvidia</link>
      <description>&lt;p&gt;Nvidia shipped 40,000 units.&lt;/p&gt;</description>
      <pubDate>Sun, 18 Oct 2026 09:30:00 GMT</pubDate>
      <guid>nvidia-1</guid>
    </item>
    <item>
      <title>No link here</title>
    </item>
  </channel>
</rss>
"""

PARAGRAPH = "Nvidia shipped forty thousand Blackwell units to Microsoft during the third quarter of the year."


def response(status=200, content=b"", text="", headers=None):
    return SimpleNamespace(status_code=status, content=content, text=text, headers=headers or {})


class TestHTTPFetcher(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.fetcher = HTTPFetcher(session=self.session)

    def test_parses_feed_and_returns_validators(self):
        self.session.get.return_value = response(content=RSS, headers={'ETag': '"abc"', 'Last-Modified': 'Sun'})
        result = self.fetcher.fetch("https://chips.example.com/feed")
        self.assertEqual(result.status, FetchStatus.OK)
        self.assertEqual(result.feed_title, "Chip Wire")
        self.assertEqual(len(result.entries), 1)
        entry = result.entries[0]
        self.assertEqual(entry.link, "https://news.example.com/nvidia")
        self.assertEqual(entry.description, "Nvidia shipped 40,000 units.")
        self.assertEqual(entry.published, datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc))
        self.assertEqual(result.validators.etag, '"abc"')

    def test_sends_conditional_headers_and_handles_304(self):
        self.session.get.return_value = response(status=304)
        validators = Validators(last_modified="Sun, 18 Oct 2026 09:30:00 GMT", etag='"abc"')
        result = self.fetcher.fetch("https://chips.example.com/feed", validators)
        self.assertTrue(result.not_modified)
        self.assertIs(result.validators, validators)
        headers = self.session.get.call_args.kwargs['headers']
        self.assertEqual(headers['If-None-Match'], '"abc"')
        self.assertEqual(headers['If-Modified-Since'], validators.last_modified)

    def test_http_error_status(self):
        self.session.get.return_value = response(status=503)
        with self.assertRaises(FetchError) as raised:
            self.fetcher.fetch("https://chips.example.com/feed")
        self.assertEqual(raised.exception.status_code, 503)

    def test_network_error(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(FetchError):
            self.fetcher.fetch("https://chips.example.com/feed")

    def test_article_body_extraction(self):
        html = f"<html><body><nav>Menu</nav><article>{('<p>' + PARAGRAPH + '</p>') * 3}</article></body></html>"
        self.session.get.return_value = response(text=html, headers={'Content-Type': 'text/html'})
        text = self.fetcher.fetch_article_body("https://news.example.com/nvidia")
        self.assertIn("forty thousand", text)
        self.assertNotIn("Menu", text)

    def test_pdf_is_unsupported(self):
        self.session.get.return_value = response(headers={'Content-Type': 'application/pdf'})
        with self.assertRaises(FetchError):
            self.fetcher.fetch_article_body("https://news.example.com/report.pdf")


class TestExtraction(unittest.TestCase):

    def test_detect_content_type(self):
        self.assertEqual(detect_content_type("https://e.com/a.pdf"), "pdf")
        self.assertEqual(detect_content_type("https://e.com/feed.xml"), "feed")
        self.assertEqual(detect_content_type("https://e.com/a", "text/plain; charset=utf-8"), "text")
        self.assertEqual(detect_content_type("https://e.com/a", "text/html"), "html")

    def test_short_page_falls_back_to_body_text(self):
        self.assertEqual(extract_article_text("<html><body><p>Short note.</p></body></html>"), "Short note.")

    def test_empty_page(self):
        self.assertEqual(extract_article_text(""), "")

    def test_entry_date_from_string(self):
        self.assertEqual(parse_entry_date({'published': '2026-10-18T09:30:00'}),
                         datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc))
        self.assertIsNone(parse_entry_date({'published': 'not a date'}))


if __name__ == "__main__":
    unittest.main()
