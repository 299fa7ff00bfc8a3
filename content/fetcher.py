"""
HTTP fetch gate built on requests and feedparser.
"""

import calendar
import logging
from datetime import datetime, timezone
from typing import List, Optional

import feedparser
import requests
from dateutil import parser as date_parser

from common.errors import FetchError
from common.http import create_http_session, DEFAULT_TIMEOUT
from content.base import Fetcher, FetchResult, FetchStatus, FeedEntry, Validators
from content.extraction import detect_content_type, extract_article_text
from summarization.text_processing import clean_text

logger = logging.getLogger(__name__)


def parse_entry_date(entry) -> Optional[datetime]:
    """
    Best-effort publish time of a feedparser entry, as an aware UTC datetime.

    Returns None when the entry carries no parseable date.
    """
    for attr in ('published_parsed', 'updated_parsed', 'created_parsed'):
        parsed = entry.get(attr)
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)

    for attr in ('published', 'updated', 'created', 'date'):
        raw = entry.get(attr)
        if not raw:
            continue
        try:
            value = date_parser.parse(raw)
        except (ValueError, OverflowError):
            logger.debug(f"Could not parse date: {raw}")
            continue
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return None


class HTTPFetcher(Fetcher):
    """
    Fetches feeds with conditional GET and pages with BeautifulSoup extraction.

    One requests session is shared by all workers; its connection pool is
    sized to the fetch concurrency.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout=DEFAULT_TIMEOUT, pool_size: int = 10):
        self.session = session or create_http_session(pool_size=pool_size)
        self.timeout = timeout

    def fetch(self, url: str, validators: Optional[Validators] = None) -> FetchResult:
        headers = {}
        if validators is not None:
            if validators.last_modified:
                headers['If-Modified-Since'] = validators.last_modified
            if validators.etag:
                headers['If-None-Match'] = validators.etag

        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch feed {url}: {e}", url=url) from e

        if response.status_code == 304:
            logger.debug(f"Feed not modified: {url}")
            return FetchResult(status=FetchStatus.NOT_MODIFIED, validators=validators or Validators())

        if response.status_code != 200:
            raise FetchError(f"HTTP {response.status_code} for feed {url}", url=url,
                             status_code=response.status_code)

        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            raise FetchError(f"Failed to parse feed {url}: {parsed.get('bozo_exception')}", url=url)

        entries = self._entries(parsed.entries)
        feed_info = parsed.get('feed', {})
        return FetchResult(
            status=FetchStatus.OK,
            entries=entries,
            validators=Validators(
                last_modified=response.headers.get('Last-Modified'),
                etag=response.headers.get('ETag'),
            ),
            feed_title=clean_text(feed_info.get('title', '')),
            feed_description=clean_text(feed_info.get('subtitle', '') or feed_info.get('description', '')),
        )

    def _entries(self, raw_entries) -> List[FeedEntry]:
        entries = []
        for entry in raw_entries:
            link = (entry.get('link') or '').strip()
            if not link:
                continue
            description = entry.get('summary', '') or entry.get('description', '')
            if not description and entry.get('content'):
                description = entry['content'][0].get('value', '')
            entries.append(FeedEntry(
                link=link,
                title=clean_text(entry.get('title', '')) or link,
                description=clean_text(description),
                published=parse_entry_date(entry),
                guid=entry.get('id') or entry.get('guid'),
            ))
        return entries

    def fetch_article_body(self, url: str) -> str:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch article {url}: {e}", url=url) from e

        if response.status_code != 200:
            raise FetchError(f"HTTP {response.status_code} for article {url}", url=url,
                             status_code=response.status_code)

        content_type = detect_content_type(url, response.headers.get('Content-Type'))
        if content_type == 'pdf':
            raise FetchError(f"Unsupported content type pdf for {url}", url=url)
        if content_type == 'text':
            text = clean_text(response.text)
        else:
            text = extract_article_text(response.text)

        if not text:
            raise FetchError(f"No readable content at {url}", url=url)
        return text
