"""
Main-text extraction from HTML pages.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from summarization.text_processing import clean_text

logger = logging.getLogger(__name__)

# Tried in order; the first with enough paragraph text wins
CONTENT_SELECTORS = ['article', '[itemprop="articleBody"]', '.article-body', '.article', '.post-content',
                     '.entry-content', '.content', 'main']
UNWANTED_SELECTORS = 'script, style, noscript, nav, header, footer, aside, form, .ads, .advertisement, .comments, .share, .newsletter'

MIN_PARAGRAPH_CHARS = 40
MIN_CONTENT_CHARS = 200


def detect_content_type(url: str, content_type_header: Optional[str] = None) -> str:
    """Classify a URL/response as html, pdf, feed or text."""
    header = (content_type_header or '').lower()
    path = urlparse(url).path.lower()
    if 'pdf' in header or path.endswith('.pdf'):
        return 'pdf'
    if 'rss' in header or 'atom' in header or path.endswith(('.rss', '.xml')):
        return 'feed'
    if header.startswith('text/plain') or path.endswith('.txt'):
        return 'text'
    return 'html'


def extract_article_text(html_text: str) -> str:
    """
    Pull the readable body out of an HTML page.

    Args:
        html_text: Raw page HTML

    Returns:
        Cleaned article text; empty when nothing readable is found
    """
    if not html_text:
        return ""

    soup = BeautifulSoup(html_text, 'html.parser')
    for unwanted in soup.select(UNWANTED_SELECTORS):
        unwanted.decompose()

    for selector in CONTENT_SELECTORS:
        elements = soup.select(selector)
        if not elements:
            continue
        paragraphs = elements[0].find_all('p')
        content = '\n\n'.join(
            p.get_text().strip() for p in paragraphs if len(p.get_text().strip()) > MIN_PARAGRAPH_CHARS
        )
        if len(content) > MIN_CONTENT_CHARS:
            return _normalize(content)

    paragraphs = soup.find_all('p')
    content = '\n\n'.join(p.get_text().strip() for p in paragraphs if len(p.get_text().strip()) > MIN_PARAGRAPH_CHARS)
    if len(content) > MIN_CONTENT_CHARS:
        return _normalize(content)

    if soup.body:
        return clean_text(soup.body.get_text(" "))
    return clean_text(soup.get_text(" "))


def _normalize(text: str) -> str:
    # Keep paragraph breaks, collapse everything else
    paragraphs = [re.sub(r'\s+', ' ', p).strip() for p in text.split('\n\n')]
    return '\n\n'.join(p for p in paragraphs if p)
