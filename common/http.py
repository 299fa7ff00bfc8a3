"""HTTP session helpers shared by the feed and article fetchers."""

import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

USER_AGENT = "Digest Reader/1.0"
DEFAULT_TIMEOUT = (10, 30)  # (connect, read) seconds


def create_http_session(retries=2, backoff_factor=0.3, status_forcelist=(500, 502, 503, 504), pool_size=10):
    """
    Create a requests session with connection-level retries.

    Args:
        retries: Number of retries for connect/read failures and retryable statuses
        backoff_factor: Backoff factor between retries
        status_forcelist: HTTP status codes to retry on
        pool_size: Connection pool size per host, sized to the fetch worker pool

    Returns:
        requests.Session: Configured session object
    """
    session = requests.Session()

    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=frozenset(["GET", "HEAD"]),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    session.headers.update({
        'User-Agent': USER_AGENT,
        'Accept': 'application/rss+xml, application/atom+xml, application/xml, text/xml, text/html;q=0.9, */*;q=0.8',
    })

    logger.debug("Created HTTP session with retry capability")
    return session
