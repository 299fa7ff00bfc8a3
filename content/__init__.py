"""Fetch gate: conditional feed retrieval and article text extraction."""

from content.base import Fetcher, FetchResult, FetchStatus, FeedEntry, Validators

__all__ = ['Fetcher', 'FetchResult', 'FetchStatus', 'FeedEntry', 'Validators']
