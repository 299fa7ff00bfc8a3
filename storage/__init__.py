"""Persistence for sources, items, articles, themes and digests."""

from storage.base import Store
from storage.sql_store import SQLStore

__all__ = ['Store', 'SQLStore']
