"""
Match Preview Bot - Scraping Module

This module provides the preview-extraction pipeline: a shared headless
browser session, a file-backed TTL cache, the listing link enumerator and
the match preview extractor.
"""

from .models import PreviewMatch, PreviewSection, MatchPreview, TeamLists
from .cache import CacheManager
from .browser import BrowserService, ContentBlocker, FetchError, SessionState
from .preview_scraper import scrape_preview, extract_preview, split_title
from .link_enumerator import (
    PREVIEWS_URL,
    get_preview_links,
    parse_preview_links,
    filter_sections,
)

__all__ = [
    'PreviewMatch',
    'PreviewSection',
    'MatchPreview',
    'TeamLists',
    'CacheManager',
    'BrowserService',
    'ContentBlocker',
    'FetchError',
    'SessionState',
    'scrape_preview',
    'extract_preview',
    'split_title',
    'PREVIEWS_URL',
    'get_preview_links',
    'parse_preview_links',
    'filter_sections',
]
