#!/usr/bin/env python3
"""
File Cache - TTL cache persisted as one JSON file per key

Used to avoid re-fetching listing pages and match previews that were scraped
recently. Each entry is stored as:

    {"data": <payload>, "timestamp": <written at>, "expiresAt": <expiry>}

Timestamps are seconds since the epoch. File names are the SHA-256 digest of
the logical key, so arbitrary strings (URLs, JSON-encoded parameter objects)
map to distinct, filesystem-safe names.

The cache is advisory: there is no locking, concurrent writers to the same
key race and the last one wins, and any read problem is reported as a miss.

Usage:
    cache = CacheManager(Path(".cache"), default_ttl_seconds=900)
    cache.set(url, preview.to_dict())
    data = cache.get(url)
"""

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.cwd() / ".cache"
DEFAULT_TTL_SECONDS = 15 * 60


class CacheManager:
    """
    Manages cached payloads with per-entry expiry.
    """

    def __init__(
        self,
        cache_dir: Union[str, Path] = DEFAULT_CACHE_DIR,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache manager.

        Args:
            cache_dir: Directory for cache files (created lazily on first write)
            default_ttl_seconds: TTL used when ``set`` is called without one
            clock: Time source returning epoch seconds
        """
        self.cache_dir = Path(cache_dir)
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock

    @staticmethod
    def cache_key(key: str) -> str:
        """Derive the storage identifier for a logical key."""
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def _get_cache_path(self, key: str) -> Path:
        return self.cache_dir / f"{self.cache_key(key)}.json"

    def get(self, key: str) -> Optional[Any]:
        """
        Retrieve cached data for key if present and not expired.

        Expired entries are deleted. Unreadable or corrupt files are treated
        as a miss.

        Args:
            key: The logical key to look up

        Returns:
            Cached data if valid, None otherwise
        """
        cache_path = self._get_cache_path(key)

        try:
            with open(cache_path, 'r', encoding='utf-8') as f:
                entry = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug(f"Unreadable cache entry for {key}: {e}")
            return None

        if not isinstance(entry, dict) or "data" not in entry:
            logger.debug(f"Malformed cache entry for {key}")
            return None

        try:
            expires_at = float(entry.get("expiresAt", 0))
        except (TypeError, ValueError):
            return None

        if self._clock() > expires_at:
            logger.debug(f"Cache expired for {key}")
            self.delete(key)
            return None

        logger.debug(f"Cache hit for {key}")
        return entry["data"]

    def set(self, key: str, data: Any, ttl_seconds: Optional[float] = None) -> None:
        """
        Cache data for key, replacing any previous entry.

        Args:
            key: The logical key
            data: JSON-serializable payload
            ttl_seconds: Lifetime of the entry; defaults to the cache default
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        entry = {
            "data": data,
            "timestamp": now,
            "expiresAt": now + ttl,
        }

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(self._get_cache_path(key), 'w', encoding='utf-8') as f:
                json.dump(entry, f, ensure_ascii=False)
            logger.debug(f"Cached content for {key}")
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Error caching {key}: {e}")

    def delete(self, key: str) -> None:
        """Remove the entry for key. Missing entries are ignored."""
        try:
            self._get_cache_path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Error deleting cache entry for {key}: {e}")

    def clear(self) -> int:
        """
        Clear all cached content.

        Returns:
            Number of cache files deleted
        """
        if not self.cache_dir.exists():
            return 0

        deleted = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                cache_file.unlink()
                deleted += 1
            except OSError as e:
                logger.warning(f"Error deleting cache file {cache_file}: {e}")

        logger.info(f"Cleared {deleted} cache files")
        return deleted
