"""
Release index: remote catalog with an on-disk cache.

``ReleaseIndex.current()`` never blocks on the network: it serves the
cached document (possibly stale, possibly empty). ``refresh()`` fetches
the remote document, validates it completely, and only then replaces the
cache and the in-memory copy. A failed refresh leaves both untouched.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..clock import SYSTEM_CLOCK, Clock
from ..errors import FetchError, StateError
from ..fetch import HttpClient, local_source_path
from ..utils import FileLock, HomeLayout, json_read, json_write
from .models import Index

logger = logging.getLogger(__name__)


class ReleaseIndex:
    """
    Cached view of the release/blockchain catalog.

    Parameters
    ----------
    layout : HomeLayout
        Where ``index.json`` and ``index.meta.json`` live.
    source_url : str
        HTTP(S) URL, ``file://`` URL or filesystem path of the index.
    http : Optional[HttpClient]
        Client used for remote sources.
    ttl_seconds : float
        Cache age after which ``is_stale`` turns true.
    retries : int
        Attempts for a remote refresh before raising FetchError.
    """

    def __init__(
        self,
        layout: HomeLayout,
        source_url: str,
        *,
        http: Optional[HttpClient] = None,
        ttl_seconds: float = 24 * 3600.0,
        retries: int = 3,
        retry_delay: float = 0.5,
        lock_timeout: float = 10.0,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self.layout = layout
        self.source_url = source_url
        self.http = http
        self.ttl_seconds = ttl_seconds
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.lock_timeout = lock_timeout
        self.clock = clock
        self._index: Optional[Index] = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def current(self) -> Index:
        """Return the cached index, loading it from disk on first use."""
        if self._index is None:
            doc = json_read(self.layout.index_file)
            if doc is None:
                self._index = Index.empty()
            else:
                try:
                    self._index = Index.from_document(doc)
                except ValueError as exc:
                    raise StateError(
                        f"Cached index {self.layout.index_file} is invalid: {exc}; "
                        "run `jorup blockchain update` to replace it"
                    ) from exc
        return self._index

    def meta(self) -> Dict[str, Any]:
        data = json_read(self.layout.index_meta_file)
        return data if isinstance(data, dict) else {}

    @property
    def has_cache(self) -> bool:
        return self.layout.index_file.is_file()

    @property
    def is_stale(self) -> bool:
        if not self.has_cache:
            return True
        fetched_at = self.meta().get("fetched_at")
        if not isinstance(fetched_at, (int, float)):
            return True
        return self.clock.time() - fetched_at > self.ttl_seconds

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self) -> bool:
        """
        Replace the cached index with the remote document.

        Returns
        -------
        bool
            True if the cache content changed, False on 304 Not Modified.

        Raises
        ------
        FetchError
            Transport failure after all retries, or an invalid document.
        """
        local = local_source_path(self.source_url)
        if local is not None:
            document = self._read_local(local)
            etag = None
        else:
            document, etag = self._fetch_remote()
            if document is None:
                logger.info("Release index not modified at %s", self.source_url)
                self._write_meta(etag)
                return False

        try:
            index = Index.from_document(document)
        except ValueError as exc:
            raise FetchError(f"Invalid release index from {self.source_url}: {exc}") from exc

        with FileLock(self.layout.lock_file("index"), timeout=self.lock_timeout):
            json_write(self.layout.index_file, document)
            self._write_meta_unlocked(etag)
        self._index = index
        logger.info(
            "Release index refreshed from %s: %d releases, %d blockchains",
            self.source_url, len(index.releases), len(index.blockchains),
        )
        return True

    def _read_local(self, path: Path) -> Any:
        try:
            doc = json_read(path)
        except StateError as exc:
            raise FetchError(str(exc)) from exc
        if doc is None:
            raise FetchError(f"Release index file {path} does not exist")
        return doc

    def _fetch_remote(self):
        if self.http is None:
            self.http = HttpClient()
        etag = self.meta().get("etag") if self.has_cache else None

        last_error: Optional[FetchError] = None
        for attempt in range(1, self.retries + 1):
            try:
                return self.http.get_json(self.source_url, etag=etag)
            except FetchError as exc:
                last_error = exc
                logger.warning(
                    "Index fetch attempt %d/%d failed: %s", attempt, self.retries, exc
                )
                if attempt < self.retries:
                    self.clock.sleep(self.retry_delay * attempt)
        assert last_error is not None
        raise last_error

    def _write_meta(self, etag: Optional[str]) -> None:
        with FileLock(self.layout.lock_file("index"), timeout=self.lock_timeout):
            self._write_meta_unlocked(etag)

    def _write_meta_unlocked(self, etag: Optional[str]) -> None:
        json_write(
            self.layout.index_meta_file,
            {
                "etag": etag,
                "fetched_at": self.clock.time(),
                "source": self.source_url,
            },
        )


__all__ = ["ReleaseIndex"]
