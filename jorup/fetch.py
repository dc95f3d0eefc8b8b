"""
HTTP access for jorup.

All network traffic (index refresh, artifact download, node REST calls)
goes through ``HttpClient`` so that timeouts, the user agent and error
classification live in one place. Transport failures surface as
``FetchError`` with the URL and a short body excerpt.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from . import __version__
from .errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = f"jorup/{__version__}"

# Progress callback signature: progress(bytes_done, bytes_total_or_None)
ProgressFn = Callable[[int, Optional[int]], None]


def _raise_for_status(resp: requests.Response, url: str) -> None:
    try:
        resp.raise_for_status()
    except requests.HTTPError as exc:
        body = ""
        try:
            body = resp.text[:400]
        except Exception:
            logger.debug("Could not decode error body from %s", url)
        raise FetchError(f"Request failed ({url}): {exc} :: {body}") from exc


class HttpClient:
    """
    Thin wrapper over a ``requests.Session``.

    Parameters
    ----------
    session : Optional[requests.Session]
        Injected session (tests pass a MagicMock).
    timeout : float
        Connect/read timeout in seconds for every request.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self.timeout = timeout

    # ------------------------------------------------------------------
    # JSON documents
    # ------------------------------------------------------------------

    def get_json(
        self,
        url: str,
        *,
        etag: Optional[str] = None,
    ) -> Tuple[Optional[Any], Optional[str]]:
        """
        GET a JSON document, honouring a previously seen ETag.

        Returns
        -------
        (document, etag)
            ``document`` is None when the server answered 304 Not Modified.
        """
        headers: Dict[str, str] = {}
        if etag:
            headers["If-None-Match"] = etag

        try:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(f"Cannot reach {url}: {exc}") from exc

        if resp.status_code == 304:
            return None, etag
        _raise_for_status(resp, url)

        try:
            document = resp.json()
        except ValueError as exc:
            raise FetchError(f"Malformed JSON from {url}: {exc}") from exc
        return document, resp.headers.get("ETag")

    def request_json(self, method: str, url: str) -> Any:
        """
        Call a JSON endpoint of a running node. Empty bodies read as None.
        """
        try:
            resp = self.session.request(method, url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(f"Cannot reach {url}: {exc}") from exc
        _raise_for_status(resp, url)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def download(
        self,
        url: str,
        dest: Path,
        *,
        progress: Optional[ProgressFn] = None,
        chunk_size: int = 65536,
    ) -> Path:
        """
        Stream ``url`` into ``dest``. Local paths and ``file://`` URLs are
        copied without touching the network.
        """
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        local = local_source_path(url)
        if local is not None:
            return _copy_local(local, dest, progress, chunk_size)

        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as resp:
                _raise_for_status(resp, url)
                total = resp.headers.get("Content-Length")
                total_bytes = int(total) if total and total.isdigit() else None
                done = 0
                with open(dest, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=chunk_size):
                        if not chunk:
                            continue
                        f.write(chunk)
                        done += len(chunk)
                        if progress is not None:
                            progress(done, total_bytes)
        except requests.RequestException as exc:
            raise FetchError(f"Failed to download {url}: {exc}") from exc
        return dest


def local_source_path(url: str) -> Optional[Path]:
    """Return the filesystem path for ``file://`` URLs and plain paths."""
    if url.startswith("file://"):
        return Path(url[len("file://"):])
    if "://" not in url:
        return Path(url)
    return None


def _copy_local(
    src: Path,
    dest: Path,
    progress: Optional[ProgressFn],
    chunk_size: int,
) -> Path:
    try:
        total = os.path.getsize(src)
        done = 0
        with open(src, "rb") as fin, open(dest, "wb") as fout:
            while True:
                chunk = fin.read(chunk_size)
                if not chunk:
                    break
                fout.write(chunk)
                done += len(chunk)
                if progress is not None:
                    progress(done, total)
    except OSError as exc:
        raise FetchError(f"Cannot read {src}: {exc}") from exc
    return dest


__all__ = [
    "USER_AGENT",
    "HttpClient",
    "local_source_path",
]
