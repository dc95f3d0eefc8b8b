"""
REST client for a running node.

Endpoints are relative to the node API base (``http://<listen>/api``):

    GET <base>/v0/node/stats   node statistics
    GET <base>/v0/settings     blockchain settings
    GET <base>/v0/shutdown     ask the node to stop
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..errors import ControlEndpointUnreachable, FetchError
from ..fetch import HttpClient

logger = logging.getLogger(__name__)


class NodeControlClient:
    def __init__(
        self,
        channel: str,
        endpoint: Optional[str],
        http: Optional[HttpClient] = None,
    ) -> None:
        self.channel = channel
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        self.http = http or HttpClient(timeout=5.0)

    def _call(self, path: str) -> Any:
        if self.endpoint is None:
            raise ControlEndpointUnreachable(self.channel, None)
        url = f"{self.endpoint}{path}"
        try:
            return self.http.request_json("GET", url)
        except FetchError as exc:
            raise ControlEndpointUnreachable(self.channel, self.endpoint) from exc

    def node_stats(self) -> Any:
        return self._call("/v0/node/stats")

    def settings(self) -> Any:
        return self._call("/v0/settings")

    def shutdown(self) -> None:
        self._call("/v0/shutdown")
        logger.info("Shutdown requested through %s", self.endpoint)

    def ping(self) -> bool:
        """True when the node answers its stats endpoint."""
        try:
            self.node_stats()
        except ControlEndpointUnreachable:
            return False
        return True


__all__ = ["NodeControlClient"]
