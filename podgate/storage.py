# podgate/storage.py
"""
HTTP client for the remote storage server (a Solid pod).

Usage:
    storage = StorageClient(auth_token="...")
    response = storage.get("https://alice.example/inbox/")
    if response.ok:
        print(response.body)

Status codes are returned, not raised: callers decide whether 404 means
"nothing to do". Only transport failures raise TransientIOFailure.
"""

import logging
import socket
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import TransientIOFailure
from .vocab import TURTLE

logger = logging.getLogger(__name__)


@dataclass
class Response:
    """Status, decoded body and headers of a storage response."""
    status: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def missing(self) -> bool:
        return self.status in (404, 410)


class StorageClient:
    """
    Client for the storage collaborator.

    Args:
        auth_token: Bearer token sent with every request (optional)
        timeout: Request timeout in seconds
    """

    def __init__(self, auth_token: Optional[str] = None, timeout: float = 30):
        self.auth_token = auth_token
        self.timeout = timeout

    def _request(
        self,
        method: str,
        url: str,
        body: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        """Make HTTP request to the storage server."""
        headers = dict(headers or {})
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        data = body.encode() if body is not None else None
        req = Request(url, data=data, headers=headers, method=method)

        try:
            with urlopen(req, timeout=self.timeout) as response:
                return Response(
                    status=response.status,
                    body=response.read().decode(),
                    headers=dict(response.headers.items()),
                )
        except HTTPError as e:
            error_body = e.read().decode(errors="replace") if e.fp else ""
            logger.debug(f"{method} {url} -> HTTP {e.code}")
            return Response(status=e.code, body=error_body, headers=dict(e.headers.items()) if e.headers else {})
        except (URLError, socket.timeout, ConnectionError) as e:
            raise TransientIOFailure(f"{method} {url} failed: {e}") from e

    def get(self, url: str, accept: str = TURTLE, headers: Optional[Dict[str, str]] = None) -> Response:
        merged = {"Accept": accept}
        merged.update(headers or {})
        return self._request("GET", url, headers=merged)

    def head(self, url: str) -> Response:
        return self._request("HEAD", url)

    def put(
        self,
        url: str,
        body: str,
        content_type: str = TURTLE,
        headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        merged = {"Content-Type": content_type}
        merged.update(headers or {})
        return self._request("PUT", url, body=body, headers=merged)

    def post(
        self,
        container_url: str,
        body: str,
        content_type: str = TURTLE,
        slug: Optional[str] = None,
    ) -> Response:
        headers = {
            "Content-Type": content_type,
            "Link": '<http://www.w3.org/ns/ldp#Resource>; rel="type"',
        }
        if slug:
            headers["Slug"] = slug
        return self._request("POST", container_url, body=body, headers=headers)

    def delete(self, url: str) -> Response:
        return self._request("DELETE", url)
