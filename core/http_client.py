import threading
from contextlib import contextmanager
from typing import Iterator, Mapping

import httpx

import config


class HttpClient:
    """Thread-safe httpx wrapper shared by the validator and the downloaders.

    Every request is attempted exactly once; callers decide what a failure means.
    """

    def __init__(
        self,
        headers: Mapping[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.client = httpx.Client(
            headers=dict(headers if headers is not None else config.HEADERS),
            transport=transport,
            follow_redirects=True,
        )
        self._closed = False
        self._close_lock = threading.Lock()

    def head(self, url: str, *, timeout: float) -> httpx.Response:
        return self.client.head(url, timeout=timeout)

    @contextmanager
    def stream(self, url: str, *, timeout: float) -> Iterator[httpx.Response]:
        with self.client.stream("GET", url, timeout=timeout) as response:
            yield response

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self.client.close()
