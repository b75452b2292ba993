"""
Overall time limit for HTTP exchanges.

httpx timeouts bound each connect, read, write and pool step on its own, so a
server trickling its body a byte at a time never trips them. The event hooks
built here give every request/response exchange one deadline, covering the
wait for headers and the body read. Each redirect hop and the retry after a
token refresh is a new exchange with a fresh deadline.
"""

import time
from collections.abc import Callable, Iterator
from typing import Any

import httpx

DEADLINE_EXTENSION = "bbcli.deadline"


def _check(request: httpx.Request, deadline: float, timeout: float) -> None:
    if time.monotonic() > deadline:
        raise httpx.ReadTimeout(f"request exceeded the {timeout:g}s time limit", request=request)


class DeadlineStream(httpx.SyncByteStream):
    """Response body stream that raises ReadTimeout once the deadline passes."""

    def __init__(self, stream: httpx.SyncByteStream, request: httpx.Request, deadline: float, timeout: float):
        self._stream = stream
        self._request = request
        self._deadline = deadline
        self._timeout = timeout

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._stream:
            _check(self._request, self._deadline, self._timeout)
            yield chunk

    def close(self) -> None:
        self._stream.close()


def deadline_hooks(timeout: float) -> dict[str, list[Callable[..., Any]]]:
    """Event hooks for `httpx.Client(event_hooks=...)` enforcing `timeout` seconds per exchange."""

    def start(request: httpx.Request) -> None:
        request.extensions[DEADLINE_EXTENSION] = time.monotonic() + timeout

    def bound(response: httpx.Response) -> None:
        request = response.request
        deadline = request.extensions.get(DEADLINE_EXTENSION)
        if deadline is None:
            return
        _check(request, deadline, timeout)
        if isinstance(response.stream, httpx.SyncByteStream):
            response.stream = DeadlineStream(response.stream, request, deadline, timeout)

    return {"request": [start], "response": [bound]}
