"""
CACHE STORAGE MODULE
====================

In-memory model of the browser Cache Storage API used by the offline cache
manager: named caches ("generations") holding request -> response snapshots.

  FetchRequest   - method, absolute URL and destination ("document", "style", ...).
  FetchResponse  - status, body, headers, response type and redirect flag.
  Cache          - one named generation; at most one entry per request identity.
  CacheStorage   - the set of named generations, enumerated in creation order.

Request identity is (METHOD, URL without fragment). put() overwrites, so when
two writers race for the same key the last one wins.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urldefrag, urljoin, urlsplit

from app.errors import CacheInstallError, NetworkError


def normalize_url(url: str, base: Optional[str] = None) -> str:
    if base:
        url = urljoin(base, url)
    return urldefrag(url)[0]


@dataclass(frozen=True)
class FetchRequest:
    url: str
    method: str = "GET"
    destination: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return self.method.upper(), normalize_url(self.url)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"


@dataclass
class FetchResponse:
    status: int = 200
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    type: str = "basic"
    redirected: bool = False
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def clone(self) -> "FetchResponse":
        return replace(self, headers=dict(self.headers))


Fetcher = Callable[[FetchRequest], Awaitable[FetchResponse]]


@dataclass
class CacheEntry:
    request: FetchRequest
    response: FetchResponse
    generation: str
    stored_at: float = field(default_factory=time.time)


class Cache:
    """One cache generation. Stored responses are cloned on the way in and out."""

    def __init__(self, name: str):
        self.name = name
        self.created_at = time.time()
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def match(self, request: FetchRequest) -> Optional[FetchResponse]:
        entry = self._entries.get(request.key)
        return entry.response.clone() if entry else None

    def put(self, request: FetchRequest, response: FetchResponse) -> None:
        if request.method.upper() != "GET":
            raise ValueError(f"Only GET requests can be cached, got {request.method}")
        self._entries[request.key] = CacheEntry(request, response.clone(), self.name)

    def delete(self, request: FetchRequest) -> bool:
        return self._entries.pop(request.key, None) is not None

    def keys(self) -> List[FetchRequest]:
        return [entry.request for entry in self._entries.values()]

    async def add_all(self, requests: Iterable[FetchRequest], fetch: Fetcher) -> None:
        """
        Fetch every request and store the responses, or store nothing.

        Raises CacheInstallError naming each URL that failed to fetch or came back
        with a non-ok status.
        """
        requests = list(requests)
        results = await asyncio.gather(
            *(fetch(request) for request in requests), return_exceptions=True
        )

        failed = []
        for request, result in zip(requests, results):
            if isinstance(result, NetworkError):
                failed.append(request.url)
            elif isinstance(result, BaseException):
                raise result
            elif not result.ok:
                failed.append(request.url)
        if failed:
            raise CacheInstallError(
                f"Failed to cache {len(failed)} of {len(requests)} assets: {', '.join(failed)}",
                failed=tuple(failed),
            )

        for request, response in zip(requests, results):
            self.put(request, response)


class CacheStorage:
    def __init__(self):
        self._caches: "OrderedDict[str, Cache]" = OrderedDict()

    def open(self, name: str) -> Cache:
        if name not in self._caches:
            self._caches[name] = Cache(name)
        return self._caches[name]

    def has(self, name: str) -> bool:
        return name in self._caches

    def delete(self, name: str) -> bool:
        return self._caches.pop(name, None) is not None

    def keys(self) -> List[str]:
        return list(self._caches)

    def match(self, request: FetchRequest) -> Optional[FetchResponse]:
        """First stored response for the request in any generation, oldest generation first."""
        for cache in self._caches.values():
            response = cache.match(request)
            if response is not None:
                return response
        return None
