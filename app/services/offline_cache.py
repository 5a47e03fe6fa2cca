"""
OFFLINE CACHE MANAGER MODULE
============================

The service-worker side of AURA: precaches the static frontend, cleans up old
cache generations, and answers fetches from cache when the network is gone.

LIFECYCLE:
  UNINSTALLED -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVE
  - install():  precache STATIC_ASSETS into the static generation (all-or-nothing),
                then skip waiting.
  - activate(): delete every cache whose name is not a CacheGeneration value,
                then claim all open clients.

FETCH STRATEGIES (handle_fetch):
  - /api/*          network-first. GET 200 responses are copied into the dynamic
                    generation; offline, the last cached copy is served.
  - GET document,   cache-first with background refresh (stale-while-revalidate).
    style, script,  Misses are fetched and stored when they are a direct 200.
    image           Offline page loads fall back to the cached "/".
  - anything else   not intercepted (returns None).

Nothing is intercepted until the worker is ACTIVE.

Fetch failures with nothing to fall back on raise NetworkError, which is what
the page sees as a failed fetch.

EVENTS:
  handle_sync("background-sync"), handle_push(data),
  handle_notification_click(notification, action)
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Optional, Set
from urllib.parse import urlsplit

import httpx

from app.errors import NetworkError
from app.services.cache_storage import CacheStorage, FetchRequest, FetchResponse, Fetcher, normalize_url
from app.services.worker_clients import ClientRegistry, Notification, NotificationCenter, WindowClient
from config import (
    API_PREFIX,
    BACKGROUND_SYNC_TAG,
    NOTIFICATION_BADGE,
    NOTIFICATION_DEFAULT_BODY,
    NOTIFICATION_DEFAULT_TITLE,
    NOTIFICATION_ICON,
    NOTIFICATION_VIBRATE,
    STATIC_ASSETS,
    CacheGeneration,
)

logger = logging.getLogger("AURA")

STATIC_DESTINATIONS = frozenset({"document", "style", "script", "image"})


class WorkerState(str, Enum):
    UNINSTALLED = "uninstalled"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"


class RequestClass(str, Enum):
    API = "api"
    STATIC = "static"
    PASSTHROUGH = "passthrough"


def classify_request(request: FetchRequest) -> RequestClass:
    if request.path.startswith(API_PREFIX):
        return RequestClass.API
    if request.method.upper() == "GET" and request.destination in STATIC_DESTINATIONS:
        return RequestClass.STATIC
    return RequestClass.PASSTHROUGH


# ==============================================================================
# NETWORK
# ==============================================================================

class HttpxFetcher:
    """
    Performs real network fetches for the manager.

    Responses from `origin` are typed "basic", everything else "cors". Any httpx
    transport error becomes NetworkError.
    """

    def __init__(self, origin: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self.origin = origin
        self.client = client
        self.timeout = timeout

    def _response_type(self, url: str) -> str:
        ours, theirs = urlsplit(self.origin), urlsplit(url)
        return "basic" if (ours.scheme, ours.netloc) == (theirs.scheme, theirs.netloc) else "cors"

    async def _send(self, client: httpx.AsyncClient, request: FetchRequest) -> FetchResponse:
        response = await client.request(request.method, request.url)
        return FetchResponse(
            status=response.status_code,
            body=response.content,
            headers=dict(response.headers),
            type=self._response_type(str(response.url)),
            redirected=bool(response.history),
            url=str(response.url),
        )

    async def __call__(self, request: FetchRequest) -> FetchResponse:
        try:
            if self.client is not None:
                return await self._send(self.client, request)
            async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
                return await self._send(client, request)
        except httpx.HTTPError as e:
            raise NetworkError(f"Fetch failed for {request.url}: {e}") from e


# ==============================================================================
# MANAGER
# ==============================================================================

class OfflineCacheManager:
    def __init__(
        self,
        origin: str,
        fetch: Optional[Fetcher] = None,
        caches: Optional[CacheStorage] = None,
        clients: Optional[ClientRegistry] = None,
        notifications: Optional[NotificationCenter] = None,
        static_assets=STATIC_ASSETS,
    ):
        self.origin = origin
        self.fetch = fetch or HttpxFetcher(origin)
        self.caches = caches or CacheStorage()
        self.clients = clients or ClientRegistry()
        self.notifications = notifications or NotificationCenter()
        self.static_assets = tuple(static_assets)
        self.state = WorkerState.UNINSTALLED
        self.waiting = False
        self._background: Set[asyncio.Task] = set()

    @property
    def controller_id(self) -> str:
        return CacheGeneration.UMBRELLA.value

    def request_for(self, path: str, method: str = "GET", destination: str = "") -> FetchRequest:
        """Build a request for a path relative to the origin."""
        return FetchRequest(url=normalize_url(path, base=self.origin), method=method, destination=destination)

    # --------------------------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------------------------

    async def install(self) -> None:
        """
        Precache every static asset. Raises CacheInstallError if any one fails;
        any other error is logged and re-raised as is.
        """
        logger.info("AURA Service Worker installing...")
        self.state = WorkerState.INSTALLING
        try:
            cache = self.caches.open(CacheGeneration.STATIC.value)
            logger.info("Caching %s static assets", len(self.static_assets))
            await cache.add_all((self.request_for(p) for p in self.static_assets), self.fetch)
        except Exception as e:
            logger.error("Cache installation failed: %s", e)
            self.state = WorkerState.UNINSTALLED
            raise

        self.state = WorkerState.INSTALLED
        self.waiting = True
        self.skip_waiting()
        logger.info("AURA Service Worker installed")

    def skip_waiting(self) -> None:
        """Activate as soon as installed instead of waiting for old pages to close."""
        self.waiting = False

    async def activate(self) -> None:
        if self.state is not WorkerState.INSTALLED:
            raise RuntimeError(f"Cannot activate from state {self.state.value}")
        if self.waiting:
            raise RuntimeError("Installed worker is waiting for old clients to close")

        logger.info("AURA Service Worker activating...")
        self.state = WorkerState.ACTIVATING

        current = {generation.value for generation in CacheGeneration}
        for name in self.caches.keys():
            if name not in current:
                logger.info("Deleting old cache: %s", name)
                self.caches.delete(name)

        claimed = self.clients.claim(self.controller_id)
        self.state = WorkerState.ACTIVE
        logger.info("AURA Service Worker activated (%s clients claimed)", claimed)

    async def start(self) -> None:
        await self.install()
        await self.activate()

    # --------------------------------------------------------------------------
    # FETCH
    # --------------------------------------------------------------------------

    async def handle_fetch(self, request: FetchRequest) -> Optional[FetchResponse]:
        """
        Answer an intercepted fetch, or return None to leave it to the browser.

        Only an ACTIVE worker controls the page; before activation every fetch
        goes straight to the network.
        """
        if self.state is not WorkerState.ACTIVE:
            return None
        kind = classify_request(request)
        if kind is RequestClass.API:
            return await self._network_first(request)
        if kind is RequestClass.STATIC:
            return await self._cache_first(request)
        return None

    async def _network_first(self, request: FetchRequest) -> FetchResponse:
        try:
            response = await self.fetch(request)
        except NetworkError:
            cached = self.caches.match(request)
            if cached is None:
                logger.warning("Offline and no cached copy of %s %s", request.method, request.url)
                raise
            return cached

        # Only reads are replayable offline.
        if request.method.upper() == "GET" and response.status == 200:
            self.caches.open(CacheGeneration.DYNAMIC.value).put(request, response.clone())
        return response

    async def _cache_first(self, request: FetchRequest) -> FetchResponse:
        cached = self.caches.match(request)
        if cached is not None:
            self._revalidate(request)
            return cached

        try:
            return await self._fetch_and_cache(request)
        except NetworkError:
            if request.destination == "document":
                fallback = self.caches.match(self.request_for("/"))
                if fallback is not None:
                    return fallback
            raise

    async def _fetch_and_cache(self, request: FetchRequest) -> FetchResponse:
        try:
            response = await self.fetch(request)
        except NetworkError as e:
            logger.error("Fetch failed: %s", e)
            raise

        if response.status == 200 and response.type == "basic" and not response.redirected:
            self.caches.open(CacheGeneration.DYNAMIC.value).put(request, response.clone())
        return response

    def _revalidate(self, request: FetchRequest) -> None:
        task = asyncio.get_running_loop().create_task(self._refresh(request))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh(self, request: FetchRequest) -> None:
        try:
            await self._fetch_and_cache(request)
        except NetworkError:
            # Keep serving the cached copy.
            pass

    async def wait_for_background(self) -> None:
        """Wait for every pending stale-while-revalidate refresh."""
        while self._background:
            await asyncio.gather(*list(self._background))

    # --------------------------------------------------------------------------
    # BACKGROUND SYNC
    # --------------------------------------------------------------------------

    async def handle_sync(self, tag: str) -> int:
        """Refresh every dynamic entry for the background-sync tag. Returns the refresh count."""
        if tag != BACKGROUND_SYNC_TAG:
            logger.debug("Ignoring sync tag %s", tag)
            return 0

        logger.info("Background sync triggered")
        if not self.caches.has(CacheGeneration.DYNAMIC.value):
            return 0

        refreshed = 0
        for request in self.caches.open(CacheGeneration.DYNAMIC.value).keys():
            try:
                await self._fetch_and_cache(request)
                refreshed += 1
            except NetworkError:
                continue
        logger.info("Background sync refreshed %s entries", refreshed)
        return refreshed

    # --------------------------------------------------------------------------
    # PUSH NOTIFICATIONS
    # --------------------------------------------------------------------------

    async def handle_push(self, data: Any) -> Optional[Notification]:
        """Show a notification for a push message. Messages without data are ignored."""
        if not data:
            return None

        if isinstance(data, (bytes, str)):
            try:
                data = json.loads(data)
            except ValueError:
                text = data.decode("utf-8", "replace") if isinstance(data, bytes) else data
                logger.warning("Push payload is not JSON, using it as the body")
                data = {"body": text}
        if not isinstance(data, dict):
            data = {}

        notification = Notification(
            title=data.get("title") or NOTIFICATION_DEFAULT_TITLE,
            body=data.get("body") or NOTIFICATION_DEFAULT_BODY,
            icon=NOTIFICATION_ICON,
            badge=NOTIFICATION_BADGE,
            vibrate=NOTIFICATION_VIBRATE,
            data={"url": data.get("url") or "/"},
            actions=[
                {"action": "open", "title": "Open AURA"},
                {"action": "dismiss", "title": "Dismiss"},
            ],
        )
        return await self.notifications.show(notification)

    async def handle_notification_click(
        self, notification: Notification, action: str = ""
    ) -> Optional[WindowClient]:
        """Close the notification; for "open", focus the AURA window or open one."""
        notification.close()
        if action != "open":
            return None

        for client in self.clients.match_all("window"):
            if urlsplit(client.url).path in ("", "/"):
                return await client.focus()
        return await self.clients.open_window(self.request_for("/").url)
