from __future__ import annotations

import asyncio
import json

import pytest

from app.errors import CacheInstallError, NetworkError
from app.services.cache_storage import CacheStorage, FetchRequest, FetchResponse
from app.services.offline_cache import (
    OfflineCacheManager,
    RequestClass,
    WorkerState,
    classify_request,
)
from app.services.worker_clients import ClientRegistry, WindowClient
from config import STATIC_ASSETS, CacheGeneration

ORIGIN = "https://aura.test"
STATIC = CacheGeneration.STATIC.value
DYNAMIC = CacheGeneration.DYNAMIC.value


class FakeNetwork:
    """Answers every URL with 200 "v<version>:<path>" unless told otherwise."""

    def __init__(self):
        self.offline = False
        self.version = 1
        self.overrides: dict[str, object] = {}
        self.calls: list[FetchRequest] = []

    async def __call__(self, request: FetchRequest) -> FetchResponse:
        self.calls.append(request)
        if self.offline:
            raise NetworkError(f"offline: {request.url}")
        override = self.overrides.get(request.path)
        if isinstance(override, Exception):
            raise override
        if isinstance(override, FetchResponse):
            return override.clone()
        return FetchResponse(status=200, body=f"v{self.version}:{request.path}".encode(), url=request.url)


def make_manager(clients=None, caches=None, static_assets=STATIC_ASSETS):
    network = FakeNetwork()
    manager = OfflineCacheManager(
        ORIGIN,
        fetch=network,
        caches=caches,
        clients=ClientRegistry(clients),
        static_assets=static_assets,
    )
    return manager, network


def run(coro):
    return asyncio.run(coro)


def make_active_manager(static_assets=()):
    """Installed and activated manager; the network log starts empty."""
    manager, network = make_manager(static_assets=static_assets)
    run(manager.start())
    network.calls.clear()
    return manager, network


# ------------------------------------------------------------------------------
# LIFECYCLE
# ------------------------------------------------------------------------------

def test_install_precaches_every_manifest_path():
    manager, _ = make_manager()

    run(manager.install())

    assert manager.state is WorkerState.INSTALLED
    assert manager.waiting is False
    static = manager.caches.open(STATIC)
    assert len(static) == len(STATIC_ASSETS)
    for path in STATIC_ASSETS:
        cached = static.match(manager.request_for(path))
        assert cached is not None
        assert cached.body == f"v1:{path}".encode()


@pytest.mark.parametrize(
    "failure",
    [NetworkError("down"), FetchResponse(status=404)],
)
def test_install_is_all_or_nothing(failure):
    manager, network = make_manager()
    network.overrides["/js/app.js"] = failure

    with pytest.raises(CacheInstallError) as exc_info:
        run(manager.install())

    assert exc_info.value.failed == (f"{ORIGIN}/js/app.js",)
    assert manager.state is WorkerState.UNINSTALLED
    assert len(manager.caches.open(STATIC)) == 0


def test_install_unexpected_error_resets_state():
    manager, network = make_manager()
    network.overrides["/js/app.js"] = RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        run(manager.install())

    assert manager.state is WorkerState.UNINSTALLED
    assert len(manager.caches.open(STATIC)) == 0


def test_activate_requires_installation():
    manager, _ = make_manager()

    with pytest.raises(RuntimeError):
        run(manager.activate())


def test_activate_purges_stale_generations_and_claims_clients():
    caches = CacheStorage()
    caches.open("aura-static-v4.3.0")
    caches.open("aura-dynamic-v4.3.0")
    caches.open("something-else")
    pages = [WindowClient(url=f"{ORIGIN}/"), WindowClient(url=f"{ORIGIN}/settings")]
    manager, _ = make_manager(clients=pages, caches=caches)

    run(manager.start())

    assert manager.state is WorkerState.ACTIVE
    assert set(manager.caches.keys()) <= {g.value for g in CacheGeneration}
    assert "aura-static-v4.3.0" not in manager.caches.keys()
    assert STATIC in manager.caches.keys()
    assert all(page.controller == manager.controller_id for page in pages)


def test_activate_keeps_current_generations():
    caches = CacheStorage()
    caches.open(DYNAMIC).put(
        FetchRequest(f"{ORIGIN}/api/health"), FetchResponse(body=b"cached")
    )
    manager, _ = make_manager(caches=caches)

    run(manager.start())

    assert manager.caches.has(DYNAMIC)
    assert manager.caches.open(DYNAMIC).match(FetchRequest(f"{ORIGIN}/api/health")).body == b"cached"


# ------------------------------------------------------------------------------
# FETCH ROUTING
# ------------------------------------------------------------------------------

@pytest.mark.parametrize(
    "request_, expected",
    [
        (FetchRequest(f"{ORIGIN}/api/health"), RequestClass.API),
        (FetchRequest(f"{ORIGIN}/api/chat", method="POST"), RequestClass.API),
        (FetchRequest(f"{ORIGIN}/", destination="document"), RequestClass.STATIC),
        (FetchRequest(f"{ORIGIN}/css/styles.css", destination="style"), RequestClass.STATIC),
        (FetchRequest(f"{ORIGIN}/js/app.js", destination="script"), RequestClass.STATIC),
        (FetchRequest(f"{ORIGIN}/icons/a.png", destination="image"), RequestClass.STATIC),
        (FetchRequest(f"{ORIGIN}/font.woff2", destination="font"), RequestClass.PASSTHROUGH),
        (FetchRequest(f"{ORIGIN}/upload", method="POST", destination="document"), RequestClass.PASSTHROUGH),
    ],
)
def test_classify_request(request_, expected):
    assert classify_request(request_) is expected


def test_passthrough_requests_are_not_intercepted():
    manager, network = make_active_manager()

    result = run(manager.handle_fetch(FetchRequest(f"{ORIGIN}/font.woff2", destination="font")))

    assert result is None
    assert network.calls == []


@pytest.mark.parametrize("stage", ["new", "installed"])
def test_fetches_are_not_intercepted_before_activation(stage):
    manager, network = make_manager()
    if stage == "installed":
        run(manager.install())
        network.calls.clear()

    api = run(manager.handle_fetch(manager.request_for("/api/health")))
    page = run(manager.handle_fetch(manager.request_for("/", destination="document")))

    assert api is None
    assert page is None
    assert network.calls == []
    assert not manager.caches.has(DYNAMIC)


# ------------------------------------------------------------------------------
# NETWORK-FIRST (API)
# ------------------------------------------------------------------------------

def test_api_get_200_is_stored_in_dynamic_generation():
    manager, _ = make_active_manager()
    request = manager.request_for("/api/health")

    response = run(manager.handle_fetch(request))

    assert response.body == b"v1:/api/health"
    stored = manager.caches.open(DYNAMIC).match(request)
    assert stored is not None
    assert stored.body == b"v1:/api/health"


@pytest.mark.parametrize("status", [200, 500])
def test_api_post_is_never_stored(status):
    manager, network = make_active_manager()
    network.overrides["/api/chat"] = FetchResponse(status=status, body=b"{}")
    request = manager.request_for("/api/chat", method="POST")

    response = run(manager.handle_fetch(request))

    assert response.status == status
    assert not manager.caches.has(DYNAMIC) or len(manager.caches.open(DYNAMIC)) == 0


def test_api_get_non_200_is_not_stored():
    manager, network = make_active_manager()
    network.overrides["/api/health"] = FetchResponse(status=503)

    response = run(manager.handle_fetch(manager.request_for("/api/health")))

    assert response.status == 503
    assert not manager.caches.has(DYNAMIC)


def test_api_offline_serves_last_cached_copy():
    manager, network = make_active_manager()
    request = manager.request_for("/api/health")
    run(manager.handle_fetch(request))
    network.offline = True

    response = run(manager.handle_fetch(request))

    assert response.body == b"v1:/api/health"


def test_api_offline_without_cache_propagates_failure():
    manager, network = make_active_manager()
    network.offline = True

    with pytest.raises(NetworkError):
        run(manager.handle_fetch(manager.request_for("/api/health")))


# ------------------------------------------------------------------------------
# CACHE-FIRST (STATIC ASSETS)
# ------------------------------------------------------------------------------

def test_cached_asset_is_served_and_refreshed_in_background():
    manager, network = make_active_manager(STATIC_ASSETS)
    network.version = 2
    request = manager.request_for("/css/styles.css", destination="style")

    async def scenario():
        response = await manager.handle_fetch(request)
        await manager.wait_for_background()
        return response

    response = run(scenario())

    assert response.body == b"v1:/css/styles.css"
    assert manager.caches.open(DYNAMIC).match(request).body == b"v2:/css/styles.css"


def test_background_refresh_failure_keeps_cached_copy():
    manager, network = make_active_manager(STATIC_ASSETS)
    network.offline = True
    request = manager.request_for("/js/app.js", destination="script")

    async def scenario():
        response = await manager.handle_fetch(request)
        await manager.wait_for_background()
        return response

    assert run(scenario()).body == b"v1:/js/app.js"
    assert not manager.caches.has(DYNAMIC)


def test_uncached_asset_is_fetched_and_stored():
    manager, _ = make_active_manager()
    request = manager.request_for("/icons/new.png", destination="image")

    response = run(manager.handle_fetch(request))

    assert response.body == b"v1:/icons/new.png"
    assert manager.caches.open(DYNAMIC).match(request) is not None


@pytest.mark.parametrize(
    "response",
    [
        FetchResponse(status=200, type="cors"),
        FetchResponse(status=200, redirected=True),
        FetchResponse(status=404),
    ],
)
def test_only_direct_basic_200_responses_are_stored(response):
    manager, network = make_active_manager()
    network.overrides["/icons/remote.png"] = response
    request = manager.request_for("/icons/remote.png", destination="image")

    result = run(manager.handle_fetch(request))

    assert result.status == response.status
    assert not manager.caches.has(DYNAMIC)


def test_offline_page_falls_back_to_cached_root():
    manager, network = make_active_manager(STATIC_ASSETS)
    network.offline = True

    response = run(manager.handle_fetch(manager.request_for("/chat/history", destination="document")))

    assert response.body == b"v1:/"


def test_offline_image_without_cache_has_no_response():
    manager, network = make_active_manager(STATIC_ASSETS)
    network.offline = True

    with pytest.raises(NetworkError):
        run(manager.handle_fetch(manager.request_for("/icons/missing.png", destination="image")))


def test_offline_page_without_root_has_no_response():
    manager, network = make_active_manager()
    network.offline = True

    with pytest.raises(NetworkError):
        run(manager.handle_fetch(manager.request_for("/about", destination="document")))


def test_put_overwrites_same_request():
    storage = CacheStorage()
    cache = storage.open(DYNAMIC)
    request = FetchRequest(f"{ORIGIN}/a#section")

    cache.put(request, FetchResponse(body=b"first"))
    cache.put(FetchRequest(f"{ORIGIN}/a"), FetchResponse(body=b"second"))

    assert len(cache) == 1
    assert cache.match(request).body == b"second"


def test_put_rejects_non_get():
    cache = CacheStorage().open(DYNAMIC)

    with pytest.raises(ValueError):
        cache.put(FetchRequest(f"{ORIGIN}/api/chat", method="POST"), FetchResponse())


# ------------------------------------------------------------------------------
# BACKGROUND SYNC
# ------------------------------------------------------------------------------

def test_background_sync_refreshes_dynamic_entries():
    manager, network = make_active_manager()
    health = manager.request_for("/api/health")
    run(manager.handle_fetch(health))
    run(manager.handle_fetch(manager.request_for("/icons/new.png", destination="image")))
    network.version = 2

    refreshed = run(manager.handle_sync("background-sync"))

    assert refreshed == 2
    assert manager.caches.open(DYNAMIC).match(health).body == b"v2:/api/health"


def test_background_sync_tolerates_failures_and_ignores_other_tags():
    manager, network = make_active_manager()
    run(manager.handle_fetch(manager.request_for("/api/health")))
    network.offline = True

    assert run(manager.handle_sync("background-sync")) == 0
    assert run(manager.handle_sync("periodic-refresh")) == 0
    assert run(make_manager()[0].handle_sync("background-sync")) == 0


# ------------------------------------------------------------------------------
# PUSH NOTIFICATIONS
# ------------------------------------------------------------------------------

def test_push_without_data_shows_nothing():
    manager, _ = make_manager()

    assert run(manager.handle_push(None)) is None
    assert run(manager.handle_push(b"")) is None
    assert manager.notifications.notifications == []


def test_push_builds_notification_from_payload():
    manager, _ = make_manager()
    payload = json.dumps({"title": "Reminder", "body": "Stand up", "url": "/chat"}).encode()

    notification = run(manager.handle_push(payload))

    assert notification.title == "Reminder"
    assert notification.body == "Stand up"
    assert notification.data == {"url": "/chat"}
    assert [a["action"] for a in notification.actions] == ["open", "dismiss"]
    assert manager.notifications.open_notifications() == [notification]


def test_push_uses_defaults():
    manager, _ = make_manager()

    notification = run(manager.handle_push({"other": 1}))

    assert notification.title == "AURA AI"
    assert notification.body == "AURA System Notification"
    assert notification.data == {"url": "/"}


def test_push_with_plain_text_payload():
    manager, _ = make_manager()

    notification = run(manager.handle_push("hello there"))

    assert notification.title == "AURA AI"
    assert notification.body == "hello there"


def test_open_action_focuses_existing_root_window():
    root = WindowClient(url=f"{ORIGIN}/")
    other = WindowClient(url=f"{ORIGIN}/settings")
    manager, _ = make_manager(clients=[other, root])
    notification = run(manager.handle_push({"title": "Hi"}))

    client = run(manager.handle_notification_click(notification, "open"))

    assert client is root
    assert root.focused is True
    assert notification.closed is True
    assert len(manager.clients.clients) == 2


def test_open_action_opens_window_when_none_shows_root():
    manager, _ = make_manager(clients=[WindowClient(url=f"{ORIGIN}/settings")])
    notification = run(manager.handle_push({"title": "Hi"}))

    client = run(manager.handle_notification_click(notification, "open"))

    assert client.url == f"{ORIGIN}/"
    assert client in manager.clients.clients
    assert notification.closed is True


def test_dismiss_action_only_closes():
    manager, _ = make_manager()
    notification = run(manager.handle_push({"title": "Hi"}))

    result = run(manager.handle_notification_click(notification, "dismiss"))

    assert result is None
    assert notification.closed is True
    assert manager.clients.clients == []


# ------------------------------------------------------------------------------
# HTTPX FETCHER
# ------------------------------------------------------------------------------

def test_httpx_fetcher_maps_responses_and_errors():
    import httpx

    from app.services.offline_cache import HttpxFetcher

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": f"{ORIGIN}/new"})
        if request.url.path == "/down":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, content=b"body", headers={"X-Test": "1"})

    async def scenario():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport, follow_redirects=True) as client:
            fetcher = HttpxFetcher(ORIGIN, client=client)
            direct = await fetcher(FetchRequest(f"{ORIGIN}/index.html"))
            redirected = await fetcher(FetchRequest(f"{ORIGIN}/old"))
            foreign = await fetcher(FetchRequest("https://cdn.example/lib.js"))
            with pytest.raises(NetworkError):
                await fetcher(FetchRequest(f"{ORIGIN}/down"))
        return direct, redirected, foreign

    direct, redirected, foreign = run(scenario())

    assert (direct.status, direct.body, direct.type, direct.redirected) == (200, b"body", "basic", False)
    assert direct.headers["x-test"] == "1"
    assert redirected.redirected is True
    assert redirected.url == f"{ORIGIN}/new"
    assert foreign.type == "cors"
