from __future__ import annotations

import sys
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import httpx
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from echo_proxy.app import create_app
from echo_proxy.config import Settings
from echo_proxy.errors import NotReadyError
from echo_proxy.models import PROVENANCE_PRIMARY, DownloadFormat, StreamResult
from echo_proxy.orchestrator import MediaPlan
from echo_proxy.ratelimit import RequestRateLimiter


def hits(prefix, count):
    return [{"videoId": f"{prefix}{i}", "title": f"{prefix} {i}"} for i in range(count)]


class FakeGateway:
    def __init__(self, ready=True):
        self.ready = ready
        self.searches = []

    def start(self):
        return None

    async def stop(self):
        return None

    def require_ready(self):
        if not self.ready:
            raise NotReadyError("YTMusic not initialized yet. Please try again.")

    async def search(self, query, type=None):
        self.searches.append((query, type))
        return hits("song", 25)

    async def search_all(self, query):
        return {name: hits(name, 15) for name in ("songs", "albums", "artists", "playlists")}

    async def get_song(self, video_id):
        return {"videoDetails": {"title": "Song", "author": "Artist", "videoId": video_id}}

    async def get_artist(self, artist_id):
        return {"name": "Artist", "thumbnails": [{"url": "https://yt3.googleusercontent.com/a=s88"}]}

    async def get_album(self, album_id):
        return {"title": "Album", "tracks": hits("track", 2)}

    async def get_playlist_with_tracks(self, playlist_id):
        return {"title": "Playlist", "tracks": []}


class FakeOrchestrator:
    def __init__(self, stream=None, plan=None, error=None):
        self.stream = stream
        self.plan = plan
        self.error = error

    async def get_stream(self, content_id, base_url):
        if self.error is not None:
            raise self.error
        return self.stream

    async def open_media(self, content_id, range_header=None):
        if self.error is not None:
            raise self.error
        return self.plan


def make_client(gateway=None, orchestrator=None, limiter=None, transport=None):
    app = create_app(
        Settings(),
        gateway=gateway or FakeGateway(),
        orchestrator=orchestrator or FakeOrchestrator(),
        limiter=limiter,
        transport=transport,
    )
    return TestClient(app)


def proxied_original(url):
    return parse_qs(urlsplit(url).query)["url"][0]


def test_health_reports_catalog_readiness():
    response = make_client(gateway=FakeGateway(ready=False)).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "ytmusicInitialized": False}


def test_search_requires_a_query():
    response = make_client().post("/api/search", json={"type": "song"})

    assert response.status_code == 400
    assert response.json()["error"] == "Query parameter is required"
    assert response.json()["category"] == "validation"


def test_search_before_catalog_is_ready_is_unavailable():
    response = make_client(gateway=FakeGateway(ready=False)).post("/api/search", json={"query": "x"})

    assert response.status_code == 503
    assert response.json()["category"] == "not_ready"


def test_search_caps_results_and_adds_proxied_art():
    gateway = FakeGateway()
    response = make_client(gateway=gateway).post("/api/search", json={"query": "daft punk", "type": "song"})

    results = response.json()["results"]
    assert response.status_code == 200
    assert len(results) == 20
    assert gateway.searches == [("daft punk", "song")]
    thumbnails = results[0]["thumbnails"]
    assert thumbnails[0]["url"].startswith("http://testserver/api/proxy/image?url=")
    assert proxied_original(thumbnails[1]["url"]) == "https://i.ytimg.com/vi/song0/hqdefault.jpg"


def test_search_all_caps_each_category_at_ten():
    response = make_client().post("/api/search", json={"query": "x", "type": "all"})

    results = response.json()["results"]
    assert set(results) == {"songs", "albums", "artists", "playlists"}
    assert all(len(items) == 10 for items in results.values())


def test_artist_thumbnails_are_upscaled_and_proxied():
    response = make_client().get("/api/artist/UC1")

    thumbnail = response.json()["artist"]["thumbnails"][0]["url"]
    assert proxied_original(thumbnail) == "https://yt3.googleusercontent.com/a=s500"


def test_album_and_playlist_always_carry_tracks():
    client = make_client()

    album = client.get("/api/album/MPREb_1", params={"name": "Album"}).json()["album"]
    playlist = client.get("/api/playlist/PL1").json()["playlist"]

    assert len(album["tracks"]) == len(album["songs"]) == 2
    assert playlist["tracks"] == []


def test_stream_returns_locator_and_provenance():
    stream = StreamResult(
        url="http://testserver/api/proxy/abc", quality="160kbps",
        provenance=PROVENANCE_PRIMARY, title="Song",
    )

    response = make_client(orchestrator=FakeOrchestrator(stream=stream)).get("/api/stream/abc")

    assert response.json() == {
        "success": True,
        "url": "http://testserver/api/proxy/abc",
        "quality": "160kbps",
        "source": "YouTube (yt-dlp)",
        "title": "Song",
    }


def test_stream_failure_surfaces_root_cause():
    orchestrator = FakeOrchestrator(error=RuntimeError("Sign in to confirm you're not a bot"))

    response = make_client(orchestrator=orchestrator).get("/api/stream/abc")

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to get stream URL"
    assert response.json()["message"] == "Sign in to confirm you're not a bot"


def test_proxy_redirects_to_mirror_stream():
    plan = MediaPlan(redirect_url="https://mirror.test/audio")

    response = make_client(orchestrator=FakeOrchestrator(plan=plan)).get(
        "/api/proxy/abc", follow_redirects=False
    )

    assert response.status_code == 307
    assert response.headers["location"] == "https://mirror.test/audio"


def test_proxy_streams_bytes_with_range_headers():
    async def body():
        yield b"ab"
        yield b"cd"

    plan = MediaPlan(
        format=DownloadFormat(url="https://media.test/140", bitrate=129, ext="m4a"),
        status_code=206,
        headers={"content-range": "bytes 0-3/10"},
        body=body(),
    )

    response = make_client(orchestrator=FakeOrchestrator(plan=plan)).get("/api/proxy/abc")

    assert response.status_code == 206
    assert response.content == b"abcd"
    assert response.headers["content-type"] == "audio/mp4"
    assert response.headers["accept-ranges"] == "bytes"
    assert response.headers["content-range"] == "bytes 0-3/10"
    assert response.headers["access-control-allow-origin"] == "*"


def test_proxy_failure_before_streaming_is_reported():
    response = make_client(orchestrator=FakeOrchestrator(error=RuntimeError("boom"))).get("/api/proxy/abc")

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to proxy stream"


def test_image_proxy_relays_content_with_cache_headers():
    def handler(request):
        assert str(request.url) == "https://i.ytimg.com/vi/abc/hqdefault.jpg"
        return httpx.Response(200, content=b"\xff\xd8jpeg", headers={"content-type": "image/webp"})

    client = make_client(transport=httpx.MockTransport(handler))
    response = client.get("/api/proxy/image", params={"url": "https://i.ytimg.com/vi/abc/hqdefault.jpg"})

    assert response.status_code == 200
    assert response.content == b"\xff\xd8jpeg"
    assert response.headers["content-type"] == "image/webp"
    assert response.headers["cache-control"] == "public, max-age=86400"


def test_image_proxy_requires_url_and_reports_fetch_failures():
    client = make_client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

    assert client.get("/api/proxy/image").status_code == 400
    failed = client.get("/api/proxy/image", params={"url": "https://example.test/missing.jpg"})
    assert failed.status_code == 502
    assert failed.json()["error"] == "Failed to fetch image"


def test_rate_limit_applies_to_api_routes_only():
    client = make_client(limiter=RequestRateLimiter(limit=2, window=60))

    first = client.get("/api/playlist/PL1")
    client.get("/api/playlist/PL1")
    rejected = client.get("/api/playlist/PL1")

    assert first.headers["ratelimit-remaining"] == "1"
    assert rejected.status_code == 429
    assert rejected.json()["error"] == "Too many requests, please try again later."
    assert "retry-after" in rejected.headers
    assert client.get("/health").status_code == 200


def test_flac_download_is_unavailable():
    response = make_client().get("/api/download/flac")

    assert response.json()["success"] is False
