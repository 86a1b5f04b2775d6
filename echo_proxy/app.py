"""FastAPI routes: a thin layer over the catalog, resolver and rewriter."""

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Iterator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse
from pydantic import BaseModel
from slowapi.util import get_remote_address

from .albums import AlbumLookup, recover_album
from .catalog import CatalogGateway
from .config import Settings
from .errors import (
    ImageFetchError,
    ProxyError,
    RateLimitedError,
    UpstreamError,
    ValidationError,
)
from .mirrors import MirrorFallbackResolver
from .models import IMAGE_PROXY_USER_AGENT, SEARCH_ALL_LIMIT, SEARCH_LIMIT
from .orchestrator import StreamOrchestrator, describe_song
from .ratelimit import TOO_MANY_REQUESTS, RequestRateLimiter
from .retrying import RetryingResolver, make_ytdlp_fetcher
from .rotation import ClientRotation, RoundRobin
from .thumbnails import ThumbnailRewriter
from .ytdlp_options import load_proxies_from_file

logger = logging.getLogger(__name__)

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
IMAGE_CACHE_CONTROL = "public, max-age=86400"
FLAC_UNAVAILABLE = "FLAC downloads unavailable on this deployment. Use a local server for FLAC."


class SearchRequest(BaseModel):
    query: Optional[str] = None
    type: str = "song"


@contextmanager
def surfaced_as(message: str) -> Iterator[None]:
    """Report unexpected failures as one upstream error with the root cause."""
    try:
        yield
    except ProxyError:
        raise
    except Exception as exc:
        logger.error("%s: %s", message, exc)
        raise UpstreamError(message, str(exc)) from exc


def base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def build_orchestrator(
    settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> StreamOrchestrator:
    pool = load_proxies_from_file(settings.proxy_file) if settings.proxy_file else None
    primary = RetryingResolver(ClientRotation(), make_ytdlp_fetcher(settings.proxy, pool))
    mirrors = MirrorFallbackResolver(
        piped=RoundRobin(settings.piped_instances),
        invidious=RoundRobin(settings.invidious_instances),
        timeout=settings.mirror_timeout,
        transport=transport,
    )
    return StreamOrchestrator(primary, mirrors, max_attempts=settings.max_attempts, transport=transport)


def create_app(
    settings: Optional[Settings] = None,
    *,
    gateway: Optional[CatalogGateway] = None,
    orchestrator: Optional[StreamOrchestrator] = None,
    limiter: Optional[RequestRateLimiter] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or Settings()
    gateway = gateway or CatalogGateway()
    orchestrator = orchestrator or build_orchestrator(settings, transport)
    limiter = limiter or RequestRateLimiter(settings.rate_limit_requests, settings.rate_limit_window)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if not gateway.ready:
            gateway.start()
        yield
        await gateway.stop()

    app = FastAPI(title="Echo YTMusic Proxy", lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.orchestrator = orchestrator
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        decision = limiter.hit(get_remote_address(request))
        if not decision.admitted:
            return JSONResponse(
                RateLimitedError(TOO_MANY_REQUESTS).to_payload(),
                status_code=RateLimitedError.status_code,
                headers=decision.headers(),
            )
        response = await call_next(request)
        response.headers.update(decision.headers())
        return response

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(_request: Request, exc: ProxyError):
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_request: Request, exc: RequestValidationError):
        error = ValidationError("Invalid request body", str(exc.errors()))
        return JSONResponse(error.to_payload(), status_code=error.status_code)

    @app.get("/health")
    async def health():
        return {"status": "ok", "ytmusicInitialized": gateway.ready}

    @app.post("/api/search")
    async def search(body: SearchRequest, request: Request):
        gateway.require_ready()
        if not body.query:
            raise ValidationError("Query parameter is required")

        logger.info("Searching for: %s (type: %s)", body.query, body.type)
        rewriter = ThumbnailRewriter(base_url(request))

        with surfaced_as("Search failed"):
            if body.type == "all":
                categories = await gateway.search_all(body.query)
                return {
                    "success": True,
                    "results": {
                        name: rewriter.rewrite_results(items[:SEARCH_ALL_LIMIT])
                        for name, items in categories.items()
                    },
                }
            results = await gateway.search(body.query, body.type)

        return {"success": True, "results": rewriter.rewrite_results(results[:SEARCH_LIMIT])}

    @app.get("/api/song/{video_id}")
    async def get_song(video_id: str, request: Request):
        gateway.require_ready()
        logger.info("Getting song details for: %s", video_id)
        with surfaced_as("Failed to get song details"):
            song = await gateway.get_song(video_id)
        return {"success": True, "song": ThumbnailRewriter(base_url(request)).rewrite(song)}

    @app.get("/api/stream/{video_id}")
    async def get_stream(video_id: str, request: Request):
        logger.info("Getting stream for: %s", video_id)

        query = video_id
        if gateway.ready:
            try:
                query = describe_song(await gateway.get_song(video_id)) or video_id
            except Exception as exc:
                logger.warning("Failed to get metadata for %s, using the id instead: %s", video_id, exc)
        logger.info("Resolved metadata: %s", query)

        with surfaced_as("Failed to get stream URL"):
            stream = await orchestrator.get_stream(video_id, base_url(request))
        return {"success": True, **stream.to_dict()}

    # Must be registered before /api/proxy/{video_id}
    @app.get("/api/proxy/image")
    async def proxy_image(url: Optional[str] = None):
        if not url:
            raise ValidationError("URL required")

        try:
            async with httpx.AsyncClient(
                timeout=settings.image_timeout,
                headers={"User-Agent": IMAGE_PROXY_USER_AGENT},
                follow_redirects=True,
                transport=transport,
            ) as client:
                upstream = await client.get(url)
                upstream.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Image proxy error: %s", exc)
            raise ImageFetchError("Failed to fetch image", str(exc)) from exc

        return Response(
            content=upstream.content,
            media_type=upstream.headers.get("content-type") or "image/jpeg",
            headers={**CORS_HEADERS, "Cache-Control": IMAGE_CACHE_CONTROL},
        )

    @app.get("/api/proxy/{video_id}")
    async def proxy_stream(video_id: str, request: Request):
        logger.info("Proxying stream for: %s", video_id)
        with surfaced_as("Failed to proxy stream"):
            plan = await orchestrator.open_media(video_id, request.headers.get("range"))

        if plan.redirect_url:
            return RedirectResponse(plan.redirect_url, headers=CORS_HEADERS)

        return StreamingResponse(
            plan.body,
            status_code=plan.status_code,
            media_type=plan.format.content_type,
            headers={**CORS_HEADERS, "Accept-Ranges": "bytes", **plan.headers},
        )

    @app.get("/api/artist/{artist_id}")
    async def get_artist(artist_id: str, request: Request):
        gateway.require_ready()
        logger.info("Getting artist details for: %s", artist_id)
        with surfaced_as("Failed to get artist details"):
            artist = await gateway.get_artist(artist_id)
        return {"success": True, "artist": ThumbnailRewriter(base_url(request)).rewrite(artist)}

    @app.get("/api/album/{album_id}")
    async def get_album(
        album_id: str,
        request: Request,
        name: Optional[str] = None,
        artist: Optional[str] = None,
    ):
        gateway.require_ready()
        logger.info("Getting album details for: %s (%s)", album_id, name or "unknown name")
        with surfaced_as("Failed to get album details"):
            album = await recover_album(AlbumLookup(album_id, gateway, name=name, artist=artist))

        logger.info(
            'Album "%s" has %d tracks',
            album.get("title") or album.get("name") or "Unknown", len(album["tracks"]),
        )
        return {"success": True, "album": ThumbnailRewriter(base_url(request)).rewrite(album)}

    @app.get("/api/playlist/{playlist_id}")
    async def get_playlist(playlist_id: str, request: Request):
        gateway.require_ready()
        logger.info("Getting playlist details for: %s", playlist_id)
        with surfaced_as("Failed to get playlist details"):
            playlist = await gateway.get_playlist_with_tracks(playlist_id)
        return {"success": True, "playlist": ThumbnailRewriter(base_url(request)).rewrite(playlist)}

    @app.get("/api/download/flac")
    async def download_flac():
        return {"success": False, "error": FLAC_UNAVAILABLE}

    @app.get("/api/download/flac/direct")
    async def download_flac_direct():
        return {"success": False, "error": FLAC_UNAVAILABLE}

    return app
