"""Two-stage stream resolution: primary upstream first, mirrors second."""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .errors import NotFoundError, UpstreamError
from .mirrors import MirrorFallbackResolver
from .models import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_QUALITY,
    PROVENANCE_PRIMARY,
    DownloadFormat,
    StreamResult,
)
from .retrying import RetryingResolver
from .ytdlp_options import describe_format, select_audio_format, select_download_format

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Upstream headers worth relaying to the caller. Content-Length is left out so a
# dropped upstream ends a chunked response cleanly instead of a short body.
PASSTHROUGH_HEADERS = ("content-range",)


@dataclass
class MediaPlan:
    """How the binary proxy endpoint should answer: redirect or stream bytes."""
    redirect_url: Optional[str] = None
    stream: Optional[StreamResult] = None
    format: Optional[DownloadFormat] = None
    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[AsyncIterator[bytes]] = None


def describe_song(song: Any) -> Optional[str]:
    """'<title> <artist>' from a catalog song payload, if it has a title."""
    if not isinstance(song, dict):
        return None
    details = song.get("videoDetails") if isinstance(song.get("videoDetails"), dict) else song
    title = details.get("title") or details.get("name")
    if not title:
        return None

    artist = details.get("author") or ""
    if isinstance(details.get("artist"), dict):
        artist = details["artist"].get("name") or artist
    elif isinstance(details.get("artists"), list) and details["artists"]:
        first = details["artists"][0]
        if isinstance(first, dict):
            artist = first.get("name") or artist
    return f"{title} {artist}".strip()


class StreamOrchestrator:
    """Composes the retrying resolver with the mirror fallback."""

    def __init__(
        self,
        primary: Optional[RetryingResolver] = None,
        mirrors: Optional[MirrorFallbackResolver] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.primary = primary or RetryingResolver()
        self.mirrors = mirrors or MirrorFallbackResolver(transport=transport)
        self.max_attempts = max_attempts
        self.transport = transport

    async def get_stream(self, content_id: str, base_url: str) -> StreamResult:
        """Playable locator for a content id; the primary error wins if all fails."""
        try:
            resolution = await self.primary.resolve(content_id, self.max_attempts)
        except Exception as primary_error:
            logger.warning("YouTube failed for %s: %s", content_id, primary_error)
            stream = await self.mirrors.resolve(content_id)
            if stream is None:
                raise primary_error
            return stream

        info = resolution.info
        best_audio = select_audio_format(info.get("formats"))
        if best_audio is not None:
            logger.info("Found audio format for %s: %s", content_id, describe_format(best_audio))

        return StreamResult(
            url=f"{base_url.rstrip('/')}/api/proxy/{content_id}",
            quality=best_audio.quality if best_audio else DEFAULT_QUALITY,
            provenance=PROVENANCE_PRIMARY,
            title=info.get("title") or content_id,
            identity=resolution.identity,
        )

    async def open_media(self, content_id: str, range_header: Optional[str] = None) -> MediaPlan:
        """Open an upstream byte stream, or fall back to a mirror redirect."""
        try:
            resolution = await self.primary.resolve(content_id, self.max_attempts)
        except Exception as primary_error:
            logger.warning("YouTube proxy failed for %s: %s", content_id, primary_error)
            stream = await self.mirrors.resolve(content_id)
            if stream is None:
                raise primary_error
            logger.info("Redirecting %s to %s", content_id, stream.source)
            return MediaPlan(redirect_url=stream.url, stream=stream)

        download_format = select_download_format(resolution.info.get("formats"))
        if download_format is None:
            raise NotFoundError("No suitable format found")

        logger.info(
            "Streaming %s via client %s: %s",
            content_id, resolution.identity, describe_format(download_format),
        )
        return await self._open_upstream(content_id, download_format, range_header)

    async def _open_upstream(
        self, content_id: str, download_format: DownloadFormat, range_header: Optional[str]
    ) -> MediaPlan:
        headers = dict(download_format.http_headers)
        if range_header:
            headers["Range"] = range_header

        # The client must outlive this call; the body iterator closes it
        client = httpx.AsyncClient(timeout=None, follow_redirects=True, transport=self.transport)
        try:
            upstream = await client.send(
                client.build_request("GET", download_format.url, headers=headers),
                stream=True,
            )
        except httpx.HTTPError as exc:
            await client.aclose()
            raise UpstreamError("Failed to proxy stream", str(exc)) from exc

        if upstream.status_code >= 400:
            await upstream.aclose()
            await client.aclose()
            raise UpstreamError(
                "Failed to proxy stream", f"Upstream returned HTTP {upstream.status_code}"
            )

        async def body() -> AsyncIterator[bytes]:
            try:
                async for chunk in upstream.aiter_bytes(chunk_size=CHUNK_SIZE):
                    yield chunk
            except httpx.HTTPError as exc:
                # Headers are already sent; all we can do is end the response
                logger.error("Stream error for %s: %s", content_id, exc)
            finally:
                await upstream.aclose()
                await client.aclose()

        relayed = {
            name: upstream.headers[name] for name in PASSTHROUGH_HEADERS if name in upstream.headers
        }
        return MediaPlan(
            format=download_format,
            status_code=upstream.status_code,
            headers=relayed,
            body=body(),
        )
