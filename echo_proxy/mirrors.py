"""Fallback stream lookup through public Piped and Invidious mirrors."""

import logging
from typing import Any, Callable, Iterable, List, Optional
from urllib.parse import quote

import httpx

from .models import (
    DEFAULT_QUALITY,
    INVIDIOUS_INSTANCES,
    MIRROR_TIMEOUT,
    MIRROR_USER_AGENT,
    PIPED_INSTANCES,
    PROVENANCE_INVIDIOUS,
    PROVENANCE_PIPED,
    StreamResult,
)
from .rotation import RoundRobin

logger = logging.getLogger(__name__)


def _coerce_bitrate(value: Any) -> float:
    # Invidious reports bitrates as strings
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def pick_best_stream(streams: Iterable[Any]) -> Optional[dict]:
    """Highest bitrate entry that carries a URL; the first one wins on ties."""
    best: Optional[dict] = None
    for stream in streams:
        if not isinstance(stream, dict) or not stream.get("url"):
            continue
        if best is None or _coerce_bitrate(stream.get("bitrate")) > _coerce_bitrate(best.get("bitrate")):
            best = stream
    return best


def quality_label(bitrate: Any) -> str:
    value = _coerce_bitrate(bitrate)
    if value <= 0:
        return DEFAULT_QUALITY
    return f"{round(value / 1000)}kbps"


def piped_audio_streams(payload: Any) -> List[dict]:
    if not isinstance(payload, dict):
        return []
    streams = payload.get("audioStreams")
    return list(streams) if isinstance(streams, list) else []


def invidious_audio_streams(payload: Any) -> List[dict]:
    if not isinstance(payload, dict):
        return []
    formats = payload.get("adaptiveFormats")
    if not isinstance(formats, list):
        return []
    return [
        f for f in formats
        if isinstance(f, dict) and str(f.get("type") or "").startswith("audio")
    ]


class MirrorEcosystem:
    """One family of mirror services sharing a response shape."""

    def __init__(
        self,
        name: str,
        cursor: RoundRobin,
        path: str,
        extract_streams: Callable[[Any], List[dict]],
    ) -> None:
        self.name = name
        self.cursor = cursor
        self.path = path
        self.extract_streams = extract_streams

    def url_for(self, instance: str, content_id: str) -> str:
        return instance.rstrip("/") + self.path.format(content_id=quote(content_id, safe=""))


class MirrorFallbackResolver:
    """Walks Piped, then Invidious, once each, returning the first usable stream."""

    def __init__(
        self,
        piped: Optional[RoundRobin] = None,
        invidious: Optional[RoundRobin] = None,
        timeout: float = MIRROR_TIMEOUT,
        user_agent: str = MIRROR_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.ecosystems = [
            MirrorEcosystem(
                PROVENANCE_PIPED,
                piped or RoundRobin(PIPED_INSTANCES),
                "/streams/{content_id}",
                piped_audio_streams,
            ),
            MirrorEcosystem(
                PROVENANCE_INVIDIOUS,
                invidious or RoundRobin(INVIDIOUS_INSTANCES),
                "/api/v1/videos/{content_id}",
                invidious_audio_streams,
            ),
        ]
        self.timeout = timeout
        self.user_agent = user_agent
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            transport=self.transport,
        )

    async def resolve(self, content_id: str) -> Optional[StreamResult]:
        """Return a normalized stream, or None when no mirror has one."""
        logger.info("Primary upstream unavailable for %s; trying mirrors", content_id)
        async with self._client() as client:
            for ecosystem in self.ecosystems:
                result = await self._resolve_with(client, ecosystem, content_id)
                if result is not None:
                    return result

        logger.warning("No mirror could provide a stream for %s", content_id)
        return None

    async def _resolve_with(
        self, client: httpx.AsyncClient, ecosystem: MirrorEcosystem, content_id: str
    ) -> Optional[StreamResult]:
        logger.info("Trying %s instances for %s", ecosystem.name, content_id)
        for _ in range(len(ecosystem.cursor)):
            instance = ecosystem.cursor.next()
            try:
                response = await client.get(ecosystem.url_for(instance, content_id))
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("%s instance %s failed: %s", ecosystem.name, instance, exc)
                continue

            best = pick_best_stream(ecosystem.extract_streams(payload))
            if best is None:
                logger.info("%s instance %s returned no audio streams", ecosystem.name, instance)
                continue

            title = payload.get("title") or content_id
            quality = quality_label(best.get("bitrate"))
            logger.info(
                "Found audio via %s (%s): %s - %s",
                ecosystem.name, instance, best.get("format") or best.get("container") or "unknown", quality,
            )
            return StreamResult(
                url=best["url"],
                quality=quality,
                provenance=ecosystem.name,
                title=title,
                instance=instance,
            )
        return None
