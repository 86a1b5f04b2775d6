"""Primary upstream resolution with persona rotation and backoff."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import yt_dlp
from yt_dlp.utils import ExtractorError

from .errors import FailureClass, classify_failure
from .logger import ResolverLogger
from .models import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_MAX_ATTEMPTS,
    RATE_LIMITED_BACKOFF_BASE,
    PrimaryResolution,
    ResolutionAttempt,
)
from .rotation import ClientRotation
from .ytdlp_options import build_ydl_options, select_proxy, watch_url

logger = logging.getLogger(__name__)

FetchInfo = Callable[[str, str], Awaitable[Dict[str, Any]]]
Sleep = Callable[[float], Awaitable[Any]]


def backoff_delay(attempt_index: int, failure: FailureClass) -> float:
    """Seconds to wait after a failed attempt (0-based) before the next one."""
    if failure is FailureClass.RATE_LIMITED:
        return RATE_LIMITED_BACKOFF_BASE * (2 ** attempt_index)
    return DEFAULT_BACKOFF_BASE * (2 ** attempt_index)


def make_ytdlp_fetcher(
    proxy: Optional[str] = None,
    proxy_pool: Optional[List[str]] = None,
) -> FetchInfo:
    """Build the default fetcher: yt-dlp metadata extraction off the event loop."""

    def extract(content_id: str, identity: str) -> Dict[str, Any]:
        ydl_logger = ResolverLogger(client=identity, video_id=content_id)
        ydl_opts = build_ydl_options(identity, ydl_logger, proxy=select_proxy(proxy, proxy_pool))
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(watch_url(content_id), download=False)
            if not info:
                raise ExtractorError(f"No info extracted for {content_id}", expected=True)
            return ydl.sanitize_info(info)

    async def fetch_info(content_id: str, identity: str) -> Dict[str, Any]:
        return await asyncio.to_thread(extract, content_id, identity)

    return fetch_info


class RetryingResolver:
    """Tries the primary upstream with a fresh persona on every attempt."""

    def __init__(
        self,
        rotation: Optional[ClientRotation] = None,
        fetch_info: Optional[FetchInfo] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.rotation = rotation or ClientRotation()
        self.fetch_info = fetch_info or make_ytdlp_fetcher()
        self.sleep = sleep

    async def resolve(
        self, content_id: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> PrimaryResolution:
        """Return the first successful extraction, or re-raise the last error."""
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        attempts: List[ResolutionAttempt] = []
        last_error: Optional[BaseException] = None

        for index in range(max_attempts):
            identity = self.rotation.next()
            logger.info(
                "Trying YouTube client %s for %s (attempt %d/%d)",
                identity, content_id, index + 1, max_attempts,
            )
            try:
                info = await self.fetch_info(content_id, identity)
            except Exception as exc:
                last_error = exc
                failure = classify_failure(exc)
                remaining = index < max_attempts - 1
                delay = backoff_delay(index, failure) if remaining else 0.0
                attempts.append(
                    ResolutionAttempt(identity=identity, error=exc, failure=failure.value, backoff=delay)
                )
                logger.warning("Client %s failed (%s): %s", identity, failure.value, exc)

                if remaining:
                    logger.info(
                        "Waiting %.1fs before retrying %s with a different client",
                        delay, content_id,
                    )
                    await self.sleep(delay)
                continue

            attempts.append(ResolutionAttempt(identity=identity))
            logger.info("Resolved %s using client %s", content_id, identity)
            return PrimaryResolution(info=info, identity=identity, attempts=attempts)

        logger.error(
            "All %d attempts failed for %s; last error: %s", max_attempts, content_id, last_error
        )
        raise last_error
