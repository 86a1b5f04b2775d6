"""yt-dlp options builder and format selection logic."""

import logging
import random
from typing import Iterable, List, Optional

from .logger import ResolverLogger
from .models import USER_AGENTS, AudioFormat, DownloadFormat

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


def select_random_user_agent() -> str:
    """Select a random User-Agent from the pool to rotate through different browsers."""
    return random.choice(USER_AGENTS)


def load_proxies_from_file(proxy_file: str) -> List[str]:
    """Load proxy URLs from a file, one per line."""
    proxies: List[str] = []
    try:
        with open(proxy_file, "r", encoding="utf-8") as f:
            for line in f:
                stripped = line.strip()
                # Skip empty lines and comments
                if stripped and not stripped.startswith("#"):
                    proxies.append(stripped)
    except OSError as exc:
        logger.error("Error reading proxy file %s: %s", proxy_file, exc)
        return []

    if proxies:
        logger.info("Loaded %d proxies from %s", len(proxies), proxy_file)
    else:
        logger.warning("No proxies found in %s", proxy_file)
    return proxies


def select_proxy(proxy: Optional[str], proxy_pool: Optional[List[str]] = None) -> Optional[str]:
    """A single configured proxy wins over a random pick from the pool."""
    if proxy:
        return proxy
    if proxy_pool:
        return random.choice(proxy_pool)
    return None


def build_ydl_options(
    identity: Optional[str],
    ydl_logger: ResolverLogger,
    proxy: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> dict:
    """Build yt-dlp options for a metadata-only extraction using one persona."""
    user_agent = user_agent or select_random_user_agent()

    ydl_opts = {
        "quiet": True,
        "no_warnings": False,
        "skip_download": True,
        "noplaylist": True,
        # Retries are driven by the resolver, one persona per attempt
        "retries": 0,
        "extractor_retries": 0,
        "logger": ydl_logger,
        "http_headers": {
            "User-Agent": user_agent,
        },
    }

    if proxy:
        ydl_opts["proxy"] = proxy

    if identity:
        ydl_opts["extractor_args"] = {"youtube": {"player_client": [identity]}}

    debug_parts = [f"player_client={identity or 'default'}"]
    user_agent_short = user_agent.split('(')[0].strip() if '(' in user_agent else user_agent[:50]
    debug_parts.append(f"user_agent={user_agent_short}")
    if proxy:
        debug_parts.append(f"proxy={proxy}")
    logger.debug("Constructed yt-dlp options: %s", ", ".join(debug_parts))

    return ydl_opts


def _bitrate(entry: dict) -> float:
    for key in ("abr", "tbr"):
        value = entry.get(key)
        if isinstance(value, (int, float)) and value > 0:
            return float(value)
    return 0.0


def _has_audio(entry: dict) -> bool:
    acodec = entry.get("acodec")
    return bool(acodec) and acodec != "none"


def _is_audio_only(entry: dict) -> bool:
    return _has_audio(entry) and entry.get("vcodec") in (None, "none")


def _max_by_bitrate(entries: Iterable[dict]) -> Optional[dict]:
    best: Optional[dict] = None
    for entry in entries:
        # Strictly greater keeps the first of equal bitrates
        if best is None or _bitrate(entry) > _bitrate(best):
            best = entry
    return best


def select_audio_format(formats: Optional[Iterable[dict]]) -> Optional[AudioFormat]:
    """Pick the highest-bitrate audio-only format, first occurrence on ties."""
    candidates = [f for f in formats or [] if isinstance(f, dict) and _is_audio_only(f)]
    best = _max_by_bitrate(candidates)
    if best is None:
        return None
    return AudioFormat(
        url=best.get("url"),
        bitrate=_bitrate(best),
        ext=best.get("ext"),
        format_id=best.get("format_id"),
    )


def select_download_format(formats: Optional[Iterable[dict]]) -> Optional[DownloadFormat]:
    """Pick the best audio-carrying format, preferring the mp4 container."""
    candidates = [
        f for f in formats or []
        if isinstance(f, dict) and f.get("url") and _has_audio(f)
    ]
    preferred = [f for f in candidates if (f.get("ext") or "").lower() == "mp4"]
    best = _max_by_bitrate(preferred) or _max_by_bitrate(candidates)
    if best is None:
        return None
    return DownloadFormat(
        url=best["url"],
        bitrate=_bitrate(best),
        ext=best.get("ext"),
        format_id=best.get("format_id"),
        http_headers=dict(best.get("http_headers") or {}),
    )


def describe_format(entry: Optional[object]) -> str:
    """Short human label for logging, e.g. '140 mp4a.40.2 129k m4a'."""
    if isinstance(entry, (AudioFormat, DownloadFormat)):
        entry = {
            "format_id": entry.format_id,
            "abr": entry.bitrate,
            "ext": entry.ext,
        }
    if not isinstance(entry, dict):
        return "unknown format"

    parts: List[str] = []
    format_id = entry.get("format_id")
    if format_id:
        parts.append(str(format_id))

    acodec = entry.get("acodec")
    if acodec and acodec != "none":
        parts.append(acodec)

    abr = entry.get("abr")
    if abr:
        parts.append(f"{round(abr)}k")

    ext = entry.get("ext")
    if ext:
        parts.append(ext)

    if not parts:
        return "unknown format"
    return " ".join(str(p) for p in parts)


def watch_url(video_id: str) -> str:
    return WATCH_URL.format(video_id=video_id)

