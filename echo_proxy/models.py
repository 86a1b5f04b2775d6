"""Data models and constants for the stream proxy."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

try:
    try:
        from yt_dlp.extractor.youtube._base import INNERTUBE_CLIENTS
    except ModuleNotFoundError:  # Older yt-dlp releases expose the constant directly.
        from yt_dlp.extractor.youtube import INNERTUBE_CLIENTS
except ImportError:
    raise ImportError("yt-dlp is not installed. Run: pip install -e .")


# Retry policy
DEFAULT_MAX_ATTEMPTS = 5
RATE_LIMITED_BACKOFF_BASE = 2.0
DEFAULT_BACKOFF_BASE = 1.0

# Outbound timeouts, in seconds
MIRROR_TIMEOUT = 15.0
IMAGE_TIMEOUT = 10.0

# Local admission control
RATE_LIMIT_REQUESTS = 30
RATE_LIMIT_WINDOW = 60.0

# Search result caps
SEARCH_LIMIT = 20
SEARCH_ALL_LIMIT = 10

DEFAULT_QUALITY = "128kbps"

MIRROR_USER_AGENT = "Echo/1.0"
IMAGE_PROXY_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
)

# User-Agent rotation pool for yt-dlp requests
USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0',
]

# Piped instances are tried first, then Invidious
PIPED_INSTANCES: Tuple[str, ...] = (
    "https://pipedapi.kavin.rocks",
    "https://pipedapi.adminforge.de",
    "https://watchapi.whatever.social",
    "https://api.piped.yt",
    "https://pipedapi.lunar.icu",
)

INVIDIOUS_INSTANCES: Tuple[str, ...] = (
    "https://invidious.kavin.rocks",
    "https://invidious.snopyta.org",
    "https://yewtu.be",
    "https://invidious.projectsegfau.lt",
    "https://iv.datura.network",
    "https://invidious.tube",
    "https://invidious.namazso.eu",
)

PLAYER_CLIENT_CHOICES: Tuple[str, ...] = tuple(
    sorted(client for client in INNERTUBE_CLIENTS if not client.startswith("_"))
)


def _default_client_identities() -> Tuple[str, ...]:
    """Personas to rotate through, in order, limited to what yt-dlp supports."""
    preferred_order = ("android", "android_music", "web", "web_creator", "tv", "mweb")

    final_clients = [client for client in preferred_order if client in PLAYER_CLIENT_CHOICES]

    # yt-dlp renames clients from time to time; never end up with nothing to rotate
    return tuple(final_clients) if final_clients else preferred_order


CLIENT_IDENTITIES: Tuple[str, ...] = _default_client_identities()

PROVENANCE_PRIMARY = "primary"
PROVENANCE_PIPED = "piped"
PROVENANCE_INVIDIOUS = "invidious"

_PROVENANCE_LABELS = {
    PROVENANCE_PIPED: "Piped",
    PROVENANCE_INVIDIOUS: "Invidious",
}


@dataclass(frozen=True)
class StreamResult:
    """A playable stream and where it came from."""
    url: str
    quality: str
    provenance: str
    title: str
    instance: Optional[str] = None
    identity: Optional[str] = None

    @property
    def source(self) -> str:
        if self.provenance == PROVENANCE_PRIMARY:
            return "YouTube (yt-dlp)"
        label = _PROVENANCE_LABELS.get(self.provenance, self.provenance)
        return f"{label} ({self.instance})" if self.instance else label

    def to_dict(self) -> Dict[str, str]:
        return {
            "url": self.url,
            "quality": self.quality,
            "source": self.source,
            "title": self.title,
        }


@dataclass(frozen=True)
class ResolutionAttempt:
    """One try against the primary upstream."""
    identity: str
    error: Optional[BaseException] = None
    failure: Optional[str] = None
    backoff: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class PrimaryResolution:
    """Raw yt-dlp info plus the persona that obtained it."""
    info: Dict[str, Any]
    identity: str
    attempts: List[ResolutionAttempt] = field(default_factory=list)


@dataclass(frozen=True)
class AudioFormat:
    """An audio-only format picked from a primary upstream listing."""
    url: Optional[str]
    bitrate: float
    ext: Optional[str] = None
    format_id: Optional[str] = None

    @property
    def quality(self) -> str:
        if not self.bitrate:
            return DEFAULT_QUALITY
        return f"{round(self.bitrate)}kbps"


_CONTENT_TYPES = {
    "mp4": "video/mp4",
    "m4a": "audio/mp4",
    "webm": "audio/webm",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
}


@dataclass(frozen=True)
class DownloadFormat:
    """Format chosen for the binary proxy path."""
    url: str
    bitrate: float
    ext: Optional[str] = None
    format_id: Optional[str] = None
    http_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES.get((self.ext or "").lower(), "video/mp4")
