"""Echo YTMusic stream proxy package."""

# Import main components for easier access
from .albums import ALBUM_RECOVERY_STRATEGIES, AlbumLookup, recover_album
from .app import build_orchestrator, create_app
from .catalog import CatalogGateway
from .config import Settings, load_settings, parse_args, positive_int
from .errors import (
    FailureClass,
    NotFoundError,
    NotReadyError,
    ProxyError,
    RateLimitedError,
    UpstreamError,
    ValidationError,
    classify_failure,
)
from .logger import ResolverLogger, configure_logging
from .mirrors import MirrorFallbackResolver, pick_best_stream
from .models import (
    CLIENT_IDENTITIES,
    DEFAULT_MAX_ATTEMPTS,
    INVIDIOUS_INSTANCES,
    PIPED_INSTANCES,
    AudioFormat,
    DownloadFormat,
    PrimaryResolution,
    ResolutionAttempt,
    StreamResult,
)
from .orchestrator import MediaPlan, StreamOrchestrator
from .ratelimit import RateLimitDecision, RequestRateLimiter
from .retrying import RetryingResolver, backoff_delay, make_ytdlp_fetcher
from .rotation import ClientRotation, RoundRobin
from .thumbnails import ThumbnailRewriter, default_thumbnails, proxy_image_url
from .ytdlp_options import build_ydl_options, select_audio_format, select_download_format

__all__ = [
    # Main entry points
    "create_app",
    "build_orchestrator",
    "load_settings",
    "parse_args",
    # Stream resolution
    "StreamOrchestrator",
    "RetryingResolver",
    "MirrorFallbackResolver",
    "ClientRotation",
    "RoundRobin",
    "backoff_delay",
    "make_ytdlp_fetcher",
    "pick_best_stream",
    "build_ydl_options",
    "select_audio_format",
    "select_download_format",
    # Catalog
    "CatalogGateway",
    "AlbumLookup",
    "recover_album",
    "ALBUM_RECOVERY_STRATEGIES",
    "ThumbnailRewriter",
    "default_thumbnails",
    "proxy_image_url",
    # Admission control
    "RequestRateLimiter",
    "RateLimitDecision",
    # Models and data structures
    "StreamResult",
    "ResolutionAttempt",
    "PrimaryResolution",
    "AudioFormat",
    "DownloadFormat",
    "MediaPlan",
    "Settings",
    # Errors and logging
    "FailureClass",
    "classify_failure",
    "ProxyError",
    "NotReadyError",
    "ValidationError",
    "UpstreamError",
    "NotFoundError",
    "RateLimitedError",
    "ResolverLogger",
    "configure_logging",
    # Configuration
    "positive_int",
    # Constants
    "CLIENT_IDENTITIES",
    "DEFAULT_MAX_ATTEMPTS",
    "PIPED_INSTANCES",
    "INVIDIOUS_INSTANCES",
]
