"""Async facade over the YouTube Music catalog (ytmusicapi)."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ytmusicapi import YTMusic

from .errors import NotReadyError

logger = logging.getLogger(__name__)

INITIALIZE_RETRY_DELAY = 5.0
PLAYLIST_TRACK_LIMIT = 100

# Search "type" values to ytmusicapi filters; anything else is an unfiltered search
SEARCH_FILTERS = {
    "song": "songs",
    "video": "songs",
    "album": "albums",
    "artist": "artists",
    "playlist": "playlists",
}

SEARCH_ALL_CATEGORIES = ("songs", "albums", "artists", "playlists")

ARTIST_SECTION_ALIASES = {
    "songs": "topSongs",
    "albums": "topAlbums",
    "singles": "topSingles",
    "videos": "topVideos",
}


def normalize_artist(artist: Any) -> Any:
    """Fill missing sections from their ``top*`` counterparts."""
    if not isinstance(artist, dict):
        return artist
    artist = dict(artist)
    for section, alias in ARTIST_SECTION_ALIASES.items():
        if not artist.get(section) and artist.get(alias):
            artist[section] = artist[alias]
    return artist


class CatalogGateway:
    """Wraps a blocking YTMusic client; every call runs in a worker thread."""

    def __init__(
        self,
        factory: Callable[[], Any] = YTMusic,
        retry_delay: float = INITIALIZE_RETRY_DELAY,
    ) -> None:
        self._factory = factory
        self._client: Optional[Any] = None
        self.retry_delay = retry_delay
        self._init_task: Optional[asyncio.Task] = None

    @property
    def ready(self) -> bool:
        return self._client is not None

    async def initialize(self) -> bool:
        """Create the catalog client. Returns False (and logs) on failure."""
        try:
            self._client = await asyncio.to_thread(self._factory)
        except Exception as exc:
            logger.error("Failed to initialize YTMusic: %s", exc)
            return False
        logger.info("YTMusic API initialized successfully")
        return True

    async def _initialize_until_ready(self) -> None:
        while not await self.initialize():
            await asyncio.sleep(self.retry_delay)

    def start(self) -> asyncio.Task:
        """Initialize in the background, retrying until it succeeds."""
        if self._init_task is None or self._init_task.done():
            self._init_task = asyncio.create_task(self._initialize_until_ready())
        return self._init_task

    async def stop(self) -> None:
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
            try:
                await self._init_task
            except asyncio.CancelledError:
                pass
        self._init_task = None

    def require_ready(self) -> Any:
        if self._client is None:
            raise NotReadyError("YTMusic not initialized yet. Please try again.")
        return self._client

    async def _call(self, method: str, *args, **kwargs) -> Any:
        client = self.require_ready()
        return await asyncio.to_thread(getattr(client, method), *args, **kwargs)

    async def search(self, query: str, type: Optional[str] = None) -> List[dict]:
        search_filter = SEARCH_FILTERS.get(type or "")
        results = await self._call("search", query, filter=search_filter)
        return list(results or [])

    async def search_albums(self, query: str) -> List[dict]:
        return await self.search(query, "album")

    async def search_all(self, query: str) -> Dict[str, List[dict]]:
        """The four category searches, issued concurrently."""
        client = self.require_ready()
        results = await asyncio.gather(
            *(
                asyncio.to_thread(client.search, query, filter=category)
                for category in SEARCH_ALL_CATEGORIES
            )
        )
        return {
            category: list(items or [])
            for category, items in zip(SEARCH_ALL_CATEGORIES, results)
        }

    async def get_song(self, video_id: str) -> dict:
        return await self._call("get_song", video_id)

    async def get_album(self, album_id: str) -> dict:
        return await self._call("get_album", album_id)

    async def get_artist(self, artist_id: str) -> dict:
        return normalize_artist(await self._call("get_artist", artist_id))

    async def get_playlist(self, playlist_id: str) -> dict:
        return await self._call("get_playlist", playlist_id, limit=PLAYLIST_TRACK_LIMIT)

    async def get_playlist_tracks(self, playlist_id: str) -> List[dict]:
        playlist = await self.get_playlist(playlist_id)
        tracks = playlist.get("tracks") if isinstance(playlist, dict) else None
        return list(tracks or [])

    async def get_playlist_with_tracks(self, playlist_id: str) -> dict:
        """Playlist details with a guaranteed, possibly empty, track list."""
        playlist = dict(await self.get_playlist(playlist_id) or {})
        tracks = playlist.get("tracks")
        if not isinstance(tracks, list):
            logger.warning("No track listing returned for playlist %s", playlist_id)
            tracks = []
        playlist["tracks"] = tracks
        return playlist
