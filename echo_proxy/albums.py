"""Album lookup with an ordered list of recovery strategies."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from .catalog import CatalogGateway
from .errors import NotFoundError

logger = logging.getLogger(__name__)

# Ids with these prefixes can also be read as playlists
PLAYLIST_ID_PREFIXES = ("OLAK5uy_", "PL", "VL")


@dataclass
class AlbumLookup:
    """Everything the recovery strategies know about one album request."""
    album_id: str
    gateway: CatalogGateway
    name: Optional[str] = None
    artist: Optional[str] = None
    partial: Optional[dict] = None
    error: Optional[Exception] = None


Strategy = Callable[[AlbumLookup], Awaitable[Optional[dict]]]


def album_tracks(album: Any) -> List[Any]:
    if not isinstance(album, dict):
        return []
    return list(album.get("tracks") or album.get("songs") or [])


def with_track_aliases(album: dict) -> dict:
    """Expose the track list under both ``tracks`` and ``songs``."""
    album = dict(album)
    tracks = album_tracks(album)
    album["tracks"] = tracks
    album["songs"] = tracks
    return album


async def direct_lookup(lookup: AlbumLookup) -> Optional[dict]:
    try:
        album = await lookup.gateway.get_album(lookup.album_id)
    except Exception as exc:
        logger.warning("get_album failed for %s: %s", lookup.album_id, exc)
        lookup.error = exc
        return None

    if album_tracks(album):
        return album
    if isinstance(album, dict):
        lookup.partial = album
    return None


async def playlist_tracks(lookup: AlbumLookup) -> Optional[dict]:
    if not lookup.album_id.startswith(PLAYLIST_ID_PREFIXES):
        return None

    logger.info("Falling back to playlist tracks for %s", lookup.album_id)
    try:
        tracks = await lookup.gateway.get_playlist_tracks(lookup.album_id)
    except Exception as exc:
        logger.error("Playlist fallback also failed for %s: %s", lookup.album_id, exc)
        return None
    if not tracks:
        return None

    logger.info("Fetched %d tracks for %s via playlist listing", len(tracks), lookup.album_id)
    album = dict(lookup.partial) if lookup.partial else {
        "albumId": lookup.album_id,
        "name": lookup.name or "Album",
    }
    album["tracks"] = tracks
    return album


def _matches(hit: Any, lookup: AlbumLookup) -> bool:
    if not isinstance(hit, dict):
        return False
    title = hit.get("title") or hit.get("name") or ""
    return title.lower() == (lookup.name or "").lower() or hit.get("playlistId") == lookup.album_id


async def name_search(lookup: AlbumLookup) -> Optional[dict]:
    if not lookup.name:
        return None

    query = f"{lookup.name} {lookup.artist or ''}".strip()
    logger.info("Searching for album by name: %s", query)
    try:
        hits = await lookup.gateway.search_albums(query)
        match = next((hit for hit in hits if _matches(hit, lookup)), None)
        match_id = (match or {}).get("browseId") or (match or {}).get("albumId")
        if not match_id or match_id == lookup.album_id:
            return None

        logger.info("Found matching album id %s; retrying lookup", match_id)
        recovered = await lookup.gateway.get_album(match_id)
    except Exception as exc:
        logger.error("Album name search failed for %s: %s", lookup.album_id, exc)
        return None

    return recovered if album_tracks(recovered) else None


ALBUM_RECOVERY_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("direct_lookup", direct_lookup),
    ("playlist_tracks", playlist_tracks),
    ("name_search", name_search),
)


async def recover_album(
    lookup: AlbumLookup,
    strategies: Sequence[Tuple[str, Strategy]] = ALBUM_RECOVERY_STRATEGIES,
) -> dict:
    """Return the first album with tracks; keep partial results over failing."""
    for name, strategy in strategies:
        album = await strategy(lookup)
        if album_tracks(album):
            logger.info("Album %s resolved by %s", lookup.album_id, name)
            return with_track_aliases(album)

    if lookup.partial is not None:
        return with_track_aliases(lookup.partial)
    if lookup.error is not None:
        raise lookup.error
    raise NotFoundError("Album not found")
