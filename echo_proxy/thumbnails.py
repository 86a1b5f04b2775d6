"""Route every catalog image through this server's image proxy."""

import re
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, List
from urllib.parse import quote

PROFILE_PHOTO_HOST = "lh3.googleusercontent.com"
CHANNEL_ART_HOST = "yt3.googleusercontent.com"

PROFILE_PHOTO_SIZE = re.compile(r"=w\d+-h\d+(-p)?-l\d+-rj")
CHANNEL_ART_SIZE = re.compile(r"=s\d+")

THUMBNAILS_KEY = "thumbnails"
IMAGE_PROXY_PATH = "/api/proxy/image"

DEFAULT_ART = (
    ("https://i.ytimg.com/vi/{video_id}/mqdefault.jpg", 320, 180),
    ("https://i.ytimg.com/vi/{video_id}/hqdefault.jpg", 480, 360),
)

# Same unreserved set as JavaScript's encodeURIComponent
_SAFE_CHARS = "-_.!~*'()"


def upscale_url(url: str) -> str:
    """Ask Google's image CDNs for a 500px rendition instead of the tiny default."""
    if PROFILE_PHOTO_HOST in url:
        url = PROFILE_PHOTO_SIZE.sub(r"=w500-h500\1-l90-rj", url, count=1)
    if CHANNEL_ART_HOST in url:
        url = CHANNEL_ART_SIZE.sub("=s500", url, count=1)
    return url


def proxy_image_url(url: Any, base_url: str) -> Any:
    if not url or not isinstance(url, str):
        return url
    encoded = quote(upscale_url(url), safe=_SAFE_CHARS)
    return f"{base_url.rstrip('/')}{IMAGE_PROXY_PATH}?url={encoded}"


def default_thumbnails(video_id: str) -> List[dict]:
    return [
        {"url": template.format(video_id=video_id), "width": width, "height": height}
        for template, width, height in DEFAULT_ART
    ]


def _is_sequence(node: Any) -> bool:
    return isinstance(node, Sequence) and not isinstance(node, (str, bytes, bytearray))


class ThumbnailRewriter:
    """Pure transform over catalog payloads; the input is never modified."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def rewrite_thumbnails(self, thumbnails: Iterable[Any]) -> List[Any]:
        rewritten = []
        for descriptor in thumbnails:
            if isinstance(descriptor, Mapping):
                copy = dict(descriptor)
                if "url" in copy:
                    copy["url"] = proxy_image_url(copy["url"], self.base_url)
                rewritten.append(copy)
            else:
                rewritten.append(descriptor)
        return rewritten

    def rewrite(self, node: Any) -> Any:
        """Depth-first copy of ``node`` with every thumbnail URL proxied."""
        if isinstance(node, Mapping):
            result = {}
            for key, value in node.items():
                if key == THUMBNAILS_KEY and _is_sequence(value):
                    result[key] = self.rewrite_thumbnails(value)
                else:
                    result[key] = self.rewrite(value)
            return result
        if _is_sequence(node):
            return [self.rewrite(item) for item in node]
        return node

    def rewrite_results(self, items: Iterable[Any]) -> List[Any]:
        """Rewrite a flat result list, adding default art to bare video hits."""
        processed = []
        for item in items or []:
            if isinstance(item, Mapping) and not item.get(THUMBNAILS_KEY) and item.get("videoId"):
                item = dict(item)
                item[THUMBNAILS_KEY] = default_thumbnails(item["videoId"])
            processed.append(self.rewrite(item))
        return processed
