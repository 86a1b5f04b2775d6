from __future__ import annotations

import copy
import sys
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from echo_proxy.thumbnails import ThumbnailRewriter, proxy_image_url, upscale_url

BASE = "http://localhost:3000"


def original_of(proxied):
    parts = urlsplit(proxied)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == f"{BASE}/api/proxy/image"
    return parse_qs(parts.query)["url"][0]


def test_profile_photo_sizes_are_upscaled():
    assert upscale_url("https://lh3.googleusercontent.com/abc=w60-h60-l90-rj") == (
        "https://lh3.googleusercontent.com/abc=w500-h500-l90-rj"
    )
    assert upscale_url("https://lh3.googleusercontent.com/abc=w120-h120-p-l90-rj") == (
        "https://lh3.googleusercontent.com/abc=w500-h500-p-l90-rj"
    )


def test_channel_art_size_is_upscaled():
    assert upscale_url("https://yt3.googleusercontent.com/xyz=s88-c-k-c0x00ffffff") == (
        "https://yt3.googleusercontent.com/xyz=s500-c-k-c0x00ffffff"
    )


def test_other_hosts_are_left_alone():
    url = "https://i.ytimg.com/vi/abc/hqdefault.jpg?sqp=-oay=s88"

    assert upscale_url(url) == url
    assert original_of(proxy_image_url(url, BASE)) == url


def test_proxy_image_url_ignores_missing_urls():
    assert proxy_image_url(None, BASE) is None
    assert proxy_image_url("", BASE) == ""


def test_rewrite_preserves_descriptor_count_and_fields():
    album = {
        "title": "Album",
        "thumbnails": [
            {"url": "https://lh3.googleusercontent.com/a=w60-h60-l90-rj", "width": 60, "height": 60},
            {"url": "https://lh3.googleusercontent.com/a=w120-h120-l90-rj", "width": 120, "height": 120},
            {"url": "https://i.ytimg.com/vi/x/default.jpg?a=1&b=2", "width": 120, "height": 90},
        ],
        "tracks": [
            {"title": "Track", "thumbnails": [{"url": "https://i.ytimg.com/vi/t/mq.jpg"}]},
        ],
    }
    snapshot = copy.deepcopy(album)

    rewritten = ThumbnailRewriter(BASE).rewrite(album)

    assert album == snapshot
    assert len(rewritten["thumbnails"]) == 3
    assert [t["width"] for t in rewritten["thumbnails"]] == [60, 120, 120]
    assert original_of(rewritten["thumbnails"][0]["url"]).endswith("=w500-h500-l90-rj")
    assert original_of(rewritten["thumbnails"][2]["url"]) == "https://i.ytimg.com/vi/x/default.jpg?a=1&b=2"
    assert original_of(rewritten["tracks"][0]["thumbnails"][0]["url"]) == "https://i.ytimg.com/vi/t/mq.jpg"
    assert rewritten["title"] == "Album"


def test_descriptors_without_url_are_copied_unchanged():
    rewritten = ThumbnailRewriter(BASE).rewrite({"thumbnails": [{"width": 1}, "raw"]})

    assert rewritten["thumbnails"] == [{"width": 1}, "raw"]


def test_results_without_thumbnails_get_default_art():
    items = [{"videoId": "abc", "title": "Song"}, {"browseId": "MPRE1", "title": "Album"}]

    results = ThumbnailRewriter(BASE).rewrite_results(items)

    thumbnails = results[0]["thumbnails"]
    assert [(t["width"], t["height"]) for t in thumbnails] == [(320, 180), (480, 360)]
    assert original_of(thumbnails[0]["url"]) == "https://i.ytimg.com/vi/abc/mqdefault.jpg"
    assert original_of(thumbnails[1]["url"]) == "https://i.ytimg.com/vi/abc/hqdefault.jpg"
    assert "thumbnails" not in results[1]
    assert "thumbnails" not in items[0]
