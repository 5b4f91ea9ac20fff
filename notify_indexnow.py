# /// script
# dependencies = ["pillow", "jinja2", "httpx", "python-dotenv"]
# ///
"""
Tell IndexNow about video pages that are new since the last run.

Usage:
    PUBLIC_SITE_URL=https://example.com INDEXNOW_KEY=... uv run --script notify_indexnow.py

Every video gets a canonical URL `{site}/{slug}-{id}/`. URLs already listed in
.indexnow_cache.json are skipped; the cache is rewritten with the full set at
the end of every run.
"""

import argparse
import json
import sys
from pathlib import Path
from urllib.parse import urlparse

import httpx
from dotenv import load_dotenv

from build_catalog import BuildError, SiteConfig, load_videos, video_slug

INDEXNOW_ENDPOINT = "https://api.indexnow.org/IndexNow"
CHUNK_SIZE = 10_000


class NotifyError(Exception):
    """Setup problem that aborts the notifier."""


def video_urls(videos: list[dict], site_url: str) -> list[str]:
    return [f"{site_url}/{video_slug(v)}-{v.get('id', '')}/" for v in videos]


def load_sent_urls(cache_path: Path) -> list[str]:
    try:
        urls = json.loads(cache_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        print("  IndexNow cache missing or unreadable, submitting every URL")
        return []
    if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
        print("  IndexNow cache is not a list of URLs, submitting every URL")
        return []
    return urls


def save_sent_urls(cache_path: Path, urls: list[str]):
    try:
        cache_path.write_text(json.dumps(urls), encoding="utf-8")
    except OSError as e:
        print(f"  Could not update IndexNow cache {cache_path}: {e}")
        return
    print(f"  Updated IndexNow cache ({len(urls)} URLs)")


def chunked(items: list, size: int = CHUNK_SIZE):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def build_payload(chunk: list[str], config: SiteConfig) -> dict:
    return {
        "host": urlparse(config.site_url).hostname,
        "key": config.indexnow_key,
        "keyLocation": f"{config.site_url}/{config.indexnow_key}.txt",
        "urlList": chunk,
    }


def submit_urls(urls: list[str], config: SiteConfig, client: httpx.Client) -> int:
    """POST urls in chunks. Returns how many chunks were accepted."""
    if not urls:
        print("  No new or changed URLs to submit")
        return 0

    accepted = 0
    for n, chunk in enumerate(chunked(urls), start=1):
        print(f"  Sending {len(chunk)} URLs to IndexNow (chunk {n})...")
        try:
            resp = client.post(
                INDEXNOW_ENDPOINT,
                content=json.dumps(build_payload(chunk, config)),
                headers={"Content-Type": "application/json; charset=utf-8"},
                timeout=config.timeout,
            )
        except httpx.HTTPError as e:
            print(f"  Chunk {n} failed: {e}")
            continue

        if resp.is_success:
            accepted += 1
            print(f"  Chunk {n} accepted (status {resp.status_code})")
        else:
            print(f"  Chunk {n} rejected: {resp.status_code} {resp.reason_phrase}")
            print(f"  Response body: {resp.text}")
    return accepted


def notify(config: SiteConfig, client: httpx.Client) -> list[str]:
    """Submit new URLs and refresh the cache. Returns the URLs that were submitted."""
    if not config.site_url:
        raise NotifyError("PUBLIC_SITE_URL is not set")
    if not config.indexnow_key:
        raise NotifyError("INDEXNOW_KEY is not set")

    try:
        videos = load_videos(config.source_path)
    except BuildError as e:
        raise NotifyError(str(e))

    current = video_urls(videos, config.site_url)
    already_sent = set(load_sent_urls(config.indexnow_cache_path))
    to_submit = [url for url in current if url not in already_sent]
    print(f"  {len(current)} URLs, {len(to_submit)} new")

    submit_urls(to_submit, config, client)
    save_sent_urls(config.indexnow_cache_path, current)
    return to_submit


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Submit new video URLs to IndexNow")
    parser.add_argument("--root", type=Path, default=Path.cwd(), help="Project root (default: current directory)")
    args = parser.parse_args(argv)
    load_dotenv(args.root / ".env")

    try:
        config = SiteConfig.from_env(args.root)
        with httpx.Client(timeout=config.timeout) as client:
            notify(config, client)
    except (BuildError, NotifyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
