# /// script
# dependencies = ["pillow", "jinja2", "httpx", "python-dotenv"]
# ///
"""
Build the video catalog: optimize thumbnails and regenerate src/data/allVideos.ts.

Usage:
    uv run --script build_catalog.py [--root DIR] [--workers N] [--json]

Reads src/data/videos.json, writes WebP thumbnails to public/picture/ and the
typed catalog module to src/data/allVideos.ts. Thumbnails that already exist
are reused, so re-running against unchanged data does no network work.
"""

import argparse
import io
import json
import os
import re
import sys
import tempfile
import unicodedata
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

import httpx
from dotenv import load_dotenv
from jinja2 import Environment
from PIL import Image

# The generated file is TypeScript, not HTML: no autoescaping.
_module_env = Environment(autoescape=False, keep_trailing_newline=True)
Template = _module_env.from_string

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

THUMB_WIDTH = 300           # never upscaled past the source width
WEBP_QUALITY = 70
FETCH_TIMEOUT = 30

PLACEHOLDER_THUMBNAIL = "/placeholder.webp"
FALLBACK_WIDTH = 300
FALLBACK_HEIGHT = 168

THUMBS_SUBDIR = "picture"
UNTITLED = "untitled-video"


class BuildError(Exception):
    """Setup problem that aborts the whole run."""


@dataclass(frozen=True)
class SiteConfig:
    """Everything the scripts need, resolved once at startup."""

    root: Path = field(default_factory=Path.cwd)
    site_url: str | None = None
    indexnow_key: str | None = None
    thumb_width: int = THUMB_WIDTH
    workers: int = 1
    timeout: float = FETCH_TIMEOUT

    @classmethod
    def from_env(cls, root: Path, environ=None, **overrides) -> "SiteConfig":
        env = os.environ if environ is None else environ
        site_url = (env.get("PUBLIC_SITE_URL") or "").rstrip("/") or None
        width = env.get("THUMBNAIL_WIDTH")
        try:
            thumb_width = int(width) if width else THUMB_WIDTH
        except ValueError:
            raise BuildError(f"THUMBNAIL_WIDTH must be an integer, got {width!r}")
        config = cls(
            root=Path(root),
            site_url=site_url,
            indexnow_key=env.get("INDEXNOW_KEY") or None,
            thumb_width=thumb_width,
        )
        if overrides:
            config = replace(config, **overrides)
        if config.thumb_width <= 0:
            raise BuildError(f"Thumbnail width must be positive, got {config.thumb_width}")
        return config

    @property
    def source_path(self) -> Path:
        return self.root / "src" / "data" / "videos.json"

    @property
    def public_dir(self) -> Path:
        return self.root / "public"

    @property
    def thumbs_dir(self) -> Path:
        return self.public_dir / THUMBS_SUBDIR

    @property
    def catalog_path(self) -> Path:
        return self.root / "src" / "data" / "allVideos.ts"

    @property
    def processed_json_path(self) -> Path:
        return self.public_dir / "processedVideos.json"

    @property
    def indexnow_cache_path(self) -> Path:
        return self.root / ".indexnow_cache.json"


# ---------------------------------------------------------------------------
# Step 1: Load source records
# ---------------------------------------------------------------------------

def load_videos(path: Path) -> list[dict]:
    """Read videos.json. Accepts an array of records or an id -> record mapping."""
    if not path.exists():
        raise BuildError(f"Source file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise BuildError(f"Could not read {path}: {e}")

    if isinstance(data, dict):
        data = list(data.values())
    if not isinstance(data, list):
        raise BuildError(f"{path} must contain an array of video records")
    return [v for v in data if isinstance(v, dict)]


# ---------------------------------------------------------------------------
# Step 2: Identifiers
# ---------------------------------------------------------------------------

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w-]+", re.ASCII)
_HYPHENS = re.compile(r"--+")


def slugify(text) -> str:
    """Lowercase ASCII slug. Must stay stable: thumbnail filenames depend on it."""
    text = unicodedata.normalize("NFD", str(text))
    text = _COMBINING_MARKS.sub("", text)
    text = text.lower().strip()
    text = _WHITESPACE.sub("-", text)
    text = _NON_WORD.sub("", text)
    return _HYPHENS.sub("-", text).strip("-")


def video_slug(video: dict) -> str:
    return slugify(video.get("title") or UNTITLED)


def thumbnail_filename(video: dict) -> str:
    return f"{video_slug(video)}-{video.get('id', '')}.webp"


# ---------------------------------------------------------------------------
# Step 3: Materialize thumbnails
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Materialized:
    path: str
    width: int
    height: int
    reused: bool = False


@dataclass(frozen=True)
class Fallback:
    reason: str
    path: str = PLACEHOLDER_THUMBNAIL
    width: int = FALLBACK_WIDTH
    height: int = FALLBACK_HEIGHT


ThumbResult = Union[Materialized, Fallback]


class ThumbnailStore:
    """Optimized thumbnails on disk, addressed by filename."""

    def __init__(self, directory: Path, url_prefix: str = f"/{THUMBS_SUBDIR}"):
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    def path_for(self, name: str) -> Path:
        return self.directory / name

    def url_for(self, name: str) -> str:
        return f"{self.url_prefix}/{name}"

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def size_of(self, name: str) -> tuple[int, int]:
        with Image.open(self.path_for(name)) as img:
            return img.size

    def write(self, name: str, data: bytes):
        """Write via a temp file so a failed write never leaves a partial thumbnail."""
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, self.path_for(name))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


def is_remote(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def read_source(source: str, client: httpx.Client, public_dir: Path, timeout: float = FETCH_TIMEOUT) -> bytes:
    """Fetch a thumbnail from a URL, or read it from under the static-asset root."""
    if is_remote(source):
        resp = client.get(source, follow_redirects=True, timeout=timeout)
        resp.raise_for_status()
        return resp.content

    local = public_dir / source.lstrip("/")
    if not local.is_file():
        raise FileNotFoundError(f"Local thumbnail not found: {local}")
    return local.read_bytes()


def optimize_image(data: bytes, width: int = THUMB_WIDTH) -> bytes:
    """Shrink to `width` (keeping aspect ratio, never enlarging) and encode as WebP."""
    with Image.open(io.BytesIO(data)) as img:
        img = img.convert("RGB")
        w, h = img.size
        if w > width:
            img = img.resize((width, max(1, round(h * width / w))), Image.LANCZOS)
        out = io.BytesIO()
        img.save(out, "WEBP", quality=WEBP_QUALITY)
    return out.getvalue()


def image_size(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def materialize(video: dict, store: ThumbnailStore, client: httpx.Client, config: SiteConfig, tag: str = "") -> ThumbResult:
    """Produce the optimized thumbnail for one record. Never raises.

    `tag` prefixes every printed line, e.g. "[3/120] ".
    """
    name = thumbnail_filename(video)
    label = f"{video.get('id')} ({video.get('title')})"

    if store.exists(name):
        print(f"  {tag}{name} already exists, skipping")
        try:
            width, height = store.size_of(name)
        except OSError as e:
            print(f"  {tag}Could not read size of {name}: {e}. Using fallback dimensions.")
            width, height = FALLBACK_WIDTH, FALLBACK_HEIGHT
        return Materialized(store.url_for(name), width or FALLBACK_WIDTH, height or FALLBACK_HEIGHT, reused=True)

    source = video.get("thumbnail")
    if not source or not isinstance(source, str):
        print(f"  {tag}No thumbnail for {label}, using placeholder")
        return Fallback("no thumbnail source")

    try:
        data = read_source(source, client, config.public_dir, config.timeout)
        optimized = optimize_image(data, config.thumb_width)
        width, height = image_size(optimized)
        store.write(name, optimized)
    except Exception as e:
        print(f"  {tag}Thumbnail failed for {label}: {e}")
        return Fallback(str(e))

    print(f"  {tag}Saved {store.path_for(name)} ({width}x{height})")
    return Materialized(store.url_for(name), width, height)


def apply_thumbnail(video: dict, result: ThumbResult) -> dict:
    return {
        **video,
        "thumbnail": result.path,
        "thumbnailWidth": result.width,
        "thumbnailHeight": result.height,
    }


def process_videos(videos: list[dict], store: ThumbnailStore, client: httpx.Client, config: SiteConfig) -> list[dict]:
    """Materialize every record. Output order always matches input order."""
    total = len(videos)
    tags = [f"[{i+1}/{total}] " for i in range(total)]

    def task(video, tag):
        return materialize(video, store, client, config, tag=tag)

    results = []
    with ThreadPoolExecutor(max_workers=config.workers) as executor:
        mapper = executor.map if config.workers > 1 else map
        for i, result in enumerate(mapper(task, videos, tags)):
            results.append(result)
            if (i + 1) % 100 == 0 or i + 1 == total:
                print(f"  [{i+1}/{total}] processed")

    fallbacks = sum(1 for r in results if isinstance(r, Fallback))
    if fallbacks:
        print(f"  {fallbacks} of {total} videos use the placeholder thumbnail")
    return [apply_thumbnail(v, r) for v, r in zip(videos, results)]


# ---------------------------------------------------------------------------
# Step 4: Assemble the catalog
# ---------------------------------------------------------------------------

REQUIRED_TEXT_FIELDS = ("id", "title", "description", "category", "embedUrl", "thumbnail")


def is_complete(video: dict) -> bool:
    for key in REQUIRED_TEXT_FIELDS:
        value = video.get(key)
        if not isinstance(value, str) or not value:
            return False
    duration = video.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return False
    return duration > 0


def dedupe(videos: list[dict]) -> list[dict]:
    seen = set()
    unique = []
    for video in videos:
        vid = video.get("id")
        if vid in seen:
            print(f"  Duplicate video ignored (ID: {vid}, title: {video.get('title')})")
            continue
        seen.add(vid)
        unique.append(video)
    return unique


def publish_timestamp(video: dict) -> float:
    """Seconds since the epoch; 0 for a missing or unparsable datePublished."""
    value = video.get("datePublished")
    if not value or not isinstance(value, str):
        return 0.0
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def sort_by_date(videos: list[dict]) -> list[dict]:
    # sorted() is stable with reverse=True, so equal dates keep input order
    return sorted(videos, key=publish_timestamp, reverse=True)


def assemble_catalog(processed: list[dict]) -> list[dict]:
    complete = [v for v in processed if is_complete(v)]
    dropped = len(processed) - len(complete)
    if dropped:
        print(f"  Excluded {dropped} incomplete videos")
    return sort_by_date(dedupe(complete))


CATALOG_TEMPLATE = Template("""\
import type { VideoData } from '{{ type_module }}';

const allVideos: VideoData[] = {{ videos_json }};

export default allVideos;
""")


def render_catalog_module(videos: list[dict], type_module: str = "../utils/data") -> str:
    return CATALOG_TEMPLATE.render(
        type_module=type_module,
        videos_json=json.dumps(videos, indent=2, ensure_ascii=False),
    )


def write_catalog_module(videos: list[dict], path: Path):
    path.write_text(render_catalog_module(videos), encoding="utf-8")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def prepare_output_dirs(config: SiteConfig):
    for directory in (config.thumbs_dir, config.catalog_path.parent):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BuildError(f"Could not create output directory {directory}: {e}")


def run_pipeline(config: SiteConfig, client: httpx.Client | None = None, write_json: bool = False) -> list[dict]:
    print("Step 1: Loading videos...")
    if not config.source_path.exists():
        raise BuildError(f"Source file not found: {config.source_path}")
    prepare_output_dirs(config)
    videos = load_videos(config.source_path)
    print(f"  Loaded {len(videos)} videos from {config.source_path}")

    print("Step 2: Processing thumbnails...")
    store = ThumbnailStore(config.thumbs_dir)
    own_client = client is None
    if own_client:
        client = httpx.Client(timeout=config.timeout)
    try:
        processed = process_videos(videos, store, client, config)
    finally:
        if own_client:
            client.close()

    print("Step 3: Assembling catalog...")
    catalog = assemble_catalog(processed)
    try:
        write_catalog_module(catalog, config.catalog_path)
    except OSError as e:
        raise BuildError(f"Could not write {config.catalog_path}: {e}")
    print(f"  Wrote {config.catalog_path} ({len(catalog)} videos)")

    if write_json:
        try:
            config.processed_json_path.write_text(
                json.dumps(catalog, indent=2, ensure_ascii=False), encoding="utf-8"
            )
        except OSError as e:
            raise BuildError(f"Could not write {config.processed_json_path}: {e}")
        print(f"  Wrote {config.processed_json_path}")

    return catalog


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Optimize thumbnails and regenerate the video catalog")
    parser.add_argument("--root", type=Path, default=Path.cwd(), help="Project root (default: current directory)")
    parser.add_argument("--workers", type=int, default=1, help="Thumbnails to process at once (default: 1)")
    parser.add_argument("--width", type=int, default=None, help="Thumbnail width in pixels")
    parser.add_argument("--json", action="store_true", help="Also write public/processedVideos.json")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    load_dotenv(args.root / ".env")

    overrides = {"workers": max(1, args.workers)}
    if args.width is not None:
        overrides["thumb_width"] = args.width

    try:
        config = SiteConfig.from_env(args.root, **overrides)
        catalog = run_pipeline(config, write_json=args.json)
    except BuildError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"\nDone! {len(catalog)} videos in {config.catalog_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
