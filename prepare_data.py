# /// script
# dependencies = ["pillow", "jinja2", "httpx", "python-dotenv"]
# ///
"""
Wrap public/processedVideos.json into the typed catalog module.

Usage:
    uv run --script prepare_data.py [--root DIR]

This is the two-step flow: run `build_catalog.py --json` first, then this.
"""

import argparse
import json
import sys
from pathlib import Path

from build_catalog import BuildError, SiteConfig, write_catalog_module


def prepare_catalog(source_json: Path, output_ts: Path) -> list[dict]:
    output_dir = output_ts.parent
    if not output_dir.exists():
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BuildError(f"Could not create output directory {output_dir}: {e}")
        print(f"  Created output directory: {output_dir}")

    if not source_json.exists():
        raise BuildError(
            f"Source JSON file not found at {source_json}. "
            "Run build_catalog.py --json first."
        )

    try:
        videos = json.loads(source_json.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise BuildError(f"Could not read {source_json}: {e}")
    if not isinstance(videos, list):
        raise BuildError(f"{source_json} must contain an array of video records")

    try:
        write_catalog_module(videos, output_ts)
    except OSError as e:
        raise BuildError(f"Could not write {output_ts}: {e}")
    print(f"  Wrote {output_ts} ({len(videos)} videos)")
    return videos


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Turn processedVideos.json into src/data/allVideos.ts")
    parser.add_argument("--root", type=Path, default=Path.cwd(), help="Project root (default: current directory)")
    args = parser.parse_args(argv)

    config = SiteConfig(root=args.root)
    try:
        prepare_catalog(config.processed_json_path, config.catalog_path)
    except BuildError as e:
        print(f"Error pre-processing video data: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
