#!/usr/bin/env python3
"""
Build (or clean) resized JPG/PNG + WebP copies of the site's images.

Usage:
  build-images                 # build every stale variant (default target)
  build-images clean           # delete every derived image, keep sources
  build-images list            # show planned outputs and which are stale

Examples:
  build-images -c images.json --force
  build-images --src images_src --dst images --backend magick
  build-images -k              # keep going past a broken image, like make -k

Without -c, ./images.json is used when present; otherwise every PNG/JPEG in
images_src/ is rendered at 320/640/960 px as WebP and JPG into images/.
"""
import argparse
from pathlib import Path

from .build import build, clean, status
from .config import BACKENDS, CONFIG_NAME, DST_DIR, SRC_DIR, discover_config, load_config
from .errors import ImageBuildError


def make_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="build-images", description="Build responsive image variants.")
    ap.add_argument("target", nargs="?", default="build", choices=["build", "clean", "list"],
                    help="What to do (default: build)")
    ap.add_argument("-c", "--config", help=f"JSON parameter table (default: ./{CONFIG_NAME} if present)")
    ap.add_argument("--src", help=f"Source image directory (default: {SRC_DIR})")
    ap.add_argument("--dst", help=f"Output directory (default: {DST_DIR})")
    ap.add_argument("--backend", choices=BACKENDS, help="Renderer: pillow (default) or magick (convert + cwebp)")
    ap.add_argument("--force", action="store_true", help="Rebuild even when outputs are up to date")
    ap.add_argument("-k", "--keep-going", action="store_true", help="Continue with other images after a failure")
    return ap


def resolve_config(args):
    src = Path(args.src) if args.src else None
    dst = Path(args.dst) if args.dst else None
    config_path = Path(args.config) if args.config else Path.cwd() / CONFIG_NAME
    if args.config or config_path.is_file():
        config = load_config(config_path, source_dir=src, output_dir=dst)
    else:
        config = discover_config(src or SRC_DIR, dst or DST_DIR)
    if args.backend:
        config.backend = args.backend
    return config


def main(argv=None):
    args = make_parser().parse_args(argv)
    try:
        config = resolve_config(args)
        if args.target == "clean":
            clean(config)
        elif args.target == "list":
            for out, stale in status(config):
                print(f"{'[STALE]' if stale else '[OK]   '} {out.path}  <- {out.asset.source.name}")
        else:
            report = build(config, force=args.force, keep_going=args.keep_going)
            if not report.ok:
                raise SystemExit(f"error: {len(report.failed)} image(s) failed")
    except ImageBuildError as exc:
        raise SystemExit(f"error: {exc}")


if __name__ == "__main__":
    main()
