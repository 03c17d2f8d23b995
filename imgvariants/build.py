"""
The two operations of the builder: build every stale derived image, and
clean every derived image. Both work from the same plan, so clean removes
exactly what build can produce and never a source.
"""
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

from .config import SOURCE_EXTS, Asset, BuildConfig
from .errors import ConfigError, ImageBuildError, MissingSourceError, UnsupportedFormatError
from .magick import MagickRenderer
from .plan import Output, is_stale, plan, plan_asset, temp_path
from .render import PillowRenderer


@dataclass
class BuildReport:
    written: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    failed: List[Tuple[Path, ImageBuildError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def get_renderer(name: str):
    if name == "pillow":
        return PillowRenderer()
    if name == "magick":
        return MagickRenderer()
    raise ConfigError(f"Unknown backend: {name!r}")


def check_source(source: Path):
    if not source.is_file():
        raise MissingSourceError(f"Source image not found: {source}")
    if source.suffix.lower() not in SOURCE_EXTS:
        raise UnsupportedFormatError(f"Unsupported source format (expected PNG or JPEG): {source}")


def build_asset(asset: Asset, config: BuildConfig, renderer, force: bool, report: BuildReport):
    # nothing is written for an asset whose source is missing or unreadable
    check_source(asset.source)
    outputs = plan_asset(asset, config.output_dir)
    stale = [out for out in outputs if force or is_stale(asset.source, out.path)]
    for out in outputs:
        if out not in stale:
            print(f"[SKIP] {out.path} (up to date)")
            report.skipped.append(out.path)
    if not stale:
        return
    config.output_dir.mkdir(parents=True, exist_ok=True)

    def written(out: Output):
        print("wrote", out.path)
        report.written.append(out.path)

    renderer.render(asset.source, stale, config, on_written=written)


def build(config: BuildConfig, force: bool = False, keep_going: bool = False, renderer=None) -> BuildReport:
    """
    Render every stale output. Halts on the first failing asset, like make;
    with keep_going the failure is recorded and the next asset is tried.
    """
    plan(config)  # refuse colliding names before touching the disk
    renderer = renderer or get_renderer(config.backend)
    report = BuildReport()

    if not config.assets:
        print(f"No source images found in {config.source_dir}.")
        return report

    for asset in config.assets:
        try:
            build_asset(asset, config, renderer, force, report)
        except ImageBuildError as exc:
            if not keep_going:
                raise
            print(f"[FAIL] {asset.source}: {exc}", file=sys.stderr)
            report.failed.append((asset.source, exc))

    summary = f"\nDone. Written: {len(report.written)}, up to date: {len(report.skipped)}"
    if report.failed:
        summary += f", failed: {len(report.failed)}"
    print(summary)
    return report


def clean(config: BuildConfig) -> List[Path]:
    """Delete every planned derived file (and leftover temporaries). Sources are never planned."""
    removed = []
    for out in plan(config):
        tmp = temp_path(out.path)
        for p in (out.path, tmp, tmp.with_suffix(".png")):
            if p.exists():
                p.unlink()
                print("removed", p)
                removed.append(p)
    print(f"\nDone. Files removed: {len(removed)}")
    return removed


def status(config: BuildConfig) -> List[Tuple[Output, bool]]:
    """Planned outputs with a stale flag (missing sources count as stale)."""
    result = []
    for out in plan(config):
        source = out.asset.source
        stale = not source.is_file() or is_stale(source, out.path)
        result.append((out, stale))
    return result
