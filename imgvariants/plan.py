"""Output naming and planning: which files a config produces, and which are stale."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .config import Asset, BuildConfig, Variant
from .errors import ConfigError


@dataclass(frozen=True)
class Output:
    asset: Asset
    variant: Variant
    fmt: str
    path: Path


def output_name(asset: Asset, variant: Variant, fmt: str) -> str:
    """'wood.jpg' + 640 + webp -> 'wood-640.webp'; an untagged conversion is 'wood.webp'."""
    tag = variant.label
    if not tag:
        return f"{asset.base}.{fmt}"
    return asset.pattern.format(stem=asset.base, tag=tag, ext=fmt)


def temp_path(path: Path) -> Path:
    """Hidden sibling a render writes to before it is renamed into place."""
    return path.with_name(f".{path.stem}.tmp{path.suffix}")


def plan_asset(asset: Asset, output_dir: Path) -> List[Output]:
    return [Output(asset, variant, fmt, output_dir / output_name(asset, variant, fmt))
            for variant in asset.variants
            for fmt in asset.formats]


def _key(path: Path) -> str:
    return os.path.normcase(str(Path(path).resolve()))


def check_plan(config: BuildConfig, outputs: List[Output]):
    if _key(config.source_dir) == _key(config.output_dir):
        raise ConfigError(f"Source and output directory must differ: {config.source_dir}")
    sources = {_key(a.source) for a in config.assets}
    seen = {}
    for out in outputs:
        key = _key(out.path)
        if key in sources:
            raise ConfigError(f"{out.path} would overwrite a source image")
        if key in seen:
            raise ConfigError(f"{out.path} is produced twice (by {seen[key]} and {out.asset.source.name}); "
                              "check tags and pattern")
        seen[key] = out.asset.source.name


def plan(config: BuildConfig) -> List[Output]:
    """Every derived file the config describes, in a stable order."""
    outputs = [out for asset in config.assets for out in plan_asset(asset, config.output_dir)]
    check_plan(config, outputs)
    return outputs


def is_stale(source: Path, target: Path) -> bool:
    if not target.exists():
        return True
    return source.stat().st_mtime > target.stat().st_mtime
