"""
Parameter table for the image variant builder.

Defaults mirror the site's original optimize script: 320/640/960 wide
WebP + JPG copies of every image in images_src/, written to images/.
A JSON file (images.json) can replace them per asset:

  {
    "source_dir": "assets",
    "output_dir": "static",
    "assets": [
      "cover.png",
      {"source": "wood.jpg",
       "pattern": "{stem}.{tag}.{ext}",
       "formats": ["jpg", "webp"],
       "variants": [{"tag": "2x", "shave": 30},
                    {"tag": "1x", "shave": 30, "scale": 50}]}
    ]
  }
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigError, MissingSourceError, UnsupportedFormatError

SIZES = [320, 640, 960]
FORMATS = ["webp", "jpg"]
SRC_DIR = Path("images_src")   # originals here
DST_DIR = Path("images")       # outputs to your site
PATTERN = "{stem}-{tag}.{ext}"
QUALITY = {"jpg": 80, "webp": 78}
CONFIG_NAME = "images.json"

SOURCE_EXTS = {".png", ".jpg", ".jpeg"}
FORMAT_EXTS = {"jpg": "jpg", "jpeg": "jpg", "png": "png", "webp": "webp"}
BACKENDS = ("pillow", "magick")

TOP_KEYS = {"source_dir", "output_dir", "backend", "widths", "formats", "pattern", "quality", "assets"}
ASSET_KEYS = {"source", "variants", "widths", "formats", "pattern"}
VARIANT_KEYS = {"width", "scale", "shave", "quality", "tag"}


def normalize_format(name: str) -> str:
    """'JPEG' -> 'jpg'; raises UnsupportedFormatError for anything we can't write."""
    key = str(name).strip().lower().lstrip(".")
    if key not in FORMAT_EXTS:
        raise UnsupportedFormatError(f"Unsupported output format: {name!r}")
    return FORMAT_EXTS[key]


def normalize_base(source: Path) -> str:
    return source.stem.replace(" ", "-").lower()


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class Variant:
    """One row of the parameter table.

    width and scale are mutually exclusive; with neither the source size is
    kept (plain format conversion). shave is the percentage of the height cut
    from the top and again from the bottom, before resizing.
    quality applies to the lossy encoders (JPEG, WebP); PNG output is
    lossless and ignores it.
    """
    width: Optional[int] = None
    scale: Optional[float] = None
    shave: float = 0
    quality: Optional[int] = None
    tag: Optional[str] = None

    def __post_init__(self):
        if self.width is not None and self.scale is not None:
            raise ConfigError("A variant takes either 'width' or 'scale', not both")
        if self.width is not None and (not isinstance(self.width, int) or isinstance(self.width, bool) or self.width < 1):
            raise ConfigError(f"Invalid width: {self.width!r}")
        if self.scale is not None and (not _is_number(self.scale) or self.scale <= 0):
            raise ConfigError(f"Invalid scale: {self.scale!r}")
        if not _is_number(self.shave) or not 0 <= self.shave < 50:
            raise ConfigError(f"Invalid shave (expected 0 <= shave < 50): {self.shave!r}")
        if self.quality is not None and (not isinstance(self.quality, int) or isinstance(self.quality, bool)
                                         or not 1 <= self.quality <= 100):
            raise ConfigError(f"Invalid quality (expected 1..100): {self.quality!r}")
        if self.tag is not None and (not isinstance(self.tag, str) or "/" in self.tag or "\\" in self.tag):
            raise ConfigError(f"Invalid tag: {self.tag!r}")

    @property
    def label(self) -> str:
        if self.tag is not None:
            return self.tag
        if self.width is not None:
            return str(self.width)
        if self.scale is not None:
            return f"{self.scale:g}pct"
        return ""


@dataclass(frozen=True)
class Asset:
    source: Path
    variants: Tuple[Variant, ...]
    formats: Tuple[str, ...]
    pattern: str = PATTERN

    @property
    def base(self) -> str:
        return normalize_base(self.source)


@dataclass
class BuildConfig:
    source_dir: Path
    output_dir: Path
    assets: List[Asset]
    quality: Dict[str, int] = field(default_factory=lambda: dict(QUALITY))
    backend: str = "pillow"

    def quality_for(self, variant: Variant, fmt: str) -> Optional[int]:
        if variant.quality is not None:
            return variant.quality
        return self.quality.get(fmt)


def _check_keys(data: Dict[str, Any], allowed, where: str):
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(f"Unknown key(s) in {where}: {', '.join(unknown)}")


def _check_pattern(pattern) -> str:
    if not isinstance(pattern, str) or "{stem}" not in pattern or "{ext}" not in pattern:
        raise ConfigError(f"Pattern must contain {{stem}} and {{ext}}: {pattern!r}")
    try:
        name = pattern.format(stem="x", tag="y", ext="jpg")
    except (KeyError, IndexError, ValueError, AttributeError, TypeError) as exc:
        raise ConfigError(f"Bad pattern {pattern!r}: {exc}") from exc
    if "/" in name or "\\" in name:
        raise ConfigError(f"Pattern must name a file, not a path: {pattern!r}")
    return pattern


def _dir_setting(data: Dict[str, Any], key: str, default: Path) -> str:
    value = data.get(key, str(default))
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' must be a directory path string: {value!r}")
    return value


def _parse_formats(value, where: str) -> Tuple[str, ...]:
    if not isinstance(value, list) or not value:
        raise ConfigError(f"'formats' in {where} must be a non-empty list")
    out = []
    for name in value:
        fmt = normalize_format(name)
        if fmt not in out:
            out.append(fmt)
    return tuple(out)


def _parse_widths(value, where: str) -> Tuple[Variant, ...]:
    if not isinstance(value, list) or not value:
        raise ConfigError(f"'widths' in {where} must be a non-empty list")
    return tuple(Variant(width=w) for w in value)


def _parse_variant(data, where: str) -> Variant:
    if _is_number(data):
        return Variant(width=data)
    if not isinstance(data, dict):
        raise ConfigError(f"Variant in {where} must be a width or an object")
    _check_keys(data, VARIANT_KEYS, f"variant of {where}")
    return Variant(**data)


def _parse_quality(data) -> Dict[str, int]:
    if not isinstance(data, dict):
        raise ConfigError("'quality' must map format names to 1..100")
    quality = dict(QUALITY)
    for name, value in data.items():
        if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 100:
            raise ConfigError(f"Invalid quality for {name}: {value!r}")
        quality[normalize_format(name)] = value
    return quality


def _parse_asset(entry, source_dir: Path, defaults: Dict[str, Any]) -> Asset:
    if isinstance(entry, str):
        entry = {"source": entry}
    if not isinstance(entry, dict) or not isinstance(entry.get("source"), str) or not entry["source"].strip():
        raise ConfigError(f"Asset entry needs a 'source' filename: {entry!r}")
    where = entry["source"]
    _check_keys(entry, ASSET_KEYS, f"asset {where}")

    if "variants" in entry and "widths" in entry:
        raise ConfigError(f"Asset {where}: use 'variants' or 'widths', not both")
    if "variants" in entry:
        if not isinstance(entry["variants"], list) or not entry["variants"]:
            raise ConfigError(f"'variants' in asset {where} must be a non-empty list")
        variants = tuple(_parse_variant(v, where) for v in entry["variants"])
    elif "widths" in entry:
        variants = _parse_widths(entry["widths"], f"asset {where}")
    else:
        variants = defaults["variants"]

    formats = _parse_formats(entry["formats"], f"asset {where}") if "formats" in entry else defaults["formats"]
    pattern = _check_pattern(entry["pattern"]) if "pattern" in entry else defaults["pattern"]
    return Asset(source=source_dir / where, variants=variants, formats=formats, pattern=pattern)


def parse_config(data, base_dir: Path = Path("."),
                 source_dir: Optional[Path] = None,
                 output_dir: Optional[Path] = None) -> BuildConfig:
    """
    Build a BuildConfig from decoded JSON. Relative directories resolve
    against base_dir; source_dir/output_dir (from the command line) win.
    Without an 'assets' list every image in the source directory is used.
    """
    if not isinstance(data, dict):
        raise ConfigError("Config must be a JSON object")
    _check_keys(data, TOP_KEYS, "config")

    src = Path(source_dir) if source_dir else base_dir / _dir_setting(data, "source_dir", SRC_DIR)
    dst = Path(output_dir) if output_dir else base_dir / _dir_setting(data, "output_dir", DST_DIR)

    backend = data.get("backend", "pillow")
    if backend not in BACKENDS:
        raise ConfigError(f"Unknown backend {backend!r} (expected one of {', '.join(BACKENDS)})")

    defaults = {
        "variants": _parse_widths(data["widths"], "config") if "widths" in data else tuple(Variant(width=w) for w in SIZES),
        "formats": _parse_formats(data["formats"], "config") if "formats" in data else tuple(FORMATS),
        "pattern": _check_pattern(data["pattern"]) if "pattern" in data else PATTERN,
    }
    quality = _parse_quality(data["quality"]) if "quality" in data else dict(QUALITY)

    if "assets" in data:
        if not isinstance(data["assets"], list):
            raise ConfigError("'assets' must be a list")
        assets = [_parse_asset(entry, src, defaults) for entry in data["assets"]]
    else:
        assets = [_parse_asset(p.name, src, defaults) for p in find_sources(src)]

    return BuildConfig(source_dir=src, output_dir=dst, assets=assets, quality=quality, backend=backend)


def load_config(path: Path, source_dir: Optional[Path] = None,
                output_dir: Optional[Path] = None) -> BuildConfig:
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON ({exc})") from exc
    return parse_config(data, base_dir=path.parent, source_dir=source_dir, output_dir=output_dir)


def find_sources(source_dir: Path) -> List[Path]:
    if not source_dir.is_dir():
        raise MissingSourceError(f"Source directory not found: {source_dir}")
    return sorted((p for p in source_dir.iterdir()
                   if p.is_file() and p.suffix.lower() in SOURCE_EXTS),
                  key=lambda p: p.name)


def discover_config(source_dir: Path = SRC_DIR, output_dir: Path = DST_DIR) -> BuildConfig:
    """No config file: every PNG/JPEG in source_dir with the default table."""
    return parse_config({}, source_dir=Path(source_dir), output_dir=Path(output_dir))
