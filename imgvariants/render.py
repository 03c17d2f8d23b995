import os
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .config import BuildConfig, Variant
from .errors import ImageBuildError, MissingSourceError, RenderError, UnsupportedFormatError
from .plan import Output, temp_path

SAVE_FORMATS = {"jpg": "JPEG", "png": "PNG", "webp": "WEBP"}


def write_atomic(path: Path, write: Callable[[Path], None]):
    """
    Call write(tmp) on a hidden sibling of path and rename it into place,
    so an interrupted or failed encode never leaves a file that looks built.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_path(path)
    try:
        write(tmp)
        os.replace(tmp, path)
    except Exception:
        if tmp.exists():
            tmp.unlink()
        raise


def shave(img: Image.Image, percent: float) -> Image.Image:
    """Cut percent of the height from the top and from the bottom (convert -shave 0xN%)."""
    if not percent:
        return img
    w, h = img.size
    cut = round(h * percent / 100)
    if h - 2 * cut < 1:
        raise RenderError(f"Shaving {percent}% leaves nothing of a {w}x{h} image")
    return img.crop((0, cut, w, h - cut))


def target_size(size: Tuple[int, int], variant: Variant) -> Tuple[int, int]:
    """Exact target width (upscaling allowed), height kept in proportion."""
    w, h = size
    if variant.width is not None:
        tw = variant.width
    elif variant.scale is not None:
        tw = max(1, round(w * variant.scale / 100))
    else:
        return size
    th = max(1, round(h * tw / w))
    return tw, th


def normalize_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = img.mode in ("LA", "PA", "RGBa", "La") or "transparency" in img.info
    return img.convert("RGBA" if has_alpha else "RGB")


def transform(img: Image.Image, variant: Variant) -> Image.Image:
    im = shave(img, variant.shave)
    size = target_size(im.size, variant)
    if size != im.size:
        im = im.resize(size, Image.LANCZOS)
    else:
        im = im.copy()
    im.info = {}  # no EXIF/ICC/text chunks: output depends on pixels and parameters only
    return im


def encode(im: Image.Image, fmt: str, path: Path, quality):
    if fmt not in SAVE_FORMATS:
        raise UnsupportedFormatError(f"Cannot encode {fmt!r}")
    if fmt == "jpg":
        im.convert("RGB").save(path, format="JPEG", quality=quality or 80, optimize=True, progressive=True)
    elif fmt == "webp":
        im.save(path, format="WEBP", quality=quality or 78, method=6)
    else:
        im.save(path, format="PNG", optimize=True)


def open_source(source: Path) -> Image.Image:
    if not source.is_file():
        raise MissingSourceError(f"Source image not found: {source}")
    try:
        with Image.open(source) as img:
            img.load()
            return normalize_mode(img)
    except UnidentifiedImageError as exc:
        raise UnsupportedFormatError(f"Not a readable image: {source}") from exc
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        # truncated or corrupt data surfaces from load(), not open()
        raise RenderError(f"Cannot decode {source}: {exc}") from exc


class PillowRenderer:
    """
    Renders every output of one asset in-process, decoding the source once.
    on_written(out) is called as soon as each file is in place, so a failure
    halfway through an asset still accounts for what was already written.
    """

    name = "pillow"

    def render(self, source: Path, outputs: List[Output], config: BuildConfig,
               on_written: Optional[Callable[[Output], None]] = None):
        img = open_source(source)
        for out in outputs:
            quality = config.quality_for(out.variant, out.fmt)
            try:
                im = transform(img, out.variant)
                write_atomic(out.path, lambda tmp: encode(im, out.fmt, tmp, quality))
            except ImageBuildError:
                raise
            except (OSError, ValueError) as exc:
                raise RenderError(f"Failed to write {out.path}: {exc}") from exc
            if on_written:
                on_written(out)
