"""
Render variants with external tools instead of Pillow:

  convert SRC [-shave 0xN%] [-resize Wx | -resize N%] -strip [-quality Q] DST
  cwebp -quiet -m 6 -q Q -metadata none INTERMEDIATE.png -o DST.webp

Same contract as the Pillow renderer; WebP goes through a lossless PNG
intermediate so cwebp sees exactly the pixels convert produced.
"""
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from .config import BuildConfig, SOURCE_EXTS, Variant
from .errors import MissingSourceError, RenderError, UnsupportedFormatError
from .plan import Output
from .render import write_atomic


def find_tool(candidates) -> Optional[str]:
    for exe in candidates:
        found = shutil.which(exe)
        if found:
            return found
    return None


def geometry_args(variant: Variant) -> List[str]:
    args = []
    if variant.shave:
        args += ["-shave", f"0x{variant.shave:g}%"]
    if variant.width is not None:
        args += ["-resize", f"{variant.width}x"]
    elif variant.scale is not None:
        args += ["-resize", f"{variant.scale:g}%"]
    return args


def convert_cmd(im_bin: str, src: Path, dst: Path, variant: Variant, quality: Optional[int]) -> List[str]:
    cmd = [im_bin, str(src)] + geometry_args(variant) + ["-strip"]
    suffix = dst.suffix.lower()
    if suffix == ".jpg" and quality:
        cmd += ["-interlace", "Plane", "-quality", str(quality)]
    elif suffix == ".png":
        cmd += ["-define", "png:exclude-chunks=date,time"]
    cmd += [str(dst)]
    return cmd


def cwebp_cmd(cwebp_bin: str, src: Path, dst: Path, quality: Optional[int]) -> List[str]:
    cmd = [cwebp_bin, "-quiet", "-m", "6"]
    if quality:
        cmd += ["-q", str(quality)]
    cmd += ["-metadata", "none", str(src), "-o", str(dst)]
    return cmd


def run(cmd: List[str]):
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as exc:
        raise RenderError(f"Cannot run {cmd[0]}: {exc}") from exc
    if proc.returncode != 0:
        detail = (proc.stderr or proc.stdout or "").strip()
        raise RenderError(f"{Path(cmd[0]).name} exited with {proc.returncode}: {detail}")


class MagickRenderer:
    name = "magick"

    def __init__(self, im_bin: Optional[str] = None, cwebp_bin: Optional[str] = None):
        self.im_bin = im_bin
        self.cwebp_bin = cwebp_bin

    def _imagemagick(self) -> str:
        if not self.im_bin:
            self.im_bin = find_tool(["convert", "magick"])
        if not self.im_bin:
            raise RenderError("Could not find ImageMagick (convert/magick) on PATH")
        return self.im_bin

    def _cwebp(self) -> str:
        if not self.cwebp_bin:
            self.cwebp_bin = find_tool(["cwebp"])
        if not self.cwebp_bin:
            raise RenderError("Could not find cwebp on PATH")
        return self.cwebp_bin

    def render(self, source: Path, outputs: List[Output], config: BuildConfig,
               on_written: Optional[Callable[[Output], None]] = None):
        if not source.is_file():
            raise MissingSourceError(f"Source image not found: {source}")
        if source.suffix.lower() not in SOURCE_EXTS:
            raise UnsupportedFormatError(f"Unsupported source format: {source}")
        for out in outputs:
            quality = config.quality_for(out.variant, out.fmt)
            if out.fmt == "webp":
                write_atomic(out.path, lambda tmp: self._webp(source, tmp, out.variant, quality))
            elif out.fmt in ("jpg", "png"):
                im_bin = self._imagemagick()
                write_atomic(out.path, lambda tmp: run(convert_cmd(im_bin, source, tmp, out.variant, quality)))
            else:
                raise UnsupportedFormatError(f"Cannot encode {out.fmt!r}")
            if on_written:
                on_written(out)

    def _webp(self, source: Path, dst: Path, variant: Variant, quality: Optional[int]):
        im_bin, cwebp_bin = self._imagemagick(), self._cwebp()
        intermediate = dst.with_suffix(".png")
        try:
            run(convert_cmd(im_bin, source, intermediate, variant, None))
            run(cwebp_cmd(cwebp_bin, intermediate, dst, quality))
        finally:
            if intermediate.exists():
                intermediate.unlink()
