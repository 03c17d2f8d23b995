from pathlib import Path

import pytest
from PIL import Image


def make_image(path: Path, size=(200, 100), mode="RGB") -> Path:
    """Write a small gradient image; format follows the suffix."""
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.linear_gradient("L").resize(size).convert(mode)
    img.save(path)
    return path


@pytest.fixture
def site(tmp_path):
    """A tiny site: images_src/ with two originals, images/ not yet created."""
    src = tmp_path / "images_src"
    make_image(src / "cover.png", (400, 600), mode="RGBA")
    make_image(src / "My Photo.jpg", (300, 200))
    (src / "notes.txt").write_text("not an image", encoding="utf-8")
    return tmp_path


@pytest.fixture
def src_dir(site):
    return site / "images_src"


@pytest.fixture
def dst_dir(site):
    return site / "images"


def truncate(path: Path) -> Path:
    """Cut an encoded image in half; the header still opens, decoding fails."""
    data = path.read_bytes()
    path.write_bytes(data[: len(data) // 2])
    return path
