import os

import pytest
from PIL import Image

from imgvariants.build import build, clean, status
from imgvariants.config import SIZES, discover_config, parse_config
from imgvariants.errors import ConfigError, MissingSourceError, RenderError, UnsupportedFormatError
from imgvariants import render
from imgvariants.plan import plan

from conftest import make_image, truncate


def snapshot(directory):
    return {p.name: p.read_bytes() for p in sorted(directory.iterdir())}


def test_every_output_has_its_target_width(src_dir, dst_dir):
    config = discover_config(src_dir, dst_dir)

    report = build(config)

    assert report.ok
    assert len(report.written) == 2 * len(SIZES) * 2
    for out in plan(config):
        with Image.open(out.path) as im:
            assert im.width == out.variant.width
            assert im.format == {"jpg": "JPEG", "webp": "WEBP"}[out.fmt]


def test_names_follow_the_source(src_dir, dst_dir):
    build(discover_config(src_dir, dst_dir))
    names = sorted(p.name for p in dst_dir.iterdir())
    assert names == sorted(f"{base}-{w}.{ext}"
                           for base in ("cover", "my-photo")
                           for w in SIZES
                           for ext in ("jpg", "webp"))


def test_rebuild_is_byte_identical(src_dir, dst_dir):
    config = discover_config(src_dir, dst_dir)
    build(config)
    first = snapshot(dst_dir)

    build(config, force=True)

    assert snapshot(dst_dir) == first


def test_clean_then_build_round_trips(src_dir, dst_dir):
    config = discover_config(src_dir, dst_dir)
    build(config)
    first = snapshot(dst_dir)

    clean(config)
    assert list(dst_dir.iterdir()) == []
    build(config)

    assert snapshot(dst_dir) == first


def test_second_build_is_a_no_op(src_dir, dst_dir, capsys):
    config = discover_config(src_dir, dst_dir)
    build(config)
    mtimes = {p.name: p.stat().st_mtime_ns for p in dst_dir.iterdir()}
    capsys.readouterr()

    report = build(config)

    assert report.written == []
    assert len(report.skipped) == len(mtimes)
    assert {p.name: p.stat().st_mtime_ns for p in dst_dir.iterdir()} == mtimes
    assert "[SKIP]" in capsys.readouterr().out


def test_touched_source_is_rebuilt(src_dir, dst_dir):
    config = discover_config(src_dir, dst_dir)
    build(config)
    cover = src_dir / "cover.png"
    future = max(p.stat().st_mtime for p in dst_dir.iterdir()) + 60
    os.utime(cover, (future, future))

    report = build(config)

    assert sorted(p.name for p in report.written) == sorted(f"cover-{w}.{ext}" for w in SIZES for ext in ("webp", "jpg"))
    assert len(report.skipped) == len(SIZES) * 2


def test_clean_leaves_sources_alone(src_dir, dst_dir):
    before = snapshot(src_dir)
    config = discover_config(src_dir, dst_dir)
    build(config)
    (dst_dir / "unrelated.txt").write_text("keep me", encoding="utf-8")

    removed = clean(config)

    assert len(removed) == len(plan(config))
    assert snapshot(src_dir) == before
    assert [p.name for p in dst_dir.iterdir()] == ["unrelated.txt"]


def test_clean_removes_leftover_temporaries(src_dir, dst_dir):
    config = discover_config(src_dir, dst_dir)
    dst_dir.mkdir()
    (dst_dir / ".cover-320.tmp.webp").write_bytes(b"partial")
    (dst_dir / ".cover-320.tmp.png").write_bytes(b"partial")

    clean(config)

    assert list(dst_dir.iterdir()) == []


def test_missing_source_fails_before_writing(tmp_path):
    make_image(tmp_path / "images_src" / "ok.jpg")
    config = parse_config({"assets": ["missing.jpg", "ok.jpg"]}, base_dir=tmp_path)

    with pytest.raises(MissingSourceError, match="missing.jpg"):
        build(config)

    assert not (tmp_path / "images").exists()


def test_keep_going_builds_the_rest(tmp_path, capsys):
    make_image(tmp_path / "images_src" / "ok.jpg")
    config = parse_config({"assets": ["missing.jpg", "ok.jpg"], "widths": [50]}, base_dir=tmp_path)

    report = build(config, keep_going=True)

    assert not report.ok
    assert [src.name for src, _ in report.failed] == ["missing.jpg"]
    assert sorted(p.name for p in report.written) == ["ok-50.jpg", "ok-50.webp"]
    assert "[FAIL]" in capsys.readouterr().err


def test_unsupported_source_format(tmp_path):
    gif = tmp_path / "images_src" / "anim.gif"
    make_image(gif)
    config = parse_config({"assets": ["anim.gif"]}, base_dir=tmp_path)

    with pytest.raises(UnsupportedFormatError):
        build(config)
    assert not (tmp_path / "images").exists()


def test_collisions_fail_before_any_write(tmp_path):
    make_image(tmp_path / "images_src" / "pic.jpg")
    make_image(tmp_path / "images_src" / "pic.png")
    config = parse_config({"assets": ["pic.jpg", "pic.png"]}, base_dir=tmp_path)

    with pytest.raises(ConfigError):
        build(config)
    assert not (tmp_path / "images").exists()


def test_shave_and_scale_variants(tmp_path):
    """2x is the source with 30% shaved off top and bottom, 1x is half of that."""
    make_image(tmp_path / "assets" / "wood.jpg", (200, 100))
    config = parse_config({
        "source_dir": "assets",
        "output_dir": "static",
        "assets": [{"source": "wood.jpg",
                    "pattern": "{stem}.{tag}.{ext}",
                    "formats": ["jpg", "webp"],
                    "variants": [{"tag": "2x", "shave": 30},
                                 {"tag": "1x", "shave": 30, "scale": 50}]}],
    }, base_dir=tmp_path)

    build(config)

    sizes = {}
    for p in (tmp_path / "static").iterdir():
        with Image.open(p) as im:
            sizes[p.name] = im.size
    assert sizes == {
        "wood.2x.jpg": (200, 40), "wood.2x.webp": (200, 40),
        "wood.1x.jpg": (100, 20), "wood.1x.webp": (100, 20),
    }


def test_direct_conversion_keeps_size(tmp_path):
    make_image(tmp_path / "images_src" / "diagram.png", (123, 45), mode="RGBA")
    config = parse_config({"assets": [{"source": "diagram.png", "variants": [{}], "formats": ["webp"]}]},
                          base_dir=tmp_path)

    build(config)

    with Image.open(tmp_path / "images" / "diagram.webp") as im:
        assert im.size == (123, 45)


def test_status_reports_staleness(src_dir, dst_dir):
    config = discover_config(src_dir, dst_dir)
    assert all(stale for _, stale in status(config))

    build(config)

    assert not any(stale for _, stale in status(config))


def test_empty_source_dir(tmp_path, capsys):
    (tmp_path / "images_src").mkdir()
    report = build(discover_config(tmp_path / "images_src", tmp_path / "images"))
    assert report.written == []
    assert "No source images found" in capsys.readouterr().out


def test_truncated_source_is_recorded_and_skipped(tmp_path):
    truncate(make_image(tmp_path / "images_src" / "broken.jpg"))
    make_image(tmp_path / "images_src" / "zz.jpg")
    config = parse_config({"assets": ["broken.jpg", "zz.jpg"], "widths": [10]}, base_dir=tmp_path)

    report = build(config, keep_going=True)

    assert [src.name for src, _ in report.failed] == ["broken.jpg"]
    assert isinstance(report.failed[0][1], RenderError)
    assert sorted(p.name for p in report.written) == ["zz-10.jpg", "zz-10.webp"]
    assert sorted(p.name for p in (tmp_path / "images").iterdir()) == ["zz-10.jpg", "zz-10.webp"]


def test_truncated_source_halts_build(tmp_path):
    truncate(make_image(tmp_path / "images_src" / "broken.jpg"))
    config = parse_config({"assets": ["broken.jpg"]}, base_dir=tmp_path)

    with pytest.raises(RenderError, match="broken.jpg"):
        build(config)


def test_outputs_written_before_a_failure_are_reported(tmp_path, monkeypatch, capsys):
    make_image(tmp_path / "images_src" / "a.jpg")
    config = parse_config({"assets": ["a.jpg"], "widths": [10], "formats": ["jpg", "webp"]},
                          base_dir=tmp_path)
    real_encode = render.encode

    def encode(im, fmt, path, quality):
        if fmt == "webp":
            raise OSError("disk full")
        real_encode(im, fmt, path, quality)

    monkeypatch.setattr(render, "encode", encode)

    report = build(config, keep_going=True)

    out_dir = tmp_path / "images"
    assert report.written == [out_dir / "a-10.jpg"]
    assert [src.name for src, _ in report.failed] == ["a.jpg"]
    assert [p.name for p in out_dir.iterdir()] == ["a-10.jpg"]
    out = capsys.readouterr().out
    assert f"wrote {out_dir / 'a-10.jpg'}" in out
    assert "Written: 1" in out
