import os
from dataclasses import replace

from PIL import Image

import mapgallery
from mapgallery import (
    WEBP_MAX_SIZE,
    NullProcessor,
    PillowProcessor,
    generate_derivatives,
    load_maps,
    select_processor,
    tier_box,
    variant_jobs,
)

EXPECTED_VARIANTS = [
    "a-small.webp", "a-small.jpg",
    "a-medium.webp", "a-medium.jpg",
    "a-large.webp", "a-large.jpg",
    "a.webp", "a.jpg",
]


def test_tier_box_math() -> None:
    assert tier_box(4000, 3000, 0.25) == (1000, 750)
    assert tier_box(4000, 3000, 1.0) == (4000, 3000)


def test_variant_jobs_naming(tmp_path) -> None:
    jobs = variant_jobs(tmp_path / "plano.png", tmp_path)

    assert [scale for scale, _, _ in jobs] == [0.25, 0.5, 0.75, 1.0]
    assert [(w.name, f.name) for _, w, f in jobs] == [
        ("plano-small.webp", "plano-small.png"),
        ("plano-medium.webp", "plano-medium.png"),
        ("plano-large.webp", "plano-large.png"),
        ("plano.webp", "plano.png"),
    ]


def test_variant_jobs_unknown_extension_falls_back_to_jpeg(tmp_path) -> None:
    jobs = variant_jobs(tmp_path / "scan.tif", tmp_path)

    assert jobs[-1][2].name == "scan.jpg"


def test_single_map_end_to_end(config, write_map, make_image) -> None:
    write_map(id="map001", imageFile="a.jpg", imageWidth=800, imageHeight=600, year=1900)
    make_image("a.jpg")

    report = generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    thumb = config.thumbnails_dir / "a-thumb.jpg"
    with Image.open(thumb) as img:
        assert img.size == (800, 800)
        assert img.format == "JPEG"
    for name in EXPECTED_VARIANTS:
        assert (config.output_images_dir / name).is_file(), name

    assert (report.thumbnails.generated, report.thumbnails.skipped, report.thumbnails.errored) == (1, 0, 0)
    assert (report.variants.generated, report.variants.skipped, report.variants.errored) == (8, 0, 0)


def test_tier_dimensions_follow_record(config, write_map, make_image) -> None:
    write_map(id="map001", imageFile="a.jpg", imageWidth=800, imageHeight=600)
    make_image("a.jpg")

    generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    sizes = {}
    for name in ("a-small.webp", "a-medium.jpg", "a-large.webp", "a.jpg"):
        with Image.open(config.output_images_dir / name) as img:
            sizes[name] = img.size
    assert sizes == {
        "a-small.webp": (200, 150),
        "a-medium.jpg": (400, 300),
        "a-large.webp": (600, 450),
        "a.jpg": (800, 600),
    }


def test_tiers_never_upscale(config, write_map, make_image) -> None:
    # Record claims a larger scan than the file on disk
    write_map(id="map001", imageFile="a.jpg", imageWidth=1600, imageHeight=1200)
    make_image("a.jpg", size=(800, 600))

    generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    with Image.open(config.output_images_dir / "a.webp") as img:
        assert img.size == (800, 600)
    with Image.open(config.output_images_dir / "a-large.webp") as img:
        assert img.size == (800, 600)


def test_png_source_keeps_png_fallback(config, write_map, make_image) -> None:
    write_map(id="map002", imageFile="b.png", imageWidth=400, imageHeight=400)
    make_image("b.png", size=(400, 400), mode="RGBA")

    report = generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    with Image.open(config.output_images_dir / "b-small.png") as img:
        assert img.format == "PNG"
        assert img.mode == "RGBA"
        assert img.size == (100, 100)
    assert (config.thumbnails_dir / "b-thumb.jpg").is_file()
    assert report.variants.generated == 8


def test_second_run_skips_everything(config, write_map, make_image) -> None:
    write_map(id="map001", imageFile="a.jpg", imageWidth=800, imageHeight=600)
    make_image("a.jpg")
    maps = load_maps(config.data_dir)
    generate_derivatives(maps, config, PillowProcessor())
    before = {p: p.stat().st_mtime_ns for p in config.output_images_dir.rglob("*") if p.is_file()}

    report = generate_derivatives(maps, config, PillowProcessor())

    after = {p: p.stat().st_mtime_ns for p in config.output_images_dir.rglob("*") if p.is_file()}
    assert after == before
    assert (report.thumbnails.generated, report.thumbnails.skipped) == (0, 1)
    assert (report.variants.generated, report.variants.skipped) == (0, 8)


def test_one_stale_tier_rebuilds_the_set(config, write_map, make_image) -> None:
    write_map(id="map001", imageFile="a.jpg", imageWidth=800, imageHeight=600)
    src = make_image("a.jpg")
    maps = load_maps(config.data_dir)
    generate_derivatives(maps, config, PillowProcessor())

    mtime = src.stat().st_mtime - 100
    os.utime(config.output_images_dir / "a-medium.webp", (mtime, mtime))
    report = generate_derivatives(maps, config, PillowProcessor())

    assert report.variants.generated == 8
    assert report.thumbnails.skipped == 1


def test_force_regenerates(config, write_map, make_image) -> None:
    write_map(id="map001", imageFile="a.jpg", imageWidth=800, imageHeight=600)
    make_image("a.jpg")
    maps = load_maps(config.data_dir)
    generate_derivatives(maps, config, PillowProcessor())

    report = generate_derivatives(maps, replace(config, force=True), PillowProcessor())

    assert report.thumbnails.generated == 1
    assert report.variants.generated == 8
    assert report.variants.skipped == 0


def test_missing_source_is_isolated(config, write_map, make_image, capsys) -> None:
    write_map(id="map001", imageFile="a.jpg", imageWidth=800, imageHeight=600, year=1900)
    write_map(id="map002", imageFile="gone.jpg", imageWidth=800, imageHeight=600, year=1950)
    make_image("a.jpg")

    report = generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    assert (config.thumbnails_dir / "a-thumb.jpg").is_file()
    assert not (config.thumbnails_dir / "gone-thumb.jpg").exists()
    assert (report.thumbnails.generated, report.thumbnails.errored) == (1, 1)
    assert (report.variants.generated, report.variants.errored) == (8, 1)
    assert "✗ Source image not found" in capsys.readouterr().err


def test_record_without_image_file_is_an_error(config, write_map) -> None:
    write_map(id="map003", title="Sin imagen")

    report = generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    assert report.thumbnails.errored == 1
    assert report.variants.errored == 1


def test_corrupt_source_is_counted_and_batch_continues(config, write_map, make_image, capsys) -> None:
    write_map(id="map001", imageFile="bad.jpg", year=1800)
    write_map(id="map002", imageFile="a.jpg", imageWidth=800, imageHeight=600, year=1900)
    (config.images_dir / "bad.jpg").write_bytes(b"not an image")
    make_image("a.jpg")

    report = generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    assert report.thumbnails.errored == 1
    assert report.variants.errored == 1
    assert report.thumbnails.generated == 1
    assert report.variants.generated == 8
    assert "Error generating thumbnail for bad.jpg" in capsys.readouterr().err


def test_without_pillow_the_phase_is_a_noop(config, write_map, make_image, capsys) -> None:
    write_map(id="map001", imageFile="a.jpg", imageWidth=800, imageHeight=600)
    make_image("a.jpg")

    report = generate_derivatives(load_maps(config.data_dir), config, NullProcessor())

    assert not config.thumbnails_dir.exists()
    assert (report.thumbnails.generated, report.variants.generated) == (0, 0)
    assert "Pillow not installed" in capsys.readouterr().out


def test_summary_lines_printed(config, write_map, make_image, capsys) -> None:
    write_map(id="map001", imageFile="a.jpg", imageWidth=800, imageHeight=600)
    make_image("a.jpg")

    generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    out = capsys.readouterr().out
    assert "✓ Generated a-thumb.jpg" in out
    assert "Thumbnails: 1 generated, 0 skipped, 0 errors" in out
    assert "Responsive images: 8 generated, 0 skipped, 0 errors" in out


def test_select_processor_without_pillow(monkeypatch) -> None:
    monkeypatch.setattr(mapgallery, "Image", None)

    assert isinstance(select_processor(), NullProcessor)


def test_oversized_webp_is_capped_and_fallback_written(config, write_map, make_image) -> None:
    write_map(id="map001", imageFile="a.jpg")
    make_image("a.jpg", size=(16500, 10))

    report = generate_derivatives(load_maps(config.data_dir), config, PillowProcessor())

    with Image.open(config.output_images_dir / "a.webp") as img:
        assert img.width == WEBP_MAX_SIZE
    with Image.open(config.output_images_dir / "a.jpg") as img:
        assert img.size == (16500, 10)
    assert report.variants.errored == 0
    assert report.variants.generated == 8
