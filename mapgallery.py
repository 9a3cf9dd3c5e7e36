# /// script
# dependencies = ["pillow", "jinja2"]
# ///
"""
mapgallery: Build the Monterrey Viejo historical map gallery.

Usage:
    uv run --script mapgallery.py [--force] [--skip-images | --images-only]

Expects one JSON record per map in ./data/maps/ and the source scans in
./images/maps/. Outputs a static site to ./public/
"""

import argparse
import json
import shutil
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional

from jinja2 import Environment
from markupsafe import Markup

try:
    from PIL import Image, ImageFilter, ImageOps
except ImportError:
    # Without Pillow the derivative phase is a no-op (see select_processor)
    Image = None

_jinja_env = Environment(autoescape=True)
Template = _jinja_env.from_string

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

THUMB_SIZE = (800, 800)     # square cover crop for gallery cards
THUMB_QUALITY = 90
WEBP_QUALITY = 85
WEBP_MAX_SIZE = 16383     # largest edge the WebP encoder accepts
JPEG_QUALITY = 90

# (filename suffix, scale factor); the full-resolution tier has no suffix
TIERS = [
    ("-small", 0.25),
    ("-medium", 0.5),
    ("-large", 0.75),
    ("", 1.0),
]

FALLBACK_EXTENSIONS = {".jpg", ".jpeg", ".png"}

# Detail page defaults for records that leave these out (downtown Monterrey)
DEFAULT_CENTER = (25.6698, -100.3095)
DEFAULT_IMAGE_SIZE = (4000, 3000)
DEFAULT_METERS_PER_PIXEL = 2.5
DEFAULT_ZOOM = 15


@dataclass(frozen=True)
class BuildConfig:
    """Paths and mode flags for one build, resolved once from the command line."""

    root: Path = Path(".")
    force: bool = False
    skip_images: bool = False
    images_only: bool = False
    sharpen: bool = True

    @property
    def data_dir(self) -> Path:
        return self.root / "data" / "maps"

    @property
    def images_dir(self) -> Path:
        return self.root / "images" / "maps"

    @property
    def templates_dir(self) -> Path:
        return self.root / "templates"

    @property
    def public_dir(self) -> Path:
        return self.root / "public"

    @property
    def output_images_dir(self) -> Path:
        return self.public_dir / "images"

    @property
    def thumbnails_dir(self) -> Path:
        return self.output_images_dir / "thumbnails"


class MetadataError(Exception):
    """A metadata file or directory that makes the whole build unusable."""


# ---------------------------------------------------------------------------
# Step 1: Load metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MapRecord:
    id: str
    title: Optional[str] = None
    alternative_title: Optional[str] = None
    author: Optional[str] = None
    source: Optional[str] = None
    source_url: Optional[str] = None
    language: Optional[str] = None
    dimensions: Optional[str] = None
    scale: Optional[str] = None
    year: Optional[int] = None
    year_approximate: bool = False
    century: Optional[str] = None
    center_point: Optional[tuple] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    meters_per_pixel: Optional[float] = None
    rotation: Optional[float] = None
    default_zoom: Optional[int] = None
    image_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "MapRecord":
        """Build a record from the camelCase JSON layout used in data/maps/."""

        def opt(key, kind):
            value = data.get(key)
            return None if value is None else kind(value)

        def text(key):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise TypeError(f"{key} must be a string, got {value!r}")
            return value

        approximate = data.get("yearApproximate", False)
        if not isinstance(approximate, bool):
            raise TypeError(f"yearApproximate must be true or false, got {approximate!r}")

        center = data.get("centerPoint")
        if center is not None:
            if len(center) != 2:
                raise ValueError(f"centerPoint must be [lat, lng], got {center!r}")
            center = (float(center[0]), float(center[1]))

        return cls(
            id=str(data["id"]),
            title=text("title"),
            alternative_title=text("alternativeTitle"),
            author=text("author"),
            source=text("source"),
            source_url=text("sourceUrl"),
            language=text("language"),
            dimensions=text("dimensions"),
            scale=text("scale"),
            year=opt("year", int),
            year_approximate=approximate,
            century=opt("century", str),
            center_point=center,
            image_width=opt("imageWidth", int),
            image_height=opt("imageHeight", int),
            meters_per_pixel=opt("metersPerPixel", float),
            rotation=opt("rotation", float),
            default_zoom=opt("defaultZoom", int),
            image_file=text("imageFile"),
        )

    @property
    def stem(self) -> str:
        return Path(self.image_file).stem if self.image_file else self.id

    @property
    def page_name(self) -> str:
        # Pages are named after the uppercased id, e.g. S001M023.html
        return self.id.upper() + ".html"

    @property
    def thumbnail_name(self) -> str:
        return f"{self.stem}-thumb.jpg"

    def display_year(self, unknown: str) -> str:
        if self.year is not None:
            return f"c. {self.year}" if self.year_approximate else str(self.year)
        return self.century or unknown


def load_maps(data_dir: Path) -> list[MapRecord]:
    """Load every *.json record in data_dir, sorted by year with undated maps last.

    Any unreadable or malformed file aborts the load with a MetadataError naming
    the file; nothing is skipped silently.
    """
    if not data_dir.is_dir():
        raise MetadataError(f"Metadata directory not found: {data_dir}")

    try:
        files = sorted(p for p in data_dir.iterdir() if p.suffix == ".json")
    except OSError as e:
        raise MetadataError(f"Cannot read metadata directory {data_dir}: {e}") from e

    maps = []
    seen: dict[str, str] = {}
    for jf in files:
        try:
            data = json.loads(jf.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise MetadataError(f"{jf.name}: {e}") from e

        if not isinstance(data, dict):
            raise MetadataError(f"{jf.name}: expected a JSON object, got {type(data).__name__}")

        try:
            record = MapRecord.from_dict(data)
        except KeyError as e:
            raise MetadataError(f"{jf.name}: missing required field {e}") from e
        except (TypeError, ValueError) as e:
            raise MetadataError(f"{jf.name}: {e}") from e

        if record.id in seen:
            raise MetadataError(f"{jf.name}: duplicate id {record.id!r} (also in {seen[record.id]})")
        seen[record.id] = jf.name
        maps.append(record)

    # Stable sort, so maps from the same year keep filename order
    maps.sort(key=lambda m: (m.year is None, m.year or 0))
    return maps


# ---------------------------------------------------------------------------
# Step 2: Generate image derivatives
# ---------------------------------------------------------------------------

def needs_regeneration(source: Path, targets: Iterable[Path], force: bool = False) -> bool:
    """Return True if any target is missing or older than source.

    A missing source returns False; the caller reports it. Timestamps are only
    as good as the filesystem's mtime resolution.
    """
    if force:
        return True
    if not source.exists():
        return False

    source_mtime = source.stat().st_mtime
    for target in targets:
        if not target.exists() or target.stat().st_mtime < source_mtime:
            return True
    return False


def tier_box(width: int, height: int, scale: float) -> tuple[int, int]:
    """Bounding box for one tier; the image is fitted inside it, never upscaled."""
    return max(1, round(width * scale)), max(1, round(height * scale))


class Outcome(Enum):
    SKIPPED = "skipped"
    GENERATED = "generated"
    FAILED = "failed"


@dataclass
class Tally:
    generated: int = 0
    skipped: int = 0
    errored: int = 0

    def add(self, outcome: Outcome, files: int = 0):
        if outcome is Outcome.SKIPPED:
            self.skipped += files
        else:
            self.generated += files
            if outcome is Outcome.FAILED:
                self.errored += 1

    def summary(self, label: str) -> str:
        return f"{label}: {self.generated} generated, {self.skipped} skipped, {self.errored} errors"


@dataclass
class DerivativeReport:
    thumbnails: Tally = field(default_factory=Tally)
    variants: Tally = field(default_factory=Tally)


class ImageProcessor:
    """Encodes derivatives from a source scan."""

    available = True

    def make_thumbnail(self, src: Path, dst: Path, size=THUMB_SIZE, quality=THUMB_QUALITY):
        raise NotImplementedError

    def make_variants(self, src: Path, jobs, size=None, sharpen=True) -> Iterator[Path]:
        """Write every (scale, webp_dst, fallback_dst) job, yielding each path as it lands."""
        raise NotImplementedError


class PillowProcessor(ImageProcessor):

    def __init__(self):
        # Full-sheet scans are well past Pillow's decompression-bomb limit
        Image.MAX_IMAGE_PIXELS = None
        self.sharpen_filter = ImageFilter.UnsharpMask(radius=0.6, percent=60, threshold=2)

    def make_thumbnail(self, src: Path, dst: Path, size=THUMB_SIZE, quality=THUMB_QUALITY):
        """Create a square center-crop thumbnail."""
        with Image.open(src) as img:
            img = ImageOps.exif_transpose(img).convert("RGB")
            img = ImageOps.fit(img, size, Image.Resampling.LANCZOS, centering=(0.5, 0.5))
            img.save(dst, "JPEG", quality=quality)

    def make_variants(self, src: Path, jobs, size=None, sharpen=True) -> Iterator[Path]:
        with Image.open(src) as img:
            img = ImageOps.exif_transpose(img)
            has_alpha = img.mode in ("RGBA", "LA") or "transparency" in img.info
            img = img.convert("RGBA" if has_alpha else "RGB")

        width, height = size or img.size
        for scale, webp_dst, fallback_dst in jobs:
            tier = img.copy()
            tier.thumbnail(tier_box(width, height, scale), Image.Resampling.LANCZOS)
            if sharpen and tier.size != img.size:
                tier = tier.filter(self.sharpen_filter)

            webp = tier
            if max(webp.size) > WEBP_MAX_SIZE:
                webp = tier.copy()
                webp.thumbnail((WEBP_MAX_SIZE, WEBP_MAX_SIZE), Image.Resampling.LANCZOS)
            webp.save(webp_dst, "WEBP", quality=WEBP_QUALITY, method=6)
            yield webp_dst

            if fallback_dst.suffix.lower() == ".png":
                tier.save(fallback_dst, "PNG", optimize=True)
            else:
                tier.convert("RGB").save(
                    fallback_dst, "JPEG", quality=JPEG_QUALITY, optimize=True, progressive=True
                )
            yield fallback_dst


class NullProcessor(ImageProcessor):
    """Stand-in when Pillow is not installed; derivatives are built elsewhere."""

    available = False

    def make_thumbnail(self, src, dst, size=THUMB_SIZE, quality=THUMB_QUALITY):
        pass

    def make_variants(self, src, jobs, size=None, sharpen=True):
        return iter(())


def select_processor() -> ImageProcessor:
    return PillowProcessor() if Image is not None else NullProcessor()


def _fail(message: str):
    print(f"✗ {message}", file=sys.stderr)


def find_source(record: MapRecord, config: BuildConfig) -> Optional[Path]:
    """Resolve the record's source scan, reporting it if absent."""
    if not record.image_file:
        _fail(f"No imageFile for map {record.id}")
        return None
    src = config.images_dir / record.image_file
    if not src.is_file():
        _fail(f"Source image not found: {src}")
        return None
    return src


def variant_jobs(src: Path, out_dir: Path) -> list[tuple[float, Path, Path]]:
    """The tier matrix for one source: (scale, webp path, fallback path) per tier."""
    ext = src.suffix if src.suffix.lower() in FALLBACK_EXTENSIONS else ".jpg"
    return [
        (scale, out_dir / f"{src.stem}{suffix}.webp", out_dir / f"{src.stem}{suffix}{ext}")
        for suffix, scale in TIERS
    ]


def generate_thumbnail(record: MapRecord, src: Path, config: BuildConfig,
                       processor: ImageProcessor) -> tuple[Outcome, int]:
    dst = config.thumbnails_dir / record.thumbnail_name
    if not needs_regeneration(src, [dst], force=config.force):
        return Outcome.SKIPPED, 1

    try:
        processor.make_thumbnail(src, dst)
    except Exception as e:
        _fail(f"Error generating thumbnail for {record.image_file}: {e}")
        return Outcome.FAILED, 0

    print(f"✓ Generated {dst.name} ({dst.stat().st_size // 1024}KB)")
    return Outcome.GENERATED, 1


def generate_variants(record: MapRecord, src: Path, config: BuildConfig,
                      processor: ImageProcessor) -> tuple[Outcome, int]:
    jobs = variant_jobs(src, config.output_images_dir)
    targets = [path for _, webp, fallback in jobs for path in (webp, fallback)]
    # One stale file rebuilds the whole set so the tiers never mix encodes
    if not needs_regeneration(src, targets, force=config.force):
        return Outcome.SKIPPED, len(targets)

    size = None
    if record.image_width and record.image_height:
        size = (record.image_width, record.image_height)

    written = 0
    try:
        for path in processor.make_variants(src, jobs, size=size, sharpen=config.sharpen):
            written += 1
            print(f"✓ Generated {path.name}")
    except Exception as e:
        _fail(f"Error generating variants for {record.image_file}: {e}")
        return Outcome.FAILED, written

    return Outcome.GENERATED, written


def generate_derivatives(maps: list[MapRecord], config: BuildConfig,
                         processor: ImageProcessor) -> DerivativeReport:
    """Thumbnail plus tier matrix for each map, skipping outputs that are current.

    A failing map is reported and counted; the rest of the batch carries on.
    """
    report = DerivativeReport()
    if not processor.available:
        print("\n⚠ Pillow not installed - image derivatives will not be generated locally")
        print("  To generate them here: pip install pillow\n")
        return report

    config.thumbnails_dir.mkdir(parents=True, exist_ok=True)
    config.output_images_dir.mkdir(parents=True, exist_ok=True)

    w, h = THUMB_SIZE
    print(f"\nGenerating {w}x{h} thumbnails and {len(TIERS)} responsive tiers...\n")

    for record in maps:
        src = find_source(record, config)
        if src is None:
            report.thumbnails.add(Outcome.FAILED)
            report.variants.add(Outcome.FAILED)
            continue
        report.thumbnails.add(*generate_thumbnail(record, src, config, processor))
        report.variants.add(*generate_variants(record, src, config, processor))

    print()
    print(report.thumbnails.summary("Thumbnails"))
    print(report.variants.summary("Responsive images"))
    return report


# ---------------------------------------------------------------------------
# Step 3: Generate HTML
# ---------------------------------------------------------------------------

SHARED_CSS = """\
/* ── base ── */
*, *::before, *::after { box-sizing: border-box; }
body {
  margin: 0; padding: 32px 24px;
  font-family: "Inter", system-ui, -apple-system, sans-serif;
  font-size: 16px; line-height: 1.6;
  background: #f6f1e7; color: #2b2620;
}
a { color: #8a4b1c; text-decoration: none; }
a:hover { text-decoration: underline; }
h1 { font-family: Georgia, serif; font-size: 2em; font-weight: 500; margin: 0 0 4px; }
.subtitle { color: #7a6f62; margin: 0 0 32px; }

/* ── gallery ── */
.map-grid {
  display: grid; gap: 24px;
  grid-template-columns: repeat(auto-fill, minmax(260px, 1fr));
}
.map-card { display: block; color: inherit; }
.map-card:hover { text-decoration: none; }
.map-card-image { aspect-ratio: 1; overflow: hidden; border-radius: 4px; background: #e4dccd; }
.map-card-image img {
  width: 100%; height: 100%; object-fit: cover; display: block;
  transition: transform 0.3s ease;
}
.map-card:hover .map-card-image img { transform: scale(1.04); }
.map-card h3 { font-size: 1em; font-weight: 500; margin: 10px 0 0; }
.map-card-year { color: #7a6f62; font-size: 0.9em; margin: 0; }

/* ── map page ── */
.map-page { max-width: 1200px; margin: 0 auto; }
.nav { margin-bottom: 20px; font-size: 0.9em; }
.date { color: #7a6f62; margin: 0 0 20px; }
.map-view { height: 70vh; border-radius: 4px; margin-bottom: 8px; }
.opacity-control { font-size: 0.85em; color: #7a6f62; margin-bottom: 24px; }
.media { margin: 0 0 24px; }
.media img { max-width: 100%; height: auto; display: block; border-radius: 4px; }
.media figcaption { font-size: 0.85em; color: #7a6f62; margin-top: 6px; }
.metadata { border-collapse: collapse; width: 100%; font-size: 0.92em; }
.metadata td { padding: 8px 12px; border-bottom: 1px solid #e4dccd; vertical-align: top; }
.metadata td:first-child { color: #7a6f62; width: 220px; }

@media (max-width: 640px) {
  body { padding: 16px; }
  .map-grid { grid-template-columns: repeat(auto-fill, minmax(150px, 1fr)); gap: 12px; }
  .metadata td:first-child { width: auto; }
}
"""

GALLERY_TEMPLATE = Template("""\
<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Monterrey Viejo — Mapas históricos</title>
<link rel="stylesheet" href="assets/style.css">
</head>
<body>
<h1>Monterrey Viejo</h1>
<p class="subtitle">{{ maps_count }} mapas históricos de Monterrey</p>
<main class="map-grid">
{% for map in maps %}            <a href="{{ map.page_name }}" class="map-card">
                <div class="map-card-image">
                    {% if map.image_file %}<img src="images/thumbnails/{{ map.thumbnail_name }}" alt="{{ map.title or 'Mapa' }}" loading="lazy">{% endif %}
                </div>
                <div>
                    <h3>{{ map.title or 'Sin título' }}</h3>
                    <p class="map-card-year">{{ map.display_year('s/f') }}</p>
                </div>
            </a>
{% endfor %}</main>
</body>
</html>
""")

DETAIL_TEMPLATE = Template("""\
<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ title }} — Monterrey Viejo</title>
<meta name="description" content="{{ description }}">
<link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
<link rel="stylesheet" href="assets/style.css">
</head>
<body class="map-page">
<div class="nav"><a href="index.html">&larr; todos los mapas</a></div>

<h1>{{ title }}</h1>
<p class="date">{{ year_display }} &middot; {{ author }}</p>

<div id="map" class="map-view"></div>
<div class="opacity-control">
  <label for="opacity">Opacidad del mapa</label>
  <input type="range" id="opacity" min="0" max="100" value="80">
</div>

<figure class="media">
  {% if image_file %}<picture>
    {% if srcset %}<source type="image/webp" srcset="{{ srcset }}" sizes="(max-width: 1200px) 100vw, 1200px">{% endif %}
    <img src="{{ image_file }}" alt="{{ title }}" width="{{ image_width }}" height="{{ image_height }}" loading="lazy">
  </picture>{% endif %}
  <figcaption>Fuente: <a href="{{ source_url }}" target="_blank">{{ source }}</a></figcaption>
</figure>

<table class="metadata">
    <tbody>
{% for label, value in metadata_rows %}                            <tr>
                                <td>{{ label }}</td>
                                <td>{{ value }}</td>
                            </tr>
{% endfor %}    </tbody>
</table>

<script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
<script>
const MAP = {{ map_config|tojson }};
(function() {
  // Place the scan on the basemap from its center and ground resolution
  var metersPerDegree = 111320;
  var halfLat = MAP.imageHeight * MAP.metersPerPixel / 2 / metersPerDegree;
  var halfLng = MAP.imageWidth * MAP.metersPerPixel / 2 /
    (metersPerDegree * Math.cos(MAP.center[0] * Math.PI / 180));
  var bounds = [
    [MAP.center[0] - halfLat, MAP.center[1] - halfLng],
    [MAP.center[0] + halfLat, MAP.center[1] + halfLng]
  ];

  var map = L.map('map').setView(MAP.center, MAP.defaultZoom);
  L.tileLayer('https://tile.openstreetmap.org/{z}/{x}/{y}.png', {
    maxZoom: 19,
    attribution: '&copy; OpenStreetMap'
  }).addTo(map);

  if (!MAP.image) { return; }
  var overlay = L.imageOverlay(MAP.image, bounds, {opacity: 0.8}).addTo(map);
  var el = overlay.getElement();
  if (el && MAP.rotation) { el.style.rotate = MAP.rotation + 'deg'; }

  var slider = document.getElementById('opacity');
  slider.addEventListener('input', function() {
    overlay.setOpacity(slider.value / 100);
  });
})();
</script>
</body>
</html>
""")


def load_template(config: BuildConfig, name: str, default):
    """Use templates/<name> from the project when present, else the built-in."""
    override = config.templates_dir / name
    if override.is_file():
        return Template(override.read_text(encoding="utf-8"))
    return default


def _num(value) -> str:
    return f"{value:g}"


def metadata_rows(record: MapRecord) -> list[tuple[str, str]]:
    """Label/value rows for the detail table, only for fields the record has."""
    rows = []

    if record.title:
        rows.append(("Título", record.title))
    if record.author:
        rows.append(("Autor(es)", record.author))

    if record.year is not None or record.century:
        rows.append(("Año / Siglo", record.display_year("")))

    if record.source and record.source_url:
        link = Markup('<a href="{}" target="_blank">{}</a>').format(record.source_url, record.source)
        rows.append(("Fuente", link))
    elif record.source:
        rows.append(("Fuente", record.source))

    if record.scale:
        rows.append(("Escala", record.scale))
    if record.language:
        rows.append(("Idioma", record.language))
    if record.dimensions:
        rows.append(("Dimensiones", record.dimensions))

    if record.center_point:
        lat, lng = record.center_point
        rows.append(("Punto Central", f"[{lat:.6f}, {lng:.6f}]"))

    if record.image_width and record.image_height:
        rows.append(("Tamaño de Imagen", f"{record.image_width} × {record.image_height} píxeles"))

    if record.meters_per_pixel:
        rows.append(("Escala Digital", f"{_num(record.meters_per_pixel)} metros/píxel"))

    if record.rotation is not None:
        north_up = " (norte arriba)" if record.rotation == 0 else ""
        rows.append(("Rotación", f"{_num(record.rotation)}°{north_up}"))

    return rows


def responsive_srcset(record: MapRecord) -> str:
    """srcset over the WebP tier matrix, with widths taken from the record."""
    if not record.image_file:
        return ""
    width = record.image_width or DEFAULT_IMAGE_SIZE[0]
    height = record.image_height or DEFAULT_IMAGE_SIZE[1]
    entries = []
    for suffix, scale in TIERS:
        tier_width, _ = tier_box(width, height, scale)
        entries.append(f"images/{record.stem}{suffix}.webp {tier_width}w")
    return ", ".join(entries)


def detail_context(record: MapRecord) -> dict:
    lat, lng = record.center_point or DEFAULT_CENTER
    width = record.image_width or DEFAULT_IMAGE_SIZE[0]
    height = record.image_height or DEFAULT_IMAGE_SIZE[1]
    image_path = f"images/{record.image_file}" if record.image_file else ""

    return {
        "title": record.title or "Sin título",
        "description": record.alternative_title or record.title or "",
        "year_display": record.display_year("Fecha desconocida"),
        "author": record.author or "Autor desconocido",
        "source": record.source or "Fuente desconocida",
        "source_url": record.source_url or "#",
        "image_file": image_path,
        "image_width": width,
        "image_height": height,
        "srcset": responsive_srcset(record),
        "metadata_rows": metadata_rows(record),
        "map_config": {
            "year": record.year,
            "center": [lat, lng],
            "imageWidth": width,
            "imageHeight": height,
            "metersPerPixel": record.meters_per_pixel or DEFAULT_METERS_PER_PIXEL,
            "rotation": record.rotation or 0,
            "defaultZoom": record.default_zoom or DEFAULT_ZOOM,
            "image": image_path,
        },
    }


def write_assets(config: BuildConfig):
    assets_dir = config.public_dir / "assets"
    assets_dir.mkdir(parents=True, exist_ok=True)
    (assets_dir / "style.css").write_text(SHARED_CSS, encoding="utf-8")
    print("✓ Wrote assets/style.css")


def render_gallery(maps: list[MapRecord], config: BuildConfig):
    template = load_template(config, "gallery.html", GALLERY_TEMPLATE)
    html = template.render(maps=maps, maps_count=len(maps))
    (config.public_dir / "index.html").write_text(html, encoding="utf-8")
    print("✓ Generated index.html (gallery)")


def render_detail_pages(maps: list[MapRecord], config: BuildConfig):
    template = load_template(config, "map-detail.html", DETAIL_TEMPLATE)
    for record in maps:
        html = template.render(**detail_context(record))
        (config.public_dir / record.page_name).write_text(html, encoding="utf-8")
        print(f"✓ Generated {record.page_name}")


# ---------------------------------------------------------------------------
# Step 4: Copy originals
# ---------------------------------------------------------------------------

def copy_images(config: BuildConfig) -> int:
    """Copy the source scans into public/images, leaving current copies alone.

    A full-resolution tier written under the same name is newer than its
    source, so it is kept rather than overwritten by the original.
    """
    src_dir = config.images_dir
    dst_dir = config.output_images_dir
    if not src_dir.is_dir():
        print(f"⚠ Images directory not found: {src_dir}")
        return 0

    dst_dir.mkdir(parents=True, exist_ok=True)
    copied = 0
    for src in sorted(src_dir.iterdir()):
        if not src.is_file():
            continue
        dst = dst_dir / src.name
        if not needs_regeneration(src, [dst]):
            continue
        shutil.copy2(src, dst)
        print(f"✓ Copied {src.name}")
        copied += 1
    return copied


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def parse_args(argv=None) -> BuildConfig:
    parser = argparse.ArgumentParser(description="Build the Monterrey Viejo map gallery.")
    parser.add_argument("-f", "--force", action="store_true",
                        help="regenerate every image derivative regardless of timestamps")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--skip-images", action="store_true",
                      help="only generate HTML and copy images")
    mode.add_argument("--images-only", action="store_true",
                      help="only generate image derivatives")
    parser.add_argument("--root", type=Path, default=Path("."),
                        help="project root holding data/, images/ and public/")
    parser.add_argument("--no-sharpen", dest="sharpen", action="store_false",
                        help="skip the sharpening pass on downscaled tiers")
    args = parser.parse_args(argv)
    return BuildConfig(
        root=args.root,
        force=args.force,
        skip_images=args.skip_images,
        images_only=args.images_only,
        sharpen=args.sharpen,
    )


def build(config: BuildConfig, processor: Optional[ImageProcessor] = None) -> Optional[DerivativeReport]:
    print("Building Monterrey Viejo site...\n")

    print("Step 1: Loading metadata...")
    maps = load_maps(config.data_dir)
    print(f"  Loaded {len(maps)} maps")
    config.public_dir.mkdir(parents=True, exist_ok=True)

    report = None
    if config.skip_images:
        print("\nStep 2: Skipping image derivatives (--skip-images)")
    else:
        print("\nStep 2: Generating image derivatives...")
        report = generate_derivatives(maps, config, processor or select_processor())

    if config.images_only:
        print("\nSteps 3-4: Skipping pages and image copy (--images-only)")
    else:
        print("\nStep 3: Generating pages...")
        write_assets(config)
        render_gallery(maps, config)
        render_detail_pages(maps, config)

        print("\nStep 4: Copying images...")
        copied = copy_images(config)
        print(f"  Copied {copied} images")

    print("\n✅ Build complete!")
    print(f"Generated files in: {config.public_dir}")
    return report


def main(argv=None) -> int:
    config = parse_args(argv)
    try:
        build(config)
    except (MetadataError, OSError) as e:
        print(f"Build failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
