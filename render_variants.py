#!/usr/bin/env python3
"""
render_variants.py — Renders responsive width variants and an LQIP for every photo.

Reads originals from _raw/, writes _processed/{slug}/{slug}-{width}.{format}
for each standard width that fits the photo (never upscaled), and one
manifest.json describing everything that was produced.

Photos are processed one at a time. The manifest is written once, at the end
of the run; a crash part-way through leaves the previous manifest in place.

Usage:
    python render_variants.py                            # _raw/ -> _processed/
    python render_variants.py --input photos --output out
    python render_variants.py --formats webp jpg         # choose encodings
    python render_variants.py --width-policy native      # also render the native width
    python render_variants.py --keep-going               # skip broken photos, keep the rest (exit 2)
    python render_variants.py --keep-orphans             # leave output of removed photos
"""
from __future__ import annotations

import argparse
import base64
import io
import logging
import re
import shutil
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageOps, features

import pipeline_lock
from photo_manifest import (
    Manifest,
    ManifestEntry,
    ManifestError,
    SourceImage,
    Variant,
    load_manifest,
    manifest_path,
    save_manifest,
)
from photo_widths import (
    STANDARD_WIDTHS,
    WidthPolicy,
    build_width_list,
    validate_widths,
    variant_filename,
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parent
RAW_DIR = BASE_DIR / "_raw"
PROCESSED_DIR = BASE_DIR / "_processed"

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".tiff", ".tif", ".webp"}

LQIP_WIDTH = 20
LQIP_QUALITY = 20

# Used when the file header carries no usable size
DEFAULT_WIDTH = 2400
DEFAULT_HEIGHT = 1600

# Exit status when --keep-going wrote a manifest but some photos failed
PARTIAL_EXIT_CODE = 2

log = logging.getLogger("render_variants")


@dataclass(frozen=True)
class FormatConfig:
    name: str  # file extension and manifest "format" value
    pil_format: str
    save_options: dict = field(default_factory=dict)


FORMAT_SETTINGS = {
    "webp": FormatConfig("webp", "WEBP", {"quality": 82, "method": 6}),
    "avif": FormatConfig("avif", "AVIF", {"quality": 72, "speed": 4}),
    "jpg": FormatConfig("jpg", "JPEG", {"quality": 82, "optimize": True,
                                        "progressive": True}),
}

DEFAULT_FORMATS = ("webp", "avif")


class RenderError(RuntimeError):
    """Base class for errors that stop a render run."""


class SourceDirectoryError(RenderError):
    """Input directory is missing or holds no supported photos."""


class SlugCollisionError(RenderError):
    """Two source files map to the same output slug."""


class ImageProcessingError(RenderError):
    """Decoding, resizing or encoding one photo failed."""

    def __init__(self, path: Path, cause: BaseException):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"{self.path.name}: {cause}")


@dataclass(frozen=True)
class RenderConfig:
    input_dir: Path = RAW_DIR
    output_dir: Path = PROCESSED_DIR
    formats: Tuple[str, ...] = DEFAULT_FORMATS
    width_policy: WidthPolicy = WidthPolicy.STRICT
    widths: Tuple[int, ...] = STANDARD_WIDTHS
    keep_going: bool = False
    prune: bool = True

    def __post_init__(self):
        object.__setattr__(self, "input_dir", Path(self.input_dir))
        object.__setattr__(self, "output_dir", Path(self.output_dir))
        object.__setattr__(self, "width_policy", WidthPolicy(self.width_policy))
        object.__setattr__(self, "widths", validate_widths(self.widths))
        formats = tuple(self.formats)
        if not formats:
            raise RenderError("at least one output format is required")
        if len(set(formats)) != len(formats):
            raise RenderError(f"duplicate output formats: {list(formats)}")
        for fmt in formats:
            if fmt not in FORMAT_SETTINGS:
                raise RenderError(
                    f"unknown format {fmt!r} (choose from {', '.join(FORMAT_SETTINGS)})")
        if "avif" in formats and not features.check("avif"):
            raise RenderError("this Pillow build cannot write AVIF; use --formats webp jpg")
        object.__setattr__(self, "formats", formats)


@dataclass(frozen=True)
class RunResult:
    manifest: Manifest
    failures: Tuple[Tuple[str, str], ...] = ()  # (file name, error)
    removed: Tuple[Path, ...] = ()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def slugify(filename: str) -> str:
    """'Golden Hour.JPG' -> 'golden-hour'."""
    return re.sub(r"\s+", "-", Path(filename).stem.lower())


def collect_sources(input_dir: Path) -> List[Path]:
    """Return every supported photo directly inside input_dir, sorted by name."""
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise SourceDirectoryError(
            f"Raw directory not found: {input_dir}. "
            f"Create it and place your photos there.")
    return sorted(
        (p for p in input_dir.iterdir()
         if p.is_file() and not p.name.startswith(".")
         and p.suffix.lower() in SUPPORTED_EXTENSIONS),
        key=lambda p: p.name,
    )


def check_slug_collisions(sources: Sequence[Path]) -> Dict[str, Path]:
    """Map slug -> source. Raises SlugCollisionError if two files share a slug."""
    by_slug = defaultdict(list)
    for path in sources:
        by_slug[slugify(path.name)].append(path)
    clashes = {slug: paths for slug, paths in by_slug.items() if len(paths) > 1}
    if clashes:
        detail = "; ".join(
            f"{slug}: {', '.join(p.name for p in paths)}"
            for slug, paths in sorted(clashes.items()))
        raise SlugCollisionError(f"source files share an output slug ({detail})")
    return {slug: paths[0] for slug, paths in by_slug.items()}


def decode_image(path: Path) -> Image.Image:
    img = Image.open(path)
    img = ImageOps.exif_transpose(img)
    img.load()
    return img.convert("RGB")


def read_dimensions(img: Image.Image) -> Tuple[int, int]:
    w, h = img.size
    if not w or not h:
        log.warning("  no usable dimensions, assuming %dx%d", DEFAULT_WIDTH, DEFAULT_HEIGHT)
        return DEFAULT_WIDTH, DEFAULT_HEIGHT
    return w, h


def resize_to_width(img: Image.Image, width: int) -> Image.Image:
    """Scale to width keeping the aspect ratio. Never enlarges."""
    w, h = img.size
    if width >= w:
        return img.copy()
    height = min(h, max(1, round(h * width / w)))
    return img.resize((width, height), Image.LANCZOS)


def make_lqip(img: Image.Image) -> str:
    """Tiny, heavily compressed WebP as a data URI."""
    small = resize_to_width(img, LQIP_WIDTH)
    buf = io.BytesIO()
    small.save(buf, format="WEBP", quality=LQIP_QUALITY)
    return "data:image/webp;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def render_variant(img: Image.Image, slug: str, width: int, fmt: FormatConfig,
                   output_dir: Path) -> Variant:
    """Encode one width/format and write it to {output_dir}/{slug}/."""
    filename = variant_filename(slug, width, fmt.name)
    slug_dir = Path(output_dir) / slug
    slug_dir.mkdir(parents=True, exist_ok=True)
    resize_to_width(img, width).save(slug_dir / filename, format=fmt.pil_format,
                                     **fmt.save_options)
    return Variant(slug=slug, format=fmt.name, width=width, path=f"{slug}/{filename}")


def portable_path(path: Path, base: Optional[Path] = None) -> str:
    """POSIX path relative to the repo root when the file lives inside it."""
    path = Path(path).resolve()
    try:
        return path.relative_to(Path(base or BASE_DIR).resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def generate(source: Path, config: RenderConfig) -> ManifestEntry:
    """Render the placeholder and all variants for one photo."""
    source = Path(source)
    slug = slugify(source.name)
    try:
        with decode_image(source) as img:
            width, height = read_dimensions(img)
            photo = SourceImage(slug=slug, path=source, width=width, height=height)
            log.info("Processing: %s (%dx%d)", source.name, width, height)

            lqip = make_lqip(img)
            log.debug("  LQIP generated (%d chars)", len(lqip))

            target_widths = build_width_list(photo.width, config.width_policy, config.widths)
            if not target_widths:
                log.warning("  %s is narrower than %dpx, only the placeholder is produced",
                            source.name, min(config.widths))

            variants = []
            for fmt_name in config.formats:
                fmt = FORMAT_SETTINGS[fmt_name]
                for target in target_widths:
                    variant = render_variant(img, slug, target, fmt, config.output_dir)
                    variants.append(variant)
                    log.debug("  Generated: %s", Path(variant.path).name)
    except Exception as e:
        raise ImageProcessingError(source, e) from e

    log.info("  %d variant(s) for %s", len(variants), slug)
    return ManifestEntry(
        slug=photo.slug,
        original_path=portable_path(photo.path),
        width=photo.width,
        height=photo.height,
        lqip=lqip,
        variants=tuple(variants),
    )


def _inside(directory: Path, candidate: Path) -> bool:
    return candidate.resolve().parent == directory.resolve()


def prune_orphans(output_dir: Path, previous: Optional[Manifest], manifest: Manifest,
                  live_slugs: Sequence[str] = ()) -> List[Path]:
    """Delete output that the new manifest no longer describes.

    Slug directories listed in the previous manifest whose source is gone are
    removed. Inside directories of freshly rendered photos, variant files that
    were not produced this run are removed. Returns the deleted paths.
    """
    output_dir = Path(output_dir)
    removed = []
    keep = set(manifest.slugs) | set(live_slugs)

    if previous is not None:
        for slug in previous.slugs:
            slug_dir = output_dir / slug
            if slug in keep or not slug or not _inside(output_dir, slug_dir):
                continue
            if slug_dir.is_dir():
                shutil.rmtree(slug_dir)
                removed.append(slug_dir)
                log.info("Pruned orphaned output: %s/", slug)

    extensions = {f".{name}" for name in FORMAT_SETTINGS}
    for entry in manifest.entries:
        slug_dir = output_dir / entry.slug
        if not slug_dir.is_dir():
            continue
        expected = {Path(v.path).name for v in entry.variants}
        for path in sorted(slug_dir.iterdir()):
            if path.is_file() and path.suffix in extensions and path.name not in expected:
                path.unlink()
                removed.append(path)
                log.info("Pruned stale variant: %s/%s", entry.slug, path.name)
    return removed


def _load_previous(path: Path) -> Optional[Manifest]:
    try:
        return load_manifest(path)
    except ManifestError as e:
        log.warning("Ignoring previous manifest: %s", e)
        return None


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def run(config: RenderConfig) -> RunResult:
    """Render every photo in config.input_dir and write the manifest.

    Without keep_going, the first failing photo aborts the run and no manifest
    is written.
    """
    sources = collect_sources(config.input_dir)
    if not sources:
        raise SourceDirectoryError(f"No images found in {config.input_dir}")
    slugs = check_slug_collisions(sources)
    log.info("Found %d image(s) to process.", len(sources))

    target = manifest_path(config.output_dir)
    config.output_dir.mkdir(parents=True, exist_ok=True)

    with pipeline_lock.held(pipeline_lock.lock_path_for(config.output_dir),
                            "render_variants"):
        previous = _load_previous(target)
        entries = []
        failures = []
        for source in sources:
            try:
                entries.append(generate(source, config))
            except ImageProcessingError as e:
                if not config.keep_going:
                    raise
                log.error("FAIL  %s", e)
                failures.append((source.name, str(e.cause)))

        manifest = Manifest(
            entries=tuple(entries),
            width_policy=config.width_policy,
            standard_widths=config.widths,
        )
        save_manifest(manifest, target)
        log.info("Manifest written to %s", target)

        removed = []
        if config.prune:
            removed = prune_orphans(config.output_dir, previous, manifest,
                                    live_slugs=list(slugs))

    return RunResult(manifest=manifest, failures=tuple(failures), removed=tuple(removed))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render responsive photo variants")
    parser.add_argument("--input", type=Path, default=RAW_DIR,
                        help=f"Directory of original photos (default: {RAW_DIR.name}/)")
    parser.add_argument("--output", type=Path, default=PROCESSED_DIR,
                        help=f"Output directory (default: {PROCESSED_DIR.name}/)")
    parser.add_argument("--formats", nargs="+", choices=sorted(FORMAT_SETTINGS),
                        default=list(DEFAULT_FORMATS),
                        help="Output encodings (default: %(default)s)")
    parser.add_argument("--width-policy", choices=[p.value for p in WidthPolicy],
                        default=WidthPolicy.STRICT.value,
                        help="strict: standard widths only; native: also the native "
                             "width when it falls between breakpoints")
    parser.add_argument("--keep-going", action="store_true",
                        help="Skip photos that fail and write a manifest for the rest")
    parser.add_argument("--keep-orphans", action="store_true",
                        help="Do not delete output of photos that were removed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Warnings only")
    return parser


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s  %(levelname)-7s  %(message)s")


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    try:
        config = RenderConfig(
            input_dir=args.input,
            output_dir=args.output,
            formats=tuple(args.formats),
            width_policy=WidthPolicy(args.width_policy),
            keep_going=args.keep_going,
            prune=not args.keep_orphans,
        )
        result = run(config)
    except RenderError as e:
        log.error("Image processing failed: %s", e)
        sys.exit(1)
    except RuntimeError as e:  # lock held by another process
        log.error("%s", e)
        sys.exit(1)

    done = len(result.manifest.entries)
    variants = sum(len(e.variants) for e in result.manifest.entries)
    print(f"\nProcessed {done} image(s), {variants} variant file(s).")
    if result.removed:
        print(f"  Pruned: {len(result.removed)} stale path(s)")
    if result.failures:
        print(f"  {done} succeeded, {len(result.failures)} failed:")
        for name, error in result.failures:
            print(f"    {name}: {error}")
        sys.exit(PARTIAL_EXIT_CODE)


if __name__ == "__main__":
    main()
