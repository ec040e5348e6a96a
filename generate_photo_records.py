#!/usr/bin/env python3
"""
generate_photo_records.py — Turn _processed/manifest.json into one YAML record per photo.

Each record carries what the site needs to build image URLs without looking at
the variant files: a base URL, the native size, the placeholder, and the
preselected full-size src. EXIF is read from the original when available.

Existing records are never overwritten, so hand edits (titles, tags, order)
survive re-runs.

Usage:
    python generate_photo_records.py
    python generate_photo_records.py --cdn-base https://cdn.example.com
    python generate_photo_records.py --manifest out/manifest.json --output content/photos

Environment:
    PHOTO_CDN_BASE   base URL of the bucket/CDN serving photos/{slug}/
"""
from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from PIL import ExifTags, Image

import pipeline_lock
from photo_manifest import Manifest, ManifestEntry, ManifestError, load_manifest, manifest_path
from photo_widths import best_variant_url

BASE_DIR = Path(__file__).resolve().parent
PROCESSED_DIR = BASE_DIR / "_processed"
RECORDS_DIR = BASE_DIR / "src" / "data" / "photos"

CDN_BASE_ENV = "PHOTO_CDN_BASE"
DEFAULT_CDN_BASE = "https://your-bucket.cdn.example.com"

log = logging.getLogger("generate_photo_records")


def cdn_base_from_env() -> str:
    return os.environ.get(CDN_BASE_ENV) or DEFAULT_CDN_BASE


def title_from_slug(slug: str) -> str:
    """'golden-hour' -> 'Golden Hour'."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), slug.replace("-", " "))


# ---------------------------------------------------------------------------
# EXIF
# ---------------------------------------------------------------------------

def _format_shutter(seconds: float) -> str:
    if seconds >= 1:
        return f"{seconds:g}s"
    return f"1/{round(1 / seconds)}s"


def _format_date(value: str) -> Optional[str]:
    m = re.match(r"(\d{4})[:-](\d{2})[:-](\d{2})", value.strip())
    if not m:
        return None
    return "-".join(m.groups())


def resolve_original(original_path: str, base: Optional[Path] = None) -> Path:
    """Manifest paths inside the repo are stored relative to its root."""
    path = Path(original_path)
    return path if path.is_absolute() else Path(base or BASE_DIR) / path


def extract_exif(path: Path) -> Dict[str, Any]:
    """Camera settings from the original. Anything unreadable is left out."""
    try:
        with Image.open(path) as img:
            exif = img.getexif()
            detail = exif.get_ifd(ExifTags.IFD.Exif) if exif else {}
    except (OSError, ValueError, SyntaxError) as e:
        log.debug("No EXIF for %s: %s", path, e)
        return {}

    result: Dict[str, Any] = {}
    make = str(exif.get(ExifTags.Base.Make, "") or "").strip()
    model = str(exif.get(ExifTags.Base.Model, "") or "").strip()
    if make and model:
        result["camera"] = f"{make} {model}".strip()
    elif model:
        result["camera"] = model

    try:
        lens = detail.get(ExifTags.Base.LensModel)
        if lens:
            result["lens"] = str(lens).strip()

        focal = detail.get(ExifTags.Base.FocalLength)
        if focal:
            result["focalLength"] = f"{float(focal):g}mm"

        fnumber = detail.get(ExifTags.Base.FNumber)
        if fnumber:
            result["aperture"] = f"f/{float(fnumber):g}"

        exposure = detail.get(ExifTags.Base.ExposureTime)
        if exposure and float(exposure) > 0:
            result["shutter"] = _format_shutter(float(exposure))

        iso = detail.get(ExifTags.Base.ISOSpeedRatings)
        if isinstance(iso, (tuple, list)):
            iso = iso[0] if iso else None
        if iso:
            result["iso"] = int(iso)

        taken = detail.get(ExifTags.Base.DateTimeOriginal)
        if taken:
            date = _format_date(str(taken))
            if date:
                result["date"] = date
    except (TypeError, ValueError, ZeroDivisionError) as e:
        log.debug("Partial EXIF for %s: %s", path, e)
    return result


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def build_record(entry: ManifestEntry, sort_order: int, cdn_base: str,
                 manifest: Manifest, exif: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    url = f"{cdn_base.rstrip('/')}/photos/{entry.slug}"
    record: Dict[str, Any] = {
        "title": title_from_slug(entry.slug),
        "url": url,
        "width": entry.width,
        "height": entry.height,
        "lqip": entry.lqip,
    }
    if entry.variants:
        fmt = entry.variants[0].format
        record["src"] = best_variant_url(url, entry.slug, entry.width, fmt,
                                         manifest.width_policy, manifest.standard_widths)
    record["tags"] = []
    record["sortOrder"] = sort_order
    if exif:
        record["exif"] = exif
    return record


def write_records(manifest: Manifest, records_dir: Path, cdn_base: str) -> Tuple[List[Path], List[Path]]:
    """Write {slug}.yaml for every manifest entry. Returns (created, skipped)."""
    records_dir = Path(records_dir)
    records_dir.mkdir(parents=True, exist_ok=True)
    created, skipped = [], []

    for i, entry in enumerate(manifest.entries, start=1):
        path = records_dir / f"{entry.slug}.yaml"
        if path.exists():
            log.info("  Skipping %s (already exists)", path.name)
            skipped.append(path)
            continue
        exif = extract_exif(resolve_original(entry.original_path))
        record = build_record(entry, i, cdn_base, manifest, exif)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(record, f, sort_keys=False, allow_unicode=True, width=1_000_000)
        log.info("  Created: %s", path.name)
        created.append(path)
    return created, skipped


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Generate per-photo YAML records")
    parser.add_argument("--manifest", type=Path, default=manifest_path(PROCESSED_DIR),
                        help="manifest.json written by render_variants.py")
    parser.add_argument("--output", type=Path, default=RECORDS_DIR,
                        help="Directory for {slug}.yaml records")
    parser.add_argument("--cdn-base", default=None,
                        help=f"Base URL for photos (default: ${CDN_BASE_ENV})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s  %(levelname)-7s  %(message)s")

    try:
        manifest = load_manifest(args.manifest)
    except ManifestError as e:
        log.error("%s", e)
        sys.exit(1)
    if manifest is None:
        log.error("Manifest not found: %s. Run render_variants.py first.", args.manifest)
        sys.exit(1)

    cdn_base = args.cdn_base or cdn_base_from_env()
    print(f"Generating YAML for {len(manifest.entries)} photo(s)...")

    try:
        with pipeline_lock.held(pipeline_lock.lock_path_for(args.output),
                                "generate_photo_records"):
            created, skipped = write_records(manifest, args.output, cdn_base)
    except RuntimeError as e:
        log.error("%s", e)
        sys.exit(1)

    print(f"\nDone. Created: {len(created)}, skipped (existing): {len(skipped)}")


if __name__ == "__main__":
    main()
