#!/usr/bin/env python3
"""
photo_manifest.py — Records produced by render_variants.py and the manifest file.

manifest.json is the only hand-off between rendering and everything downstream.
It is built once per run as an immutable Manifest value and written in one go.

Layout:
    {
      "version": 1,
      "width_policy": "strict",
      "standard_widths": [2400, 1600, 1080, 750, 640],
      "images": [
        {"slug": ..., "original_path": ..., "width": ..., "height": ...,
         "lqip": "data:image/webp;base64,...",
         "variants": [{"format": "webp", "width": 640, "path": "slug/slug-640.webp"}, ...]},
        ...
      ]
    }
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from photo_widths import STANDARD_WIDTHS, WidthPolicy, validate_widths

MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = 1


class ManifestError(ValueError):
    """manifest.json exists but cannot be used."""


@dataclass(frozen=True)
class SourceImage:
    slug: str
    path: Path
    width: int
    height: int


@dataclass(frozen=True)
class Variant:
    slug: str
    format: str
    width: int
    path: str  # relative to the output directory, POSIX separators

    def to_dict(self) -> Dict[str, Any]:
        return {"format": self.format, "width": self.width, "path": self.path}


@dataclass(frozen=True)
class ManifestEntry:
    slug: str
    original_path: str
    width: int
    height: int
    lqip: str
    variants: Tuple[Variant, ...] = ()

    def widths(self, fmt: str) -> Tuple[int, ...]:
        return tuple(v.width for v in self.variants if v.format == fmt)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "original_path": self.original_path,
            "width": self.width,
            "height": self.height,
            "lqip": self.lqip,
            "variants": [v.to_dict() for v in self.variants],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestEntry":
        slug = data["slug"]
        return cls(
            slug=slug,
            original_path=data["original_path"],
            width=int(data["width"]),
            height=int(data["height"]),
            lqip=data["lqip"],
            variants=tuple(
                Variant(slug=slug, format=v["format"], width=int(v["width"]), path=v["path"])
                for v in data.get("variants", [])
            ),
        )


@dataclass(frozen=True)
class Manifest:
    entries: Tuple[ManifestEntry, ...] = ()
    width_policy: WidthPolicy = WidthPolicy.STRICT
    standard_widths: Tuple[int, ...] = field(default=STANDARD_WIDTHS)

    @property
    def slugs(self) -> Tuple[str, ...]:
        return tuple(e.slug for e in self.entries)

    def get(self, slug: str) -> Optional[ManifestEntry]:
        for entry in self.entries:
            if entry.slug == slug:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": MANIFEST_VERSION,
            "width_policy": self.width_policy.value,
            "standard_widths": list(self.standard_widths),
            "images": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Manifest":
        if not isinstance(data, dict):
            raise ManifestError("manifest must be a JSON object")
        version = data.get("version")
        if version != MANIFEST_VERSION:
            raise ManifestError(f"unsupported manifest version: {version!r}")
        try:
            return cls(
                entries=tuple(ManifestEntry.from_dict(e) for e in data.get("images", [])),
                width_policy=WidthPolicy(data.get("width_policy", WidthPolicy.STRICT.value)),
                standard_widths=validate_widths(data.get("standard_widths", STANDARD_WIDTHS)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ManifestError(f"malformed manifest: {e}") from e


def manifest_path(output_dir: Path) -> Path:
    return Path(output_dir) / MANIFEST_NAME


def load_manifest(path: Path) -> Optional[Manifest]:
    """Read a manifest file. Returns None if it does not exist."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestError(f"{path} is not valid JSON: {e}") from e
    except OSError as e:
        raise ManifestError(f"cannot read {path}: {e}") from e
    return Manifest.from_dict(data)


def save_manifest(manifest: Manifest, path: Path) -> None:
    """Write the manifest atomically (tmp file, then rename over the target)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(manifest.to_dict(), f, indent=2)
        f.write("\n")
    tmp.replace(path)
