import sys
from pathlib import Path

import pytest
from PIL import Image, features

# Ensure project root is on sys.path so the top-level scripts are importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture()
def make_photo():
    """Factory writing a synthetic photo: make_photo(directory, name, width, height)."""

    def _make(directory: Path, name: str, width: int, height: int,
              color=(180, 120, 60), exif=None) -> Path:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        img = Image.new("RGB", (width, height), color)
        # a bit of structure so encoders have something to chew on
        img.paste((30, 60, 90), (0, 0, max(1, width // 3), max(1, height // 3)))
        options = {"exif": exif} if exif is not None else {}
        img.save(path, **options)
        return path

    return _make


@pytest.fixture(scope="session")
def output_formats() -> tuple:
    """Modern + fallback encodings this Pillow build can write."""
    if features.check("avif"):
        return ("webp", "avif")
    return ("webp", "jpg")
