import json

import pytest

from photo_manifest import (
    Manifest,
    ManifestEntry,
    ManifestError,
    Variant,
    load_manifest,
    manifest_path,
    save_manifest,
)
from photo_widths import WidthPolicy


def _entry(slug="harbor", widths=(640, 750)):
    return ManifestEntry(
        slug=slug,
        original_path=f"_raw/{slug}.jpg",
        width=900,
        height=600,
        lqip="data:image/webp;base64,AAAA",
        variants=tuple(
            Variant(slug=slug, format="webp", width=w, path=f"{slug}/{slug}-{w}.webp")
            for w in widths
        ),
    )


def test_entry_serializes_in_documented_shape():
    data = _entry().to_dict()
    assert list(data) == ["slug", "original_path", "width", "height", "lqip", "variants"]
    assert data["variants"][0] == {"format": "webp", "width": 640, "path": "harbor/harbor-640.webp"}


def test_save_and_load(tmp_path):
    manifest = Manifest(entries=(_entry("a"), _entry("b", (640,))),
                        width_policy=WidthPolicy.NATIVE)
    path = manifest_path(tmp_path)
    save_manifest(manifest, path)

    assert path.name == "manifest.json"
    assert not path.with_suffix(".tmp").exists()
    raw = json.loads(path.read_text())
    assert raw["version"] == 1
    assert raw["width_policy"] == "native"
    assert raw["standard_widths"] == [2400, 1600, 1080, 750, 640]
    assert [i["slug"] for i in raw["images"]] == ["a", "b"]

    assert load_manifest(path) == manifest


def test_entry_lookup_and_widths():
    manifest = Manifest(entries=(_entry("a"),))
    assert manifest.slugs == ("a",)
    assert manifest.get("a").widths("webp") == (640, 750)
    assert manifest.get("a").widths("avif") == ()
    assert manifest.get("missing") is None


def test_missing_manifest_is_none(tmp_path):
    assert load_manifest(tmp_path / "manifest.json") is None


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text("{not json")
    with pytest.raises(ManifestError):
        load_manifest(path)


def test_undecodable_manifest_raises(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(ManifestError, match="not valid JSON"):
        load_manifest(path)


def test_unreadable_manifest_raises(tmp_path):
    path = tmp_path / "manifest.json"
    path.mkdir()
    with pytest.raises(ManifestError, match="cannot read"):
        load_manifest(path)


@pytest.mark.parametrize("payload", [
    [],
    {"version": 2, "images": []},
    {"version": 1, "images": [{"slug": "x"}]},
    {"version": 1, "width_policy": "loose", "images": []},
    {"version": 1, "standard_widths": [640, 2400], "images": []},
])
def test_unusable_manifest_raises(tmp_path, payload):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps(payload))
    with pytest.raises(ManifestError):
        load_manifest(path)


def test_manifest_is_immutable():
    manifest = Manifest(entries=(_entry(),))
    with pytest.raises(AttributeError):
        manifest.entries = ()
