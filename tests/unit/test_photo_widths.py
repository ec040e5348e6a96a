import pytest

from photo_widths import (
    STANDARD_WIDTHS,
    WidthPolicy,
    best_variant_url,
    build_srcset,
    build_width_list,
    select_width,
    validate_widths,
    variant_filename,
    variant_url,
)

STRICT = WidthPolicy.STRICT
NATIVE = WidthPolicy.NATIVE


def test_standard_widths_are_strictly_decreasing():
    assert STANDARD_WIDTHS == (2400, 1600, 1080, 750, 640)
    assert validate_widths(STANDARD_WIDTHS) == STANDARD_WIDTHS


@pytest.mark.parametrize("widths", [(), (640, 750), (1080, 1080), (0,), (-5,), (1.5,)])
def test_validate_widths_rejects_bad_lists(widths):
    with pytest.raises(ValueError):
        validate_widths(widths)


@pytest.mark.parametrize("policy", [STRICT, NATIVE])
@pytest.mark.parametrize("native", [2400, 2401, 3000, 4000, 10_000])
def test_wide_photos_cap_at_largest(policy, native):
    assert select_width(native, policy) == 2400


@pytest.mark.parametrize("policy", [STRICT, NATIVE])
@pytest.mark.parametrize("native", STANDARD_WIDTHS)
def test_exact_breakpoint_returns_itself(policy, native):
    assert select_width(native, policy) == native


def test_between_breakpoints_strict_rounds_down():
    assert select_width(2048, STRICT) == 1600
    assert select_width(900, STRICT) == 750
    assert select_width(1920) == 1600


def test_between_breakpoints_native_keeps_native():
    assert select_width(2048, NATIVE) == 2048
    assert select_width(900, NATIVE) == 900


@pytest.mark.parametrize("policy", [STRICT, NATIVE])
@pytest.mark.parametrize("native", [639, 500, 20, 1, 0, -1, -2400])
def test_tiny_zero_and_negative_widths_return_smallest(policy, native):
    assert select_width(native, policy) == 640


def test_selector_accepts_policy_strings():
    assert select_width(2048, "native") == 2048
    assert select_width(2048, "strict") == 1600


def test_width_list_strict():
    assert build_width_list(2400) == [640, 750, 1080, 1600, 2400]
    assert build_width_list(4000) == [640, 750, 1080, 1600, 2400]
    assert build_width_list(2048) == [640, 750, 1080, 1600]
    assert build_width_list(800) == [640, 750]
    assert build_width_list(640) == [640]
    assert build_width_list(1080) == [640, 750, 1080]
    assert build_width_list(500) == []


def test_width_list_native():
    assert build_width_list(2048, NATIVE) == [640, 750, 1080, 1600, 2048]
    assert build_width_list(900, NATIVE) == [640, 750, 900]
    assert build_width_list(1080, NATIVE) == [640, 750, 1080]
    assert build_width_list(4000, NATIVE) == [640, 750, 1080, 1600, 2400]
    assert build_width_list(500, NATIVE) == []


@pytest.mark.parametrize("policy", [STRICT, NATIVE])
@pytest.mark.parametrize("native", range(0, 3200, 37))
def test_list_and_selector_agree(policy, native):
    widths = build_width_list(native, policy)
    assert widths == sorted(set(widths))
    for w in widths:
        assert w <= native
        assert w in STANDARD_WIDTHS or (policy is NATIVE and w == native)
    expected = widths[-1] if widths else min(STANDARD_WIDTHS)
    assert select_width(native, policy) == expected


def test_custom_width_list():
    widths = (1200, 600)
    assert build_width_list(1000, widths=widths) == [600]
    assert select_width(100, widths=widths) == 600
    assert select_width(1000, NATIVE, widths) == 1000


def test_naming_convention():
    assert variant_filename("golden-hour", 1080, "webp") == "golden-hour-1080.webp"
    assert variant_url("https://cdn.example.com/photos/golden-hour", "golden-hour", 640, "avif") == (
        "https://cdn.example.com/photos/golden-hour/golden-hour-640.avif"
    )
    assert variant_url("https://cdn/p/", "x", 750, "webp") == "https://cdn/p/x-750.webp"


def test_srcset_lists_every_width():
    srcset = build_srcset("https://cdn/p", "dune", 1200, "webp")
    assert srcset == (
        "https://cdn/p/dune-640.webp 640w, "
        "https://cdn/p/dune-750.webp 750w, "
        "https://cdn/p/dune-1080.webp 1080w"
    )
    assert build_srcset("https://cdn/p", "dune", 1200, "webp", NATIVE).endswith(
        "https://cdn/p/dune-1200.webp 1200w"
    )
    assert build_srcset("https://cdn/p", "tiny", 300, "webp") == ""


def test_best_variant_url():
    assert best_variant_url("https://cdn/p", "dune", 3000, "webp") == "https://cdn/p/dune-2400.webp"
    assert best_variant_url("https://cdn/p", "dune", 2048, "webp", NATIVE) == "https://cdn/p/dune-2048.webp"
