#!/usr/bin/env python3
"""
photo_widths.py — Standard breakpoint widths and the rule that picks among them.

Shared by render_variants.py (which widths to encode) and by anything that
builds image URLs (which width to request). Both sides go through
build_width_list(), so a variant is only ever requested if it was rendered.

Variant files are always named {slug}-{width}.{format}.
"""
from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Sequence

# Descending. Largest first, smallest last.
STANDARD_WIDTHS = (2400, 1600, 1080, 750, 640)


class WidthPolicy(str, Enum):
    """How a native width that falls between two breakpoints is handled.

    STRICT rounds down to the breakpoint below. NATIVE keeps the native width
    itself as an extra variant (the generator renders it too).
    """

    STRICT = "strict"
    NATIVE = "native"


def validate_widths(widths: Iterable[int]) -> tuple:
    """Return widths as a tuple, or raise ValueError if they break the contract."""
    widths = tuple(widths)
    if not widths:
        raise ValueError("width list must not be empty")
    for w in widths:
        if isinstance(w, bool) or not isinstance(w, int) or w <= 0:
            raise ValueError(f"widths must be positive integers, got {w!r}")
    for larger, smaller in zip(widths, widths[1:]):
        if smaller >= larger:
            raise ValueError(f"widths must be strictly decreasing: {list(widths)}")
    return widths


def build_width_list(native_width, policy: WidthPolicy = WidthPolicy.STRICT,
                     widths: Sequence[int] = STANDARD_WIDTHS) -> List[int]:
    """Every width that should exist for a photo of this native width, ascending.

    Empty when the photo is narrower than the smallest breakpoint.
    """
    policy = WidthPolicy(policy)
    below = sorted(w for w in widths if w <= native_width)
    if policy is WidthPolicy.NATIVE and _between_breakpoints(native_width, widths):
        below.append(native_width)
    return below


def select_width(native_width, policy: WidthPolicy = WidthPolicy.STRICT,
                 widths: Sequence[int] = STANDARD_WIDTHS) -> int:
    """The single width to request for a photo of this native width.

    Falls back to the smallest breakpoint for tiny, zero or negative widths.
    """
    candidates = build_width_list(native_width, policy, widths)
    if candidates:
        return candidates[-1]
    return min(widths)


def _between_breakpoints(native_width, widths: Sequence[int]) -> bool:
    return min(widths) < native_width < max(widths) and native_width not in widths


# ---------------------------------------------------------------------------
# Naming convention
# ---------------------------------------------------------------------------

def variant_filename(slug: str, width: int, fmt: str) -> str:
    return f"{slug}-{width}.{fmt}"


def variant_url(base_url: str, slug: str, width: int, fmt: str) -> str:
    return f"{base_url.rstrip('/')}/{variant_filename(slug, width, fmt)}"


def build_srcset(base_url: str, slug: str, native_width, fmt: str,
                 policy: WidthPolicy = WidthPolicy.STRICT,
                 widths: Sequence[int] = STANDARD_WIDTHS) -> str:
    """srcset attribute value covering every rendered width, e.g. 'a-640.webp 640w, ...'."""
    return ", ".join(
        f"{variant_url(base_url, slug, w, fmt)} {w}w"
        for w in build_width_list(native_width, policy, widths)
    )


def best_variant_url(base_url: str, slug: str, native_width, fmt: str,
                     policy: WidthPolicy = WidthPolicy.STRICT,
                     widths: Sequence[int] = STANDARD_WIDTHS) -> str:
    """URL of the largest rendered variant, for lightbox / full-size links."""
    return variant_url(base_url, slug, select_width(native_width, policy, widths), fmt)
