#!/usr/bin/env python3
"""
photo_pipeline.py — Top-level orchestrator for the photo pipeline.

Runs all phases in sequence: render variants -> generate content records.
Each phase is a separate script run with the current interpreter.

Usage:
    python photo_pipeline.py                    # Run all phases
    python photo_pipeline.py --phase render     # Only render variants
    python photo_pipeline.py --phase records    # Only generate YAML records
    python photo_pipeline.py --input photos     # Render from another directory
    python photo_pipeline.py --keep-going       # Skip broken photos, continue with the rest
    python photo_pipeline.py --status           # Show pipeline status
"""
from __future__ import annotations

import argparse
import subprocess
import sys
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pipeline_lock
from photo_manifest import ManifestError, load_manifest, manifest_path
from render_variants import PARTIAL_EXIT_CODE

BASE_DIR = Path(__file__).resolve().parent
RAW_DIR = BASE_DIR / "_raw"
PROCESSED_DIR = BASE_DIR / "_processed"

PHASES = ["render", "records"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def run_script(script: str, args: list, description: str) -> int:
    """Run a Python script as a subprocess. Returns its exit status."""
    cmd = [sys.executable, str(BASE_DIR / script)] + args
    print(f"\n{'='*60}")
    print(f"  {description}")
    print(f"  Command: {' '.join(cmd)}")
    print(f"{'='*60}\n")
    result = subprocess.run(cmd)
    return result.returncode


def show_status(output_dir: Path) -> None:
    """Display what the last render produced."""
    print("\n=== Photo Pipeline Status ===\n")
    try:
        manifest = load_manifest(manifest_path(output_dir))
    except ManifestError as e:
        print(f"  Manifest unreadable: {e}")
        manifest = None

    if manifest is None:
        print(f"  No manifest in {output_dir}. Run the render phase first.")
    else:
        per_format = Counter(v.format for e in manifest.entries for v in e.variants)
        bare = [e.slug for e in manifest.entries if not e.variants]
        print(f"  Width policy:          {manifest.width_policy.value}")
        print(f"  Standard widths:       {', '.join(str(w) for w in manifest.standard_widths)}")
        print(f"  Images in manifest:    {len(manifest.entries)}")
        for fmt, count in sorted(per_format.items()):
            print(f"  Variants {fmt:13s}: {count}")
        if bare:
            print(f"  Placeholder only:      {', '.join(bare)}")

    lock = pipeline_lock.lock_status(pipeline_lock.lock_path_for(output_dir))
    if lock:
        state = "running" if lock["alive"] else "stale"
        print(f"  Lock:                  {lock.get('script', '?')} "
              f"(PID {lock.get('pid')}, {state}, since {lock.get('started', '?')})")
    print()


# ---------------------------------------------------------------------------
# Phase implementations
# ---------------------------------------------------------------------------

def phase_render(input_dir: Path, output_dir: Path, keep_going: bool) -> int:
    """Phase 1: Render variants and the manifest."""
    args = ["--input", str(input_dir), "--output", str(output_dir)]
    if keep_going:
        args.append("--keep-going")
    return run_script("render_variants.py", args, "Phase 1: Render Variants")


def phase_records(output_dir: Path) -> int:
    """Phase 2: Generate per-photo YAML records from the manifest."""
    args = ["--manifest", str(manifest_path(output_dir))]
    return run_script("generate_photo_records.py", args, "Phase 2: Generate Records")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Photo Pipeline Orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"Phases: {', '.join(PHASES)}")
    parser.add_argument("--phase", choices=PHASES,
                        help="Run a specific phase only")
    parser.add_argument("--input", type=Path, default=RAW_DIR,
                        help="Directory of original photos")
    parser.add_argument("--output", type=Path, default=PROCESSED_DIR,
                        help="Render output directory")
    parser.add_argument("--keep-going", action="store_true",
                        help="Let the render phase skip photos that fail")
    parser.add_argument("--status", action="store_true",
                        help="Show pipeline status and exit")
    args = parser.parse_args(argv)

    if args.status:
        show_status(args.output)
        return

    start = datetime.now()
    print(f"Photo Pipeline — {start.strftime('%Y-%m-%d %H:%M')}")

    phase = args.phase

    if phase is None or phase == "render":
        status = phase_render(args.input, args.output, args.keep_going)
        if status != 0:
            if not (args.keep_going and status == PARTIAL_EXIT_CODE):
                print("\nRender phase failed. Fix errors and re-run.")
                sys.exit(1)
            print("\nRender phase had failures. Continuing with the photos that rendered.")
        if phase:
            return

    if phase is None or phase == "records":
        if phase_records(args.output) != 0:
            print("\nRecords phase failed.")
            sys.exit(1)

    elapsed = datetime.now() - start
    print(f"\nPipeline complete in {elapsed}.")


if __name__ == "__main__":
    main()
