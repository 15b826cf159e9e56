"""CLI for rendering a composition manifest.

Usage:
    # Render to the manifest's output path
    python -m scenecompose.cli --manifest composition.yaml

    # Render to an explicit path with 4 parallel scene jobs
    python -m scenecompose.cli \
        --manifest composition.yaml --output /tmp/final.mp4 --concurrency 4

    # Validate only (no rendering)
    python -m scenecompose.cli --manifest composition.yaml --validate
"""

import argparse
import sys
import time

from .errors import SceneComposeError
from .events import Completed, Failed, Progress
from .manifest import load_composition, summarize, validate_sources


def _print_event(event, t_start: float) -> None:
    elapsed = time.monotonic() - t_start
    if isinstance(event, Progress):
        print(f"  {event.fraction * 100:5.1f}%  ({elapsed:.1f}s)", flush=True)
    elif isinstance(event, Completed):
        usage = event.usage
        print(
            f"\nDone: {event.output} ({usage.get('duration', 0):.1f}s video, "
            f"{usage.get('encoder_invocations', 0)} encoder runs, "
            f"{usage.get('cache_hits', 0)} cache hits, {elapsed:.1f}s wall)",
            flush=True,
        )
    elif isinstance(event, Failed):
        print(f"\nFailed: {event.error}", file=sys.stderr, flush=True)


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Render a scenecompose YAML manifest to a video file.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to YAML manifest file",
    )
    parser.add_argument(
        "--output",
        help="Output video path (overrides the manifest's 'output')",
    )
    parser.add_argument(
        "--concurrency", type=int, default=None,
        help="Number of parallel render jobs (overrides the manifest)",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate manifest only: check sources, don't render",
    )
    args = parser.parse_args(args)

    comp = load_composition(args.manifest)

    if args.validate:
        validate_sources(comp)
        print(f"Manifest valid: {len(comp.scenes)} scenes")
        for line in summarize(comp):
            print(line)
        print("All sources verified.")
        return

    if args.output:
        comp.set_output(args.output)
    if args.concurrency is not None:
        comp.set_option("concurrency", args.concurrency)

    cfg = comp.config
    print(
        f"Rendering {len(comp.scenes)} scenes at {cfg.frame_width}x{cfg.frame_height}, "
        f"{cfg.frame_rate}fps ({cfg.concurrency} workers)",
        flush=True,
    )
    t_start = time.monotonic()
    try:
        run = comp.start()
        for event in run.events():
            _print_event(event, t_start)
        run.result()
    except SceneComposeError:
        sys.exit(1)
    finally:
        comp.destroy()


if __name__ == "__main__":
    main()
