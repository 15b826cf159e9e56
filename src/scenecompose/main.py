"""Subcommand dispatcher for scenecompose.

Usage:
    scenecompose render --manifest composition.yaml --output out.mp4
    scenecompose render --manifest composition.yaml --validate
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="scenecompose",
        description="Declarative scene-based video composition.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Each subcommand delegates to its own module's main().
    subparsers.add_parser("render", help="Render a composition from a YAML manifest")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "render":
        from .cli import main as render_main
        render_main(remaining)


if __name__ == "__main__":
    main()
