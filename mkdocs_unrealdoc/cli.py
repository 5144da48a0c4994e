"""
Command line entry point: ``unrealdoc [-i UnrealDoc.toml] [-o DIR]``.

Loads the project config, runs the pipeline and bakes the configured
backend (``documentation.json`` or an MkDocs project).
"""

from __future__ import annotations

import argparse
import logging
import sys

from .config import load_config
from .errors import UnrealDocError
from .export import bake_json, bake_mkdocs
from .pipeline import run

log = logging.getLogger("mkdocs.plugins.unrealdoc")


def build_parser():
    p = argparse.ArgumentParser(
        prog="unrealdoc",
        description="Generate documentation from Unreal C++ headers and Markdown books",
    )
    p.add_argument("-i", "--input", default="UnrealDoc.toml", help="Project config file (default: %(default)s)")
    p.add_argument("-o", "--output", default=None, help="Override the configured output directory")
    p.add_argument("-j", "--jobs", type=int, default=1, help="Parse headers on this many threads")
    p.add_argument("-v", "--verbose", action="store_true", help="Log per-file progress")
    return p


def bake(config, jobs=1):
    document = run(config.input_dirs, settings=config.settings, jobs=jobs)
    if config.backend == "mkdocs":
        out = bake_mkdocs(document, config)
    else:
        out = bake_json(document, str(config.output_dir))
    return document, out


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        config = load_config(args.input, output=args.output)
        document, out = bake(config, args.jobs)
    except UnrealDocError as exc:
        log.error("unrealdoc: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(f"{len(document.tree)} symbols, {len(document.diagnostics)} warnings -> {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
