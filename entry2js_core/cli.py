"""
Command-line entry point: ``entry2js path/to/project.json``.
"""

import argparse
import logging
import sys
from dataclasses import replace

from . import __version__
from .config import TranspilerConfig
from .exceptions import TranspilerError
from .orchestrator import TranspileOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="entry2js",
        description="Transpile an extracted Entry project into FastEntry JavaScript."
    )
    parser.add_argument("manifest", help="path to the extracted project.json")
    parser.add_argument("--timeout", type=float, default=None,
                        help="seconds allowed per object (default: ENTRY2JS_UNIT_TIMEOUT or 30)")
    parser.add_argument("--verbose", "-v", action="store_true", help="enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = TranspilerConfig.from_env()
    if args.timeout is not None:
        config = replace(config, unit_timeout=args.timeout if args.timeout > 0 else None)

    orchestrator = TranspileOrchestrator(config, on_progress=print)
    try:
        report = orchestrator.run(args.manifest)
    except TranspilerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for outcome in report.outcomes.values():
        status = "ok" if outcome.success else "FAILED"
        print(f"  {status:6} {outcome.label} -> {outcome.output_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
